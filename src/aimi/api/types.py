from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional


@dataclass
class GlucoseSample:
    """One CGM reading with its trend features, produced externally every ~5 min."""
    timestamp: float  # epoch minutes
    value: float  # mg/dL
    delta: float = 0.0  # mg/dL per 5 min
    short_avg_delta: Optional[float] = None
    long_avg_delta: Optional[float] = None
    acceleration: float = 0.0
    fit_quality: Optional[float] = None  # r^2 of the local fit, 0..1
    parabola_minutes: float = 0.0
    plateau_minutes: float = 0.0

    @property
    def short_delta(self) -> float:
        return self.delta if self.short_avg_delta is None else self.short_avg_delta

    @property
    def long_delta(self) -> float:
        return self.delta if self.long_avg_delta is None else self.long_avg_delta


@dataclass
class InsulinDose:
    amount: float
    elapsed_minutes: float


@dataclass
class InsulinState:
    """Insulin on board plus its per-dose decomposition."""
    iob: float = 0.0
    doses: List[InsulinDose] = field(default_factory=list)

    @property
    def minutes_since_last_dose(self) -> Optional[float]:
        if not self.doses:
            return None
        return min(dose.elapsed_minutes for dose in self.doses)


@dataclass
class PumpCaps:
    max_basal: float = 3.0
    basal_step: float = 0.05
    min_duration: int = 30
    bolus_step: float = 0.05


@dataclass
class Profile:
    basal_rate: float
    isf: float
    target_bg: float = 100.0
    carb_ratio: float = 10.0
    max_iob: float = 4.0
    lgs_threshold: float = 70.0
    max_smb: float = 1.0
    pump: PumpCaps = field(default_factory=PumpCaps)
    basal_estimate: Optional[float] = None
    tdd_7d_average: Optional[float] = None

    @property
    def effective_basal_estimate(self) -> float:
        return self.basal_rate if self.basal_estimate is None else self.basal_estimate


MEAL_WINDOW_NAMES = ("snack", "meal", "breakfast", "lunch", "dinner", "highcarb")


@dataclass
class ModeFlags:
    """Mode and context switches coming from the host application."""
    meal_windows: Dict[str, int] = field(default_factory=dict)  # name -> runtime minutes
    meal_active: bool = False
    meal_runtime: int = -1
    forced_meal_active: bool = False
    forced_basal: float = 0.0
    exercise: bool = False
    sport: bool = False
    fasting: bool = False
    honeymoon: bool = False
    night: bool = False
    autodrive: bool = False
    modes_condition: bool = True
    hour_of_day: int = 12
    six_am_hour: int = 6
    recent_steps_5min: int = 0
    late_fat_meal_suspected: bool = False
    allow_meal_high_iob: bool = False
    high_bg_rise_active: bool = False

    def window_runtime(self, name: str) -> Optional[int]:
        return self.meal_windows.get(name)

    @property
    def any_meal_window(self) -> bool:
        return self.meal_active or bool(self.meal_windows)


class Intensity(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    EXTREME = 4


INTENT_CATEGORIES = ("activity", "illness", "stress", "alcohol", "meal_risk")


@dataclass
class ContextIntent:
    """Structured context already parsed by an external provider."""
    category: str
    intensity: Intensity
    start: float  # epoch minutes
    duration_minutes: float
    confidence: float = 1.0

    def is_active(self, now: float) -> bool:
        return self.start <= now < self.start + self.duration_minutes


@dataclass
class TickInput:
    glucose: GlucoseSample
    insulin: InsulinState
    profile: Optional[Profile]
    modes: ModeFlags = field(default_factory=ModeFlags)
    intents: List[ContextIntent] = field(default_factory=list)
    tdd_24h: float = 0.0
    active_carbs: float = 0.0
    predicted_bg: Optional[float] = None
    eventual_bg: Optional[float] = None
    slope_from_max_deviation: float = 0.0
    slope_from_min_deviation: float = 0.0
    current_temp_rate: Optional[float] = None
    hypo_risk: bool = False
    low_suspend_basal: bool = False

    @property
    def now(self) -> float:
        return self.glucose.timestamp

    @property
    def predicted(self) -> float:
        return self.glucose.value if self.predicted_bg is None else self.predicted_bg

    @property
    def eventual(self) -> float:
        return self.predicted if self.eventual_bg is None else self.eventual_bg

    @property
    def combined_delta(self) -> float:
        # Mean of the observed 5-min delta and the delta implied by the 30-min prediction.
        predicted_delta = (self.predicted - self.glucose.value) / 6.0
        return (self.glucose.delta + predicted_delta) / 2.0


@dataclass
class ReasonEntry:
    """Single entry in the reason trail explaining a fired rule"""
    reason: str
    category: str  # 'planner', 'engine', 'smb', 'safety', 'trajectory', 'context', 'fallback'
    value: Any = None
    clinical_impact: str = ""

    def to_dict(self) -> Dict:
        return {
            'reason': self.reason,
            'category': self.category,
            'value': self.value,
            'clinical_impact': self.clinical_impact
        }

    def __str__(self) -> str:
        text = f"[{self.category}] {self.reason}"
        if self.clinical_impact:
            text += f" → {self.clinical_impact}"
        return text


@dataclass
class Decision:
    """Dosing command produced by one tick; never retained across ticks."""
    rate: float
    duration: int
    bolus: float = 0.0
    override_safety: bool = False
    reasons: List[ReasonEntry] = field(default_factory=list)
    smb_interval_minutes: float = 5.0
    prefer_basal: bool = False
    advisories: List[Any] = field(default_factory=list)
    fused_isf: Optional[float] = None
    short_circuited: bool = False
    fallback: bool = False
    rule: Optional[str] = None

    def add_reason(self, reason: str, category: str, value: Any = None, clinical_impact: str = "") -> None:
        self.reasons.append(ReasonEntry(reason=reason, category=category, value=value, clinical_impact=clinical_impact))

    def reason_text(self) -> str:
        return " | ".join(entry.reason for entry in self.reasons)

    def to_dict(self) -> Dict:
        return {
            'rate': self.rate,
            'duration': self.duration,
            'bolus': self.bolus,
            'override_safety': self.override_safety,
            'smb_interval_minutes': self.smb_interval_minutes,
            'prefer_basal': self.prefer_basal,
            'fused_isf': self.fused_isf,
            'short_circuited': self.short_circuited,
            'fallback': self.fallback,
            'rule': self.rule,
            'reasons': [entry.to_dict() for entry in self.reasons],
            'advisories': [getattr(w, "type", str(w)) for w in self.advisories],
        }
