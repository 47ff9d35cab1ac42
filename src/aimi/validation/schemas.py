from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from aimi.api.types import INTENT_CATEGORIES, MEAL_WINDOW_NAMES


# ---------------------------------------------------------------------------
# Controller configuration (YAML)
# ---------------------------------------------------------------------------

class SafetyConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_glucose: float = Field(default=39.0, ge=10.0, le=100.0)
    max_glucose: float = Field(default=500.0, ge=200.0, le=1000.0)
    max_glucose_delta_per_5_min: float = Field(default=35.0, gt=0.0, le=100.0)

    default_lgs_threshold: float = Field(default=70.0, ge=50.0, le=120.0)
    min_valid_lgs_threshold: float = Field(default=40.0, ge=0.0, le=100.0)
    hard_floor_margin: float = Field(default=15.0, ge=0.0, le=50.0)
    hard_floor_minimum: float = Field(default=50.0, ge=40.0, le=100.0)
    hypo_suspend_minutes: int = Field(default=30, ge=5, le=120)
    predictive_low_delta: float = Field(default=-2.0, le=0.0)
    predictive_low_horizon_steps: int = Field(default=6, ge=1, le=24)

    zero_resume_minutes: int = Field(default=5, ge=0, le=120)
    zero_resume_fraction: float = Field(default=0.5, ge=0.0, le=1.0)
    zero_resume_max_minutes: int = Field(default=30, ge=5, le=120)
    plateau_high_bg: float = Field(default=120.0, ge=80.0, le=400.0)
    plateau_delta_abs: float = Field(default=3.0, ge=0.0, le=10.0)
    kick_fraction: float = Field(default=0.15, ge=0.0, le=1.0)
    kick_min_rate: float = Field(default=0.2, ge=0.0, le=5.0)
    kick_minutes: int = Field(default=10, ge=5, le=120)
    anti_stall_fraction: float = Field(default=0.10, ge=0.0, le=1.0)
    delta_pos_release: float = Field(default=1.0, ge=0.0, le=10.0)
    planner_max_multiplier: float = Field(default=1.6, ge=1.0, le=4.0)
    min_basal_step: float = Field(default=0.05, gt=0.0, le=1.0)
    min_temp_duration: int = Field(default=10, ge=5, le=120)

    advisor_max_multiplier: float = Field(default=1.8, ge=1.0, le=4.0)
    max_rate_multiplier: float = Field(default=4.0, ge=1.0, le=10.0)
    default_duration: int = Field(default=30, ge=5, le=240)

    smb_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    base_smb_interval: float = Field(default=5.0, ge=0.0, le=60.0)
    high_bg_override_min: float = Field(default=120.0, ge=100.0, le=400.0)
    high_bg_override_strong: float = Field(default=160.0, ge=100.0, le=400.0)
    high_bg_override_delta: float = Field(default=1.5, ge=0.0, le=20.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "SafetyConfigModel":
        if self.min_glucose >= self.max_glucose:
            raise ValueError("min_glucose must be < max_glucose")
        if self.high_bg_override_min > self.high_bg_override_strong:
            raise ValueError("high_bg_override_min must be <= high_bg_override_strong")
        return self


class PkPdBoundsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dia_min_hours: float = Field(default=6.0, ge=2.0, le=48.0)
    dia_max_hours: float = Field(default=24.0, ge=2.0, le=48.0)
    peak_min_minutes: float = Field(default=40.0, ge=10.0, le=480.0)
    peak_max_minutes: float = Field(default=240.0, ge=10.0, le=480.0)
    max_dia_change_per_day_hours: float = Field(default=2.0, gt=0.0, le=24.0)
    max_peak_change_per_day_minutes: float = Field(default=20.0, gt=0.0, le=240.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "PkPdBoundsModel":
        if self.dia_min_hours >= self.dia_max_hours:
            raise ValueError("dia_min_hours must be < dia_max_hours")
        if self.peak_min_minutes >= self.peak_max_minutes:
            raise ValueError("peak_min_minutes must be < peak_max_minutes")
        return self


class LearningConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_window_minutes: float = Field(default=20.0, ge=0.0)
    max_window_minutes: float = Field(default=180.0, gt=0.0)
    min_iob: float = Field(default=0.3, ge=0.0)
    max_active_carbs: float = Field(default=5.0, ge=0.0)
    max_delta: float = Field(default=3.0)
    learning_rate: float = Field(default=0.02, ge=0.0, le=1.0)
    tail_weight: float = Field(default=1.5, ge=0.0, le=10.0)
    max_rate_change_scale: float = Field(default=1.0, gt=0.0, le=10.0)
    regularization: float = Field(default=0.002, ge=0.0, le=1.0)
    anchor_dia_hours: float = Field(default=4.0, gt=0.0, le=48.0)
    anchor_peak_minutes: float = Field(default=75.0, gt=0.0, le=480.0)

    @model_validator(mode="after")
    def _check_window(self) -> "LearningConfigModel":
        if self.min_window_minutes >= self.max_window_minutes:
            raise ValueError("min_window_minutes must be < max_window_minutes")
        return self


class IsfFusionModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_factor: float = Field(default=0.75, gt=0.0, le=1.0)
    max_factor: float = Field(default=1.25, ge=1.0, le=3.0)
    max_change_per_5min: float = Field(default=0.03, gt=0.0, le=0.5)

    @model_validator(mode="after")
    def _check_band(self) -> "IsfFusionModel":
        if self.min_factor >= self.max_factor:
            raise ValueError("min_factor must be < max_factor")
        return self


class TailPolicyModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tail_iob_high: float = Field(default=0.25, ge=0.0, le=1.0)
    smb_damping_at_tail: float = Field(default=0.5, ge=0.0, le=1.0)
    post_exercise_damping: float = Field(default=0.6, ge=0.0, le=1.0)
    late_fatty_meal_damping: float = Field(default=0.7, ge=0.0, le=1.0)


class ActionModelModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dia_hours: float = Field(default=4.0, gt=0.0, le=48.0)
    peak_minutes: float = Field(default=75.0, gt=0.0, le=480.0)


class ControllerConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    safety: SafetyConfigModel = Field(default_factory=SafetyConfigModel)
    bounds: PkPdBoundsModel = Field(default_factory=PkPdBoundsModel)
    learning: LearningConfigModel = Field(default_factory=LearningConfigModel)
    isf_fusion: IsfFusionModel = Field(default_factory=IsfFusionModel)
    tail_policy: TailPolicyModel = Field(default_factory=TailPolicyModel)
    initial_params: ActionModelModel = Field(default_factory=ActionModelModel)
    trajectory_window_minutes: float = Field(default=90.0, ge=20.0, le=360.0)
    context_mode: Literal["conservative", "balanced", "aggressive"] = "balanced"
    use_advisor: bool = True


# ---------------------------------------------------------------------------
# Tick input (JSON)
# ---------------------------------------------------------------------------

class GlucoseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timestamp: float = Field(ge=0.0)
    value: float
    delta: float = 0.0
    short_avg_delta: Optional[float] = None
    long_avg_delta: Optional[float] = None
    acceleration: float = 0.0
    fit_quality: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    parabola_minutes: float = Field(default=0.0, ge=0.0)
    plateau_minutes: float = Field(default=0.0, ge=0.0)


class DoseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: float = Field(ge=0.0)
    elapsed_minutes: float = Field(ge=0.0)


class InsulinModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    iob: float = 0.0
    doses: List[DoseModel] = Field(default_factory=list)


class PumpModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_basal: float = Field(default=3.0, gt=0.0, le=35.0)
    basal_step: float = Field(default=0.05, gt=0.0, le=1.0)
    min_duration: int = Field(default=30, ge=5, le=240)
    bolus_step: float = Field(default=0.05, gt=0.0, le=1.0)


class ProfileModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    basal_rate: float = Field(ge=0.0, le=35.0)
    isf: float = Field(gt=0.0, le=1000.0)
    target_bg: float = Field(default=100.0, ge=70.0, le=200.0)
    carb_ratio: float = Field(default=10.0, gt=0.0, le=100.0)
    max_iob: float = Field(default=4.0, ge=0.0, le=50.0)
    lgs_threshold: float = Field(default=70.0, ge=0.0, le=120.0)
    max_smb: float = Field(default=1.0, ge=0.0, le=20.0)
    pump: PumpModel = Field(default_factory=PumpModel)
    basal_estimate: Optional[float] = Field(default=None, ge=0.0)
    tdd_7d_average: Optional[float] = Field(default=None, ge=0.0)


class ModesModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    meal_windows: Dict[str, int] = Field(default_factory=dict)
    meal_active: bool = False
    meal_runtime: int = -1
    forced_meal_active: bool = False
    forced_basal: float = Field(default=0.0, ge=0.0)
    exercise: bool = False
    sport: bool = False
    fasting: bool = False
    honeymoon: bool = False
    night: bool = False
    autodrive: bool = False
    modes_condition: bool = True
    hour_of_day: int = Field(default=12, ge=0, le=23)
    six_am_hour: int = Field(default=6, ge=0, le=23)
    recent_steps_5min: int = Field(default=0, ge=0)
    late_fat_meal_suspected: bool = False
    allow_meal_high_iob: bool = False
    high_bg_rise_active: bool = False

    @field_validator("meal_windows")
    @classmethod
    def _known_windows(cls, value: Dict[str, int]) -> Dict[str, int]:
        unknown = sorted(set(value) - set(MEAL_WINDOW_NAMES))
        if unknown:
            raise ValueError(f"unknown meal windows: {', '.join(unknown)}")
        return value


class IntentModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: str
    intensity: Literal["LOW", "MEDIUM", "HIGH", "EXTREME"]
    start: float
    duration_minutes: float = Field(gt=0.0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        if value not in INTENT_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(INTENT_CATEGORIES)}")
        return value

    @field_validator("intensity", mode="before")
    @classmethod
    def _upper(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class TickInputModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    glucose: GlucoseModel
    insulin: InsulinModel = Field(default_factory=InsulinModel)
    profile: Optional[ProfileModel] = None
    modes: ModesModel = Field(default_factory=ModesModel)
    intents: List[IntentModel] = Field(default_factory=list)
    tdd_24h: float = Field(default=0.0, ge=0.0)
    active_carbs: float = Field(default=0.0, ge=0.0)
    predicted_bg: Optional[float] = None
    eventual_bg: Optional[float] = None
    slope_from_max_deviation: float = 0.0
    slope_from_min_deviation: float = 0.0
    current_temp_rate: Optional[float] = Field(default=None, ge=0.0)
    hypo_risk: bool = False
    low_suspend_basal: bool = False
