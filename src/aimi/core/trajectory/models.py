"""
Phase-space value objects for the trajectory guard.

Glucose, its 5-min delta and insulin activity are treated as coordinates of
a point; the guard reasons about the path those points trace over the last
hour or so.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from aimi.core.pkpd.kernel import ActivityStage


@dataclass(frozen=True)
class PhaseSpaceWeights:
    bg_norm: float = 40.0  # mg/dL
    delta_norm: float = 5.0  # mg/dL per 5 min
    activity_norm: float = 2.0  # U/h


DEFAULT_WEIGHTS = PhaseSpaceWeights()


@dataclass(frozen=True)
class PhaseSpacePoint:
    timestamp: float  # epoch minutes
    bg: float
    delta: float
    acceleration: float = 0.0
    insulin_activity: float = 0.0  # U/h
    iob: float = 0.0
    stage: ActivityStage = ActivityStage.EXHAUSTED
    minutes_since_last_dose: Optional[float] = None
    cob: float = 0.0

    def distance_to(self, other: "PhaseSpacePoint", weights: PhaseSpaceWeights = DEFAULT_WEIGHTS) -> float:
        bg_diff = (self.bg - other.bg) / weights.bg_norm
        delta_diff = (self.delta - other.delta) / weights.delta_norm
        activity_diff = (self.insulin_activity - other.insulin_activity) / weights.activity_norm
        return math.sqrt(bg_diff ** 2 + delta_diff ** 2 + activity_diff ** 2)

    def as_plane_point(self) -> Tuple[float, float]:
        return self.bg, self.delta


@dataclass(frozen=True)
class StableOrbit:
    """Target attractor: on target, flat, insulin activity equal to basal."""
    target_bg: float
    target_delta: float = 0.0
    target_activity: float = 0.0
    tolerance_bg: float = 20.0
    tolerance_delta: float = 2.0

    @classmethod
    def from_profile(cls, target_bg: float, basal_rate: float) -> "StableOrbit":
        return cls(target_bg=target_bg, target_activity=basal_rate)

    def contains(self, point: PhaseSpacePoint) -> bool:
        return (abs(point.bg - self.target_bg) <= self.tolerance_bg
                and abs(point.delta - self.target_delta) <= self.tolerance_delta)

    def to_phase_space_point(self) -> PhaseSpacePoint:
        return PhaseSpacePoint(
            timestamp=0.0,
            bg=self.target_bg,
            delta=self.target_delta,
            insulin_activity=self.target_activity,
            stage=ActivityStage.TAIL,
            minutes_since_last_dose=240.0,
        )


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


@dataclass(frozen=True)
class TrajectoryMetrics:
    curvature: float
    convergence_velocity: float
    coherence: float
    energy_balance: float
    openness: float

    @property
    def is_converging(self) -> bool:
        return self.convergence_velocity > 0.0

    @property
    def is_diverging(self) -> bool:
        return self.convergence_velocity < -0.3

    @property
    def is_tight_spiral(self) -> bool:
        return self.curvature > 0.3 and self.energy_balance > 2.0

    @property
    def has_low_coherence(self) -> bool:
        return self.coherence < 0.3

    @property
    def is_stable(self) -> bool:
        return self.openness < 0.3 and abs(self.convergence_velocity) < 0.2

    @property
    def health_score(self) -> float:
        convergence = _clamp(self.convergence_velocity + 0.5, 0.0, 1.0)
        coherence = (self.coherence + 1.0) / 2.0
        openness = 1.0 - _clamp(self.openness, 0.0, 1.0)
        energy = _clamp(1.0 - self.energy_balance / 5.0, 0.0, 1.0)
        return _clamp(convergence * 0.3 + coherence * 0.3 + openness * 0.2 + energy * 0.2, 0.0, 1.0)


class TrajectoryType(Enum):
    OPEN_DIVERGING = "Trajectory diverging - BG not controlled"
    CLOSING_CONVERGING = "Trajectory closing - returning to target"
    TIGHT_SPIRAL = "Trajectory compressed - over-correction risk"
    STABLE_ORBIT = "Stable orbit maintained"
    UNCERTAIN = "Trajectory unclear - need more data"

    @property
    def description(self) -> str:
        return self.value


@dataclass(frozen=True)
class TrajectoryModulation:
    """Soft factors applied multiplicatively by the SMB policy."""
    smb_damping: float = 1.0
    interval_stretch: float = 1.0
    basal_preference: float = 0.5
    safety_margin_expand: float = 1.0
    reason: str = "Neutral - no trajectory modulation"

    def is_significant(self) -> bool:
        return (abs(self.smb_damping - 1.0) > 0.02
                or abs(self.interval_stretch - 1.0) > 0.02
                or abs(self.basal_preference - 0.5) > 0.05
                or abs(self.safety_margin_expand - 1.0) > 0.02)


NEUTRAL_MODULATION = TrajectoryModulation()


class WarningSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TrajectoryWarning:
    severity: WarningSeverity
    type: str
    message: str
    suggested_action: str

    def __str__(self) -> str:
        return f"[{self.severity.name}] {self.type}: {self.message}"


@dataclass
class TrajectoryAnalysis:
    classification: TrajectoryType
    metrics: TrajectoryMetrics
    modulation: TrajectoryModulation
    warnings: List[TrajectoryWarning] = field(default_factory=list)
    stable_orbit_distance: float = 0.0
    predicted_convergence_time: Optional[int] = None

    def to_console_log(self) -> List[str]:
        m = self.metrics
        if m.is_converging:
            trend = "converging"
        elif m.is_diverging:
            trend = "diverging"
        else:
            trend = ""
        lines = [
            "TRAJECTORY ANALYSIS",
            f"  Type: {self.classification.description}",
            "  Metrics:",
            f"    Curvature: {m.curvature:.3f} {'HIGH' if m.is_tight_spiral else ''}".rstrip(),
            f"    Convergence: {m.convergence_velocity:+.3f} mg/dL/min {trend}".rstrip(),
            f"    Coherence: {m.coherence:.2f} {'LOW' if m.has_low_coherence else ''}".rstrip(),
            f"    Energy: {m.energy_balance:+.2f}U",
            f"    Openness: {m.openness:.2f} {'WIDE' if m.openness > 0.7 else ''}".rstrip(),
            f"    Health: {m.health_score * 100:.1f}%",
        ]
        if self.modulation.is_significant():
            mod = self.modulation
            lines.extend([
                "  Modulation:",
                f"    SMB damping: {mod.smb_damping:.2f}x",
                f"    Interval: {mod.interval_stretch:.2f}x",
                f"    Basal pref: {mod.basal_preference * 100:.0f}%",
                f"    Safety margin: {mod.safety_margin_expand:.2f}x",
                f"    -> {mod.reason}",
            ])
        if self.warnings:
            lines.append("  Warnings:")
            for warning in self.warnings:
                lines.append(f"    [{warning.severity.name}] [{warning.type}] {warning.message}")
                lines.append(f"      -> {warning.suggested_action}")
        if self.predicted_convergence_time is not None:
            lines.append(f"  Expected convergence: {self.predicted_convergence_time}min")
        return lines
