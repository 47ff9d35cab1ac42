from .models import (
    NEUTRAL_MODULATION,
    PhaseSpacePoint,
    PhaseSpaceWeights,
    StableOrbit,
    TrajectoryAnalysis,
    TrajectoryMetrics,
    TrajectoryModulation,
    TrajectoryType,
    TrajectoryWarning,
    WarningSeverity,
)
from .history import TrajectoryHistory
from .guard import TrajectoryGuard

__all__ = [
    "NEUTRAL_MODULATION",
    "PhaseSpacePoint",
    "PhaseSpaceWeights",
    "StableOrbit",
    "TrajectoryAnalysis",
    "TrajectoryMetrics",
    "TrajectoryModulation",
    "TrajectoryType",
    "TrajectoryWarning",
    "WarningSeverity",
    "TrajectoryHistory",
    "TrajectoryGuard",
]
