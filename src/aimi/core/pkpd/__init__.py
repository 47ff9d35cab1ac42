from .kernel import ActionModelParams, ActivityStage, ActivityWindow
from .estimator import ActivityState, AdaptivePkPdEstimator, LearningConfig, PkPdBounds
from .isf_fusion import IsfFusion, IsfFusionBounds, compute_tdd_isf
from .damping import DampingAudit, SmbDamping, TailAwareSmbPolicy
from .runtime import MealContext, PkPdIntegration, PkPdRuntime, compute_pkpd_scale
from .absorption_guard import AbsorptionGuard, GuardResult
from .throttle import Throttle, compute_throttle

__all__ = [
    "ActionModelParams",
    "ActivityStage",
    "ActivityWindow",
    "ActivityState",
    "AdaptivePkPdEstimator",
    "LearningConfig",
    "PkPdBounds",
    "IsfFusion",
    "IsfFusionBounds",
    "compute_tdd_isf",
    "DampingAudit",
    "SmbDamping",
    "TailAwareSmbPolicy",
    "MealContext",
    "PkPdIntegration",
    "PkPdRuntime",
    "compute_pkpd_scale",
    "AbsorptionGuard",
    "GuardResult",
    "Throttle",
    "compute_throttle",
]
