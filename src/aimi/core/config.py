from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from aimi.core.context.influence import ContextMode
from aimi.core.pkpd.damping import TailAwareSmbPolicy
from aimi.core.pkpd.estimator import LearningConfig
from aimi.core.pkpd.isf_fusion import IsfFusionBounds
from aimi.core.pkpd.kernel import ActionModelParams
from aimi.core.safety.config import SafetyConfig


@dataclass
class ControllerConfig:
    """Everything the controller needs besides the per-tick inputs."""
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)
    isf_bounds: IsfFusionBounds = field(default_factory=IsfFusionBounds)
    tail_policy: TailAwareSmbPolicy = field(default_factory=TailAwareSmbPolicy)
    initial_params: ActionModelParams = field(default_factory=ActionModelParams)
    trajectory_window_minutes: float = 90.0
    context_mode: ContextMode = ContextMode.BALANCED
    use_advisor: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["context_mode"] = self.context_mode.value
        return data
