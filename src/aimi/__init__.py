# src/aimi/__init__.py

__version__ = "0.3.0"

# Inputs and outputs of a tick
from .api.types import (
    ContextIntent,
    Decision,
    GlucoseSample,
    InsulinDose,
    InsulinState,
    Intensity,
    ModeFlags,
    Profile,
    PumpCaps,
    ReasonEntry,
    TickInput,
)

# Controller and its configuration
from .core.config import ControllerConfig
from .core.controller import AimiController
from .core.safety import SafetyConfig
from .core.pkpd import ActionModelParams, AdaptivePkPdEstimator
from .core.trajectory import TrajectoryGuard, TrajectoryHistory
from .learning import JsonParamStore

# Config / input loading
from .validation import (
    format_validation_error,
    load_controller_config,
    load_tick_input,
    tick_input_from_dict,
)

__all__ = [
    "__version__",
    "ContextIntent",
    "Decision",
    "GlucoseSample",
    "InsulinDose",
    "InsulinState",
    "Intensity",
    "ModeFlags",
    "Profile",
    "PumpCaps",
    "ReasonEntry",
    "TickInput",
    "ControllerConfig",
    "AimiController",
    "SafetyConfig",
    "ActionModelParams",
    "AdaptivePkPdEstimator",
    "TrajectoryGuard",
    "TrajectoryHistory",
    "JsonParamStore",
    "format_validation_error",
    "load_controller_config",
    "load_tick_input",
    "tick_input_from_dict",
]
