from .config import SafetyConfig
from .input_validator import InputValidator
from .high_bg_override import OverrideResult, apply_high_bg_override

__all__ = ["SafetyConfig", "InputValidator", "OverrideResult", "apply_high_bg_override"]
