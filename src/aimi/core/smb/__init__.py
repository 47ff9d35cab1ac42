from .quantizer import quantize, quantize_to_pump_step
from .policy import SmbOutcome, SmbPolicy

__all__ = ["quantize", "quantize_to_pump_step", "SmbOutcome", "SmbPolicy"]
