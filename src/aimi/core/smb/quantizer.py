from __future__ import annotations

MIN_DELIVERABLE = 0.02  # U


def quantize(units: float, step: float, min_units: float = 0.0, max_units: float = float("inf")) -> float:
    """Clamp then round to the nearest multiple of ``step``."""
    clamped = min(max_units, max(min_units, units))
    if step <= 0:
        return clamped
    quantized = round(clamped / step) * step
    if abs(quantized) < 1e-6:
        return 0.0
    return round(quantized, 6)


def quantize_to_pump_step(units: float, step: float, max_units: float = float("inf")) -> float:
    """
    Like :func:`quantize`, but a meaningful positive request never rounds
    down to nothing: anything above 0.02 U becomes at least one pump step.
    """
    quantized = quantize(units, step, 0.0, max_units)
    if quantized == 0.0 and units > MIN_DELIVERABLE and step <= max_units:
        return step
    return quantized
