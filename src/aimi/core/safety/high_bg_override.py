from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from aimi.core.safety.config import SafetyConfig


@dataclass(frozen=True)
class OverrideResult:
    dose: float
    override_used: bool
    new_interval: Optional[float]


def is_below_hypo_guard(bg: float, predicted: float, eventual: float, hypo_guard: float) -> bool:
    return min(bg, predicted, eventual) <= hypo_guard


def apply_high_bg_override(bg: float,
                           delta: float,
                           predicted: float,
                           eventual: float,
                           hypo_guard: float,
                           iob: float,
                           max_smb: float,
                           current_dose: float,
                           pump_step: float,
                           config: Optional[SafetyConfig] = None) -> OverrideResult:
    """
    When glucose is clearly high and not heading for a low, make sure at
    least one pump step is delivered and drop the SMB interval to zero.
    """
    cfg = config or SafetyConfig()
    high = bg >= cfg.high_bg_override_strong or (
        bg >= cfg.high_bg_override_min and delta >= cfg.high_bg_override_delta
    )
    if not high or is_below_hypo_guard(bg, predicted, eventual, hypo_guard) or iob >= max_smb:
        return OverrideResult(current_dose, False, None)

    dose = max(current_dose, pump_step)
    dose = min(dose, max_smb)
    return OverrideResult(dose, True, 0.0)
