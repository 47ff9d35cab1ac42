from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

TDD_ANCHOR = 1800.0


@dataclass(frozen=True)
class IsfFusionBounds:
    min_factor: float = 0.75
    max_factor: float = 1.25
    max_change_per_5min: float = 0.03


def compute_tdd_isf(tdd_24h: float, profile_isf: float) -> float:
    """
    TDD-anchored sensitivity (1800 rule), kept within ±50% of the profile ISF
    so a single atypical day cannot drag it far away.
    """
    if tdd_24h <= 0.1:
        return profile_isf
    anchored = TDD_ANCHOR / tdd_24h
    max_deviation = profile_isf * 0.5
    clamped = min(profile_isf + max_deviation, max(profile_isf - max_deviation, anchored))
    return min(400.0, max(5.0, clamped))


class IsfFusion:
    """Median of profile, TDD and PK/PD-scaled ISF, clamped to the TDD band and rate-limited."""

    def __init__(self, bounds: Optional[IsfFusionBounds] = None):
        self.bounds = bounds or IsfFusionBounds()
        self.last_isf: Optional[float] = None

    def fused(self, profile_isf: float, tdd_isf: float, pkpd_scale: float) -> float:
        pkpd_isf = max(tdd_isf * pkpd_scale, 1.0)
        candidate = float(np.median([profile_isf, tdd_isf, pkpd_isf]))
        low = tdd_isf * self.bounds.min_factor
        high = tdd_isf * self.bounds.max_factor
        candidate = min(high, max(low, candidate))

        previous = self.last_isf
        if previous is not None and previous > 0:
            max_step = previous * self.bounds.max_change_per_5min
            candidate = min(previous + max_step, max(previous - max_step, candidate))
        self.last_isf = candidate
        return candidate

    def reset(self):
        self.last_isf = None
