"""Rate helpers shared by the basal planner and the decision engine."""
from __future__ import annotations

import numpy as np

_POLY_X = np.array([80.0, 90.0, 100.0, 110.0, 130.0, 160.0, 200.0, 220.0, 240.0, 260.0, 280.0, 300.0])
_POLY_Y = np.array([0.5, 1.0, 2.0, 3.0, 5.0, 7.0, 9.0, 10.0, 10.0, 10.0, 10.0, 10.0])
HIGHER_RANGE_WEIGHT = 1.5
LOWER_RANGE_WEIGHT = 0.8


def quantize(value: float, step: float) -> float:
    if step <= 0:
        return value
    return round(value / step) * step


def round_basal(rate: float) -> float:
    """Round a basal rate to pump resolution (0.05 U/h up to 10, 0.1 above)."""
    if rate < 10.0:
        return round(rate * 20.0) / 20.0
    return round(rate * 10.0) / 10.0


def calculate_basal_rate(basal: float, current_basal: float, multiplier: float) -> float:
    if basal == 0.0:
        return current_basal * multiplier
    return round_basal(basal * multiplier)


def interpolate_basal(bg: float) -> float:
    """Piecewise-linear basal factor: 0.5 at 80, 2.0 at 120, 5.0 from 180 mg/dL."""
    clamped = min(300.0, max(80.0, bg))
    if clamped < 120.0:
        return 0.5 + (2.0 - 0.5) / (120.0 - 80.0) * (clamped - 80.0)
    if clamped < 180.0:
        return 2.0 + (5.0 - 2.0) / (180.0 - 120.0) * (clamped - 120.0)
    return 5.0


def interpolate_factor(bg: float) -> float:
    if bg < _POLY_X[0]:
        value = 0.5
    elif bg > _POLY_X[-1]:
        low_x, top_x = _POLY_X[-2], _POLY_X[-1]
        low_v, top_v = _POLY_Y[-2], _POLY_Y[-1]
        value = low_v + (bg - low_x) * (top_v - low_v) / (top_x - low_x)
    else:
        value = float(np.interp(bg, _POLY_X, _POLY_Y))
    value *= HIGHER_RANGE_WEIGHT if bg > 100 else LOWER_RANGE_WEIGHT
    return float(min(10.0, max(0.0, value)))


def smooth_basal(tdd_recent: float, tdd_previous: float, current_basal: float) -> float:
    if tdd_recent <= 0.0:
        return current_basal
    weighted = tdd_recent * 0.6 + tdd_previous * 0.4
    adjusted = current_basal * (weighted / tdd_recent)
    return min(current_basal * 2.0, max(current_basal * 0.5, adjusted))


def compute_final_basal(bg: float, tdd_recent: float, tdd_previous: float, current_basal: float) -> float:
    final = smooth_basal(tdd_recent, tdd_previous, current_basal) * interpolate_factor(bg)
    return min(8.0, max(0.0, final))
