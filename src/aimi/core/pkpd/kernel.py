"""
Log-normal insulin action kernel.

Cumulative insulin action is modelled as a log-normal CDF parameterised by
the peak time and the duration of insulin action (DIA). The CDF is rescaled
so that it reaches exactly 1.0 at DIA, which makes the residual fraction
``1 - cdf`` fall to zero at the end of the action window.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np
from scipy import optimize, stats

SIGMA = 0.45
ONSET_FRACTION = 0.05
OFFSET_FRACTION = 0.85


@dataclass(frozen=True)
class ActionModelParams:
    dia_hours: float = 4.0
    peak_minutes: float = 75.0

    @property
    def dia_minutes(self) -> float:
        return self.dia_hours * 60.0


class ActivityStage(Enum):
    PRE_ONSET = "pre_onset"
    RISING = "rising"
    PEAK = "peak"
    TAIL = "tail"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ActivityWindow:
    onset_minutes: float
    peak_minutes: float
    offset_minutes: float
    dia_minutes: float

    def normalized_position(self, minutes: float) -> float:
        if self.dia_minutes <= 0:
            return 1.0
        return min(1.0, max(0.0, minutes / self.dia_minutes))

    def post_window_fraction(self, minutes: float) -> float:
        """Fraction of the post-peak tail (offset..DIA) already elapsed."""
        span = self.dia_minutes - self.offset_minutes
        if minutes <= self.offset_minutes:
            return 0.0
        if span <= 1e-6:
            return 1.0
        return min(1.0, max(0.0, (minutes - self.offset_minutes) / span))


def _distribution(params: ActionModelParams):
    mu = math.log(params.peak_minutes) - SIGMA * SIGMA
    return stats.lognorm(s=SIGMA, scale=math.exp(mu))


def cdf(minutes: float, params: ActionModelParams) -> float:
    """Raw log-normal CDF (not rescaled to DIA)."""
    if minutes <= 0.0:
        return 0.0
    return float(_distribution(params).cdf(minutes))


def normalized_cdf(minutes: float, params: ActionModelParams) -> float:
    if minutes <= 0.0:
        return 0.0
    if minutes >= params.dia_minutes:
        return 1.0
    dist = _distribution(params)
    total = float(dist.cdf(params.dia_minutes))
    if total <= 0.0:
        return 1.0
    return min(1.0, max(0.0, float(dist.cdf(minutes)) / total))


def residual(minutes: float, params: ActionModelParams) -> float:
    """Fraction of a dose's effect still pending after ``minutes``."""
    return min(1.0, max(0.0, 1.0 - normalized_cdf(minutes, params)))


def action_at(minutes: float, params: ActionModelParams) -> float:
    """Instantaneous action density (per minute), area 1 over [0, DIA]."""
    if minutes <= 0.0:
        return 0.0
    dist = _distribution(params)
    total = float(dist.cdf(params.dia_minutes))
    if total <= 0.0:
        return 0.0
    return max(0.0, float(dist.pdf(minutes)) / total)


def time_for_fraction(fraction: float, params: ActionModelParams, xtol: float = 1e-3) -> float:
    """Elapsed minutes at which the normalised CDF reaches ``fraction`` (bisection)."""
    dia = params.dia_minutes
    if fraction <= 0.0:
        return 0.0
    if fraction >= 1.0:
        return dia
    return float(optimize.bisect(lambda t: normalized_cdf(t, params) - fraction, 0.0, dia, xtol=xtol))


def activity_window(params: ActionModelParams) -> ActivityWindow:
    onset = time_for_fraction(ONSET_FRACTION, params)
    peak = min(params.peak_minutes, params.dia_minutes)
    offset = max(peak, time_for_fraction(OFFSET_FRACTION, params))
    return ActivityWindow(
        onset_minutes=min(onset, peak),
        peak_minutes=peak,
        offset_minutes=offset,
        dia_minutes=params.dia_minutes,
    )


def action_curve(params: ActionModelParams, step_minutes: float = 15.0) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Minutes, action and residual sampled over [0, DIA]."""
    minutes = np.arange(0.0, params.dia_minutes + step_minutes, step_minutes)
    minutes = minutes[minutes <= params.dia_minutes + 1e-9]
    dist = _distribution(params)
    total = float(dist.cdf(params.dia_minutes))
    positive = np.where(minutes > 0.0, minutes, 1.0)
    action = np.where(minutes > 0.0, dist.pdf(positive) / total, 0.0)
    cumulative = np.where(minutes > 0.0, dist.cdf(positive) / total, 0.0)
    remaining = np.clip(1.0 - cumulative, 0.0, 1.0)
    return minutes, action, remaining
