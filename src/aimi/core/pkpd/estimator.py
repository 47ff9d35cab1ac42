from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aimi.core.pkpd import kernel
from aimi.core.pkpd.kernel import ActionModelParams, ActivityStage, ActivityWindow

logger = logging.getLogger("aimi.pkpd")


@dataclass(frozen=True)
class PkPdBounds:
    dia_min_hours: float = 6.0
    dia_max_hours: float = 24.0
    peak_min_minutes: float = 40.0
    peak_max_minutes: float = 240.0
    max_dia_change_per_day_hours: float = 2.0
    max_peak_change_per_day_minutes: float = 20.0

    def clamp(self, params: ActionModelParams) -> ActionModelParams:
        return ActionModelParams(
            dia_hours=min(self.dia_max_hours, max(self.dia_min_hours, params.dia_hours)),
            peak_minutes=min(self.peak_max_minutes, max(self.peak_min_minutes, params.peak_minutes)),
        )


@dataclass(frozen=True)
class LearningConfig:
    bounds: PkPdBounds = field(default_factory=PkPdBounds)
    min_window_minutes: float = 20.0
    max_window_minutes: float = 180.0
    min_iob: float = 0.3
    max_active_carbs: float = 5.0
    max_delta: float = 3.0
    learning_rate: float = 0.02
    tail_weight: float = 1.5
    max_rate_change_scale: float = 1.0
    regularization: float = 0.002
    anchor_dia_hours: float = 4.0
    anchor_peak_minutes: float = 75.0


@dataclass
class ActivityState:
    stage: ActivityStage
    relative_activity: float
    normalized_position: float
    post_window_fraction: float
    minutes_until_onset: float
    anticipation_weight: float
    window: ActivityWindow


def _sign(value: float) -> float:
    if value > 0:
        return 1.0
    if value < 0:
        return -1.0
    return 0.0


class AdaptivePkPdEstimator:
    """
    Online learner for the insulin action model.

    Nudges DIA and peak time from the gap between the glucose drop the
    kernel expects for the current IOB and the drop actually observed.
    Updates only run on clean ticks (no meal, no exercise, no fast rise)
    and are rate-limited per day and clamped to absolute bounds.
    """

    def __init__(self,
                 config: Optional[LearningConfig] = None,
                 initial: Optional[ActionModelParams] = None):
        self.config = config or LearningConfig()
        start = initial or ActionModelParams()
        self._params = self.config.bounds.clamp(start)
        self._last_update_minute: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def params(self) -> ActionModelParams:
        with self._lock:
            return self._params

    def is_eligible(self, delta: float, iob: float, active_carbs: float,
                    window_minutes: float, exercise: bool) -> bool:
        cfg = self.config
        if window_minutes < cfg.min_window_minutes or window_minutes > cfg.max_window_minutes:
            return False
        if iob < cfg.min_iob:
            return False
        if active_carbs > cfg.max_active_carbs:
            return False
        if exercise:
            return False
        if delta > cfg.max_delta:
            return False
        return True

    def update(self,
               now_minutes: float,
               delta: float,
               iob: float,
               active_carbs: float,
               window_minutes: float,
               exercise: bool,
               isf_tdd: float) -> bool:
        """
        Apply one learning step. Returns False when the tick is not eligible.

        Args:
            now_minutes: Current time in epoch minutes.
            delta: Observed glucose change over the last 5 minutes (mg/dL).
            iob: Insulin on board (U).
            active_carbs: Carbs still absorbing (g).
            window_minutes: Minutes since the last insulin dose.
            exercise: Exercise flag for this tick.
            isf_tdd: TDD-anchored sensitivity used to convert action to glucose drop.
        """
        if not self.is_eligible(delta, iob, active_carbs, window_minutes, exercise):
            return False

        cfg = self.config
        bounds = cfg.bounds
        with self._lock:
            p0 = self._params
            action = max(kernel.action_at(window_minutes, p0), 1e-6)
            expected_drop_per_5 = action * iob * isf_tdd * (5.0 / 60.0)
            err = -delta - expected_drop_per_5
            magnitude = min(1.0, abs(err) / 10.0)
            tail_factor = 1.0 + cfg.tail_weight * max(0.0, (window_minutes - p0.peak_minutes) / max(1.0, p0.peak_minutes))
            dia_adj = cfg.learning_rate * tail_factor * _sign(err) * magnitude
            peak_adj = cfg.learning_rate * 0.5 * _sign(err) * magnitude
            dia_adj -= cfg.regularization * (p0.dia_hours - cfg.anchor_dia_hours)
            peak_adj -= cfg.regularization * (p0.peak_minutes - cfg.anchor_peak_minutes)

            if self._last_update_minute is None:
                dt_days = 1.0
            else:
                dt_days = max(1.0, (now_minutes - self._last_update_minute) / (60.0 * 24.0))
            self._last_update_minute = now_minutes

            max_dia_step = bounds.max_dia_change_per_day_hours * cfg.max_rate_change_scale * dt_days
            max_peak_step = bounds.max_peak_change_per_day_minutes * cfg.max_rate_change_scale * dt_days
            new_dia = min(p0.dia_hours + max_dia_step, max(p0.dia_hours - max_dia_step, p0.dia_hours + dia_adj))
            new_peak = min(p0.peak_minutes + max_peak_step, max(p0.peak_minutes - max_peak_step, p0.peak_minutes + peak_adj))
            self._params = bounds.clamp(ActionModelParams(dia_hours=new_dia, peak_minutes=new_peak))

        logger.debug(
            "PK/PD update err=%.2f expected=%.2f -> DIA=%.3fh peak=%.1fmin",
            err, expected_drop_per_5, self._params.dia_hours, self._params.peak_minutes,
        )
        return True

    def residual_at(self, minutes: float) -> float:
        return kernel.residual(minutes, self.params)

    def action_at(self, minutes: float) -> float:
        return max(0.0, kernel.action_at(minutes, self.params))

    def activity_state_at(self, minutes: float) -> ActivityState:
        params = self.params
        window = kernel.activity_window(params)
        dia = window.dia_minutes
        t = min(dia, max(0.0, minutes))
        peak_action = max(kernel.action_at(window.peak_minutes, params), 1e-6)
        relative = 0.0 if t <= 0.0 else kernel.action_at(t, params) / peak_action
        until_onset = max(0.0, window.onset_minutes - t)
        anticipation = 0.0 if until_onset <= 0.0 else math.exp(-until_onset / 45.0)

        if t < window.onset_minutes - 1e-6:
            stage = ActivityStage.PRE_ONSET
        elif t < window.peak_minutes:
            stage = ActivityStage.RISING
        elif t <= window.offset_minutes:
            stage = ActivityStage.PEAK
        elif t < dia - 1e-6:
            stage = ActivityStage.TAIL
        else:
            stage = ActivityStage.EXHAUSTED

        return ActivityState(
            stage=stage,
            relative_activity=min(1.0, max(0.0, relative)),
            normalized_position=window.normalized_position(t),
            post_window_fraction=window.post_window_fraction(t),
            minutes_until_onset=until_onset,
            anticipation_weight=min(1.0, max(0.0, anticipation)),
            window=window,
        )

    def reset(self, initial: Optional[ActionModelParams] = None):
        """Reset learned parameters to ``initial`` (or the defaults)."""
        with self._lock:
            self._params = self.config.bounds.clamp(initial or ActionModelParams())
            self._last_update_minute = None

    def get_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "dia_hours": self._params.dia_hours,
                "peak_minutes": self._params.peak_minutes,
                "last_update_minute": self._last_update_minute,
            }

    def set_state(self, state: Dict[str, Any]) -> None:
        current = self.params
        restored = ActionModelParams(
            dia_hours=float(state.get("dia_hours", current.dia_hours)),
            peak_minutes=float(state.get("peak_minutes", current.peak_minutes)),
        )
        with self._lock:
            self._params = self.config.bounds.clamp(restored)
            self._last_update_minute = state.get("last_update_minute")
