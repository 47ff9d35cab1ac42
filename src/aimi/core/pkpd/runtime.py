from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from aimi.core.pkpd.damping import SmbDamping, TailAwareSmbPolicy
from aimi.core.pkpd.estimator import ActivityState, AdaptivePkPdEstimator, LearningConfig
from aimi.core.pkpd.isf_fusion import IsfFusion, IsfFusionBounds, compute_tdd_isf
from aimi.core.pkpd.kernel import ActionModelParams

logger = logging.getLogger("aimi.pkpd")

PERSIST_DIA_EPSILON_HOURS = 0.01
PERSIST_PEAK_EPSILON_MINUTES = 0.5


@dataclass
class MealContext:
    meal_mode_active: bool
    predicted_bg: Optional[float] = None
    target_bg: Optional[float] = None


@dataclass
class PkPdRuntime:
    params: ActionModelParams
    tail_fraction: float
    fused_isf: float
    profile_isf: float
    tdd_isf: float
    pkpd_scale: float
    activity: ActivityState
    learned: bool = False


def compute_pkpd_scale(tail_fraction: float,
                       activity: ActivityState,
                       meal_context: Optional[MealContext] = None) -> float:
    freshness = min(1.0, max(0.0, 1.0 - activity.post_window_fraction))
    activity_blend = min(1.0, max(0.0, 0.6 * activity.relative_activity + 0.4 * freshness))
    anticipatory_boost = activity.anticipation_weight * 0.1

    meal_active = meal_context is not None and meal_context.meal_mode_active
    meal_boost = 0.0
    if meal_active:
        normalized_rise = 0.0
        if meal_context.predicted_bg is not None and meal_context.target_bg is not None:
            normalized_rise = min(1.0, max(0.0, meal_context.predicted_bg - meal_context.target_bg) / 70.0)
        meal_boost = 0.05 + 0.15 * normalized_rise

    low, high = (0.9, 1.5) if meal_active else (0.8, 1.4)
    scale = 1.0 + 0.12 * tail_fraction + 0.22 * activity_blend + anticipatory_boost + meal_boost
    return min(high, max(low, scale))


class PkPdIntegration:
    """
    Ties the estimator, ISF fusion and SMB damping together for one tick and
    hands changed parameters to ``persist`` only when they moved enough.
    """

    def __init__(self,
                 learning: Optional[LearningConfig] = None,
                 isf_bounds: Optional[IsfFusionBounds] = None,
                 tail_policy: Optional[TailAwareSmbPolicy] = None,
                 initial: Optional[ActionModelParams] = None,
                 persist: Optional[Callable[[ActionModelParams], None]] = None):
        self.estimator = AdaptivePkPdEstimator(learning, initial)
        self.fusion = IsfFusion(isf_bounds)
        self.damping = SmbDamping(tail_policy)
        self.persist = persist
        self.last_persisted: ActionModelParams = self.estimator.params

    def compute_runtime(self,
                        now_minutes: float,
                        delta: float,
                        iob: float,
                        active_carbs: float,
                        window_minutes: float,
                        exercise: bool,
                        profile_isf: float,
                        tdd_24h: float,
                        meal_context: Optional[MealContext] = None) -> PkPdRuntime:
        tdd_isf = compute_tdd_isf(tdd_24h, profile_isf)
        learned = self.estimator.update(
            now_minutes=now_minutes,
            delta=delta,
            iob=iob,
            active_carbs=active_carbs,
            window_minutes=window_minutes,
            exercise=exercise,
            isf_tdd=tdd_isf,
        )
        params = self.estimator.params
        self.persist_if_needed(params)

        tail_fraction = min(1.0, max(0.0, self.estimator.residual_at(window_minutes)))
        activity = self.estimator.activity_state_at(window_minutes)
        scale = compute_pkpd_scale(tail_fraction, activity, meal_context)
        fused = self.fusion.fused(profile_isf, tdd_isf, scale)
        return PkPdRuntime(
            params=params,
            tail_fraction=tail_fraction,
            fused_isf=fused,
            profile_isf=profile_isf,
            tdd_isf=tdd_isf,
            pkpd_scale=scale,
            activity=activity,
            learned=learned,
        )

    def should_persist(self, params: ActionModelParams) -> bool:
        last = self.last_persisted
        return (
            abs(last.dia_hours - params.dia_hours) > PERSIST_DIA_EPSILON_HOURS
            or abs(last.peak_minutes - params.peak_minutes) > PERSIST_PEAK_EPSILON_MINUTES
        )

    def persist_if_needed(self, params: ActionModelParams) -> bool:
        if not self.should_persist(params):
            return False
        self.last_persisted = params
        if self.persist is not None:
            self.persist(params)
        logger.info("PK/PD parameters changed: DIA=%.2fh peak=%.1fmin", params.dia_hours, params.peak_minutes)
        return True
