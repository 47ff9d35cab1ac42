from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from aimi.core.pkpd.estimator import ActivityState
from aimi.core.pkpd.kernel import ActivityStage


@dataclass(frozen=True)
class TailAwareSmbPolicy:
    tail_iob_high: float = 0.25
    smb_damping_at_tail: float = 0.5
    post_exercise_damping: float = 0.6
    late_fatty_meal_damping: float = 0.7


@dataclass
class DampingAudit:
    out: float
    tail_applied: bool
    tail_mult: float
    activity_relief: float
    activity_stage: Optional[ActivityStage]
    exercise_applied: bool
    exercise_mult: float
    late_fat_applied: bool
    late_fat_mult: float
    bypassed: bool

    @property
    def total_factor(self) -> float:
        return self.tail_mult * self.exercise_mult * self.late_fat_mult


class SmbDamping:
    """
    Multiplicative attenuation of a proposed micro-bolus.

    The tail factor is softened while insulin is still fresh (pre-onset,
    rising, peak) and applied in full once the dose is in its tail.
    Exercise and a suspected late fatty meal each add their own factor.
    """

    def __init__(self, policy: Optional[TailAwareSmbPolicy] = None):
        self.policy = policy or TailAwareSmbPolicy()

    def damp(self,
             smb: float,
             tail_fraction: float,
             exercise: bool,
             late_fat: bool,
             bypass: bool = False,
             activity: Optional[ActivityState] = None) -> float:
        return self.damp_with_audit(smb, tail_fraction, exercise, late_fat, bypass, activity).out

    def damp_with_audit(self,
                        smb: float,
                        tail_fraction: float,
                        exercise: bool,
                        late_fat: bool,
                        bypass: bool = False,
                        activity: Optional[ActivityState] = None) -> DampingAudit:
        stage = activity.stage if activity is not None else None
        if bypass:
            return DampingAudit(
                out=smb,
                tail_applied=False, tail_mult=1.0,
                activity_relief=0.0, activity_stage=stage,
                exercise_applied=False, exercise_mult=1.0,
                late_fat_applied=False, late_fat_mult=1.0,
                bypassed=True,
            )

        relief = self.activity_relief(activity)
        tail_applied = tail_fraction > self.policy.tail_iob_high
        tail_mult = self.tail_multiplier(activity) if tail_applied else 1.0
        exercise_mult = self.policy.post_exercise_damping if exercise else 1.0
        late_mult = self.policy.late_fatty_meal_damping if late_fat else 1.0

        out = smb * tail_mult * exercise_mult * late_mult
        return DampingAudit(
            out=min(out, smb) if smb >= 0 else out,
            tail_applied=tail_applied, tail_mult=tail_mult,
            activity_relief=relief, activity_stage=stage,
            exercise_applied=exercise, exercise_mult=exercise_mult,
            late_fat_applied=late_fat, late_fat_mult=late_mult,
            bypassed=False,
        )

    def tail_multiplier(self, activity: Optional[ActivityState]) -> float:
        base = self.policy.smb_damping_at_tail
        return base + (1.0 - base) * self.activity_relief(activity)

    @staticmethod
    def activity_relief(activity: Optional[ActivityState]) -> float:
        if activity is None:
            return 0.0
        if activity.stage == ActivityStage.PRE_ONSET:
            stage_relief = activity.anticipation_weight * 0.7
        elif activity.stage in (ActivityStage.RISING, ActivityStage.PEAK):
            stage_relief = activity.relative_activity
        elif activity.stage == ActivityStage.TAIL:
            stage_relief = (1.0 - activity.post_window_fraction) * 0.3
        else:
            stage_relief = 0.0
        freshness = min(1.0, max(0.0, 1.0 - activity.post_window_fraction))
        blended = 0.5 * stage_relief + 0.3 * freshness + 0.2 * activity.anticipation_weight
        return min(1.0, max(0.0, blended))
