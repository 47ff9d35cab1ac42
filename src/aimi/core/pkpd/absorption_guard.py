from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from aimi.core.pkpd.kernel import ActivityStage
from aimi.core.pkpd.runtime import PkPdRuntime


URGENCY_SUFFIX = "_URGENCY_RELAXED"


@dataclass(frozen=True)
class GuardResult:
    factor: float
    interval_add: int
    prefer_basal: bool
    reason: str
    stage: ActivityStage = ActivityStage.EXHAUSTED

    @property
    def is_active(self) -> bool:
        return self.factor < 0.99 or self.interval_add > 0

    @property
    def is_urgency_relaxed(self) -> bool:
        return self.reason.endswith(URGENCY_SUFFIX)

    def to_log_string(self) -> str:
        return (
            f"PKPD_GUARD stage={self.stage.name} factor={self.factor:.2f} "
            f"+{self.interval_add}m reason={self.reason}"
        )


def neutral(reason: str) -> GuardResult:
    return GuardResult(factor=1.0, interval_add=0, prefer_basal=False, reason=reason)


class AbsorptionGuard:
    """
    Stage-aware soft guard: after a dose, give insulin time to act before
    stacking more. Only a real hyperglycaemic emergency relaxes it.
    """

    @staticmethod
    def compute(runtime: Optional[PkPdRuntime],
                bg: float,
                delta: float,
                short_avg_delta: float,
                target_bg: float,
                predicted_bg: Optional[float],
                meal_mode: bool) -> GuardResult:
        if runtime is None or meal_mode:
            return neutral("PKPD_ABSENT_OR_MEAL_MODE")

        stage = runtime.activity.stage
        if stage == ActivityStage.PRE_ONSET:
            base = GuardResult(0.5, 4, True, "PRE_ONSET", stage)
        elif stage == ActivityStage.RISING:
            base = GuardResult(0.6, 3, False, "RISING", stage)
        elif stage == ActivityStage.PEAK:
            base = GuardResult(0.7, 2, False, "PEAK", stage)
        elif stage == ActivityStage.TAIL:
            if runtime.tail_fraction > 0.5:
                base = GuardResult(0.85, 1, False, "TAIL_HIGH", stage)
            elif runtime.tail_fraction > 0.3:
                base = GuardResult(0.92, 1, False, "TAIL_MED", stage)
            else:
                base = neutral("TAIL_LOW")
        else:
            base = neutral("EXHAUSTED")

        projected = bg if predicted_bg is None else predicted_bg
        if bg > target_bg + 80 and delta > 5.0 and projected > bg + 30:
            return replace(
                base,
                factor=min(1.0, base.factor + 0.25),
                interval_add=max(0, base.interval_add - 2),
                reason=base.reason + URGENCY_SUFFIX,
            )

        if delta < 1.0 and short_avg_delta < 1.5 and base.factor < 0.9:
            return replace(base, factor=min(0.95, base.factor + 0.1), reason=f"{base.reason}_STABLE")

        return base
