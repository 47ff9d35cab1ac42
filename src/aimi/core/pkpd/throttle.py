from __future__ import annotations

from dataclasses import dataclass

from aimi.core.pkpd.estimator import ActivityState
from aimi.core.pkpd.kernel import ActivityStage


@dataclass(frozen=True)
class Throttle:
    smb_factor: float
    interval_add: int
    prefer_basal: bool
    reason: str


NORMAL = Throttle(smb_factor=1.0, interval_add=0, prefer_basal=False, reason="Normal operation")


def compute_throttle(activity: ActivityState,
                     residual: float,
                     delta: float,
                     target_bg: float,
                     bg: float) -> Throttle:
    """SMB cadence and size by insulin action stage; never drops below 0.3 of the SMB."""
    rising = delta > 0.0
    if activity.stage == ActivityStage.PRE_ONSET and rising:
        return Throttle(0.6, 3, True, "Onset unconfirmed, rising BG → TBR priority")
    if activity.stage == ActivityStage.PEAK or activity.relative_activity > 0.7:
        return Throttle(0.3, 5, True, "Near peak / high activity → SMB throttled")
    if activity.stage == ActivityStage.TAIL and residual < 0.3 and rising:
        return Throttle(1.0, 0, False, "Tail stage, low residual → SMB permitted")
    if activity.stage == ActivityStage.TAIL:
        return Throttle(0.7, 2, False, "Post-peak decay → SMB moderate")
    if bg > target_bg + 60:
        return Throttle(0.9, 0, False, "High BG override → SMB permitted")
    return NORMAL
