from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("aimi.basal")

HIGH_BG = 180.0
PLATEAU_DELTA_ABS = 2.5
R2_CONFIDENT = 0.7
MAX_MULTIPLIER = 1.6
KICKER_MIN = 0.2
KICKER_STEP = 0.15
KICKER_START_MIN = 10
KICKER_MAX_MIN = 30
ZERO_MICRO_RESUME_MIN = 10
ZERO_MICRO_RESUME_RATE = 0.25
ZERO_MICRO_RESUME_MAX = 30
ANTI_STALL_BIAS = 0.10
DELTA_POS_FOR_RELEASE = 1.0


@dataclass
class AdvisorInput:
    bg: float
    delta: float
    short_avg_delta: float
    long_avg_delta: float
    accel: float
    r2: float
    parabola_minutes: float
    combined_delta: float
    profile_basal: float
    last_temp_is_zero: bool
    zero_since_minutes: int
    minutes_since_last_change: int


@dataclass
class AdvisorSuggestion:
    rate: Optional[float]
    duration: int
    reason: str


@dataclass
class PlateauSettings:
    high_bg: float
    plateau_band: float
    r2_conf: float
    max_multiplier: float
    kicker_step: float
    kicker_min_rate: float
    kicker_start_minutes: int
    kicker_max_minutes: int
    zero_resume_minutes: int
    zero_resume_fraction: float
    zero_resume_max: int
    anti_stall_bias: float
    delta_pos_release: float


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def build_settings(inp: AdvisorInput) -> PlateauSettings:
    """Thresholds adapted to the profile basal and the current curve shape."""
    if inp.profile_basal < 0.4:
        high_bg = 150.0
    elif inp.profile_basal < 0.8:
        high_bg = 165.0
    else:
        high_bg = HIGH_BG
    kicker_start = max(KICKER_START_MIN, min(25, inp.minutes_since_last_change // 2 + 5))
    return PlateauSettings(
        high_bg=high_bg,
        plateau_band=_clamp(
            PLATEAU_DELTA_ABS + max(0.0, 1.2 - abs(inp.delta)) * 0.2 + max(0.0, -inp.accel) * 0.25, 1.5, 3.5
        ),
        r2_conf=_clamp(R2_CONFIDENT - min(0.15, abs(inp.combined_delta) / 40.0), 0.55, 0.8),
        max_multiplier=_clamp(MAX_MULTIPLIER + min(0.15, inp.parabola_minutes / 80.0), 1.35, 1.8),
        kicker_step=_clamp(KICKER_STEP + min(0.1, inp.parabola_minutes / 90.0), 0.1, 0.3),
        kicker_min_rate=max(KICKER_MIN, inp.profile_basal * 0.35),
        kicker_start_minutes=kicker_start,
        kicker_max_minutes=max(kicker_start + 10, KICKER_MAX_MIN),
        zero_resume_minutes=max(ZERO_MICRO_RESUME_MIN - inp.zero_since_minutes // 8, 5),
        zero_resume_fraction=_clamp(ZERO_MICRO_RESUME_RATE + inp.profile_basal * 0.05, 0.15, 0.35),
        zero_resume_max=ZERO_MICRO_RESUME_MAX,
        anti_stall_bias=_clamp(ANTI_STALL_BIAS + max(0.0, -inp.accel) * 0.05, 0.1, 0.2),
        delta_pos_release=_clamp(DELTA_POS_FOR_RELEASE + max(-0.3, inp.delta / 15.0), 0.5, 1.5),
    )


class AdaptiveBasalAdvisor:
    """
    Suggests a temporary basal for three situations the main cascade handles
    poorly: resuming after a long zero temp, a high and flat plateau that the
    fit says is real, and a glued curve that needs a small nudge.
    """

    def suggest(self, inp: AdvisorInput) -> AdvisorSuggestion:
        if inp.profile_basal <= 0.0:
            return AdvisorSuggestion(None, 0, "AIMI+: profile basal = 0")
        s = build_settings(inp)

        if inp.last_temp_is_zero and inp.zero_since_minutes >= s.zero_resume_minutes:
            rate = max(s.kicker_min_rate, inp.profile_basal * s.zero_resume_fraction)
            dur = min(s.zero_resume_max, max(10, inp.minutes_since_last_change // 2))
            reason = f"AIMI+ micro-resume after {inp.zero_since_minutes}m @0U/h → {rate:.2f}U/h × {dur}m"
            logger.debug(reason)
            return AdvisorSuggestion(rate, dur, reason)

        plateau = abs(inp.delta) <= s.plateau_band and abs(inp.short_avg_delta) <= s.plateau_band
        if inp.bg > s.high_bg and plateau:
            conf = min(1.0, max(0.0, (inp.r2 - 0.3) / (s.r2_conf - 0.3)))
            accel_brake = 0.6 if inp.accel < 0 else 1.0
            mult = 1.0 + s.kicker_step * conf * accel_brake * (1.0 + min(1.0, inp.parabola_minutes / 15.0))
            target = min(inp.profile_basal * s.max_multiplier, max(s.kicker_min_rate, inp.profile_basal * mult))
            if inp.minutes_since_last_change < 5:
                dur = s.kicker_start_minutes
            elif inp.minutes_since_last_change < 15:
                dur = s.kicker_start_minutes + 10
            else:
                dur = s.kicker_max_minutes
            reason = f"AIMI+ plateau kicker (BG={inp.bg:.0f}, Δ≈0, R2={inp.r2:.2f}) → {target:.2f}U/h × {dur}m"
            logger.debug(reason)
            return AdvisorSuggestion(target, dur, reason)

        glued = inp.r2 >= s.r2_conf and abs(inp.delta) <= s.plateau_band and abs(inp.long_avg_delta) <= s.plateau_band
        if glued and inp.bg > s.high_bg and inp.delta < s.delta_pos_release:
            rate = min(inp.profile_basal * (1.0 + s.anti_stall_bias), inp.profile_basal * s.max_multiplier)
            reason = f"AIMI+ anti-stall bias (+{int(s.anti_stall_bias * 100)}%) because R2={inp.r2:.2f} & Δ≈0"
            logger.debug(reason)
            return AdvisorSuggestion(rate, 10, reason)

        return AdvisorSuggestion(None, 0, "AIMI+: no action")
