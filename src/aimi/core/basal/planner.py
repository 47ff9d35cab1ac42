from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from aimi.api.types import GlucoseSample, Profile
from aimi.core.basal.history import BasalHistoryProvider, EmptyHistory
from aimi.core.basal.rates import quantize
from aimi.core.safety.config import SafetyConfig

logger = logging.getLogger("aimi.basal")


@dataclass(frozen=True)
class BasalPlan:
    rate: float
    duration: int
    reason: str
    guard: str

    @property
    def is_hypo_suspend(self) -> bool:
        return self.rate == 0.0 and self.guard in {"HARD_HYPO", "SOFT_HYPO", "PREDICTIVE_LOW"}


class BasalPlanner:
    """
    Priority safety pre-filter run before the decision engine.

    Guards are evaluated in a fixed order and are mutually exclusive: the
    first one that matches returns a plan and the rest of the pipeline is
    bypassed for this tick. ``None`` means "let the engine decide".
    """

    def __init__(self,
                 history: Optional[BasalHistoryProvider] = None,
                 safety_config: Optional[SafetyConfig] = None):
        self.history = history or EmptyHistory()
        self.config = safety_config or SafetyConfig()

    def plan(self, glucose: GlucoseSample, profile: Profile, now: Optional[float] = None) -> Optional[BasalPlan]:
        cfg = self.config
        now = glucose.timestamp if now is None else now
        bg = glucose.value
        d5 = glucose.delta
        short = glucose.short_delta
        long = glucose.long_delta

        profile_basal = profile.basal_rate
        if profile_basal <= 0.0:
            return None

        pump = profile.pump
        max_basal = max(pump.max_basal, profile_basal)
        step = max(pump.basal_step, cfg.min_basal_step)
        min_dur = max(pump.min_duration, cfg.min_temp_duration)

        lgs = cfg.lgs_for(profile.lgs_threshold)
        hard_limit = cfg.hard_floor_for(lgs)
        suspend = cfg.hypo_suspend_minutes

        if bg <= hard_limit:
            return BasalPlan(0.0, suspend, f"Hard Hypo guard: BG={bg:.0f} <= {hard_limit:.0f}", "HARD_HYPO")

        if bg <= lgs:
            if d5 < 0.0:
                return BasalPlan(0.0, suspend, f"Soft Hypo guard: BG={bg:.0f}, Δ={d5:.1f} < 0 -> suspend", "SOFT_HYPO")
            rate = self._clamp_and_quantize(max(0.05, profile_basal * 0.5), profile_basal, max_basal, step)
            return BasalPlan(
                rate, suspend,
                f"Soft Hypo guard (rising): BG={bg:.0f}, Δ={d5:.1f} >= 0 -> safe basal {rate:.2f}U/h",
                "SOFT_HYPO",
            )

        projected = bg + d5 * cfg.predictive_low_horizon_steps
        if d5 < cfg.predictive_low_delta and projected < lgs:
            return BasalPlan(
                0.0, suspend,
                f"Predictive Low: BG {bg:.0f} -> {projected:.0f} < {lgs:.0f} (Δ {d5:.1f})",
                "PREDICTIVE_LOW",
            )

        zero_since = self.history.zero_basal_duration_minutes(now, lookback_hours=6)
        if self.history.last_temp_is_zero(now) and zero_since >= cfg.zero_resume_minutes:
            base = max(cfg.kick_min_rate, profile_basal * cfg.zero_resume_fraction)
            rate = self._clamp_and_quantize(base, profile_basal, max_basal, step)
            since_change = self.history.minutes_since_last_change(now)
            dur = min(cfg.zero_resume_max_minutes, max(min_dur, since_change // 2))
            return BasalPlan(
                rate, dur,
                f"Micro-resume after {zero_since}m @0U/h → {rate:.2f}U/h × {dur}m",
                "MICRO_RESUME",
            )

        band = cfg.plateau_delta_abs
        plateau = abs(d5) <= band and abs(short) <= band and abs(long) <= band
        if plateau and bg >= cfg.plateau_high_bg:
            base = max(cfg.kick_min_rate, profile_basal * (1.0 + cfg.kick_fraction))
            rate = self._clamp_and_quantize(base, profile_basal, max_basal, step)
            dur = max(min_dur, cfg.kick_minutes)
            return BasalPlan(
                rate, dur,
                f"High-flat kicker @{bg:.0f}mg/dL (Δ≈0) → {rate:.2f}U/h × {dur}m",
                "PLATEAU_KICK",
            )

        near_flat = abs(d5) <= band and abs(short) <= band
        if near_flat and d5 < cfg.delta_pos_release:
            rate = self._clamp_and_quantize(profile_basal * (1.0 + cfg.anti_stall_fraction), profile_basal, max_basal, step)
            return BasalPlan(rate, min_dur, f"Anti-stall (Δ≈0) → {rate:.2f}U/h × {min_dur}m", "ANTI_STALL")

        return None

    def _clamp_and_quantize(self, desired: float, profile_basal: float, max_basal: float, step: float) -> float:
        limited = min(desired, profile_basal * self.config.planner_max_multiplier, max_basal)
        return quantize(limited, step)
