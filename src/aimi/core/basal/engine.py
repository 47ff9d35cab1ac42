"""
Basal decision engine.

The cascade is a flat, ordered table of ``(name, rule)`` pairs. Rules are
small pure functions of an :class:`EngineInput`; the first one returning a
:class:`RuleOutcome` wins and nothing after it runs. Ordering and literal
thresholds are part of the behaviour: several glucose bands overlap and are
tie-broken only by their position in the table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from aimi.api.types import MEAL_WINDOW_NAMES, ReasonEntry, TickInput
from aimi.core.basal.advisor import AdaptiveBasalAdvisor, AdvisorInput
from aimi.core.basal.rates import calculate_basal_rate, compute_final_basal, interpolate_basal
from aimi.core.safety.config import SafetyConfig

logger = logging.getLogger("aimi.basal")


@dataclass
class EngineInput:
    bg: float
    delta: float
    short_avg_delta: float
    long_avg_delta: float
    acceleration: float
    combined_delta: float
    profile_basal: float
    basal_estimate: float
    tdd_recent: float
    tdd_previous: float
    variable_sensitivity: float
    profile_sensitivity: float
    predicted_bg: float
    target_bg: float
    lgs_threshold: float
    eventual_bg: float
    iob: float
    max_iob: float
    slope_from_max_deviation: float = 0.0
    slope_from_min_deviation: float = 0.0
    allow_meal_high_iob: bool = False
    hypo_risk: bool = False
    low_suspend_basal: bool = False
    forced_basal: float = 0.0
    forced_meal_active: bool = False
    meal_active: bool = False
    meal_runtime: int = -1
    meal_windows: Dict[str, int] = field(default_factory=dict)
    fasting: bool = False
    sport: bool = False
    honeymoon: bool = False
    hour_of_day: int = 12
    six_am_hour: int = 6
    recent_steps_5min: int = 0
    modes_condition: bool = True
    autodrive: bool = False
    current_temp_rate: float = 0.0
    smb_to_give: float = 0.0
    zero_since_minutes: int = 0
    minutes_since_last_change: int = 0
    last_temp_is_zero: bool = False
    fit_quality: Optional[float] = None
    parabola_minutes: float = 0.0
    plateau_minutes: float = 0.0
    candidate_rate: Optional[float] = None

    @classmethod
    def from_tick(cls,
                  tick: TickInput,
                  fused_isf: float,
                  lgs_threshold: float,
                  smb_to_give: float = 0.0,
                  zero_since_minutes: int = 0,
                  minutes_since_last_change: int = 0,
                  last_temp_is_zero: bool = False) -> "EngineInput":
        g = tick.glucose
        profile = tick.profile
        modes = tick.modes
        return cls(
            bg=g.value,
            delta=g.delta,
            short_avg_delta=g.short_delta,
            long_avg_delta=g.long_delta,
            acceleration=g.acceleration,
            combined_delta=tick.combined_delta,
            profile_basal=profile.basal_rate,
            basal_estimate=profile.effective_basal_estimate,
            tdd_recent=tick.tdd_24h,
            tdd_previous=profile.tdd_7d_average if profile.tdd_7d_average is not None else tick.tdd_24h,
            variable_sensitivity=fused_isf,
            profile_sensitivity=profile.isf,
            predicted_bg=tick.predicted,
            target_bg=profile.target_bg,
            lgs_threshold=lgs_threshold,
            eventual_bg=tick.eventual,
            iob=tick.insulin.iob,
            max_iob=profile.max_iob,
            slope_from_max_deviation=tick.slope_from_max_deviation,
            slope_from_min_deviation=tick.slope_from_min_deviation,
            allow_meal_high_iob=modes.allow_meal_high_iob,
            hypo_risk=tick.hypo_risk,
            low_suspend_basal=tick.low_suspend_basal,
            forced_basal=modes.forced_basal,
            forced_meal_active=modes.forced_meal_active,
            meal_active=modes.meal_active,
            meal_runtime=modes.meal_runtime,
            meal_windows=dict(modes.meal_windows),
            fasting=modes.fasting,
            sport=modes.sport,
            honeymoon=modes.honeymoon,
            hour_of_day=modes.hour_of_day,
            six_am_hour=modes.six_am_hour,
            recent_steps_5min=modes.recent_steps_5min,
            modes_condition=modes.modes_condition,
            autodrive=modes.autodrive,
            current_temp_rate=tick.current_temp_rate or 0.0,
            smb_to_give=smb_to_give,
            zero_since_minutes=zero_since_minutes,
            minutes_since_last_change=minutes_since_last_change,
            last_temp_is_zero=last_temp_is_zero,
            fit_quality=g.fit_quality,
            parabola_minutes=g.parabola_minutes,
            plateau_minutes=g.plateau_minutes,
        )

    @property
    def basal_factor(self) -> float:
        return interpolate_basal(self.bg)

    @property
    def final_basal(self) -> float:
        return compute_final_basal(self.bg, self.tdd_recent, self.tdd_previous, self.basal_estimate)


@dataclass
class RuleOutcome:
    rate: float
    reason: str
    duration: Optional[int] = None
    override_safety: bool = False
    clinical_impact: str = ""


@dataclass
class EngineDecision:
    rate: float
    duration: int
    override_safety: bool
    rule: str
    reasons: List[ReasonEntry] = field(default_factory=list)

    @property
    def is_hypo_zero(self) -> bool:
        return self.rate == 0.0 and self.rule in HYPO_ZERO_RULES


Rule = Callable[[EngineInput], Optional[RuleOutcome]]

HYPO_ZERO_RULES = {
    "predicted_low", "high_iob_stop", "below_lgs", "near_lgs", "band_80_90_falling",
}


def detect_meal_onset(delta: float, predicted_delta: float, acceleration: float) -> bool:
    combined = (delta + predicted_delta) / 2.0
    return combined > 3.0 and acceleration > 1.2


def _between(value: float, low: float, high: float) -> bool:
    return low <= value <= high


# ---------------------------------------------------------------------------
# Safety holds and meal onset
# ---------------------------------------------------------------------------

def _low_suspend_hold(inp: EngineInput) -> Optional[RuleOutcome]:
    in_meal_first_30 = inp.meal_active and _between(inp.meal_runtime, 0, 30)
    if (inp.low_suspend_basal
            and _between(inp.combined_delta, -1.0, 3.0)
            and inp.predicted_bg > 130
            and inp.iob > 0.1
            and not in_meal_first_30
            and not inp.forced_meal_active):
        return RuleOutcome(inp.profile_basal, "Low-suspend hold: profile basal", duration=30)
    return None


def _meal_onset(inp: EngineInput) -> Optional[RuleOutcome]:
    predicted_delta = (inp.predicted_bg - inp.bg) / 6.0
    if (detect_meal_onset(inp.delta, predicted_delta, inp.acceleration)
            and inp.modes_condition
            and inp.bg > 100
            and inp.predicted_bg > 110
            and inp.autodrive):
        return RuleOutcome(
            inp.forced_basal,
            f"Early meal detected: forced basal {inp.forced_basal:.2f}U/h",
            override_safety=True,
            clinical_impact="autodrive TBR",
        )
    return None


# ---------------------------------------------------------------------------
# Special modes
# ---------------------------------------------------------------------------

def _snack_mode(inp: EngineInput) -> Optional[RuleOutcome]:
    runtime = inp.meal_windows.get("snack")
    if runtime is not None and _between(runtime, 0, 30) and inp.delta < 10:
        return RuleOutcome(calculate_basal_rate(inp.basal_estimate, inp.profile_basal, 4.0), "SnackTime: basal x4")
    return None


def _fasting_mode(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.fasting:
        return RuleOutcome(
            calculate_basal_rate(inp.profile_basal, inp.profile_basal, inp.delta),
            f"FastingTime: basal x{inp.delta:.1f}",
        )
    return None


def _sport_mode(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.sport and inp.bg > 169 and inp.delta > 4:
        return RuleOutcome(calculate_basal_rate(inp.profile_basal, inp.profile_basal, 1.3), "SportTime: high and rising, basal x1.3")
    return None


def _honeymoon_rise(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.honeymoon and _between(inp.delta, 0.0, 6.0) and _between(inp.bg, 99.0, 141.0):
        return RuleOutcome(
            calculate_basal_rate(inp.profile_basal, inp.profile_basal, inp.delta),
            f"Honeymoon: basal x{inp.delta:.1f}",
        )
    return None


def _honeymoon_small_rise(inp: EngineInput) -> Optional[RuleOutcome]:
    if _between(inp.bg, 81.0, 99.0) and _between(inp.delta, 3.0, 7.0) and inp.honeymoon:
        return RuleOutcome(calculate_basal_rate(inp.basal_estimate, inp.profile_basal, 1.0), "Honeymoon small-rise: basal estimate")
    return None


def _honeymoon_correction(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.bg > 120 and inp.delta > 0 and inp.smb_to_give == 0.0 and inp.honeymoon:
        return RuleOutcome(calculate_basal_rate(inp.basal_estimate, inp.profile_basal, 5.0), "Honeymoon corr.: basal x5")
    return None


# ---------------------------------------------------------------------------
# Stop conditions
# ---------------------------------------------------------------------------

def _predicted_low(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.predicted_bg < 80 and inp.slope_from_max_deviation <= 0:
        if inp.predicted_bg < 65:
            return RuleOutcome(0.0, f"PredLow <65: TBR cut (maxIOB {inp.max_iob:.1f})", clinical_impact="suspend")
        return RuleOutcome(inp.profile_basal * 0.25, "PredLow 65-80: 25% basal")
    return None


def _high_iob_stop(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.iob > inp.max_iob and not inp.allow_meal_high_iob:
        floor = 0.0 if inp.delta < -2 else inp.profile_basal * 0.5
        label = "50%" if floor > 0 else "0% (dropping)"
        return RuleOutcome(floor, f"HighIOB: {label} basal")
    return None


def _meal_high_iob_hold(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.iob > inp.max_iob and inp.allow_meal_high_iob:
        return RuleOutcome(
            max(inp.profile_basal, inp.current_temp_rate),
            f"Meal: IOB {inp.iob:.2f} > maxIOB {inp.max_iob:.2f}, hold profile basal",
        )
    return None


# ---------------------------------------------------------------------------
# Glucose band ladder
# ---------------------------------------------------------------------------

def _below_lgs(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.bg < inp.lgs_threshold:
        return RuleOutcome(0.0, f"BG < LGS threshold ({int(inp.lgs_threshold)})", clinical_impact="suspend")
    return None


def _near_lgs(inp: EngineInput) -> Optional[RuleOutcome]:
    low, high = inp.lgs_threshold, inp.lgs_threshold + 10.0
    if _between(inp.bg, low, high):
        if inp.delta > 1.0:
            return RuleOutcome(inp.profile_basal * 0.5, f"BG {int(low)}-{int(high)} rising: 50% basal")
        return RuleOutcome(0.0, f"BG {int(low)}-{int(high)} not rising: 0% basal", clinical_impact="suspend")
    return None


def _band_80_90_falling(inp: EngineInput) -> Optional[RuleOutcome]:
    if (_between(inp.bg, 80.0, 90.0) and inp.slope_from_max_deviation <= 0
            and inp.iob > 0.1 and not inp.sport):
        if inp.delta < -2.0:
            if inp.bg > 85 and inp.predicted_bg > 80 and not inp.hypo_risk:
                return RuleOutcome(inp.profile_basal * 0.2, "BG 80-90 fall safe: 20%")
            return RuleOutcome(0.0, "BG 80-90 falling: 0% basal", clinical_impact="suspend")
        return RuleOutcome(inp.profile_basal * 0.25, "BG 80-90 falling slow: 25%")
    return None


def _band_80_90_stable(inp: EngineInput) -> Optional[RuleOutcome]:
    if (_between(inp.bg, 80.0, 90.0)
            and inp.slope_from_min_deviation >= 0.3 and inp.slope_from_max_deviation >= 0
            and _between(inp.combined_delta, -1.0, 2.0) and not inp.sport
            and inp.acceleration > 0.0):
        return RuleOutcome(inp.profile_basal * 0.2, "BG 80-90 stable: 20%")
    return None


def _band_90_100_moderate(inp: EngineInput) -> Optional[RuleOutcome]:
    if (_between(inp.bg, 90.0, 100.0)
            and inp.slope_from_min_deviation <= 0.3 and inp.iob > 0.1 and not inp.sport
            and inp.acceleration > 0.0):
        return RuleOutcome(inp.profile_basal * 0.5, "BG 90-100 moderate: 50%")
    return None


def _band_90_100_slight_gain(inp: EngineInput) -> Optional[RuleOutcome]:
    if (_between(inp.bg, 90.0, 100.0)
            and inp.slope_from_min_deviation >= 0.3 and _between(inp.combined_delta, -1.0, 2.0)
            and not inp.sport and inp.acceleration > 0.0):
        return RuleOutcome(inp.profile_basal * 0.5, "BG 90-100 slight gain: 50%")
    return None


# ---------------------------------------------------------------------------
# Rises
# ---------------------------------------------------------------------------

def _slow_rise(inp: EngineInput) -> Optional[RuleOutcome]:
    if (inp.bg > 120 and _between(inp.slope_from_min_deviation, 0.4, 20.0)
            and inp.combined_delta > 1 and not inp.sport and inp.acceleration > 1.0):
        return RuleOutcome(
            calculate_basal_rate(inp.final_basal, inp.profile_basal, inp.combined_delta),
            "Slow rise: proportional adjustment",
        )
    return None


def _eventual_hyper(inp: EngineInput) -> Optional[RuleOutcome]:
    if (inp.eventual_bg > 110 and not inp.sport and inp.bg > 150
            and _between(inp.combined_delta, -2.0, 15.0) and inp.acceleration > 0.0):
        return RuleOutcome(
            calculate_basal_rate(inp.final_basal, inp.profile_basal, inp.basal_factor),
            f"Eventual BG > 110: hyper factor x{inp.basal_factor:.2f}",
        )
    return None


def _meal_hours(inp: EngineInput) -> Optional[RuleOutcome]:
    if ((11 <= inp.hour_of_day <= 13 or 18 <= inp.hour_of_day <= 21)
            and inp.iob < 0.8 and inp.recent_steps_5min < 100
            and inp.combined_delta > -1 and inp.slope_from_min_deviation > 0.3
            and inp.acceleration > 0.0):
        return RuleOutcome(inp.profile_basal * 1.5, "Calm meal timing: 150% basal")
    return None


def _morning_activity(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.hour_of_day > inp.six_am_hour and inp.recent_steps_5min > 100:
        return RuleOutcome(inp.profile_basal * 0.5, "Morning activity: 50%")
    return None


def _early_morning_rise(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.hour_of_day <= inp.six_am_hour and inp.delta > 0 and inp.acceleration > 0.0:
        return RuleOutcome(inp.profile_basal, "Early morning rise: profile basal")
    return None


def _strong_rise(inp: EngineInput) -> Optional[RuleOutcome]:
    strongest = max(inp.delta, inp.short_avg_delta, inp.long_avg_delta, inp.combined_delta)
    if strongest >= 4.0 and inp.bg > 120 and not inp.sport:
        if strongest >= 8.0:
            multiplier = 1.8
        elif strongest >= 6.0:
            multiplier = 1.6
        else:
            multiplier = 1.3
        candidate = calculate_basal_rate(inp.final_basal, inp.profile_basal, multiplier)
        return RuleOutcome(
            min(candidate, inp.profile_basal * 2.0),
            f"Strong rise Δ{strongest:.1f}: basal x{multiplier:.2f}",
        )
    return None


# ---------------------------------------------------------------------------
# Meal windows, plateau and fallbacks
# ---------------------------------------------------------------------------

def _meal_windows(inp: EngineInput) -> Optional[RuleOutcome]:
    for name in MEAL_WINDOW_NAMES:
        runtime = inp.meal_windows.get(name)
        if runtime is None:
            continue
        if _between(runtime, 0, 30):
            return RuleOutcome(
                calculate_basal_rate(inp.final_basal, inp.profile_basal, 10.0),
                f"{name.capitalize()} <30m: basal x10",
                clinical_impact="mode TBR",
            )
        if runtime > 30 and inp.delta > 0:
            ratio = inp.profile_sensitivity / inp.variable_sensitivity if inp.variable_sensitivity > 0.1 else 1.0
            boost = max(1.0, ratio)
            reason = f"{name.capitalize()} 30m+ rising: basal x delta"
            if boost > 1.05:
                reason += f" (boost x{boost:.2f} due to PKPD)"
            return RuleOutcome(calculate_basal_rate(inp.final_basal, inp.profile_basal, inp.delta * boost), reason)
        if name == "dinner" and 30 < runtime <= 90 and inp.bg > inp.target_bg and inp.predicted_bg > 80:
            floor = 0.5 if inp.delta < -2 else 0.8
            return RuleOutcome(
                calculate_basal_rate(inp.final_basal, inp.profile_basal, floor),
                f"Dinner 30-90m: maintain basal x{floor:.1f}",
            )
    return None


def _plateau_high(inp: EngineInput) -> Optional[RuleOutcome]:
    if (inp.bg > 120 and abs(inp.delta) <= 2.0 and abs(inp.short_avg_delta) <= 2.0
            and abs(inp.long_avg_delta) <= 2.0 and inp.plateau_minutes >= 15.0
            and abs(inp.acceleration) <= 0.2 and inp.variable_sensitivity > 0):
        err = max(0.0, inp.bg - 120.0)
        boost = min(0.60, max(0.15, err / inp.variable_sensitivity))
        rate = max(inp.profile_basal * (1.0 + boost), inp.basal_estimate)
        return RuleOutcome(rate, f"Plateau high boost: +{boost * 100:.0f}%")
    return None


def _eventual_rising_fallback(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.eventual_bg > 120 and inp.delta > 3:
        return RuleOutcome(
            calculate_basal_rate(inp.basal_estimate, inp.profile_basal, inp.basal_factor),
            "Eventual BG > 120 and rising: basal estimate x factor",
        )
    return None


def _high_stable_fallback(inp: EngineInput) -> Optional[RuleOutcome]:
    if inp.bg > 150 and _between(inp.delta, -5.0, 1.0):
        return RuleOutcome(inp.profile_basal * inp.basal_factor, "BG > 150 stable: basal x factor")
    return None


def _honeymoon_fallback(inp: EngineInput) -> Optional[RuleOutcome]:
    if not inp.honeymoon:
        return None
    smax, smin = inp.slope_from_max_deviation, inp.slope_from_min_deviation
    factor = inp.basal_factor
    if _between(inp.bg, 140.0, 169.0) and inp.delta > 0:
        return RuleOutcome(inp.profile_basal, "Honeymoon BG 140-169: profile basal")
    if inp.bg > 170 and inp.delta > 0:
        return RuleOutcome(calculate_basal_rate(inp.final_basal, inp.profile_basal, factor), "Honeymoon BG > 170: adjusted basal")
    if inp.combined_delta > 2 and _between(inp.bg, 90.0, 119.0):
        return RuleOutcome(inp.profile_basal, "Honeymoon Δ>2 BG 90-119: profile basal")
    if inp.combined_delta > 0 and inp.bg > 110 and inp.eventual_bg > 120 and inp.bg < 160:
        return RuleOutcome(inp.profile_basal * factor, "Honeymoon mixed correction")
    if smax > 0 and smin > 0 and inp.bg > 110 and inp.combined_delta > 0:
        return RuleOutcome(inp.profile_basal * factor, "Honeymoon meal detection")
    if _between(smax, 0.0, 0.2) and _between(smin, 0.0, 0.5) and _between(inp.bg, 120.0, 150.0) and inp.delta > 0:
        return RuleOutcome(inp.profile_basal * factor, "Honeymoon small slope")
    if smax > 0 and smin > 0 and _between(inp.bg, 100.0, 120.0) and inp.delta > 0:
        return RuleOutcome(inp.profile_basal * factor, "Honeymoon meal slope")
    return None


class BasalDecisionEngine:
    """
    First-match-wins rule cascade producing the temporary basal for a tick.

    Every fired rule appends exactly one reason entry; when nothing fires the
    profile basal is returned unchanged for the default duration.
    """

    def __init__(self,
                 advisor: Optional[AdaptiveBasalAdvisor] = None,
                 safety_config: Optional[SafetyConfig] = None,
                 use_advisor: bool = True):
        self.advisor = advisor if advisor is not None else (AdaptiveBasalAdvisor() if use_advisor else None)
        self.config = safety_config or SafetyConfig()
        self.rules: List[Tuple[str, Rule]] = [
            ("adaptive_basal", self._adaptive_basal),
            ("low_suspend_hold", _low_suspend_hold),
            ("meal_onset", _meal_onset),
            ("snack_mode", _snack_mode),
            ("fasting_mode", _fasting_mode),
            ("sport_mode", _sport_mode),
            ("honeymoon_rise", _honeymoon_rise),
            ("honeymoon_small_rise", _honeymoon_small_rise),
            ("honeymoon_correction", _honeymoon_correction),
            ("predicted_low", _predicted_low),
            ("high_iob_stop", _high_iob_stop),
            ("meal_high_iob_hold", _meal_high_iob_hold),
            ("below_lgs", _below_lgs),
            ("near_lgs", _near_lgs),
            ("band_80_90_falling", _band_80_90_falling),
            ("band_80_90_stable", _band_80_90_stable),
            ("band_90_100_moderate", _band_90_100_moderate),
            ("band_90_100_slight_gain", _band_90_100_slight_gain),
            ("slow_rise", _slow_rise),
            ("eventual_hyper", _eventual_hyper),
            ("meal_hours", _meal_hours),
            ("morning_activity", _morning_activity),
            ("early_morning_rise", _early_morning_rise),
            ("strong_rise", _strong_rise),
            ("meal_windows", _meal_windows),
            ("plateau_high", _plateau_high),
            ("eventual_rising_fallback", _eventual_rising_fallback),
            ("high_stable_fallback", _high_stable_fallback),
            ("honeymoon_fallback", _honeymoon_fallback),
        ]

    def rule_names(self) -> List[str]:
        return [name for name, _ in self.rules]

    def decide(self, inp: EngineInput) -> EngineDecision:
        for name, rule in self.rules:
            outcome = rule(inp)
            if outcome is None:
                continue
            rate = max(0.0, outcome.rate)
            duration = outcome.duration if outcome.duration is not None else self.config.default_duration
            logger.debug("Basal rule %s fired: %.2f U/h x %d min", name, rate, duration)
            return EngineDecision(
                rate=rate,
                duration=duration,
                override_safety=outcome.override_safety,
                rule=name,
                reasons=[ReasonEntry(outcome.reason, "engine", round(rate, 3), outcome.clinical_impact)],
            )

        return EngineDecision(
            rate=inp.profile_basal,
            duration=self.config.default_duration,
            override_safety=False,
            rule="default",
        )

    def _adaptive_basal(self, inp: EngineInput) -> Optional[RuleOutcome]:
        if self.advisor is None:
            return None
        suggestion = self.advisor.suggest(AdvisorInput(
            bg=inp.bg,
            delta=inp.delta,
            short_avg_delta=inp.short_avg_delta,
            long_avg_delta=inp.long_avg_delta,
            accel=inp.acceleration,
            r2=inp.fit_quality if inp.fit_quality is not None else 0.0,
            parabola_minutes=inp.parabola_minutes,
            combined_delta=inp.combined_delta,
            profile_basal=inp.profile_basal,
            last_temp_is_zero=inp.last_temp_is_zero,
            zero_since_minutes=inp.zero_since_minutes,
            minutes_since_last_change=inp.minutes_since_last_change,
        ))
        if suggestion.rate is None:
            return None
        cap = self.config.advisor_max_multiplier * inp.profile_basal
        if inp.candidate_rate is None:
            return RuleOutcome(min(suggestion.rate, cap), suggestion.reason, duration=suggestion.duration)
        if suggestion.rate > inp.candidate_rate:
            return RuleOutcome(min(suggestion.rate, cap), f"override by AIMI+: {suggestion.reason}", duration=suggestion.duration)
        return RuleOutcome(min(inp.candidate_rate, cap), f"Candidate kept over AIMI+: {inp.candidate_rate:.2f}U/h", duration=suggestion.duration)
