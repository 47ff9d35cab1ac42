import pytest

from aimi.api.types import GlucoseSample, InsulinState, ModeFlags, Profile, TickInput
from aimi.core.basal.engine import BasalDecisionEngine, EngineInput, detect_meal_onset


def _inp(**overrides):
    values = dict(
        bg=110.0,
        delta=0.0,
        short_avg_delta=0.0,
        long_avg_delta=0.0,
        acceleration=0.0,
        combined_delta=0.0,
        profile_basal=1.0,
        basal_estimate=1.0,
        tdd_recent=0.0,
        tdd_previous=0.0,
        variable_sensitivity=50.0,
        profile_sensitivity=50.0,
        predicted_bg=110.0,
        target_bg=100.0,
        lgs_threshold=70.0,
        eventual_bg=110.0,
        iob=0.0,
        max_iob=4.0,
    )
    values.update(overrides)
    return EngineInput(**values)


def test_no_rule_returns_profile_basal():
    decision = BasalDecisionEngine().decide(_inp())

    assert decision.rule == "default"
    assert decision.rate == 1.0
    assert decision.duration == 30
    assert decision.reasons == []


def test_below_lgs_suspends():
    decision = BasalDecisionEngine().decide(_inp(bg=65.0))

    assert decision.rule == "below_lgs"
    assert decision.rate == 0.0
    assert decision.is_hypo_zero


def test_near_lgs_halves_basal_when_rising():
    decision = BasalDecisionEngine().decide(_inp(bg=75.0, delta=2.0))

    assert decision.rule == "near_lgs"
    assert decision.rate == pytest.approx(0.5)
    assert not decision.is_hypo_zero


def test_predicted_low_tiers():
    engine = BasalDecisionEngine()

    assert engine.decide(_inp(predicted_bg=60.0)).rate == 0.0
    moderate = engine.decide(_inp(predicted_bg=70.0))
    assert moderate.rule == "predicted_low"
    assert moderate.rate == pytest.approx(0.25)


def test_high_iob_stop_and_meal_hold():
    engine = BasalDecisionEngine()

    assert engine.decide(_inp(iob=5.0)).rate == pytest.approx(0.5)
    assert engine.decide(_inp(iob=5.0, delta=-3.0)).rate == 0.0

    hold = engine.decide(_inp(iob=5.0, allow_meal_high_iob=True, current_temp_rate=1.5))
    assert hold.rule == "meal_high_iob_hold"
    assert hold.rate == pytest.approx(1.5)


def test_strong_rise_is_capped_at_twice_profile_basal():
    decision = BasalDecisionEngine().decide(_inp(bg=150.0, delta=9.0))

    assert decision.rule == "strong_rise"
    assert decision.rate == pytest.approx(2.0)


def test_meal_window_onset_boost():
    decision = BasalDecisionEngine().decide(_inp(meal_windows={"lunch": 10}))

    assert decision.rule == "meal_windows"
    assert decision.rate > 1.0
    assert decision.reasons[0].clinical_impact == "mode TBR"


def test_plateau_high_boost():
    decision = BasalDecisionEngine().decide(_inp(bg=160.0, plateau_minutes=20.0))

    assert decision.rule == "plateau_high"
    assert decision.rate == pytest.approx(1.6)


def test_fasting_scales_with_delta():
    decision = BasalDecisionEngine().decide(_inp(fasting=True, delta=2.0))

    assert decision.rule == "fasting_mode"
    assert decision.rate == pytest.approx(2.0)


def test_meal_onset_forces_autodrive_basal():
    decision = BasalDecisionEngine().decide(_inp(
        bg=130.0, delta=5.0, acceleration=1.5, predicted_bg=150.0, autodrive=True, forced_basal=3.0,
    ))

    assert decision.rule == "meal_onset"
    assert decision.rate == pytest.approx(3.0)
    assert decision.override_safety is True


def test_low_suspend_hold():
    decision = BasalDecisionEngine().decide(_inp(
        low_suspend_basal=True, combined_delta=1.0, predicted_bg=140.0, iob=0.5,
    ))

    assert decision.rule == "low_suspend_hold"
    assert decision.rate == 1.0
    assert decision.duration == 30


def test_advisor_runs_first_and_is_capped():
    engine = BasalDecisionEngine()
    decision = engine.decide(_inp(
        bg=65.0, last_temp_is_zero=True, zero_since_minutes=20, minutes_since_last_change=20,
    ))

    assert decision.rule == "adaptive_basal"
    assert decision.rate == pytest.approx(0.35)
    assert decision.duration == 10


def test_advisor_keeps_larger_candidate():
    decision = BasalDecisionEngine().decide(_inp(
        last_temp_is_zero=True, zero_since_minutes=20, minutes_since_last_change=20, candidate_rate=1.0,
    ))

    assert decision.rate == pytest.approx(1.0)
    assert decision.reasons[0].reason.startswith("Candidate kept")


def test_advisor_can_be_disabled():
    engine = BasalDecisionEngine(use_advisor=False)
    decision = engine.decide(_inp(bg=65.0, last_temp_is_zero=True, zero_since_minutes=20))

    assert decision.rule == "below_lgs"


def test_rule_order_is_fixed():
    names = BasalDecisionEngine().rule_names()

    assert names[0] == "adaptive_basal"
    assert names.index("predicted_low") < names.index("below_lgs") < names.index("strong_rise")
    assert names.index("strong_rise") < names.index("meal_windows") < names.index("plateau_high")
    assert len(names) == len(set(names))


@pytest.mark.parametrize("overrides", [
    {"bg": 65.0},
    {"bg": 75.0, "delta": 2.0},
    {"iob": 5.0},
    {"bg": 150.0, "delta": 9.0},
    {"meal_windows": {"dinner": 60}, "bg": 130.0, "delta": -1.0},
    {"fasting": True, "delta": 1.0},
])
def test_every_fired_rule_leaves_exactly_one_reason(overrides):
    decision = BasalDecisionEngine().decide(_inp(**overrides))

    assert decision.rule != "default"
    assert len(decision.reasons) == 1
    assert decision.reasons[0].category == "engine"
    assert decision.rate >= 0.0


def test_detect_meal_onset():
    assert detect_meal_onset(5.0, 3.0, 1.5)
    assert not detect_meal_onset(5.0, 3.0, 1.0)
    assert not detect_meal_onset(2.0, 2.0, 2.0)


def test_from_tick_maps_fields():
    tick = TickInput(
        glucose=GlucoseSample(timestamp=0.0, value=140.0, delta=3.0),
        insulin=InsulinState(iob=1.2),
        profile=Profile(basal_rate=0.8, isf=45.0, tdd_7d_average=30.0),
        modes=ModeFlags(meal_windows={"lunch": 5}, sport=True),
        tdd_24h=25.0,
        predicted_bg=152.0,
    )
    inp = EngineInput.from_tick(tick, fused_isf=48.0, lgs_threshold=70.0, last_temp_is_zero=True)

    assert inp.short_avg_delta == 3.0
    assert inp.combined_delta == pytest.approx((3.0 + 2.0) / 2.0)
    assert inp.tdd_previous == 30.0
    assert inp.variable_sensitivity == 48.0
    assert inp.eventual_bg == 152.0
    assert inp.meal_windows == {"lunch": 5}
    assert inp.sport is True
    assert inp.last_temp_is_zero is True
