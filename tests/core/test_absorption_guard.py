import pytest

from aimi.core.pkpd import (
    AbsorptionGuard,
    ActionModelParams,
    ActivityStage,
    ActivityState,
    ActivityWindow,
    PkPdRuntime,
    compute_throttle,
)


def _activity(stage, relative=0.5):
    return ActivityState(
        stage=stage,
        relative_activity=relative,
        normalized_position=0.3,
        post_window_fraction=0.0,
        minutes_until_onset=0.0,
        anticipation_weight=0.0,
        window=ActivityWindow(10.0, 75.0, 150.0, 360.0),
    )


def _runtime(stage, tail_fraction=0.6):
    return PkPdRuntime(
        params=ActionModelParams(dia_hours=6.0),
        tail_fraction=tail_fraction,
        fused_isf=50.0,
        profile_isf=50.0,
        tdd_isf=50.0,
        pkpd_scale=1.0,
        activity=_activity(stage),
    )


def _guard(runtime, bg=150.0, delta=3.0, short=3.0, predicted=None, meal_mode=False):
    return AbsorptionGuard.compute(runtime, bg, delta, short, 100.0, predicted, meal_mode)


def test_guard_is_neutral_without_runtime_or_in_meal_mode():
    assert _guard(None).factor == 1.0
    result = _guard(_runtime(ActivityStage.PRE_ONSET), meal_mode=True)
    assert result.factor == 1.0
    assert not result.is_active


def test_pre_onset_waits_for_insulin():
    result = _guard(_runtime(ActivityStage.PRE_ONSET))

    assert result.factor == 0.5
    assert result.interval_add == 4
    assert result.prefer_basal is True
    assert result.reason == "PRE_ONSET"


def test_urgent_hyper_relaxes_the_guard():
    result = _guard(_runtime(ActivityStage.PEAK), bg=250.0, delta=6.0, short=6.0, predicted=300.0)

    assert result.factor == pytest.approx(0.95)
    assert result.interval_add == 0
    assert result.reason.endswith("_URGENCY_RELAXED")


def test_stable_glucose_loosens_the_guard():
    result = _guard(_runtime(ActivityStage.RISING), delta=0.5, short=1.0)

    assert result.factor == pytest.approx(0.7)
    assert result.reason == "RISING_STABLE"


def test_tail_guard_depends_on_residual():
    assert _guard(_runtime(ActivityStage.TAIL, 0.6)).factor == 0.85
    assert _guard(_runtime(ActivityStage.TAIL, 0.4)).factor == 0.92
    assert _guard(_runtime(ActivityStage.TAIL, 0.2)).factor == 1.0


def test_throttle_by_stage():
    assert compute_throttle(_activity(ActivityStage.PRE_ONSET, 0.1), 0.9, 2.0, 100.0, 150.0).smb_factor == 0.6
    assert compute_throttle(_activity(ActivityStage.PEAK), 0.7, 2.0, 100.0, 150.0).smb_factor == 0.3
    assert compute_throttle(_activity(ActivityStage.TAIL, 0.2), 0.2, 2.0, 100.0, 150.0).smb_factor == 1.0
    assert compute_throttle(_activity(ActivityStage.TAIL, 0.2), 0.5, 2.0, 100.0, 150.0).smb_factor == 0.7
    assert compute_throttle(_activity(ActivityStage.EXHAUSTED, 0.0), 0.0, 0.0, 100.0, 180.0).smb_factor == 0.9
    normal = compute_throttle(_activity(ActivityStage.EXHAUSTED, 0.0), 0.0, 0.0, 100.0, 120.0)
    assert normal.smb_factor == 1.0
    assert normal.reason == "Normal operation"
