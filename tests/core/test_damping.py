import pytest

from aimi.core.pkpd import ActivityStage, ActivityState, ActivityWindow, SmbDamping


def _activity(stage, relative=0.0, post_window=0.0, anticipation=0.0):
    return ActivityState(
        stage=stage,
        relative_activity=relative,
        normalized_position=0.3,
        post_window_fraction=post_window,
        minutes_until_onset=0.0,
        anticipation_weight=anticipation,
        window=ActivityWindow(10.0, 75.0, 150.0, 360.0),
    )


def test_tail_and_exercise_damping_compose():
    damping = SmbDamping()
    # tail 0.5 without activity relief, exercise 0.6
    assert damping.damp(2.0, 0.3, exercise=True, late_fat=False) == pytest.approx(0.6)


def test_tail_below_threshold_is_not_damped():
    damping = SmbDamping()
    assert damping.damp(2.0, 0.2, exercise=True, late_fat=False) == pytest.approx(1.2)
    assert damping.damp(1.0, 0.0, exercise=False, late_fat=True) == pytest.approx(0.7)


def test_bypass_returns_input_unchanged():
    damping = SmbDamping()
    audit = damping.damp_with_audit(2.0, 0.9, exercise=True, late_fat=True, bypass=True)

    assert audit.out == 2.0
    assert audit.bypassed is True
    assert audit.total_factor == 1.0


def test_fresh_insulin_softens_the_tail_factor():
    damping = SmbDamping()
    peak = _activity(ActivityStage.PEAK, relative=1.0)

    # relief = 0.5 * 1.0 + 0.3 * 1.0 = 0.8 -> tail 0.5 + 0.5 * 0.8
    assert damping.tail_multiplier(peak) == pytest.approx(0.9)
    audit = damping.damp_with_audit(1.0, 0.5, exercise=False, late_fat=False, activity=peak)
    assert audit.out == pytest.approx(0.9)
    assert audit.activity_stage == ActivityStage.PEAK


def test_damping_never_increases_the_dose():
    damping = SmbDamping()
    for stage in ActivityStage:
        out = damping.damp(1.0, 1.0, exercise=False, late_fat=False, activity=_activity(stage, 1.0, 0.0, 1.0))
        assert out <= 1.0
