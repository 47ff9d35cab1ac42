import pytest

from aimi.api.types import GlucoseSample, InsulinState, ModeFlags, Profile, TickInput
from aimi.core.context import ContextInfluence
from aimi.core.pkpd import ActionModelParams, ActivityStage, ActivityState, ActivityWindow, PkPdRuntime
from aimi.core.smb.policy import SmbPolicy
from aimi.core.smb.quantizer import quantize, quantize_to_pump_step
from aimi.core.trajectory.models import TrajectoryModulation


def _tick(bg=200.0, delta=0.0, predicted=None, eventual=None, iob=0.0, modes=None, max_smb=2.0):
    return TickInput(
        glucose=GlucoseSample(timestamp=0.0, value=bg, delta=delta),
        insulin=InsulinState(iob=iob),
        profile=Profile(basal_rate=1.0, isf=50.0, max_smb=max_smb),
        modes=modes or ModeFlags(),
        predicted_bg=predicted,
        eventual_bg=eventual,
    )


SPIRAL = TrajectoryModulation(
    smb_damping=0.5,
    interval_stretch=1.8,
    basal_preference=0.85,
    safety_margin_expand=1.3,
    reason="compressed",
)


def test_quantizer_rounds_to_step():
    assert quantize(0.37, 0.05) == pytest.approx(0.35)
    assert quantize(-1.0, 0.1) == 0.0
    assert quantize(5.0, 0.1, max_units=2.0) == pytest.approx(2.0)


def test_pump_step_quantizer_keeps_meaningful_requests():
    assert quantize_to_pump_step(0.024, 0.05) == pytest.approx(0.05)
    assert quantize_to_pump_step(0.01, 0.05) == 0.0


def test_proposal_is_correction_net_of_iob():
    policy = SmbPolicy()

    assert policy.propose(_tick(eventual=200.0, iob=0.5), 50.0) == pytest.approx(0.75)
    assert policy.propose(_tick(eventual=90.0), 50.0) == 0.0
    assert policy.propose(_tick(eventual=400.0, iob=3.8), 50.0) == pytest.approx(0.2)


def test_hypo_zero_forces_no_bolus():
    out = SmbPolicy().evaluate(_tick(), 50.0, 70.0, hypo_zero=True)

    assert out.bolus == 0.0
    assert out.proposed > 0.0
    assert "suppressed" in out.reasons[-1].reason


def test_exercise_damping_with_high_bg_override():
    out = SmbPolicy().evaluate(_tick(modes=ModeFlags(exercise=True)), 50.0, 70.0)

    assert out.proposed == pytest.approx(1.0)
    assert out.audit.exercise_applied
    assert out.bolus == pytest.approx(0.6)
    assert out.override_used
    assert out.interval_minutes == 0.0


def test_trajectory_modulation_shrinks_and_stretches():
    out = SmbPolicy().evaluate(_tick(bg=130.0, eventual=200.0), 50.0, 70.0, modulation=SPIRAL)

    assert out.bolus == pytest.approx(0.5)
    assert out.interval_minutes == pytest.approx(9.0)
    assert out.prefer_basal is True
    assert any(r.category == "trajectory" for r in out.reasons)


def test_widened_hypo_margin_zeroes_bolus():
    out = SmbPolicy().evaluate(_tick(bg=130.0, predicted=85.0, eventual=200.0), 50.0, 70.0, modulation=SPIRAL)

    assert out.bolus == 0.0
    assert any("hypo guard 91" in r.reason for r in out.reasons)


def test_context_influence_is_applied():
    context = ContextInfluence(smb_factor=0.5, extra_interval=5, prefer_basal=True, reasoning=["Activity HIGH"])
    out = SmbPolicy().evaluate(_tick(bg=130.0, eventual=200.0), 50.0, 70.0, context=context)

    assert out.bolus == pytest.approx(0.5)
    assert out.interval_minutes == pytest.approx(10.0)
    assert out.prefer_basal is True


def test_bolus_never_exceeds_max_smb():
    out = SmbPolicy().evaluate(_tick(bg=300.0, eventual=400.0, max_smb=0.5), 50.0, 70.0)

    assert 0.0 <= out.bolus <= 0.5


def _peak_runtime(relative_activity=0.8):
    activity = ActivityState(
        stage=ActivityStage.PEAK,
        relative_activity=relative_activity,
        normalized_position=0.3,
        post_window_fraction=0.0,
        minutes_until_onset=0.0,
        anticipation_weight=0.0,
        window=ActivityWindow(10.0, 75.0, 150.0, 360.0),
    )
    return PkPdRuntime(
        params=ActionModelParams(dia_hours=6.0),
        tail_fraction=0.6,
        fused_isf=50.0,
        profile_isf=50.0,
        tdd_isf=50.0,
        pkpd_scale=1.0,
        activity=activity,
    )


def test_urgent_hyper_at_peak_is_not_throttled():
    tick = _tick(bg=250.0, delta=8.0, predicted=300.0, eventual=300.0)

    out = SmbPolicy().evaluate(tick, 50.0, 70.0, runtime=_peak_runtime())

    assert out.throttle.smb_factor == 0.3
    assert out.guard.reason == "PEAK_URGENCY_RELAXED"
    step = next(r for r in out.reasons if r.reason.startswith("Absorption throttle"))
    assert "x0.95" in step.reason
    assert step.value == pytest.approx(out.audit.out * 0.95, abs=1e-3)


def test_peak_without_urgency_keeps_the_throttle():
    tick = _tick(bg=160.0, delta=2.0, predicted=170.0, eventual=170.0)

    out = SmbPolicy().evaluate(tick, 50.0, 70.0, runtime=_peak_runtime())

    step = next(r for r in out.reasons if r.reason.startswith("Absorption throttle"))
    assert "x0.30" in step.reason
    assert out.prefer_basal is True
