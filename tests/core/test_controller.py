import logging

import pytest

from aimi.api.types import GlucoseSample, InsulinDose, InsulinState, ModeFlags, Profile, TickInput
from aimi.core.config import ControllerConfig
from aimi.core.basal.engine import EngineDecision
from aimi.core.controller import AimiController


def _tick(bg=150.0, delta=-10.0, t=1000.0, doses=None, iob=2.0, profile="default", modes=None):
    if profile == "default":
        profile = Profile(basal_rate=1.0, isf=50.0)
    if doses is None:
        doses = [InsulinDose(amount=2.0, elapsed_minutes=120.0)]
    return TickInput(
        glucose=GlucoseSample(timestamp=t, value=bg, delta=delta),
        insulin=InsulinState(iob=iob, doses=doses),
        profile=profile,
        modes=modes or ModeFlags(),
    )


@pytest.fixture
def controller():
    ctrl = AimiController()
    yield ctrl
    ctrl.shutdown()


def test_hypo_guard_wins_over_meal_mode(controller):
    tick = _tick(bg=55.0, delta=10.0, modes=ModeFlags(meal_windows={"lunch": 10}))

    decision = controller.tick(tick)

    assert decision.rate == 0.0
    assert decision.duration == 30
    assert decision.bolus == 0.0
    assert decision.short_circuited is True
    assert decision.reasons[0].category == "planner"
    assert decision.rule == "HARD_HYPO"


def test_full_cascade_produces_a_decision(controller):
    decision = controller.tick(_tick())

    assert decision is not None
    assert not decision.short_circuited
    assert not decision.fallback
    assert decision.rate >= 0.0
    assert decision.bolus >= 0.0
    assert decision.fused_isf is not None
    assert len(controller.trajectory_history) == 1


def test_profile_basal_default_adds_no_engine_reason(controller, monkeypatch):
    def default(inp):
        return EngineDecision(rate=1.0, duration=30, override_safety=False, rule="default")

    monkeypatch.setattr(controller.engine, "decide", default)

    decision = controller.tick(_tick(bg=110.0, delta=5.0, iob=0.0, doses=[]))

    assert decision.rule == "default"
    assert decision.rate == pytest.approx(1.0)
    assert [r for r in decision.reasons if r.category == "engine"] == []
    assert not any("No rule fired" in r.reason for r in decision.reasons)


def test_decisions_are_deterministic():
    first, second = AimiController(), AimiController()
    try:
        assert first.tick(_tick()).to_dict() == second.tick(_tick()).to_dict()
    finally:
        first.shutdown()
        second.shutdown()


def test_tick_is_skipped_while_busy(controller):
    controller._tick_lock.acquire()
    try:
        assert controller.tick(_tick()) is None
    finally:
        controller._tick_lock.release()

    assert controller.tick(_tick()) is not None


def test_missing_profile_falls_back_to_zero(controller):
    decision = controller.tick(_tick(profile=None))

    assert decision.fallback is True
    assert decision.rate == 0.0
    assert decision.reasons[0].reason.startswith("FALLBACK")


def test_implausible_glucose_falls_back(controller):
    high = controller.tick(_tick(bg=600.0))
    assert high.fallback is True
    assert high.rate == 1.0

    low = controller.tick(_tick(bg=30.0))
    assert low.fallback is True
    assert low.rate == 0.0


def test_unrealistic_jump_falls_back(controller):
    controller.tick(_tick(bg=100.0, delta=0.0, t=0.0))
    decision = controller.tick(_tick(bg=200.0, delta=0.0, t=5.0))

    assert decision.fallback is True
    assert "RATE_OF_CHANGE_ERROR" in decision.reasons[0].reason


def test_final_rate_is_capped(controller):
    tick = _tick(bg=110.0, delta=4.0, doses=[], iob=0.0, modes=ModeFlags(meal_windows={"lunch": 10}))

    decision = controller.tick(tick)

    # min(4 x basal, max(pump max 3.0, basal))
    assert decision.rate == pytest.approx(3.0)
    assert any(r.category == "safety" and r.reason.startswith("Rate capped") for r in decision.reasons)


def test_failing_component_degrades_to_neutral(controller, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(controller.trajectory_guard, "analyze", boom)
    monkeypatch.setattr(controller.engine, "decide", boom)

    decision = controller.tick(_tick())

    assert decision.fallback is False
    assert decision.rate == pytest.approx(1.0)
    assert decision.advisories == []
    assert any(r.reason.startswith("Engine unavailable") for r in decision.reasons)


def test_unexpected_error_falls_back(controller, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(controller.validator, "validate_profile", boom)

    decision = controller.tick(_tick())

    assert decision.fallback is True
    assert decision.rate == 1.0
    assert "internal error" in decision.reasons[0].reason


def test_changed_parameters_are_persisted_off_thread():
    saved = []
    controller = AimiController(persist=saved.append)
    try:
        controller.tick(_tick())
        controller.wait_for_persistence(timeout=5.0)
    finally:
        controller.shutdown()

    assert len(saved) == 1
    assert saved[0].dia_hours > 6.0
    assert controller.params == saved[0]


def test_persistence_failure_is_logged_not_raised(caplog):
    def failing(params):
        raise IOError("disk full")

    controller = AimiController(persist=failing)
    decision = controller.tick(_tick())
    controller.shutdown(wait=True)

    assert decision is not None
    assert not decision.fallback
    assert "Persisting PK/PD parameters failed" in caplog.text


def test_state_round_trip_and_reset(controller):
    controller.tick(_tick())
    state = controller.get_state()

    other = AimiController()
    try:
        other.set_state(state)
        assert other.params == controller.params
        assert other.pkpd.fusion.last_isf == controller.pkpd.fusion.last_isf
    finally:
        other.shutdown()

    controller.reset()
    assert controller.params.dia_hours == 6.0
    assert len(controller.trajectory_history) == 0
    assert controller.pkpd.fusion.last_isf is None


def test_history_window_comes_from_config():
    controller = AimiController(ControllerConfig(trajectory_window_minutes=30.0))
    try:
        for i in range(10):
            controller.tick(_tick(bg=100.0, delta=0.0, t=i * 5.0))
        assert len(controller.trajectory_history) == 7
    finally:
        controller.shutdown()
