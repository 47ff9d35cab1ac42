import pytest
from scipy import integrate

from aimi.core.pkpd import kernel
from aimi.core.pkpd.kernel import ActionModelParams


PARAMS = ActionModelParams(dia_hours=6.0, peak_minutes=75.0)


def test_residual_is_one_at_dose_time_and_zero_at_dia():
    assert kernel.residual(0.0, PARAMS) == 1.0
    assert kernel.residual(PARAMS.dia_minutes, PARAMS) == pytest.approx(0.0)
    assert kernel.residual(PARAMS.dia_minutes + 120.0, PARAMS) == 0.0


def test_residual_never_increases():
    values = [kernel.residual(t, PARAMS) for t in range(0, 361, 5)]
    assert all(later <= earlier for earlier, later in zip(values, values[1:]))


def test_action_is_zero_before_the_dose():
    assert kernel.action_at(0.0, PARAMS) == 0.0
    assert kernel.action_at(-10.0, PARAMS) == 0.0


def test_action_integrates_to_one_over_dia():
    area, _ = integrate.quad(lambda t: kernel.action_at(t, PARAMS), 0.0, PARAMS.dia_minutes, limit=200)
    assert area == pytest.approx(1.0, abs=1e-3)


def test_time_for_fraction_inverts_normalized_cdf():
    t = kernel.time_for_fraction(0.5, PARAMS)
    assert 0.0 < t < PARAMS.dia_minutes
    assert kernel.normalized_cdf(t, PARAMS) == pytest.approx(0.5, abs=1e-2)
    assert kernel.time_for_fraction(0.0, PARAMS) == 0.0
    assert kernel.time_for_fraction(1.0, PARAMS) == PARAMS.dia_minutes


def test_activity_window_is_ordered():
    window = kernel.activity_window(PARAMS)
    assert 0.0 < window.onset_minutes <= window.peak_minutes
    assert window.peak_minutes == 75.0
    assert window.peak_minutes <= window.offset_minutes <= window.dia_minutes
    assert window.post_window_fraction(window.offset_minutes) == 0.0
    assert window.post_window_fraction(window.dia_minutes) == 1.0


def test_action_curve_matches_pointwise_functions():
    minutes, action, remaining = kernel.action_curve(PARAMS, step_minutes=30.0)

    assert len(minutes) == len(action) == len(remaining) == 13
    assert minutes[0] == 0.0
    assert minutes[-1] == PARAMS.dia_minutes
    assert remaining[0] == 1.0
    assert remaining[-1] == pytest.approx(0.0)
    assert action[4] == pytest.approx(kernel.action_at(120.0, PARAMS))
    assert remaining[4] == pytest.approx(kernel.residual(120.0, PARAMS))
