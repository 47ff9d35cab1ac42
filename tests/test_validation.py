import pytest
from pydantic import ValidationError

from aimi.api.types import Intensity
from aimi.core.context import ContextMode
from aimi.validation import (
    format_validation_error,
    load_controller_config,
    load_tick_input,
    tick_input_from_dict,
    validate_controller_config_dict,
)


def test_load_controller_config_from_yaml(tmp_path):
    path = tmp_path / "controller.yaml"
    path.write_text(
        "safety:\n"
        "  max_rate_multiplier: 3.0\n"
        "bounds:\n"
        "  dia_min_hours: 5.0\n"
        "context_mode: conservative\n"
        "trajectory_window_minutes: 60\n"
    )

    config = load_controller_config(path)

    assert config.safety.max_rate_multiplier == 3.0
    assert config.safety.smb_ratio == 0.5
    assert config.learning.bounds.dia_min_hours == 5.0
    assert config.context_mode == ContextMode.CONSERVATIVE
    assert config.trajectory_window_minutes == 60.0


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    config = load_controller_config(path)

    assert config.safety.max_rate_multiplier == 4.0
    assert config.use_advisor is True


def test_invalid_config_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_controller_config_dict({"bounds": {"dia_min_hours": 30.0, "dia_max_hours": 10.0}})

    lines = format_validation_error(exc_info.value)
    assert lines
    assert lines[0].startswith("bounds")


def test_unknown_config_keys_are_rejected():
    with pytest.raises(ValidationError):
        validate_controller_config_dict({"safety": {"max_bolus": 5.0}})


def test_tick_input_from_dict():
    tick = tick_input_from_dict({
        "glucose": {"timestamp": 0, "value": 120, "delta": 2.5},
        "insulin": {"iob": 1.5, "doses": [{"amount": 1.0, "elapsed_minutes": 45}]},
        "profile": {"basal_rate": 1.0, "isf": 50, "pump": {"max_basal": 2.5}},
        "modes": {"meal_windows": {"lunch": 15}},
        "intents": [{"category": "activity", "intensity": "high", "start": 0, "duration_minutes": 60}],
    })

    assert tick.glucose.value == 120.0
    assert tick.insulin.minutes_since_last_dose == 45.0
    assert tick.profile.pump.max_basal == 2.5
    assert tick.modes.window_runtime("lunch") == 15
    assert tick.intents[0].intensity == Intensity.HIGH


def test_tick_input_rejects_bad_values():
    with pytest.raises(ValidationError):
        tick_input_from_dict({
            "glucose": {"timestamp": 0, "value": 120},
            "profile": {"basal_rate": 1.0, "isf": -5},
        })
    with pytest.raises(ValidationError):
        tick_input_from_dict({
            "glucose": {"timestamp": 0, "value": 120},
            "modes": {"meal_windows": {"brunch": 5}},
        })


def test_tick_input_without_profile_is_allowed(tmp_path):
    path = tmp_path / "tick.json"
    path.write_text('{"glucose": {"timestamp": 10, "value": 95}}')

    tick = load_tick_input(path)

    assert tick.profile is None
    assert tick.insulin.iob == 0.0
