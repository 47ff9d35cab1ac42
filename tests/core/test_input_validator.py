import pytest

from aimi.api.types import Profile
from aimi.core.safety import SafetyConfig
from aimi.core.safety.input_validator import InputValidator


def test_input_validator_uses_safety_config():
    config = SafetyConfig(min_glucose=55.0, max_glucose=350.0, max_glucose_delta_per_5_min=15.0)
    validator = InputValidator(safety_config=config)

    assert validator.min_glucose == 55.0
    assert validator.max_glucose == 350.0
    assert validator.max_glucose_delta_per_5_min == 15.0


def test_input_validator_rejects_out_of_range_and_nan():
    validator = InputValidator()

    with pytest.raises(ValueError, match="BIOLOGICAL_PLAUSIBILITY_ERROR"):
        validator.validate_glucose(20.0, current_time=0.0)
    with pytest.raises(ValueError, match="BIOLOGICAL_PLAUSIBILITY_ERROR"):
        validator.validate_glucose(float("nan"), current_time=0.0)


def test_input_validator_rejects_unrealistic_glucose_jump():
    validator = InputValidator(max_glucose_delta_per_5_min=20.0)

    validator.validate_glucose(100.0, current_time=0.0)

    with pytest.raises(ValueError, match="RATE_OF_CHANGE_ERROR"):
        validator.validate_glucose(200.0, current_time=5.0)

    # a rejected reading does not replace the last accepted one
    assert validator.last_valid_glucose == 100.0
    validator.validate_glucose(115.0, current_time=5.0)


def test_input_validator_checks_profile():
    validator = InputValidator()

    with pytest.raises(ValueError, match="PROFILE_ERROR"):
        validator.validate_profile(None)
    with pytest.raises(ValueError, match="PROFILE_ERROR"):
        validator.validate_profile(Profile(basal_rate=1.0, isf=0.0))
    profile = Profile(basal_rate=1.0, isf=50.0)
    assert validator.validate_profile(profile) is profile


def test_input_validator_rejects_negative_insulin():
    validator = InputValidator()

    with pytest.raises(ValueError, match="INVALID_DOSE_ERROR"):
        validator.validate_dose(-0.5)
    assert validator.validate_dose(0.5) == 0.5


def test_input_validator_state_round_trip():
    validator = InputValidator()
    validator.validate_glucose(120.0, current_time=10.0)

    other = InputValidator()
    other.set_state(validator.get_state())
    assert other.last_valid_glucose == 120.0

    other.reset()
    assert other.last_validation_time is None
