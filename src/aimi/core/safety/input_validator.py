import math
from typing import Optional

from aimi.api.types import Profile, TickInput
from aimi.core.safety.config import SafetyConfig


class InputValidator:
    """
    Plausibility filter for the per-tick inputs. Anything it rejects sends
    the controller down its fail-soft path instead of into the cascade.
    """
    def __init__(self,
                 min_glucose: float = 39.0,
                 max_glucose: float = 500.0,
                 max_glucose_delta_per_5_min: float = 35.0,
                 safety_config: Optional[SafetyConfig] = None):
        """
        Args:
            min_glucose (float): Lowest CGM value accepted (mg/dL); sensors report "LO" below it.
            max_glucose (float): Highest CGM value accepted (mg/dL).
            max_glucose_delta_per_5_min (float): Largest believable change between two
                                                 accepted readings, per 5 minutes (mg/dL).
        """
        cfg = safety_config
        self.min_glucose = cfg.min_glucose if cfg is not None else min_glucose
        self.max_glucose = cfg.max_glucose if cfg is not None else max_glucose
        self.max_glucose_delta_per_5_min = (
            cfg.max_glucose_delta_per_5_min if cfg is not None else max_glucose_delta_per_5_min
        )
        self.last_valid_glucose: Optional[float] = None
        self.last_validation_time: Optional[float] = None

    def reset(self):
        self.last_valid_glucose = None
        self.last_validation_time = None

    def get_state(self) -> dict:
        return {
            "last_valid_glucose": self.last_valid_glucose,
            "last_validation_time": self.last_validation_time,
        }

    def set_state(self, state: dict) -> None:
        self.last_valid_glucose = state.get("last_valid_glucose")
        self.last_validation_time = state.get("last_validation_time")

    def validate_tick(self, tick: TickInput) -> Profile:
        """Profile first, then the CGM reading; returns the checked profile."""
        profile = self.validate_profile(tick.profile)
        self.validate_glucose(tick.glucose.value, tick.now)
        return profile

    def validate_glucose(self, glucose_value: float, current_time: float) -> float:
        """
        Accepts a CGM reading and remembers it as the reference for the next
        rate-of-change check. A rejected reading leaves the reference untouched.

        Raises:
            ValueError: Out-of-range, NaN or physiologically impossible jump.
        """
        self._check_range(glucose_value)
        self._check_rate_of_change(glucose_value, current_time)
        self.last_valid_glucose = glucose_value
        self.last_validation_time = current_time
        return glucose_value

    def _check_range(self, glucose_value: float) -> None:
        if math.isnan(glucose_value):
            raise ValueError("BIOLOGICAL_PLAUSIBILITY_ERROR: Glucose reading is NaN.")
        if glucose_value < self.min_glucose or glucose_value > self.max_glucose:
            raise ValueError(
                f"BIOLOGICAL_PLAUSIBILITY_ERROR: CGM value {glucose_value} mg/dL outside "
                f"[{self.min_glucose}, {self.max_glucose}]."
            )

    def _check_rate_of_change(self, glucose_value: float, current_time: float) -> None:
        previous, previous_time = self.last_valid_glucose, self.last_validation_time
        if previous is None or previous_time is None:
            return
        elapsed = current_time - previous_time
        if elapsed <= 0:
            # same or replayed timestamp: nothing to compare against
            return
        limit = self.max_glucose_delta_per_5_min * elapsed / 5.0
        jump = abs(glucose_value - previous)
        if jump > limit:
            raise ValueError(
                f"RATE_OF_CHANGE_ERROR: {previous:.0f} -> {glucose_value:.0f} mg/dL in {elapsed:.1f} min "
                f"exceeds {limit:.1f} mg/dL."
            )

    def validate_profile(self, profile: Optional[Profile]) -> Profile:
        if profile is None:
            raise ValueError("PROFILE_ERROR: No profile available.")
        if profile.basal_rate < 0:
            raise ValueError(f"PROFILE_ERROR: Basal rate {profile.basal_rate} U/h cannot be negative.")
        if profile.isf <= 0:
            raise ValueError(f"PROFILE_ERROR: ISF {profile.isf} mg/dL/U must be positive.")
        if profile.pump.basal_step <= 0:
            raise ValueError(f"PROFILE_ERROR: Basal step {profile.pump.basal_step} U/h must be positive.")
        return profile

    def validate_dose(self, dose: float) -> float:
        """Micro-bolus sanity check before it leaves the controller."""
        if dose < 0 or math.isnan(dose):
            raise ValueError(f"INVALID_DOSE_ERROR: Micro-bolus {dose} U is not a deliverable amount.")
        return dose
