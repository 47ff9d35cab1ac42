from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SafetyConfig:
    """
    Central safety configuration for input validation, the basal planner,
    the decision engine and the SMB policy.
    """
    # Input validation limits
    min_glucose: float = 39.0
    max_glucose: float = 500.0
    max_glucose_delta_per_5_min: float = 35.0

    # Hypo guards
    default_lgs_threshold: float = 70.0
    min_valid_lgs_threshold: float = 40.0
    hard_floor_margin: float = 15.0
    hard_floor_minimum: float = 50.0
    hypo_suspend_minutes: int = 30
    predictive_low_delta: float = -2.0
    predictive_low_horizon_steps: int = 6

    # Basal planner
    zero_resume_minutes: int = 5
    zero_resume_fraction: float = 0.5
    zero_resume_max_minutes: int = 30
    plateau_high_bg: float = 120.0
    plateau_delta_abs: float = 3.0
    kick_fraction: float = 0.15
    kick_min_rate: float = 0.2
    kick_minutes: int = 10
    anti_stall_fraction: float = 0.10
    delta_pos_release: float = 1.0
    planner_max_multiplier: float = 1.6
    min_basal_step: float = 0.05
    min_temp_duration: int = 10

    # Decision engine / final command
    advisor_max_multiplier: float = 1.8
    max_rate_multiplier: float = 4.0
    default_duration: int = 30

    # SMB policy
    smb_ratio: float = 0.5
    base_smb_interval: float = 5.0
    high_bg_override_min: float = 120.0
    high_bg_override_strong: float = 160.0
    high_bg_override_delta: float = 1.5

    def lgs_for(self, profile_lgs: float) -> float:
        """Profile low-glucose-suspend threshold, or the default when unset or implausible."""
        return profile_lgs if profile_lgs > self.min_valid_lgs_threshold else self.default_lgs_threshold

    def hard_floor_for(self, lgs: float) -> float:
        return max(self.hard_floor_minimum, lgs - self.hard_floor_margin)
