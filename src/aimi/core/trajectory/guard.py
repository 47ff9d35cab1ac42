from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from aimi.core.pkpd.kernel import ActivityStage
from aimi.core.trajectory import metrics as trajectory_metrics
from aimi.core.trajectory.models import (
    NEUTRAL_MODULATION,
    PhaseSpacePoint,
    StableOrbit,
    TrajectoryAnalysis,
    TrajectoryMetrics,
    TrajectoryModulation,
    TrajectoryType,
    TrajectoryWarning,
    WarningSeverity,
)

logger = logging.getLogger("aimi.trajectory")

CURVATURE_HIGH = 0.3
CONVERGENCE_SLOW = -0.5
COHERENCE_LOW = 0.3
ENERGY_STACKING = 2.0
OPENNESS_DIVERGING = 0.7
MIN_HISTORY_STATES = 4

_LOG_BY_SEVERITY = {
    WarningSeverity.CRITICAL: logging.ERROR,
    WarningSeverity.HIGH: logging.WARNING,
    WarningSeverity.MEDIUM: logging.INFO,
    WarningSeverity.LOW: logging.DEBUG,
}


class TrajectoryGuard:
    """
    Classifies the recent phase-space path and returns soft modulation.

    The guard never blocks a dose. It only scales the SMB, stretches the SMB
    interval and widens the hypo margin; callers multiply these in.
    """

    def __init__(self, min_history: int = MIN_HISTORY_STATES):
        self.min_history = min_history
        self.last_analysis: Optional[TrajectoryAnalysis] = None

    def analyze(self, history: Sequence[PhaseSpacePoint], orbit: StableOrbit) -> Optional[TrajectoryAnalysis]:
        if len(history) < self.min_history:
            logger.debug("Trajectory: insufficient history (%d points, need %d)", len(history), self.min_history)
            return None

        metrics = trajectory_metrics.calculate_all(history, orbit)
        if metrics is None:
            return None

        classification = self.classify(metrics, history[-1], orbit)
        modulation = self.modulation_for(classification, metrics)
        warnings = self.warnings_for(metrics, classification, history[-1])

        analysis = TrajectoryAnalysis(
            classification=classification,
            metrics=metrics,
            modulation=modulation,
            warnings=warnings,
            stable_orbit_distance=history[-1].distance_to(orbit.to_phase_space_point()),
            predicted_convergence_time=trajectory_metrics.estimate_convergence_time(history, orbit),
        )

        logger.debug(
            "Trajectory %s k=%.3f v_conv=%.2f rho=%.2f E=%.2f theta=%.2f",
            classification.name, metrics.curvature, metrics.convergence_velocity,
            metrics.coherence, metrics.energy_balance, metrics.openness,
        )
        if modulation.is_significant():
            logger.info("Trajectory modulation active - %s", modulation.reason)
        for warning in warnings:
            logger.log(_LOG_BY_SEVERITY[warning.severity], "Trajectory %s: %s", warning.type, warning.message)

        self.last_analysis = analysis
        return analysis

    @staticmethod
    def classify(metrics: TrajectoryMetrics, last: PhaseSpacePoint, orbit: StableOrbit) -> TrajectoryType:
        if metrics.curvature > CURVATURE_HIGH and metrics.energy_balance > ENERGY_STACKING:
            return TrajectoryType.TIGHT_SPIRAL
        if orbit.contains(last) and metrics.curvature < 0.1 and abs(metrics.convergence_velocity) < 0.2:
            return TrajectoryType.STABLE_ORBIT
        if metrics.openness > OPENNESS_DIVERGING and metrics.convergence_velocity < CONVERGENCE_SLOW:
            return TrajectoryType.OPEN_DIVERGING
        if metrics.convergence_velocity > 0.2 and metrics.openness < 0.5:
            return TrajectoryType.CLOSING_CONVERGING
        return TrajectoryType.UNCERTAIN

    @staticmethod
    def modulation_for(classification: TrajectoryType, metrics: TrajectoryMetrics) -> TrajectoryModulation:
        if classification == TrajectoryType.OPEN_DIVERGING:
            if metrics.coherence < COHERENCE_LOW:
                damping = 1.4
            elif metrics.openness > 0.85:
                damping = 1.3
            else:
                damping = 1.2
            return TrajectoryModulation(
                smb_damping=damping,
                interval_stretch=1.0,
                basal_preference=0.2,
                safety_margin_expand=0.95,
                reason=f"Trajectory diverging, need stronger action (coherence={metrics.coherence:.2f})",
            )

        if classification == TrajectoryType.TIGHT_SPIRAL:
            if metrics.energy_balance > 3.5:
                damping = 0.3
            elif metrics.energy_balance > 2.5:
                damping = 0.5
            else:
                damping = 0.7
            return TrajectoryModulation(
                smb_damping=damping,
                interval_stretch=1.8,
                basal_preference=0.85,
                safety_margin_expand=1.3,
                reason=(f"Trajectory compressed - over-correction risk "
                        f"(E={metrics.energy_balance:.2f}U, k={metrics.curvature:.3f})"),
            )

        if classification == TrajectoryType.CLOSING_CONVERGING:
            if metrics.convergence_velocity > 1.0:
                damping = 0.7
            elif metrics.convergence_velocity > 0.5:
                damping = 0.85
            else:
                damping = 0.9
            return TrajectoryModulation(
                smb_damping=damping,
                interval_stretch=1.3,
                basal_preference=0.5,
                safety_margin_expand=1.1,
                reason=f"Trajectory closing naturally (v_conv={metrics.convergence_velocity:+.2f} mg/dL/min)",
            )

        if classification == TrajectoryType.STABLE_ORBIT:
            return TrajectoryModulation(reason="Stable orbit maintained - continue current strategy")

        return NEUTRAL_MODULATION

    @staticmethod
    def warnings_for(metrics: TrajectoryMetrics,
                     classification: TrajectoryType,
                     last: PhaseSpacePoint) -> List[TrajectoryWarning]:
        warnings: List[TrajectoryWarning] = []

        if metrics.energy_balance > ENERGY_STACKING and metrics.curvature > 0.2:
            if metrics.energy_balance > 4.0:
                severity = WarningSeverity.CRITICAL
            elif metrics.energy_balance > 3.0:
                severity = WarningSeverity.HIGH
            else:
                severity = WarningSeverity.MEDIUM
            warnings.append(TrajectoryWarning(
                severity, "INSULIN_STACKING",
                f"Multiple corrections accumulating (E={metrics.energy_balance:.2f}U) - hypo risk in 60-90 min",
                "Reduce SMB, prefer temp basal, monitor closely",
            ))

        if metrics.coherence < COHERENCE_LOW and last.iob > 2.0:
            warnings.append(TrajectoryWarning(
                WarningSeverity.HIGH, "LOW_COHERENCE",
                f"IOB {last.iob:.2f}U present but BG not responding (rho={metrics.coherence:.2f})",
                "Possible insulin resistance, site failure, or illness - check pump site and insulin quality",
            ))

        if metrics.openness > 0.75 and metrics.convergence_velocity < -0.3 and last.bg > 140.0:
            warnings.append(TrajectoryWarning(
                WarningSeverity.MEDIUM, "PERSISTENT_DIVERGENCE",
                f"BG drifting upward ({int(last.bg)} mg/dL) despite IOB - trajectory not closing "
                f"(theta={metrics.openness:.2f})",
                "Consider additional correction if safe, or increase basal rate",
            ))

        if last.stage == ActivityStage.RISING and last.iob > 1.5 and metrics.curvature > 0.15:
            warnings.append(TrajectoryWarning(
                WarningSeverity.LOW, "PRE_ONSET_COMPRESSION",
                f"Fresh IOB ({last.iob:.2f}U) still rising but trajectory already tightening "
                f"(k={metrics.curvature:.3f})",
                "Avoid additional bolus, trajectory will tighten further as insulin activates",
            ))

        if metrics.coherence < -0.3 and last.insulin_activity > 1.5:
            warnings.append(TrajectoryWarning(
                WarningSeverity.HIGH, "PARADOXICAL_RESPONSE",
                f"BG rising despite high insulin activity ({last.insulin_activity:.2f} U/h) "
                f"- negative coherence (rho={metrics.coherence:.2f})",
                "Check for illness, stress, or pump failure - consider testing ketones",
            ))

        if classification == TrajectoryType.STABLE_ORBIT and metrics.health_score > 0.85:
            warnings.append(TrajectoryWarning(
                WarningSeverity.LOW, "STABLE_ORBIT_ACHIEVED",
                f"Stable orbit maintained (health={metrics.health_score * 100:.0f}%)",
                "Continue current strategy",
            ))

        return warnings
