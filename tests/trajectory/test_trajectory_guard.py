import pytest

from aimi.core.trajectory import (
    NEUTRAL_MODULATION,
    PhaseSpacePoint,
    StableOrbit,
    TrajectoryGuard,
    TrajectoryMetrics,
    TrajectoryType,
    WarningSeverity,
)


ORBIT = StableOrbit(target_bg=100.0)
INSIDE = PhaseSpacePoint(timestamp=0.0, bg=105.0, delta=1.0)
OUTSIDE = PhaseSpacePoint(timestamp=0.0, bg=200.0, delta=3.0, iob=3.0)


@pytest.mark.parametrize("metrics, last, expected", [
    (TrajectoryMetrics(0.35, 0.0, 0.5, 2.5, 0.5), INSIDE, TrajectoryType.TIGHT_SPIRAL),
    (TrajectoryMetrics(0.05, 0.1, 0.5, 0.0, 0.2), INSIDE, TrajectoryType.STABLE_ORBIT),
    (TrajectoryMetrics(0.05, -1.0, 0.5, 0.0, 0.8), OUTSIDE, TrajectoryType.OPEN_DIVERGING),
    (TrajectoryMetrics(0.05, 0.5, 0.5, 0.0, 0.3), OUTSIDE, TrajectoryType.CLOSING_CONVERGING),
    (TrajectoryMetrics(0.05, 0.0, 0.5, 0.0, 0.6), OUTSIDE, TrajectoryType.UNCERTAIN),
])
def test_classification(metrics, last, expected):
    assert TrajectoryGuard.classify(metrics, last, ORBIT) == expected


@pytest.mark.parametrize("energy, damping", [(2.5, 0.7), (3.0, 0.5), (4.0, 0.3)])
def test_tight_spiral_damping_scales_with_energy(energy, damping):
    metrics = TrajectoryMetrics(0.35, 0.0, 0.5, energy, 0.5)
    modulation = TrajectoryGuard.modulation_for(TrajectoryType.TIGHT_SPIRAL, metrics)

    assert modulation.smb_damping == damping
    assert modulation.interval_stretch == 1.8
    assert modulation.safety_margin_expand == 1.3
    assert modulation.basal_preference == 0.85


def test_diverging_trajectory_asks_for_more():
    metrics = TrajectoryMetrics(0.05, -1.0, 0.2, 0.0, 0.8)
    modulation = TrajectoryGuard.modulation_for(TrajectoryType.OPEN_DIVERGING, metrics)

    assert modulation.smb_damping == 1.4
    assert modulation.basal_preference == 0.2


def test_stable_and_uncertain_are_not_significant():
    metrics = TrajectoryMetrics(0.05, 0.0, 0.5, 0.0, 0.2)

    assert not TrajectoryGuard.modulation_for(TrajectoryType.STABLE_ORBIT, metrics).is_significant()
    assert TrajectoryGuard.modulation_for(TrajectoryType.UNCERTAIN, metrics) is NEUTRAL_MODULATION


def test_stacking_warning_severity():
    metrics = TrajectoryMetrics(0.35, 0.0, 0.5, 4.5, 0.5)
    warnings = TrajectoryGuard.warnings_for(metrics, TrajectoryType.TIGHT_SPIRAL, INSIDE)

    assert warnings[0].type == "INSULIN_STACKING"
    assert warnings[0].severity == WarningSeverity.CRITICAL


def test_low_coherence_warning_needs_iob():
    metrics = TrajectoryMetrics(0.05, 0.0, 0.1, 0.0, 0.5)

    types = [w.type for w in TrajectoryGuard.warnings_for(metrics, TrajectoryType.UNCERTAIN, OUTSIDE)]
    assert "LOW_COHERENCE" in types
    assert TrajectoryGuard.warnings_for(metrics, TrajectoryType.UNCERTAIN, INSIDE) == []


def test_analyze_needs_four_points():
    guard = TrajectoryGuard()
    history = [PhaseSpacePoint(timestamp=i * 5.0, bg=100.0, delta=0.0) for i in range(3)]

    assert guard.analyze(history, ORBIT) is None
    assert guard.last_analysis is None


def test_analyze_flat_history_on_target():
    guard = TrajectoryGuard()
    history = [PhaseSpacePoint(timestamp=i * 5.0, bg=100.0, delta=0.0) for i in range(6)]

    analysis = guard.analyze(history, ORBIT)

    assert analysis.classification == TrajectoryType.STABLE_ORBIT
    assert analysis.warnings == []
    assert analysis.stable_orbit_distance == 0.0
    assert analysis.predicted_convergence_time is None
    assert guard.last_analysis is analysis
    assert analysis.to_console_log()[0] == "TRAJECTORY ANALYSIS"
