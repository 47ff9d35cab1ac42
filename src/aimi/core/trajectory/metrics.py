"""
Geometric metrics over a phase-space path.

All functions take a time-ordered sequence of :class:`PhaseSpacePoint` and
resolve degenerate input (too few points, zero variance, coincident points)
to neutral values instead of raising.
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from aimi.core.trajectory.models import PhaseSpacePoint, StableOrbit, TrajectoryMetrics

MIN_POINTS = 3
CURVATURE_MIN_POINTS = 6
WINDOW_POINTS = 12
ENERGY_ISF_EQUIVALENT = 40.0  # mg/dL per U
VELOCITY_SCALE = 40.0


def calculate_all(history: Sequence[PhaseSpacePoint], orbit: StableOrbit) -> Optional[TrajectoryMetrics]:
    if len(history) < MIN_POINTS:
        return None
    return TrajectoryMetrics(
        curvature=curvature(history),
        convergence_velocity=convergence_velocity(history, orbit),
        coherence=coherence(history),
        energy_balance=energy_balance(history, orbit.target_bg),
        openness=openness(history, orbit),
    )


def curvature(history: Sequence[PhaseSpacePoint]) -> float:
    """Mean Menger curvature of the (bg, delta) path over the last hour, scaled by 1/100."""
    if len(history) < CURVATURE_MIN_POINTS:
        return 0.0
    path = np.array([p.as_plane_point() for p in history[-WINDOW_POINTS:]], dtype=float)
    values = []
    for p0, p1, p2 in zip(path[:-2], path[1:-1], path[2:]):
        a = np.linalg.norm(p1 - p0)
        b = np.linalg.norm(p2 - p1)
        c = np.linalg.norm(p0 - p2)
        if a < 1e-6 or b < 1e-6 or c < 1e-6:
            continue
        s = (a + b + c) / 2.0
        area_sq = s * (s - a) * (s - b) * (s - c)
        if area_sq <= 0.0:
            continue
        values.append(4.0 * np.sqrt(area_sq) / (a * b * c) / 100.0)
    if not values:
        return 0.0
    return float(np.clip(np.mean(values), 0.0, 2.0))


def convergence_velocity(history: Sequence[PhaseSpacePoint], orbit: StableOrbit) -> float:
    """Positive when the distance to the orbit shrinks between now and ~10-15 min ago."""
    if len(history) < 2:
        return 0.0
    current = history[-1]
    previous = history[max(0, len(history) - 3)]
    target = orbit.to_phase_space_point()
    elapsed = current.timestamp - previous.timestamp
    if elapsed < 1.0:
        return 0.0
    raw = (previous.distance_to(target) - current.distance_to(target)) / elapsed
    return float(np.clip(raw * VELOCITY_SCALE, -5.0, 5.0))


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    if len(x) != len(y) or len(x) == 0:
        return 0.0
    xs = np.asarray(x, dtype=float) - np.mean(x)
    ys = np.asarray(y, dtype=float) - np.mean(y)
    denominator = np.sqrt(np.sum(xs * xs) * np.sum(ys * ys))
    if denominator <= 1e-9:
        return 0.0
    return float(np.clip(np.sum(xs * ys) / denominator, -1.0, 1.0))


def coherence(history: Sequence[PhaseSpacePoint]) -> float:
    """Correlation of insulin activity with falling glucose; 0.5 until an hour of data exists."""
    if len(history) < WINDOW_POINTS:
        return 0.5
    recent = history[-WINDOW_POINTS:]
    return pearson([p.insulin_activity for p in recent], [-p.delta for p in recent])


def energy_balance(history: Sequence[PhaseSpacePoint], target_bg: float) -> float:
    if len(history) < 2:
        return 0.0
    energy_in = 0.0
    energy_out = 0.0
    for previous, current in zip(history[:-1], history[1:]):
        energy_in += max(0.0, current.iob - previous.iob)
        if previous.bg > target_bg + 10.0:
            energy_out += max(0.0, previous.bg - current.bg) / ENERGY_ISF_EQUIVALENT
    return float(np.clip(energy_in - energy_out, -10.0, 10.0))


def openness(history: Sequence[PhaseSpacePoint], orbit: StableOrbit) -> float:
    if len(history) < CURVATURE_MIN_POINTS:
        return 0.5
    recent = history[-WINDOW_POINTS:]
    target = orbit.to_phase_space_point()
    distances = np.array([p.distance_to(target) for p in recent])
    max_deviation = float(distances.max())
    if max_deviation < 1e-6:
        return 0.0
    closure = (distances[0] - distances[-1]) / (max_deviation + 1e-6)
    return float(np.clip(1.0 - np.clip(closure, -0.5, 1.0), 0.0, 1.0))


def estimate_convergence_time(history: Sequence[PhaseSpacePoint], orbit: StableOrbit) -> Optional[int]:
    """Minutes until the orbit is reached at the current velocity; ``None`` when not converging."""
    if not history:
        return None
    velocity = convergence_velocity(history, orbit)
    if velocity <= 0.0:
        return None
    distance = history[-1].distance_to(orbit.to_phase_space_point())
    return int(np.clip(distance / (velocity / VELOCITY_SCALE), 0.0, 300.0))
