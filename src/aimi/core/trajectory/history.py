from __future__ import annotations

import bisect
import threading
from collections import deque
from typing import Deque, List

import pandas as pd

from aimi.core.trajectory.models import PhaseSpacePoint

CADENCE_MINUTES = 5.0


class TrajectoryHistory:
    """
    Rolling phase-space buffer kept in timestamp order. Points older than the
    window (measured from the newest point) are evicted on every write and
    excluded from every snapshot.
    """

    def __init__(self, window_minutes: float = 90.0):
        if window_minutes < 20.0:
            raise ValueError(f"HISTORY_WINDOW_ERROR: window {window_minutes} min is shorter than 20 min")
        self.window_minutes = window_minutes
        # room for a few off-cadence readings on top of the nominal 5-min grid
        self.capacity = int(window_minutes / CADENCE_MINUTES) * 2 + 1
        self._points: Deque[PhaseSpacePoint] = deque(maxlen=self.capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def append(self, point: PhaseSpacePoint) -> None:
        with self._lock:
            if not self._points or point.timestamp > self._points[-1].timestamp:
                self._points.append(point)
            else:
                self._insert_locked(point)
            self._evict_locked(self._points[-1].timestamp)

    def _insert_locked(self, point: PhaseSpacePoint) -> None:
        points = list(self._points)
        stamps = [p.timestamp for p in points]
        i = bisect.bisect_left(stamps, point.timestamp)
        if i < len(points) and stamps[i] == point.timestamp:
            # same reading re-sent: the later value wins
            points[i] = point
        else:
            points.insert(i, point)
        self._points = deque(points[-self.capacity:], maxlen=self.capacity)

    def evict(self, now: float) -> int:
        with self._lock:
            return self._evict_locked(now)

    def _evict_locked(self, now: float) -> int:
        horizon = now - self.window_minutes
        removed = 0
        while self._points and self._points[0].timestamp < horizon:
            self._points.popleft()
            removed += 1
        return removed

    def snapshot(self, now: float) -> List[PhaseSpacePoint]:
        horizon = now - self.window_minutes
        with self._lock:
            return [p for p in self._points if horizon <= p.timestamp <= now]

    def clear(self) -> None:
        with self._lock:
            self._points.clear()

    def to_dataframe(self) -> pd.DataFrame:
        with self._lock:
            rows = [
                {
                    "timestamp": p.timestamp,
                    "bg": p.bg,
                    "delta": p.delta,
                    "acceleration": p.acceleration,
                    "insulin_activity": p.insulin_activity,
                    "iob": p.iob,
                    "stage": p.stage.name,
                    "minutes_since_last_dose": p.minutes_since_last_dose,
                    "cob": p.cob,
                }
                for p in self._points
            ]
        return pd.DataFrame(rows, columns=[
            "timestamp", "bg", "delta", "acceleration", "insulin_activity",
            "iob", "stage", "minutes_since_last_dose", "cob",
        ])
