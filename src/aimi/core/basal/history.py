from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


class BasalHistoryProvider(ABC):
    """Read-only view of recent temporary basal activity used by the planner."""

    @abstractmethod
    def zero_basal_duration_minutes(self, now: float, lookback_hours: int = 6) -> int:
        """Minutes basal has been continuously at 0 U/h up to ``now``."""

    @abstractmethod
    def last_temp_is_zero(self, now: float) -> bool:
        """True when the running temporary basal is 0 U/h."""

    @abstractmethod
    def minutes_since_last_change(self, now: float) -> int:
        """Minutes since the delivered rate last changed."""


class EmptyHistory(BasalHistoryProvider):
    """Neutral provider: no zero-temp, no recent change."""

    def zero_basal_duration_minutes(self, now: float, lookback_hours: int = 6) -> int:
        return 0

    def last_temp_is_zero(self, now: float) -> bool:
        return False

    def minutes_since_last_change(self, now: float) -> int:
        return 0


@dataclass(frozen=True)
class TempBasalEvent:
    start: float  # epoch minutes
    rate: float
    duration: int

    def covers(self, now: float) -> bool:
        return self.start <= now < self.start + self.duration


class TempBasalHistory(BasalHistoryProvider):
    """In-memory record of the temporary basals the controller issued."""

    def __init__(self, max_events: int = 288):
        self.max_events = max_events
        self._events: List[TempBasalEvent] = []
        self._lock = threading.Lock()

    def record(self, start: float, rate: float, duration: int) -> None:
        with self._lock:
            self._events.append(TempBasalEvent(start=start, rate=rate, duration=duration))
            if len(self._events) > self.max_events:
                self._events = self._events[-self.max_events:]

    def events(self) -> List[TempBasalEvent]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def _running(self, now: float):
        events = [e for e in self.events() if e.start <= now]
        if not events or not events[-1].covers(now):
            return None, events
        return events[-1], events

    def last_temp_is_zero(self, now: float) -> bool:
        running, _ = self._running(now)
        return running is not None and running.rate == 0.0

    def zero_basal_duration_minutes(self, now: float, lookback_hours: int = 6) -> int:
        running, events = self._running(now)
        if running is None or running.rate != 0.0:
            return 0
        horizon = now - lookback_hours * 60
        zero_since = running.start
        for previous, event in zip(reversed(events[:-1]), reversed(events[1:])):
            # contiguous zero temps only
            if previous.rate != 0.0 or previous.start + previous.duration < event.start:
                break
            if previous.start < horizon:
                zero_since = horizon
                break
            zero_since = previous.start
        return max(0, int(now - zero_since))

    def minutes_since_last_change(self, now: float) -> int:
        events = [e for e in self.events() if e.start <= now]
        if not events:
            return 0
        changed_at = events[-1].start
        for previous, event in zip(reversed(events[:-1]), reversed(events[1:])):
            if previous.rate != event.rate:
                break
            changed_at = previous.start
        return max(0, int(now - changed_at))
