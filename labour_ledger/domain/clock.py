"""
Injectable time source.

Services never call ``datetime.now()`` directly.  The clock supplies the
default ``occurred_at`` of an event and the ``created_at`` of its entries.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen test clock; moves only when ``advance()`` is called."""

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._now = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        """``clock.advance(days=1)``; returns the new time."""
        self._now += timedelta(**delta)
        return self._now
