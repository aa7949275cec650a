"""Injectable time source.

Services never call ``datetime.now()`` directly; they receive a ``Clock`` so
timer arithmetic and staleness checks can be driven deterministically in
tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time (timezone-aware UTC)."""
        ...

    def today(self) -> date:
        """Get the current UTC calendar day."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()`` or
    ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = ensure_utc(
            fixed_time or datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)
        )

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._time = ensure_utc(time)

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        """Advance the clock; extra keyword arguments are passed to timedelta."""
        self._time = self._time + timedelta(seconds=seconds, **kwargs)
        return self._time


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
