"""Injectable wall clock."""

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current time as an aware datetime."""
        ...


class SystemClock:
    """Clock backed by the system time, always in UTC."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(UTC)


class FrozenClock:
    """Clock pinned to an instant until moved explicitly."""

    def __init__(self, instant: datetime):
        """Initialize with an aware instant."""
        if instant.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        self._instant = instant

    def now(self) -> datetime:
        """Return the pinned instant."""
        return self._instant

    def set(self, instant: datetime) -> None:
        """Move the clock to a new aware instant."""
        if instant.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        self._instant = instant

    def advance(self, delta: timedelta) -> None:
        """Move the clock forward by a delta."""
        self._instant = self._instant + delta


_system_clock = SystemClock()


def get_clock() -> Clock:
    """Dependency returning the process clock."""
    return _system_clock
