"""Substitutable wall-clock time sources.

Applications under test resolve a `Clock` instead of calling
`datetime.now()` directly. The service fixture substitutes it with a
`FrozenClock`, making time-dependent assertions deterministic.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from threading import Lock


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current timezone-aware time."""

    def today(self) -> datetime:
        """Return the current time truncated to midnight."""
        return self.now().replace(hour=0, minute=0, second=0, microsecond=0)


class SystemClock(Clock):
    """Clock reading the system wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock(Clock):
    """Clock standing still until moved explicitly.

    Safe to share between concurrently running tests; each move is
    atomic.
    """

    def __init__(self, at: datetime | None = None) -> None:
        """Initialize a frozen clock.

        Args:
            at: Initial time; naive values are treated as UTC.
                Defaults to the current system time.
        """
        self._lock = Lock()
        self._now = self._aware(at or datetime.now(UTC))

    @staticmethod
    def _aware(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)

        return value

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, at: datetime) -> None:
        """Move the clock to an absolute time."""
        with self._lock:
            self._now = self._aware(at)

    def advance(self, delta: timedelta | float) -> datetime:
        """Move the clock forward.

        Args:
            delta: Time span, or a number of seconds.

        Returns:
            The new current time.
        """
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)

        with self._lock:
            self._now += delta
            return self._now
