"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` directly.  Approval timestamps,
    SLA deadlines, audit entries and acceptance-code expiry all read time
    from an injected Clock so tests can pin and advance it.

Architecture position:
    Kernel > Domain -- pure, zero I/O (SystemClock is the one sanctioned
    boundary for wall-clock time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def hours_from_now(self, hours: int) -> datetime:
        """Return ``now() + hours``; used for SLA deadlines."""
        return self.now() + timedelta(hours=hours)


class SystemClock(Clock):
    """Production clock returning actual UTC system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
