"""
Clock -- injectable source of "now".

Responsibility:
    The ``*_now`` queries (``record_now``, ``default_value_now`` ...) resolve
    against whatever instant the injected clock reports, so tests and
    back-dated invoice runs can pin the reference time.

Architecture position:
    Kernel > Domain -- pure, no I/O except ``SystemClock`` reading the
    system time.

Failure modes:
    - None.  ``DeterministicClock`` never advances on its own.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from invoicing_kernel.utils.timestamps import to_utc


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Components that need the current time receive a Clock via their
        constructor instead of calling ``datetime.now()``.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime`` in UTC.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock reading the system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``
    is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Args:
            fixed_time: Instant the clock reports.  Naive values are taken
                to be UTC.  Defaults to 2024-01-01 12:00 UTC.
        """
        self._fixed_time = to_utc(
            fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        )
        self._offset = timedelta()

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = to_utc(time)
        self._offset = timedelta()

    def advance(self, seconds: float = 1) -> datetime:
        """Move the clock forward and return the new time."""
        self._offset += timedelta(seconds=seconds)
        return self.now()
