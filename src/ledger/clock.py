"""
Clock - injectable time source.

Ledger code never calls datetime.now() or date.today() directly.
Every "now" comes from a Clock handed to the ledger at construction, so
period counts are reproducible in tests.

Timestamps are always UTC. The calendar date ("today") is taken in the
clock's local timezone, so a payment made early in the morning for a user
east of UTC is not dated in the future.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - now() returns a timezone-aware UTC datetime.
        - today() is the calendar date of now() in the clock's timezone.
    """

    tz: tzinfo = timezone.utc

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current local date."""
        return self.now().astimezone(self.tz).date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz or timezone.utc

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Test clock with controlled time.

    now() returns the same value until advance() or set_time() is called.
    """

    def __init__(self, fixed_time: Optional[datetime] = None, tz: Optional[tzinfo] = None):
        self.tz = tz or timezone.utc
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        if self._fixed_time.tzinfo is None:
            self._fixed_time = self._fixed_time.replace(tzinfo=timezone.utc)
        self._fixed_time = self._fixed_time.astimezone(timezone.utc)

    @classmethod
    def on(cls, day: date, tz: Optional[tzinfo] = None) -> "FixedClock":
        """Clock fixed at local noon on the given day."""
        local_tz = tz or timezone.utc
        return cls(datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=local_tz), tz=local_tz)

    def now(self) -> datetime:
        return self._fixed_time

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        time = time if time.tzinfo else time.replace(tzinfo=timezone.utc)
        self._fixed_time = time.astimezone(timezone.utc)

    def advance(self, days: int = 0, seconds: int = 0) -> datetime:
        """Move the clock forward and return the new time."""
        self._fixed_time = self._fixed_time + timedelta(days=days, seconds=seconds)
        return self._fixed_time
