"""
Clock: the engine's source of "now".

Timestamps (stock movement dates, revision times) are stored in UTC.
Calendar values (a document's date, the year printed in its number) are
taken in the shop's business timezone, so an invoice saved at 00:30 local
time on 1 January is numbered in the new year even while UTC is still in
the old one.

Services receive a Clock instead of calling ``datetime.now()``; tests pass a
DeterministicClock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


def _zone(tz: tzinfo | str | None) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` and ``year()`` are local."""

    def __init__(self, tz: tzinfo | str | None = None):
        self.tz = _zone(tz)

    @abstractmethod
    def now(self) -> datetime:
        ...

    def local_now(self) -> datetime:
        return self.now().astimezone(self.tz)

    def today(self) -> date:
        return self.local_now().date()

    def year(self) -> int:
        """Year used in document numbers."""
        return self.local_now().year


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Stays at ``fixed_time`` (default 2024-01-01 12:00 UTC) until moved with
    ``set_time()`` or ``advance()``.  A naive ``fixed_time`` is read as UTC.
    """

    def __init__(self, fixed_time: datetime | None = None, tz: tzinfo | str | None = None):
        super().__init__(tz)
        self.set_time(fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        if time.tzinfo is None:
            time = time.replace(tzinfo=timezone.utc)
        self._time = time.astimezone(timezone.utc)

    def advance(self, seconds: int = 1, days: int = 0) -> None:
        self._time += timedelta(days=days, seconds=seconds)
