"""Tests for the engine clocks."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfoNotFoundError

import pytest

from gescom_kernel.domain.clock import DeterministicClock, SystemClock

NEW_YEAR_EVE = datetime(2024, 12, 31, 23, 30, tzinfo=timezone.utc)


class TestDeterministicClock:

    def test_frozen_until_moved(self):
        clock = DeterministicClock(NEW_YEAR_EVE)
        assert clock.now() == clock.now() == NEW_YEAR_EVE

    def test_advance(self):
        clock = DeterministicClock(NEW_YEAR_EVE)
        clock.advance(seconds=3600)
        assert clock.now() == datetime(2025, 1, 1, 0, 30, tzinfo=timezone.utc)
        clock.advance(seconds=0, days=2)
        assert clock.today() == date(2025, 1, 3)

    def test_naive_time_read_as_utc(self):
        clock = DeterministicClock(datetime(2024, 6, 1, 8, 0))
        assert clock.now().utcoffset() == timedelta(0)

    def test_utc_by_default(self):
        clock = DeterministicClock(NEW_YEAR_EVE)
        assert clock.today() == date(2024, 12, 31)
        assert clock.year() == 2024

    def test_calendar_in_business_timezone(self):
        clock = DeterministicClock(NEW_YEAR_EVE, tz=timezone(timedelta(hours=1)))

        assert clock.now() == NEW_YEAR_EVE
        assert clock.today() == date(2025, 1, 1)
        assert clock.year() == 2025

    def test_set_time_converts_to_utc(self):
        clock = DeterministicClock()
        clock.set_time(datetime(2024, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=1))))
        assert clock.now() == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_named_zone():
    try:
        clock = DeterministicClock(NEW_YEAR_EVE, tz="Africa/Tunis")
    except ZoneInfoNotFoundError:
        pytest.skip("no timezone database on this system")
    assert clock.year() == 2025


def test_system_clock_is_utc():
    now = SystemClock().now()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)
