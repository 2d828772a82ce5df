"""Tests for utils/timezone.py - UTC-everywhere time handling."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import (
    ISO_MILLIS_PATTERN,
    end_of_day,
    ensure_utc,
    format_iso_millis,
    now_utc,
    older_than,
    parse_iso,
    shift_years,
    start_of_day,
    to_utc,
    truncate_to_millis,
)


class TestNowUtc:
    """Tests for now_utc()."""

    def test_is_utc(self):
        """Result timezone must be specifically UTC."""
        assert now_utc().tzinfo == timezone.utc

    def test_millisecond_precision(self):
        """Stored timestamps carry milliseconds only."""
        assert now_utc().microsecond % 1000 == 0


class TestToUtc:
    """Tests for to_utc()."""

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        with pytest.raises(ValueError, match="naive"):
            to_utc(datetime(2024, 1, 1, 12, 0, 0))

    def test_converts_other_timezone(self):
        """Chicago 12:00 in January should become UTC 18:00."""
        chicago = datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("America/Chicago"))
        result = to_utc(chicago)
        assert result.tzinfo == timezone.utc
        assert result.hour == 18


class TestEnsureUtc:

    def test_plain_date_becomes_midnight(self):
        assert ensure_utc(date(2024, 3, 5)) == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_naive_datetime_taken_as_utc(self):
        assert ensure_utc(datetime(2024, 3, 5, 8, 30)) == datetime(2024, 3, 5, 8, 30, tzinfo=timezone.utc)


class TestIsoMillis:
    """Format and parse of the stored timestamp shape."""

    def test_format_has_exact_shape(self):
        dt = datetime(2024, 1, 15, 9, 30, 0, 123456, tzinfo=timezone.utc)
        text = format_iso_millis(dt)
        assert text == "2024-01-15T09:30:00.123Z"
        assert ISO_MILLIS_PATTERN.match(text)

    def test_parse_accepts_z_suffix(self):
        assert parse_iso("2024-01-15T09:30:00.123Z") == datetime(
            2024, 1, 15, 9, 30, 0, 123000, tzinfo=timezone.utc
        )

    def test_parse_raises_on_naive(self):
        with pytest.raises(ValueError, match="naive"):
            parse_iso("2024-01-15T09:30:00")

    def test_pattern_rejects_other_shapes(self):
        assert not ISO_MILLIS_PATTERN.match("2024-01-15")
        assert not ISO_MILLIS_PATTERN.match("2024-01-15T09:30:00Z")

    def test_truncate_drops_microseconds(self):
        dt = datetime(2024, 1, 1, 0, 0, 0, 999999, tzinfo=timezone.utc)
        assert truncate_to_millis(dt).microsecond == 999000


class TestDayBounds:

    def test_start_and_end_of_day(self):
        dt = datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)
        assert start_of_day(dt) == datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert end_of_day(dt) == datetime(2024, 1, 15, 23, 59, 59, 999999, tzinfo=timezone.utc)


class TestShiftYears:

    def test_shifts_calendar_year(self):
        dt = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert shift_years(dt, -1) == datetime(2023, 6, 1, tzinfo=timezone.utc)

    def test_leap_day_falls_back(self):
        dt = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert shift_years(dt, 1) == datetime(2025, 2, 28, tzinfo=timezone.utc)


class TestOlderThan:

    def test_older_than_threshold(self):
        now = datetime(2024, 2, 10, tzinfo=timezone.utc)
        assert older_than(now - timedelta(days=31), 30, now=now) is True
        assert older_than(now - timedelta(days=29), 30, now=now) is False
