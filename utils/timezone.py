"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

import re
from datetime import date, datetime, time, timedelta, timezone

# Exact shape written by the persistence layer: 2024-01-15T09:30:00.000Z
ISO_MILLIS_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def now_utc() -> datetime:
    """
    Current time in UTC, truncated to millisecond precision.

    Use this instead of datetime.now() everywhere. Stored timestamps only
    carry milliseconds, so anything compared against a stored value must too.
    """
    return truncate_to_millis(datetime.now(timezone.utc))


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def ensure_utc(value: date | datetime) -> datetime:
    """
    Coerce a date or datetime into an aware UTC datetime.

    Naive datetimes are assumed to already be UTC. Plain dates become
    midnight UTC of that day.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate_to_millis(dt: datetime) -> datetime:
    """Drop sub-millisecond precision."""
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def format_iso_millis(dt: datetime) -> str:
    """Format as YYYY-MM-DDTHH:MM:SS.mmmZ (UTC)."""
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def start_of_day(value: date | datetime) -> datetime:
    """00:00:00.000000 UTC of the value's calendar day."""
    return datetime.combine(ensure_utc(value).date(), time.min, tzinfo=timezone.utc)


def end_of_day(value: date | datetime) -> datetime:
    """23:59:59.999999 UTC of the value's calendar day."""
    return datetime.combine(ensure_utc(value).date(), time.max, tzinfo=timezone.utc)


def shift_years(dt: datetime, years: int) -> datetime:
    """Same calendar position `years` away; Feb 29 falls back to Feb 28."""
    try:
        return dt.replace(year=dt.year + years)
    except ValueError:
        return dt.replace(year=dt.year + years, day=28)


def older_than(dt: datetime, days: int, now: datetime | None = None) -> bool:
    """Whether dt lies more than `days` days before now."""
    now = now or now_utc()
    return ensure_utc(dt) < now - timedelta(days=days)
