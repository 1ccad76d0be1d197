import os
from datetime import date, datetime
from typing import Any

import pendulum as p


APP_TZ = os.getenv("APP_TZ", "America/New_York")


def now_utc() -> p.DateTime:
    return p.now("UTC")


def to_utc(value: Any) -> p.DateTime | None:
    """
    Coerce a provider timestamp into a UTC pendulum instant.
    Accepts ISO strings (naive strings are read as UTC), epoch seconds,
    datetimes (naive = UTC) and plain dates (pinned to 12:00 UTC, the way
    date-only bank feeds are anchored). Returns None for empty/unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return p.instance(value, tz="UTC").in_timezone("UTC")
    if isinstance(value, date):
        return p.datetime(value.year, value.month, value.day, 12, tz="UTC")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return p.from_timestamp(value, tz="UTC")
    try:
        parsed = p.parse(str(value), tz="UTC", exact=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if isinstance(parsed, p.DateTime):
        return parsed.in_timezone("UTC")
    if isinstance(parsed, p.Date):
        return p.datetime(parsed.year, parsed.month, parsed.day, 12, tz="UTC")
    return None


def iso_z(dt: datetime) -> str:
    """UTC ISO-8601 with a trailing Z, e.g. 2025-01-31T00:00:00Z."""
    return p.instance(dt, tz="UTC").in_timezone("UTC").format("YYYY-MM-DD[T]HH:mm:ss[Z]")


def date_slices(start: datetime, end: datetime, days: int):
    """Split [start, end) into consecutive half-open slices of at most `days` days."""
    cursor = p.instance(start, tz="UTC")
    end = p.instance(end, tz="UTC")
    while cursor < end:
        slice_end = min(cursor.add(days=days), end)
        yield cursor, slice_end
        cursor = slice_end
