"""Date helpers for billing periods and stored timestamps.

Timestamps are stored as UTC ISO-8601 strings so that string order in
DynamoDB range conditions equals time order.
"""

import calendar
import datetime as dt


def utcnow() -> dt.datetime:
    """Current time as an aware UTC datetime."""
    return dt.datetime.now(dt.UTC)


def to_iso(value: dt.datetime) -> str:
    """Serialize an aware datetime as a UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> dt.datetime | None:
    """Parse a stored timestamp, tolerating a trailing ``Z``."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def add_months(value: dt.datetime, months: int = 1) -> dt.datetime:
    """Add calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month is Feb 28 (or 29 in a leap year).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def start_of_month(value: dt.datetime) -> dt.datetime:
    """Midnight on the first day of ``value``'s month."""
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
