"""
Timezone-aware datetime helpers.

All functions return timezone-aware datetimes in UTC. Values read back from
SQLite come without tzinfo, so comparisons against stored columns should go
through ensure_utc() first.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Tuple


def utc_now() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are assumed to already be in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    return dt


def beginning_of_hour(dt: Optional[datetime] = None) -> datetime:
    """
    Truncate a datetime to the start of its UTC hour.

    Subscriber metrics are bucketed on this value, so every writer must go
    through this function to hit the same (user_id, datetime) row.

    Example:
        >>> beginning_of_hour(datetime(2025, 3, 4, 10, 42, 7, tzinfo=timezone.utc))
        datetime.datetime(2025, 3, 4, 10, 0, tzinfo=datetime.timezone.utc)
    """
    dt = ensure_utc(dt) if dt else utc_now()
    return dt.replace(minute=0, second=0, microsecond=0)


def month_bounds(dt: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Return the first and last instant of the month containing dt.

    Returns:
        tuple: (start_of_month, end_of_month), both in UTC
    """
    dt = ensure_utc(dt) if dt else utc_now()
    start = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        next_month = start.replace(year=start.year + 1, month=1)
    else:
        next_month = start.replace(month=start.month + 1)
    return start, next_month - timedelta(microseconds=1)


def utc_hours_from_now(hours: int) -> datetime:
    return utc_now() + timedelta(hours=hours)


def format_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO 8601 in UTC, passing None through."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def parse_utc_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string (as sent by SES/SNS) into an aware UTC datetime.

    Example:
        >>> parse_utc_iso('2016-01-27T14:59:38.237Z').tzinfo
        datetime.timezone.utc
    """
    if iso_string.endswith('Z'):
        iso_string = iso_string[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(iso_string))
