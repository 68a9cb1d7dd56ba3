"""Timestamp utilities for UTC handling and calendar-date formatting.

This module provides utilities for working with timestamps in UTC:
- Getting current UTC time
- Converting timezone-naive to timezone-aware UTC
- Parsing ISO 8601 datetime strings
- Formatting datetimes and dates for payloads and logs
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    If the datetime is timezone-naive, it's treated as UTC.
    If the datetime has a different timezone, it's converted to UTC.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime string to UTC datetime.

    Supports "2026-03-15T12:00:00Z", "2026-03-15T12:00:00+00:00",
    "2026-03-15T12:00:00" and "2026-03-15".

    Args:
        iso_string: ISO 8601 formatted datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_calendar_date(value: Optional[Union[date, datetime]]) -> Optional[str]:
    """Format a date or datetime as a calendar-date string (YYYY-MM-DD).

    Datetimes are converted to UTC first so the same instant always yields
    the same calendar date.

    Args:
        value: Date or datetime to format (can be None)

    Returns:
        Calendar-date string, or None if input is None

    Example:
        >>> format_calendar_date(datetime(2026, 3, 15, 23, 30, tzinfo=timezone.utc))
        '2026-03-15'
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value).date().isoformat()

    return value.isoformat()


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format a datetime as ISO 8601 string in UTC with 'Z' suffix.

    Args:
        dt: Datetime to format

    Returns:
        ISO 8601 formatted string, or "" if dt is None
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")
