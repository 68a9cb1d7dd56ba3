"""Utility functions for UTC time handling and calendar-date formatting."""

from .timestamps import (
    ensure_utc,
    format_calendar_date,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "format_calendar_date",
    "format_timestamp",
    "parse_iso_datetime",
]
