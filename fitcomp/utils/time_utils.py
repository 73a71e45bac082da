"""
Date and timezone helpers for competition windows and activity days
"""

from datetime import date, datetime, timezone

import pytz
from flask import current_app, has_app_context


def get_app_timezone():
    """Get the application's configured timezone"""
    timezone_name = "UTC"
    if has_app_context():
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def convert_to_utc(dt):
    """Convert a datetime to UTC; naive datetimes are assumed to be UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_date_only(value):
    """
    Calendar day (UTC) of a datetime, date or ISO string.

    Window comparisons are done on whole days so an entry logged late on the
    last day still counts.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return convert_to_utc(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return to_date_only(parse_iso_datetime(value))
    raise TypeError(f"Cannot derive a calendar day from {type(value).__name__}")


def parse_iso_datetime(raw):
    """Parse an ISO-8601 timestamp or day; returns an aware UTC datetime"""
    raw = raw.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    return convert_to_utc(parsed)


def get_app_today():
    """Today's calendar day in the application's timezone"""
    return datetime.now(get_app_timezone()).date()


def start_of_app_day(day=None):
    """Midnight of `day` (default today) in the app timezone, as UTC"""
    app_tz = get_app_timezone()
    day = day or get_app_today()
    local_midnight = app_tz.localize(datetime(day.year, day.month, day.day))
    return local_midnight.astimezone(timezone.utc)
