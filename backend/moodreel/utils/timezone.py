"""
Timezone utilities for moodreel.
Provides consistent UTC datetime handling and timezone-aware operations.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.
    Replacement for deprecated datetime.utcnow().
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is UTC and timezone-aware.
    If timezone-naive, assumes it's already UTC and adds UTC timezone.
    If timezone-aware, converts to UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    else:
        return dt.astimezone(timezone.utc)


def get_user_local_time(user_timezone: str = "UTC") -> datetime:
    """
    Get current time in user's timezone.
    Falls back to UTC when the timezone name is unknown.
    """
    try:
        import zoneinfo
        tz = zoneinfo.ZoneInfo(user_timezone)
        return datetime.now(tz)
    except (ImportError, Exception):
        return utc_now()


def get_user_hour(user_timezone: str = "UTC") -> int:
    """
    Get current hour in user's timezone (0-23).
    Used for time-of-day genre suggestions.
    """
    return get_user_local_time(user_timezone).hour
