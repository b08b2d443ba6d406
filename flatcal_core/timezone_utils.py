"""
Timezone utilities for flatcal.

Event times are stored as naive local wall-clock times. These helpers
produce "now" in the configured local timezone and bring aware datetimes
into the same naive local form so they can be compared with stored events.
"""

from datetime import datetime
import time as _time
import pytz


# Default timezone - can be overridden by config
_local_timezone_name: str = "Europe/Amsterdam"


def set_timezone(timezone_name: str):
    """Set the local timezone for the application."""
    global _local_timezone_name
    _local_timezone_name = timezone_name


def get_local_timezone():
    """
    Get the local timezone as a pytz timezone object.

    Returns:
        pytz timezone object for the configured local timezone.
    """
    try:
        return pytz.timezone(_local_timezone_name)
    except pytz.UnknownTimeZoneError:
        pass
    # Fallback: try system timezone name
    try:
        return pytz.timezone(_time.tzname[0])
    except pytz.UnknownTimeZoneError:
        # Last resort: fixed offset of the current system clock
        if _time.localtime().tm_isdst:
            offset_seconds = -_time.altzone
        else:
            offset_seconds = -_time.timezone
        return pytz.FixedOffset(offset_seconds // 60)


def to_local_naive(dt: datetime) -> datetime:
    """
    Convert a datetime to a naive local datetime.

    Args:
        dt: An aware datetime in any zone, or a naive one already in local time.

    Returns:
        A naive datetime (tzinfo=None) representing local wall-clock time.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(get_local_timezone()).replace(tzinfo=None)
    return dt


def local_now() -> datetime:
    """Current local wall-clock time, naive, truncated to the minute."""
    now = datetime.now(pytz.UTC)
    return to_local_naive(now).replace(second=0, microsecond=0)
