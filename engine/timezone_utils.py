"""
Timezone utilities for the interaction engine.

Drafts keep naive wall-clock datetimes together with the IANA name of the
zone they are expressed in; rendered events carry timezone-aware UTC
datetimes. These helpers convert between the two.
"""

from datetime import datetime, date, time, timedelta
from typing import Optional, Union
import pytz


# Default timezone - can be overridden by config
_local_timezone_name: str = "UTC"


def set_timezone(timezone_name: str):
    """Set the default timezone used when no tzid is given."""
    global _local_timezone_name
    _local_timezone_name = timezone_name


def get_timezone(tzid: Optional[str] = None):
    """
    Get a pytz timezone object.
    
    Args:
        tzid: IANA timezone name; the configured default when omitted.
    
    Returns:
        pytz timezone object. Unknown names fall back to UTC.
    """
    try:
        return pytz.timezone(tzid or _local_timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def to_local_datetime(dt: datetime, tzid: Optional[str] = None) -> datetime:
    """
    Convert an aware datetime to the given timezone.
    
    Naive input is returned unchanged.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(get_timezone(tzid))
    return dt


def utc_to_local_naive(dt: datetime, tzid: Optional[str] = None) -> datetime:
    """
    Convert an aware datetime to naive wall-clock time in the given timezone.
    
    Naive input is assumed to already be wall-clock time.
    """
    if dt.tzinfo is not None:
        return to_local_datetime(dt, tzid).replace(tzinfo=None)
    return dt


def local_naive_to_utc(dt: datetime, tzid: Optional[str] = None) -> datetime:
    """
    Convert a naive wall-clock datetime in the given timezone to aware UTC.
    
    Aware input is converted directly.
    """
    if dt.tzinfo is None:
        local_dt = get_timezone(tzid).localize(dt)
        return local_dt.astimezone(pytz.UTC)
    return dt.astimezone(pytz.UTC)


def value_to_local_naive(
    value: Union[datetime, date],
    tzid: Optional[str] = None,
    fallback_time: time = time.min,
) -> datetime:
    """
    Convert an iCalendar DATE or DATE-TIME value to naive wall-clock time.
    
    DATE values have no time of day; fallback_time is used for them.
    """
    if isinstance(value, datetime):
        return utc_to_local_naive(value, tzid)
    return datetime.combine(value, fallback_time)


def with_time_of_day(dt: datetime, source: datetime) -> datetime:
    """Return dt with the hour and minute of source."""
    return dt.replace(hour=source.hour, minute=source.minute, second=0, microsecond=0)


def utc_midnight(day: date) -> datetime:
    """Midnight UTC of a calendar day, the representation of all-day bounds."""
    return pytz.UTC.localize(datetime.combine(day, time.min))


def next_full_hour(dt: datetime) -> datetime:
    """Round up to the next full hour; already-full hours are kept."""
    rounded = dt.replace(minute=0, second=0, microsecond=0)
    if rounded < dt:
        rounded += timedelta(hours=1)
    return rounded
