"""
Timezone helpers (pytz).

Fixture start times are stored as naive UTC. Window offsets and naive manual
start times are wall-clock times in the competition's timezone and are
converted here.
"""
from datetime import date, datetime, time
from typing import Optional

import pytz

from matchday.errors import ValidationError


def get_timezone(name: str):
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {name}")


def parse_offset(value: str) -> time:
    """'HH:MM' -> time. Raises ValidationError on a malformed value."""
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid time offset '{value}' (expected HH:MM)")


def local_to_utc(day: date, offset: time, tz) -> datetime:
    """Localize day + offset in tz and return the instant as naive UTC."""
    # is_dst=None would raise inside DST gaps; pick the standard-time reading instead
    local = tz.localize(datetime.combine(day, offset), is_dst=False)
    return local.astimezone(pytz.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime, tz=None) -> datetime:
    """
    Aware datetimes are converted to UTC. Naive ones are wall-clock times in
    tz, or UTC already when no tz is given.
    """
    if value.tzinfo is None:
        if tz is None:
            return value
        value = tz.localize(value, is_dst=False)
    return value.astimezone(pytz.utc).replace(tzinfo=None)


def format_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%Y-%m-%d %H:%M UTC")
