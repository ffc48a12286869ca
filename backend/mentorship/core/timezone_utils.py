"""
Timezone utilities for the scheduling engine.

Availability rules are declared in the mentor's local wall-clock time and
sessions are stored as absolute UTC instants. These helpers do the
conversion in both directions with pytz.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from .exceptions import ValidationException


def get_timezone(name: str) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationException: If the name is not known to the tz database
    """
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationException(
            f"Unknown timezone: {name}", details={"field": "timezone", "value": name}
        )


def is_valid_timezone(name: str) -> bool:
    return name in pytz.all_timezones_set


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def local_to_utc(day: date, wall_time: time, tz_name: str) -> Optional[datetime]:
    """
    Convert a wall-clock time on ``day`` in ``tz_name`` to a UTC instant.

    Returns None when the wall-clock time does not exist on that day (spring-forward gap).
    Ambiguous times (fall-back overlap) resolve to the first occurrence.
    """
    tz = get_timezone(tz_name)
    naive = datetime.combine(day, wall_time)
    try:
        localized = tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError:
        return None
    except pytz.AmbiguousTimeError:
        localized = tz.localize(naive, is_dst=True)
    return localized.astimezone(pytz.UTC)


def utc_to_local(dt: datetime, tz_name: str) -> datetime:
    """Convert an instant to the wall-clock datetime of ``tz_name``."""
    return ensure_utc(dt).astimezone(get_timezone(tz_name))


def local_day_bounds_utc(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """
    Return the UTC instants bounding the local calendar day ``day``.

    The day is ``[local midnight, next local midnight)``, which may be 23 or 25
    hours long across a DST transition.
    """
    tz = get_timezone(tz_name)
    start = tz.normalize(tz.localize(datetime.combine(day, time.min))).astimezone(pytz.UTC)
    next_day = day + timedelta(days=1)
    end = tz.normalize(tz.localize(datetime.combine(next_day, time.min))).astimezone(pytz.UTC)
    return start, end


def weekday_index(day: date) -> int:
    """
    Day-of-week index used by availability rules: 0 = Sunday ... 6 = Saturday.

    Python's ``date.weekday()`` is Monday = 0, so shift by one.
    """
    return (day.weekday() + 1) % 7


def parse_hhmm(value: str, field: str = "time") -> time:
    """
    Parse a 24-hour ``HH:MM`` string.

    Raises:
        ValidationException: If the value is not a valid HH:MM time
    """
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except (TypeError, ValueError):
        raise ValidationException(
            f"Invalid time format for {field}: expected HH:MM",
            details={"field": field, "value": value},
        )
    if len(value) != 5:
        raise ValidationException(
            f"Invalid time format for {field}: expected HH:MM",
            details={"field": field, "value": value},
        )
    return parsed.time()


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute
