"""
Timezone utilities for the booking engine.

Supporter schedules are stored as local wall-clock times in the supporter's
timezone. Everything downstream (sessions, refunds, reminders) works in UTC.
These helpers are the only place the two meet.
"""

from datetime import date, datetime, time, timezone
from functools import lru_cache
import logging
from typing import Optional

import pytz

logger = logging.getLogger(__name__)


class NonExistentLocalTime(ValueError):
    """The local wall-clock time is skipped by a DST transition on that date."""


@lru_cache(maxsize=256)
def get_timezone(name: str) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime, assuming UTC when naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_to_utc(day: date, local_time: time, tz_name: str) -> datetime:
    """
    Combine a local calendar date and wall-clock time in ``tz_name`` into UTC.

    Ambiguous times (the repeated hour when clocks fall back) resolve to the
    first occurrence. Times inside a spring-forward gap do not exist and
    raise ``NonExistentLocalTime``.
    """
    tz = get_timezone(tz_name)
    naive = datetime.combine(day, local_time)
    try:
        localized = tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        localized = tz.localize(naive, is_dst=True)
    except pytz.NonExistentTimeError as exc:
        raise NonExistentLocalTime(f"{naive.isoformat()} does not exist in {tz_name}") from exc
    return localized.astimezone(timezone.utc)


def utc_to_local(dt: datetime, tz_name: str) -> datetime:
    """Convert an instant to wall-clock time in ``tz_name``."""
    return ensure_utc(dt).astimezone(get_timezone(tz_name))


def local_today(now: datetime, tz_name: str) -> date:
    """Calendar date of ``now`` as seen in ``tz_name``."""
    return utc_to_local(now, tz_name).date()


def format_time_label(dt: datetime, tz_name: Optional[str] = None) -> str:
    """Render a time as ``h:mm AM/PM`` (no leading zero on the hour)."""
    local = utc_to_local(dt, tz_name) if tz_name else dt
    hour = local.hour % 12 or 12
    suffix = "PM" if local.hour >= 12 else "AM"
    return f"{hour}:{local.minute:02d} {suffix}"


def minutes_to_time(minutes: int) -> time:
    """Convert minutes since midnight (0-1439) to a ``time``."""
    hours, mins = divmod(int(minutes), 60)
    return time(hours, mins)


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute
