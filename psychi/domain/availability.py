"""
Availability value objects.

A supporter's recurring schedule is read as an immutable snapshot. Edits
produce a new snapshot (``with_day``) that is written back in one replace, so
concurrent readers never see a half-updated week.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.constants import MINUTES_PER_DAY
from ..core.enums import Weekday
from ..core.exceptions import AvailabilityOverlapException, ValidationException
from ..core.timezone_utils import get_timezone, minutes_to_time


def _parse_clock(value: str) -> int:
    """Parse ``H:MM``/``HH:MM`` into minutes since midnight; ``24:00`` is end of day."""
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except ValueError as exc:
        raise ValidationException(f"Invalid time '{value}', expected HH:MM") from exc
    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise ValidationException(f"Invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


def _format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True, order=True)
class TimeWindow:
    """A local wall-clock range within a single day, ``[start, end)`` in minutes."""

    start_minute: int
    end_minute: int

    def __post_init__(self) -> None:
        if not (0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY):
            raise ValidationException(
                "Availability window must start before it ends within a single day",
                details={"start_minute": self.start_minute, "end_minute": self.end_minute},
            )

    @classmethod
    def parse(cls, value: str) -> "TimeWindow":
        """Parse ``"09:00-17:00"`` (whitespace tolerated)."""
        parts = value.replace(" ", "").split("-")
        if len(parts) != 2:
            raise ValidationException(f"Invalid window '{value}', expected HH:MM-HH:MM")
        return cls(_parse_clock(parts[0]), _parse_clock(parts[1]))

    @classmethod
    def from_times(cls, start: time, end: time) -> "TimeWindow":
        """Build from ``time`` values; an end of ``00:00`` means midnight at day end."""
        end_minute = end.hour * 60 + end.minute
        if end_minute == 0:
            end_minute = MINUTES_PER_DAY
        return cls(start.hour * 60 + start.minute, end_minute)

    @property
    def start(self) -> time:
        return minutes_to_time(self.start_minute)

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start_minute < other.end_minute and other.start_minute < self.end_minute

    def label(self) -> str:
        return f"{_format_clock(self.start_minute)}-{_format_clock(self.end_minute)}"


@dataclass(frozen=True)
class DayAvailability:
    """One weekday of a recurring schedule."""

    enabled: bool
    windows: Tuple[TimeWindow, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.windows))
        object.__setattr__(self, "windows", ordered)
        if self.enabled and not ordered:
            raise ValidationException("An enabled day needs at least one window")
        if not self.enabled and ordered:
            raise ValidationException("A disabled day cannot have windows")

    @classmethod
    def closed(cls) -> "DayAvailability":
        return cls(enabled=False)

    @classmethod
    def open(cls, windows: Iterable[TimeWindow]) -> "DayAvailability":
        return cls(enabled=True, windows=tuple(windows))


_CLOSED = DayAvailability(enabled=False)


@dataclass(frozen=True)
class WeeklyAvailability:
    """
    A supporter's recurring weekly schedule in their own timezone.

    An empty ``days`` mapping means the supporter has not constrained their
    schedule at all; every calendar date counts as bookable.
    """

    timezone: str
    days: Mapping[Weekday, DayAvailability] = field(default_factory=dict)

    def __post_init__(self) -> None:
        get_timezone(self.timezone)
        normalized: Dict[Weekday, DayAvailability] = {}
        for weekday, day in self.days.items():
            weekday = Weekday(weekday)
            _check_overlaps(weekday, day.windows)
            normalized[weekday] = day
        object.__setattr__(self, "days", MappingProxyType(normalized))

    @classmethod
    def unconstrained(cls, timezone: str) -> "WeeklyAvailability":
        return cls(timezone=timezone)

    @classmethod
    def from_mapping(
        cls, raw: Mapping[str, Sequence[str]], timezone: str
    ) -> "WeeklyAvailability":
        """
        Build from the stored form ``{"monday": ["09:00-12:00", ...], ...}``.

        Day keys are case-insensitive. An empty list marks the day disabled.
        """
        days: Dict[Weekday, DayAvailability] = {}
        for key, ranges in raw.items():
            try:
                weekday = Weekday.parse(key)
            except ValueError as exc:
                raise ValidationException(f"Unknown weekday '{key}'") from exc
            windows = tuple(TimeWindow.parse(value) for value in ranges or ())
            days[weekday] = DayAvailability(enabled=bool(windows), windows=windows)
        return cls(timezone=timezone, days=days)

    def to_mapping(self) -> Dict[str, List[str]]:
        return {
            weekday.value: [window.label() for window in day.windows]
            for weekday, day in self.days.items()
        }

    @property
    def is_unconstrained(self) -> bool:
        return not self.days

    def day(self, weekday: Weekday) -> DayAvailability:
        return self.days.get(Weekday(weekday), _CLOSED)

    def is_enabled(self, weekday: Weekday) -> bool:
        return self.day(weekday).enabled

    def windows_for(self, weekday: Weekday) -> Tuple[TimeWindow, ...]:
        return self.day(weekday).windows

    @property
    def enabled_days(self) -> Tuple[Weekday, ...]:
        return tuple(weekday for weekday in Weekday if self.is_enabled(weekday))

    def with_day(
        self, weekday: Weekday, windows: Optional[Iterable[TimeWindow]]
    ) -> "WeeklyAvailability":
        """Return a copy with ``weekday`` replaced; ``None`` or no windows disables it."""
        windows = tuple(windows or ())
        days = dict(self.days)
        days[Weekday(weekday)] = DayAvailability(enabled=bool(windows), windows=windows)
        return WeeklyAvailability(timezone=self.timezone, days=days)

    def with_timezone(self, timezone: str) -> "WeeklyAvailability":
        return WeeklyAvailability(timezone=timezone, days=dict(self.days))


def _check_overlaps(weekday: Weekday, windows: Sequence[TimeWindow]) -> None:
    for previous, current in zip(windows, windows[1:]):
        if previous.overlaps(current):
            raise AvailabilityOverlapException(
                weekday=weekday.value,
                new_range=current.label(),
                conflicting_range=previous.label(),
            )


@dataclass(frozen=True)
class TimeSlot:
    """A concrete bookable interval derived from recurring availability."""

    start_utc: datetime
    end_utc: datetime
    display: str
    local_date: date
    local_start: time

    @property
    def duration_minutes(self) -> int:
        return int((self.end_utc - self.start_utc).total_seconds() // 60)

    def overlaps(self, start_utc: datetime, end_utc: datetime) -> bool:
        return self.start_utc < end_utc and start_utc < self.end_utc

    def same_interval(self, other: "TimeSlot") -> bool:
        return self.start_utc == other.start_utc and self.end_utc == other.end_utc
