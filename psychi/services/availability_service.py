# psychi/services/availability_service.py
"""
Availability Resolver for the booking engine.

Turns a supporter's recurring weekly availability into concrete bookable
dates and slots. The resolver is read-only: it never writes, and the slots
it lists are advisory. The booking scheduler re-lists slots at write time and
the session store makes the final conflict check.

Timezone handling:
- Windows are wall-clock times in the supporter's timezone
- Each slot's UTC start combines the local date and time in that timezone
- Display labels are rendered in the viewer's timezone
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.config import settings
from ..core.clock import Clock
from ..core.enums import Weekday
from ..core.exceptions import ValidationException
from ..core.timezone_utils import (
    NonExistentLocalTime,
    ensure_utc,
    format_time_label,
    local_to_utc,
    local_today,
    minutes_to_time,
    utc_to_local,
)
from ..domain.availability import TimeSlot, TimeWindow, WeeklyAvailability
from .base import BaseService

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


class AvailabilityResolver(BaseService):
    """Derives bookable dates and slots from weekly availability."""

    def __init__(
        self,
        granularity_minutes: Optional[int] = None,
        horizon_days: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self.granularity_minutes = granularity_minutes or settings.slot_granularity_minutes
        self.horizon_days = horizon_days or settings.booking_horizon_days
        if self.granularity_minutes <= 0:
            raise ValidationException("Slot granularity must be positive")

    def list_bookable_dates(
        self,
        availability: WeeklyAvailability,
        horizon_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[date]:
        """
        Dates within the horizon whose weekday is enabled.

        The horizon starts at today's date in the supporter's timezone.
        Unconstrained availability makes every date in the horizon bookable.
        """
        horizon = self.horizon_days if horizon_days is None else horizon_days
        if horizon < 0:
            raise ValidationException("Horizon cannot be negative")
        today = local_today(now or self.clock.now(), availability.timezone)
        days = (today + timedelta(days=offset) for offset in range(horizon))
        if availability.is_unconstrained:
            return list(days)
        return [day for day in days if availability.is_enabled(Weekday.from_date(day))]

    def list_slots(
        self,
        day: date,
        availability: WeeklyAvailability,
        duration_minutes: int,
        now: Optional[datetime] = None,
        booked: Iterable[Interval] = (),
        viewer_timezone: Optional[str] = None,
    ) -> List[TimeSlot]:
        """
        Slots of ``duration_minutes`` on ``day`` (a date in the supporter's timezone).

        Args:
            day: Local calendar date in the supporter's timezone
            availability: The supporter's weekly schedule
            duration_minutes: Session length; a slot must fit inside one window
            now: Reference instant; only slots starting strictly after it are kept
            booked: UTC intervals already taken; overlapping slots are dropped
            viewer_timezone: Timezone for display labels (defaults to the supporter's)

        Returns:
            Slots in ascending start order
        """
        if duration_minutes <= 0:
            raise ValidationException("Duration must be positive")

        windows = availability.windows_for(Weekday.from_date(day))
        if not windows:
            return []

        now_utc = ensure_utc(now or self.clock.now())
        taken = [(ensure_utc(start), ensure_utc(end)) for start, end in booked]
        label_tz = viewer_timezone or availability.timezone

        slots: List[TimeSlot] = []
        for window in windows:
            for start_minute in self._candidate_starts(window, duration_minutes):
                local_start = minutes_to_time(start_minute)
                try:
                    start_utc = local_to_utc(day, local_start, availability.timezone)
                except NonExistentLocalTime:
                    logger.debug(f"Skipping {day} {local_start}: inside a DST gap")
                    continue
                if start_utc <= now_utc:
                    continue
                end_utc = start_utc + timedelta(minutes=duration_minutes)
                if any(start_utc < t_end and t_start < end_utc for t_start, t_end in taken):
                    continue
                slots.append(
                    TimeSlot(
                        start_utc=start_utc,
                        end_utc=end_utc,
                        display=format_time_label(start_utc, label_tz),
                        local_date=day,
                        local_start=local_start,
                    )
                )

        slots.sort(key=lambda slot: slot.start_utc)
        return slots

    def _candidate_starts(self, window: TimeWindow, duration_minutes: int) -> Iterable[int]:
        start = window.start_minute
        while start + duration_minutes <= window.end_minute:
            yield start
            start += self.granularity_minutes

    def find_slot(
        self,
        start_utc: datetime,
        availability: WeeklyAvailability,
        duration_minutes: int,
        now: Optional[datetime] = None,
        booked: Iterable[Interval] = (),
    ) -> Optional[TimeSlot]:
        """Return the offered slot starting at ``start_utc``, if there is one."""
        start_utc = ensure_utc(start_utc)
        day = utc_to_local(start_utc, availability.timezone).date()
        for slot in self.list_slots(day, availability, duration_minutes, now=now, booked=booked):
            if slot.start_utc == start_utc:
                return slot
        return None

    def is_slot_offered(
        self,
        slot: TimeSlot,
        availability: WeeklyAvailability,
        now: Optional[datetime] = None,
        booked: Sequence[Interval] = (),
    ) -> bool:
        """True when ``slot`` (same start and end) is in the current listing."""
        found = self.find_slot(
            slot.start_utc, availability, slot.duration_minutes, now=now, booked=booked
        )
        return found is not None and found.same_interval(slot)

    @staticmethod
    def to_utc(day: date, local_time: time, timezone: str) -> datetime:
        """Combine a local date and wall-clock time in ``timezone`` into UTC."""
        return local_to_utc(day, local_time, timezone)

    @staticmethod
    def to_local(instant: datetime, timezone: str) -> datetime:
        return utc_to_local(instant, timezone)
