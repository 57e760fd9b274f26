"""Availability payloads as edited by a supporter."""

from datetime import time
from typing import Dict, List

from pydantic import Field, field_validator, model_validator

from ..core.enums import Weekday
from ..core.timezone_utils import get_timezone
from ..domain.availability import DayAvailability, TimeWindow, WeeklyAvailability
from ._strict_base import StrictRequestModel


class AvailabilityWindowIn(StrictRequestModel):
    start: time
    end: time = Field(..., description="Use 00:00 for midnight at the end of the day")


class DayAvailabilityIn(StrictRequestModel):
    enabled: bool = False
    windows: List[AvailabilityWindowIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _windows_match_enabled(self) -> "DayAvailabilityIn":
        if self.enabled and not self.windows:
            raise ValueError("enabled days need at least one window")
        if not self.enabled and self.windows:
            raise ValueError("disabled days cannot have windows")
        return self


class WeeklyAvailabilityIn(StrictRequestModel):
    """Full replacement of a supporter's weekly schedule."""

    timezone: str
    days: Dict[Weekday, DayAvailabilityIn] = Field(default_factory=dict)

    @field_validator("days", mode="before")
    @classmethod
    def _lowercase_days(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(key).strip().lower(): day for key, day in value.items()}
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        get_timezone(value)
        return value

    def to_domain(self) -> WeeklyAvailability:
        return WeeklyAvailability(
            timezone=self.timezone,
            days={
                weekday: DayAvailability(
                    enabled=day.enabled,
                    windows=tuple(
                        TimeWindow.from_times(window.start, window.end) for window in day.windows
                    ),
                )
                for weekday, day in self.days.items()
            },
        )
