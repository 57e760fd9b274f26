from psychi.domain.availability import DayAvailability, TimeSlot, TimeWindow, WeeklyAvailability
from psychi.domain.reschedule import RescheduleRequest
from psychi.domain.session import ACTIVE_STATUSES, ALLOWED_TRANSITIONS, SupportSession
from psychi.domain.supporters import ClientAssignment, SupporterProfile

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "ClientAssignment",
    "DayAvailability",
    "RescheduleRequest",
    "SupportSession",
    "SupporterProfile",
    "TimeSlot",
    "TimeWindow",
    "WeeklyAvailability",
]
