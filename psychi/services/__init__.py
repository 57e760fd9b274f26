# psychi/services/__init__.py
"""Booking engine services."""

from .availability_service import AvailabilityResolver
from .booking_scheduler import BookingScheduler, CancellationResult
from .matching_service import MatchingService, SupporterMatch
from .reassignment_service import ReassignmentResult, SupporterReassignmentService
from .refund_calculator import RefundCalculator, RefundPolicy, RefundQuote, compute_refund
from .reminder_scheduler import ReminderHandle, ReminderScheduler
from .reschedule_request_service import ExpirySweepResult, RescheduleRequestService

__all__ = [
    "AvailabilityResolver",
    "BookingScheduler",
    "CancellationResult",
    "ExpirySweepResult",
    "MatchingService",
    "ReassignmentResult",
    "RefundCalculator",
    "RefundPolicy",
    "RefundQuote",
    "ReminderHandle",
    "ReminderScheduler",
    "RescheduleRequestService",
    "SupporterMatch",
    "SupporterReassignmentService",
    "compute_refund",
]
