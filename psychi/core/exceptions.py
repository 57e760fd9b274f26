# psychi/core/exceptions.py
"""
Domain-specific exceptions for the Psychi booking engine.

These exceptions carry business-focused messages that a caller can show to
the user as-is (for example "that time is no longer available"), plus a
stable ``code`` and structured ``details`` for programmatic handling.
"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationException(DomainException):
    """Raised when business validation fails."""


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""


# Specific business exceptions


class SlotConflictException(ConflictException):
    """Raised when the requested slot is no longer offered or was taken concurrently."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "That time is no longer available, please pick another slot",
            code="SLOT_CONFLICT",
            details=details or {},
        )


class PaymentFailedException(BusinessRuleException):
    """Raised when the payment processor declines or errors on a charge."""

    def __init__(self, reason: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=(
                f"Payment could not be completed: {reason}"
                if reason
                else "Payment could not be completed"
            ),
            code="PAYMENT_FAILED",
            details=details or {},
        )
        self.reason = reason


class RefundIssuanceFailedException(DomainException):
    """
    Signals that a refund could not be issued for a cancelled session.

    The cancellation itself has already been recorded; this is surfaced for
    manual reconciliation rather than raised through the cancel call.
    """

    def __init__(
        self,
        session_id: str,
        amount_cents: int,
        reason: Optional[str] = None,
    ):
        super().__init__(
            message=(
                f"Refund of {amount_cents} cents for session {session_id} could not be issued"
            ),
            code="REFUND_ISSUANCE_FAILED",
            details={
                "session_id": session_id,
                "amount_cents": amount_cents,
                "reason": reason or "",
            },
        )
        self.session_id = session_id
        self.amount_cents = amount_cents


class NoMatchFoundException(NotFoundException):
    """Raised when the reassignment search exhausts every candidate supporter."""

    def __init__(self, client_id: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=(
                "No available supporters match your preferences. "
                "Please try adjusting your preferences or try again later."
            ),
            code="NO_MATCH_FOUND",
            details={"client_id": client_id, **(details or {})},
        )


class InvalidTransitionException(BusinessRuleException):
    """Raised when a session status change is not allowed from its current status."""

    def __init__(self, session_id: Optional[str], current: str, target: str):
        super().__init__(
            message=f"Session cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
            details={
                "session_id": session_id or "",
                "current_status": current,
                "target_status": target,
            },
        )
        self.current = current
        self.target = target


class RescheduleRequestClosedException(ConflictException):
    """Raised when answering a reschedule request that is no longer pending."""

    def __init__(self, request_id: str, status: str):
        super().__init__(
            message=f"This reschedule request was already {status.replace('_', ' ')}",
            code="RESCHEDULE_REQUEST_CLOSED",
            details={"request_id": request_id, "status": status},
        )
        self.status = status


class RescheduleDeadlinePassedException(BusinessRuleException):
    """Raised when a reschedule request is made or answered after its response deadline."""

    def __init__(self, session_id: str, deadline_utc: str):
        super().__init__(
            message="The response deadline for rescheduling this session has passed",
            code="RESCHEDULE_DEADLINE_PASSED",
            details={"session_id": session_id, "response_deadline_utc": deadline_utc},
        )


class AvailabilityOverlapException(ConflictException):
    """Raised when two availability windows on the same weekday overlap."""

    def __init__(self, weekday: str, new_range: str, conflicting_range: str):
        super().__init__(
            message=(
                f"Overlapping window on {weekday}: {new_range} conflicts with {conflicting_range}"
            ),
            code="AVAILABILITY_OVERLAP",
            details={
                "weekday": weekday,
                "new_window": new_range,
                "conflicting_window": conflicting_range,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """


class SessionWriteConflict(RepositoryException):
    """The store refused a session write because it overlaps an active session."""


class StaleSessionUpdate(RepositoryException):
    """A conditional session update found a different status than expected."""

    def __init__(self, session_id: str, expected: str, actual: str):
        super().__init__(
            f"Session {session_id} is {actual}, expected {expected}"
        )
        self.session_id = session_id
        self.expected = expected
        self.actual = actual


class StaleRescheduleRequestUpdate(RepositoryException):
    """A conditional reschedule request update found a different status than expected."""

    def __init__(self, request_id: str, expected: str, actual: str):
        super().__init__(f"Reschedule request {request_id} is {actual}, expected {expected}")
        self.request_id = request_id
        self.expected = expected
        self.actual = actual
