"""
Core enums for the Psychi booking engine.

String-valued so they persist and serialize without translation.
"""

from datetime import date
from enum import Enum


class SessionType(str, Enum):
    """Kinds of support session a client can book."""

    CHAT = "chat"
    PHONE = "phone"
    VIDEO = "video"


class SessionStatus(str, Enum):
    """Session lifecycle statuses."""

    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class CancellationActor(str, Enum):
    """Who cancelled a session."""

    CLIENT = "client"
    SUPPORTER = "supporter"
    NONE = "none"


class RefundStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    ISSUED = "issued"
    FAILED = "failed"


class RescheduleRequestStatus(str, Enum):
    """Lifecycle of a supporter's request to move a session."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    AUTO_CANCELLED = "auto_cancelled"

    @property
    def is_open(self) -> bool:
        return self == RescheduleRequestStatus.PENDING


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class AssignmentEndReason(str, Enum):
    CLIENT_REQUESTED = "client_requested"
    SUPPORTER_REQUESTED = "supporter_requested"
    ADMIN = "admin"
    COMPLETED = "completed"


class Weekday(str, Enum):
    """Days of the week, ordered to match ``date.weekday()``."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return list(cls)[day.weekday()]

    @classmethod
    def parse(cls, value: str) -> "Weekday":
        return cls(value.strip().lower())
