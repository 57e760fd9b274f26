"""Session lifecycle events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class SessionBooked:
    """Fired after a session is charged, stored and confirmed."""

    session_id: str
    client_id: str
    supporter_id: str
    session_type: str
    scheduled_at_utc: datetime
    price_cents: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionCancelled:
    """Fired after a cancellation is recorded; ``notify_user_id`` is the other party."""

    session_id: str
    cancelled_by: str  # 'client' or 'supporter'
    notify_user_id: str
    cancelled_at: datetime
    refund_amount_cents: int = 0
    reason: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionRescheduled:
    session_id: str
    previous_start_utc: datetime
    new_start_utc: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionCompleted:
    session_id: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RefundReconciliationRequired:
    """Fired when money owed to a client could not be returned automatically."""

    session_id: str
    charge_ref: Optional[str]
    amount_cents: int
    context: str  # 'cancellation' or 'booking_compensation'
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SupporterReassigned:
    client_id: str
    previous_supporter_id: Optional[str]
    new_supporter_id: str
    match_score: int
    reassigned_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RescheduleRequested:
    """Fired when a supporter proposes a new time; the client must answer by the deadline."""

    request_id: str
    session_id: str
    notify_user_id: str
    original_start_utc: datetime
    proposed_start_utc: datetime
    response_deadline_utc: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RescheduleRequestResolved:
    request_id: str
    session_id: str
    status: str  # accepted, declined, expired or auto_cancelled
    notify_user_id: str
    resolved_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
