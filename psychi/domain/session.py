"""
Support session aggregate and its status transition table.

Sessions are immutable values; each transition returns a new instance or
raises ``InvalidTransitionException``. Completed and cancelled sessions are
terminal and are kept forever for history and tax reporting.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from ..core.enums import CancellationActor, RefundStatus, SessionStatus, SessionType
from ..core.exceptions import InvalidTransitionException, ValidationException
from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import generate_ulid

ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.REQUESTED: frozenset({SessionStatus.CONFIRMED, SessionStatus.CANCELLED}),
    SessionStatus.CONFIRMED: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}

ACTIVE_STATUSES: FrozenSet[SessionStatus] = frozenset(
    {SessionStatus.REQUESTED, SessionStatus.CONFIRMED}
)


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return SessionStatus(target) in ALLOWED_TRANSITIONS[SessionStatus(current)]


def ensure_transition(
    current: SessionStatus, target: SessionStatus, session_id: Optional[str] = None
) -> SessionStatus:
    """Return ``target`` if reachable from ``current``; raise otherwise."""
    current, target = SessionStatus(current), SessionStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionException(session_id, current.value, target.value)
    return target


@dataclass(frozen=True)
class SupportSession:
    """A booked session between one client and one supporter."""

    id: str
    client_id: str
    supporter_id: str
    session_type: SessionType
    scheduled_at_utc: datetime
    duration_minutes: int
    price_cents: int
    status: SessionStatus = SessionStatus.REQUESTED
    cancelled_by: CancellationActor = CancellationActor.NONE
    cancellation_reason: Optional[str] = None
    refund_amount_cents: int = 0
    refund_status: RefundStatus = RefundStatus.NOT_REQUIRED
    payment_ref: Optional[str] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "scheduled_at_utc", ensure_utc(self.scheduled_at_utc))
        object.__setattr__(self, "session_type", SessionType(self.session_type))
        object.__setattr__(self, "status", SessionStatus(self.status))
        object.__setattr__(self, "cancelled_by", CancellationActor(self.cancelled_by))
        object.__setattr__(self, "refund_status", RefundStatus(self.refund_status))
        if self.duration_minutes <= 0:
            raise ValidationException("Session duration must be positive")
        if self.price_cents < 0:
            raise ValidationException("Session price cannot be negative")

    @classmethod
    def request(
        cls,
        *,
        client_id: str,
        supporter_id: str,
        session_type: SessionType,
        scheduled_at_utc: datetime,
        duration_minutes: int,
        price_cents: int,
        payment_ref: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "SupportSession":
        return cls(
            id=generate_ulid(),
            client_id=client_id,
            supporter_id=supporter_id,
            session_type=session_type,
            scheduled_at_utc=scheduled_at_utc,
            duration_minutes=duration_minutes,
            price_cents=price_cents,
            payment_ref=payment_ref,
            created_at=created_at,
        )

    @property
    def end_at_utc(self) -> datetime:
        return self.scheduled_at_utc + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def overlaps(self, start_utc: datetime, end_utc: datetime) -> bool:
        return self.scheduled_at_utc < end_utc and start_utc < self.end_at_utc

    def other_party(self, actor: CancellationActor) -> str:
        """The participant who should hear about an action taken by ``actor``."""
        if CancellationActor(actor) == CancellationActor.SUPPORTER:
            return self.client_id
        return self.supporter_id

    def confirm(self) -> "SupportSession":
        ensure_transition(self.status, SessionStatus.CONFIRMED, self.id)
        return replace(self, status=SessionStatus.CONFIRMED)

    def complete(self, at: datetime) -> "SupportSession":
        ensure_transition(self.status, SessionStatus.COMPLETED, self.id)
        return replace(self, status=SessionStatus.COMPLETED, completed_at=ensure_utc(at))

    def cancel(
        self,
        *,
        actor: CancellationActor,
        at: datetime,
        reason: Optional[str] = None,
        refund_amount_cents: int = 0,
        refund_status: RefundStatus = RefundStatus.NOT_REQUIRED,
    ) -> "SupportSession":
        ensure_transition(self.status, SessionStatus.CANCELLED, self.id)
        if CancellationActor(actor) == CancellationActor.NONE:
            raise ValidationException("A cancellation needs a client or supporter actor")
        return replace(
            self,
            status=SessionStatus.CANCELLED,
            cancelled_by=CancellationActor(actor),
            cancellation_reason=reason,
            refund_amount_cents=refund_amount_cents,
            refund_status=refund_status,
            cancelled_at=ensure_utc(at),
        )

    def moved_to(self, scheduled_at_utc: datetime) -> "SupportSession":
        """Return a copy at a new start time; only active sessions can move."""
        if not self.is_active:
            raise InvalidTransitionException(self.id, self.status.value, "rescheduled")
        return replace(self, scheduled_at_utc=ensure_utc(scheduled_at_utc))
