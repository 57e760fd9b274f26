# psychi/services/booking_scheduler.py
"""
Booking Scheduler for the booking engine.

Owns the session lifecycle:

    requested -> confirmed -> completed
    requested | confirmed -> cancelled

Booking is a two-phase protocol. Slot lists handed to clients are advisory;
``request_booking`` re-lists the supporter's slots at call time and the
session store makes the authoritative overlap check when the session is
written. A conflict at either point surfaces as ``SlotConflictException``.

Cancellation claims the status change with a conditional write before any
money moves, so a retried or concurrent cancel is rejected with
``InvalidTransitionException`` instead of refunding twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging
from typing import Any, Dict, List, Optional

from ..core.clock import Clock
from ..core.config import settings
from ..core.constants import duration_for, price_for
from ..core.enums import CancellationActor, RefundStatus, SessionStatus, SessionType
from ..core.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    PaymentFailedException,
    RefundIssuanceFailedException,
    SessionWriteConflict,
    SlotConflictException,
    StaleSessionUpdate,
    ValidationException,
)
from ..domain.availability import TimeSlot, WeeklyAvailability
from ..domain.session import SupportSession, ensure_transition
from ..events.booking_events import (
    RefundReconciliationRequired,
    SessionBooked,
    SessionCancelled,
    SessionCompleted,
    SessionRescheduled,
)
from ..events.publisher import EventPublisher
from ..integrations.payments import PaymentProcessor
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..notifications.templates import cancellation_content
from ..repositories.interfaces import AvailabilityStore, SessionStore
from ..schemas.booking import BookingRequest, CancellationRequest
from .availability_service import AvailabilityResolver
from .base import BaseService
from .refund_calculator import RefundCalculator, RefundQuote
from .reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancellationResult:
    """
    Outcome of a cancellation.

    The session is always cancelled when this is returned. ``refund_error`` is
    set when the refund could not be issued and needs manual reconciliation.
    """

    session: SupportSession
    refund: RefundQuote
    refund_error: Optional[RefundIssuanceFailedException] = None
    reminders_cancelled: int = 0

    @property
    def refund_issued(self) -> bool:
        return self.session.refund_status == RefundStatus.ISSUED

    def to_payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session.id,
            "status": self.session.status.value,
            "refund": self.refund.to_payload(),
            "refund_status": self.session.refund_status.value,
            "refund_error": self.refund_error.to_dict() if self.refund_error else None,
        }


class BookingScheduler(BaseService):
    """Books, cancels, completes and reschedules support sessions."""

    def __init__(
        self,
        sessions: SessionStore,
        availability: AvailabilityStore,
        payments: PaymentProcessor,
        reminders: ReminderScheduler,
        resolver: Optional[AvailabilityResolver] = None,
        refunds: Optional[RefundCalculator] = None,
        publisher: Optional[EventPublisher] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self.sessions = sessions
        self.availability = availability
        self.payments = payments
        self.reminders = reminders
        self.resolver = resolver or AvailabilityResolver(clock=self.clock)
        self.refunds = refunds or RefundCalculator()
        self.publisher = publisher or EventPublisher()

    # Reads

    def get_session(self, session_id: str) -> SupportSession:
        session = self.sessions.get_session(session_id)
        if session is None:
            raise NotFoundException(
                f"Session {session_id} not found", code="SESSION_NOT_FOUND"
            )
        return session

    def _availability_for(self, supporter_id: str) -> WeeklyAvailability:
        availability = self.availability.read_availability(supporter_id)
        if availability is None:
            return WeeklyAvailability.unconstrained(settings.default_timezone)
        return availability

    def _booked_intervals(
        self,
        supporter_id: str,
        start_utc: datetime,
        end_utc: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[tuple]:
        return [
            (session.scheduled_at_utc, session.end_at_utc)
            for session in self.sessions.list_active_sessions(supporter_id, start_utc, end_utc)
            if session.id != exclude_session_id
        ]

    def list_bookable_dates(self, supporter_id: str) -> List[date]:
        return self.resolver.list_bookable_dates(self._availability_for(supporter_id))

    def list_available_slots(
        self,
        supporter_id: str,
        day: date,
        session_type: SessionType,
        viewer_timezone: Optional[str] = None,
    ) -> List[TimeSlot]:
        """Advisory listing for one supporter-local date, minus already booked times."""
        availability = self._availability_for(supporter_id)
        slots = self.resolver.list_slots(
            day,
            availability,
            duration_for(session_type),
            now=self.clock.now(),
            viewer_timezone=viewer_timezone,
        )
        if not slots:
            return []
        booked = self._booked_intervals(supporter_id, slots[0].start_utc, slots[-1].end_utc)
        return [
            slot
            for slot in slots
            if not any(slot.overlaps(start, end) for start, end in booked)
        ]

    def slot_at(
        self, supporter_id: str, start_utc: datetime, duration_minutes: int
    ) -> Optional[TimeSlot]:
        """The supporter's slot starting at ``start_utc``, if their schedule offers it."""
        return self.resolver.find_slot(
            start_utc,
            self._availability_for(supporter_id),
            duration_minutes,
            now=self.clock.now(),
        )

    def _require_offered(
        self,
        supporter_id: str,
        slot: TimeSlot,
        duration_minutes: int,
        exclude_session_id: Optional[str] = None,
    ) -> None:
        availability = self._availability_for(supporter_id)
        booked = self._booked_intervals(
            supporter_id, slot.start_utc, slot.end_utc, exclude_session_id=exclude_session_id
        )
        offered = self.resolver.find_slot(
            slot.start_utc,
            availability,
            duration_minutes,
            now=self.clock.now(),
            booked=booked,
        )
        if offered is None or not offered.same_interval(slot):
            prometheus_metrics.record_booking_conflict("advisory")
            self.logger.info(
                f"Slot {slot.start_utc.isoformat()} no longer offered by supporter {supporter_id}"
            )
            raise SlotConflictException(
                details={
                    "supporter_id": supporter_id,
                    "slot_start_utc": slot.start_utc.isoformat(),
                }
            )

    # Booking

    @BaseService.measure_operation("request_booking")
    def request_booking(
        self,
        client_id: str,
        supporter_id: str,
        session_type: SessionType,
        slot: TimeSlot,
        payment_method_ref: str,
    ) -> SupportSession:
        """
        Book ``slot`` with a supporter and charge the client.

        Args:
            client_id: The client booking the session
            supporter_id: The supporter being booked
            session_type: chat, phone or video; fixes price and duration
            slot: A slot previously returned by ``list_available_slots``
            payment_method_ref: Processor reference of the client's payment method

        Returns:
            The confirmed session

        Raises:
            SlotConflictException: The slot is no longer offered or was just taken
            PaymentFailedException: The charge failed; nothing was created
        """
        session_type = SessionType(session_type)
        if client_id == supporter_id:
            raise ValidationException("Clients cannot book a session with themselves")

        duration = duration_for(session_type)
        price = price_for(session_type)

        # Phase 1: advisory re-check against the current listing
        self._require_offered(supporter_id, slot, duration)

        # Phase 2: charge
        charge = self.payments.charge(
            price,
            payment_method_ref,
            metadata={
                "client_id": client_id,
                "supporter_id": supporter_id,
                "session_type": session_type.value,
                "slot_start_utc": slot.start_utc.isoformat(),
            },
        )
        if not charge.success:
            self.logger.warning(
                f"Charge of {price} cents failed for client {client_id}: {charge.error}"
            )
            raise PaymentFailedException(
                charge.error, details={"client_id": client_id, "amount_cents": price}
            )

        # Phase 3: authoritative write
        session = SupportSession.request(
            client_id=client_id,
            supporter_id=supporter_id,
            session_type=session_type,
            scheduled_at_utc=slot.start_utc,
            duration_minutes=duration,
            price_cents=price,
            payment_ref=charge.charge_ref,
            created_at=self.clock.now(),
        ).confirm()
        try:
            session = self.sessions.create_session(session)
        except SessionWriteConflict as exc:
            prometheus_metrics.record_booking_conflict("write")
            self.logger.info(f"Write conflict booking supporter {supporter_id}: {exc}")
            self._compensate_charge(session.id, charge.charge_ref, price)
            raise SlotConflictException(
                details={
                    "supporter_id": supporter_id,
                    "slot_start_utc": slot.start_utc.isoformat(),
                }
            ) from exc
        except Exception as exc:
            self.logger.error(
                f"Failed to store session for supporter {supporter_id} after charging: {exc}",
                exc_info=True,
            )
            self._compensate_charge(session.id, charge.charge_ref, price)
            raise

        try:
            self.reminders.schedule(session)
        except Exception as exc:
            # Booking stands without reminders
            self.logger.error(
                f"Failed to schedule reminders for session {session.id}: {exc}", exc_info=True
            )

        self.publisher.publish(
            SessionBooked(
                session_id=session.id,
                client_id=client_id,
                supporter_id=supporter_id,
                session_type=session_type.value,
                scheduled_at_utc=session.scheduled_at_utc,
                price_cents=price,
            )
        )
        self.log_operation(
            "request_booking",
            session_id=session.id,
            client_id=client_id,
            supporter_id=supporter_id,
        )
        return session

    def submit_booking(self, request: BookingRequest) -> SupportSession:
        """Book from a validated request that names the slot by its UTC start."""
        slot = self.slot_at(
            request.supporter_id, request.slot_start_utc, duration_for(request.session_type)
        )
        if slot is None:
            prometheus_metrics.record_booking_conflict("advisory")
            raise SlotConflictException(
                details={
                    "supporter_id": request.supporter_id,
                    "slot_start_utc": request.slot_start_utc.isoformat(),
                }
            )
        return self.request_booking(
            request.client_id,
            request.supporter_id,
            request.session_type,
            slot,
            request.payment_method_ref,
        )

    def _compensate_charge(
        self, session_id: str, charge_ref: Optional[str], amount_cents: int
    ) -> None:
        """Give back a charge whose session could not be written."""
        if charge_ref is None:
            result_error: Optional[str] = "no charge reference"
        else:
            result_error = self._refund_error(charge_ref, amount_cents)
        if result_error is None:
            self.logger.info(f"Refunded {amount_cents} cents for unwritten session {session_id}")
            return
        prometheus_metrics.record_refund_failure("booking_compensation")
        self.logger.error(
            f"Compensating refund of {amount_cents} cents failed for {charge_ref}: {result_error}"
        )
        self.publisher.publish(
            RefundReconciliationRequired(
                session_id=session_id,
                charge_ref=charge_ref,
                amount_cents=amount_cents,
                context="booking_compensation",
                error=result_error,
            )
        )

    # Cancellation

    @BaseService.measure_operation("cancel_session")
    def cancel(
        self,
        session_id: str,
        actor: CancellationActor,
        reason: Optional[str] = None,
    ) -> CancellationResult:
        """
        Cancel a requested or confirmed session and refund per policy.

        Raises:
            NotFoundException: Unknown session
            InvalidTransitionException: The session is already completed or cancelled
        """
        actor = CancellationActor(actor)
        if actor == CancellationActor.NONE:
            raise ValidationException("A cancellation needs a client or supporter actor")

        # Phase 1: validate and price the refund
        session = self.get_session(session_id)
        ensure_transition(session.status, SessionStatus.CANCELLED, session.id)
        now = self.clock.now()
        quote = self.refunds.compute(
            session.price_cents,
            session.scheduled_at_utc,
            now,
            actor,
            session_type=session.session_type,
        )
        cancelled = session.cancel(
            actor=actor,
            at=now,
            reason=reason,
            refund_amount_cents=quote.amount_cents,
            refund_status=(
                RefundStatus.PENDING if quote.amount_cents > 0 else RefundStatus.NOT_REQUIRED
            ),
        )

        # Phase 2: claim the transition
        stored = self._conditional_update(
            session,
            SessionStatus.CANCELLED.value,
            {
                "status": cancelled.status,
                "cancelled_by": cancelled.cancelled_by,
                "cancellation_reason": cancelled.cancellation_reason,
                "refund_amount_cents": cancelled.refund_amount_cents,
                "refund_status": cancelled.refund_status,
                "cancelled_at": cancelled.cancelled_at,
            },
        )

        # Phase 3: money, reminders, notification. The status is already
        # claimed, so reminders and the notice go out whatever the refund does.
        refund_error: Optional[RefundIssuanceFailedException] = None
        reminders_cancelled = 0
        try:
            if quote.amount_cents > 0:
                stored, refund_error = self._issue_refund(stored, quote.amount_cents)
        finally:
            reminders_cancelled = self.reminders.cancel_all(session.id)
            message = cancellation_content(
                session_id=session.id,
                cancelled_by=actor.value,
                refund_amount_cents=quote.amount_cents,
            ).body
            self.publisher.publish(
                SessionCancelled(
                    session_id=session.id,
                    cancelled_by=actor.value,
                    notify_user_id=session.other_party(actor),
                    cancelled_at=now,
                    refund_amount_cents=quote.amount_cents,
                    reason=reason,
                    message=message,
                )
            )
        self.log_operation(
            "cancel_session",
            session_id=session.id,
            actor=actor.value,
            refund_cents=quote.amount_cents,
        )
        return CancellationResult(
            session=stored,
            refund=quote,
            refund_error=refund_error,
            reminders_cancelled=reminders_cancelled,
        )

    def submit_cancellation(self, request: CancellationRequest) -> CancellationResult:
        return self.cancel(request.session_id, request.actor, request.reason)

    def _issue_refund(
        self, session: SupportSession, amount_cents: int
    ) -> tuple[SupportSession, Optional[RefundIssuanceFailedException]]:
        if session.payment_ref is None:
            error: Optional[str] = "session has no charge reference"
        else:
            error = self._refund_error(session.payment_ref, amount_cents)

        if error is None:
            updated = self.sessions.update_session(
                session.id, {"refund_status": RefundStatus.ISSUED}
            )
            return updated or session, None

        failure = RefundIssuanceFailedException(session.id, amount_cents, error)
        prometheus_metrics.record_refund_failure("cancellation")
        self.logger.error(
            f"Refund of {amount_cents} cents failed for session {session.id}: {error}",
            extra={"session_id": session.id, "error_code": failure.code},
        )
        self.publisher.publish(
            RefundReconciliationRequired(
                session_id=session.id,
                charge_ref=session.payment_ref,
                amount_cents=amount_cents,
                context="cancellation",
                error=error,
            )
        )
        updated = self.sessions.update_session(session.id, {"refund_status": RefundStatus.FAILED})
        return updated or session, failure

    def _refund_error(self, charge_ref: str, amount_cents: int) -> Optional[str]:
        """Refund through the processor; the failure reason, or None once issued."""
        try:
            result = self.payments.refund(charge_ref, amount_cents)
        except Exception as exc:
            self.logger.error(
                f"Payment processor raised refunding {charge_ref}: {exc}", exc_info=True
            )
            return str(exc) or exc.__class__.__name__
        if result.success:
            return None
        return result.error or "refund failed"

    def _conditional_update(
        self, session: SupportSession, target: str, changes: Dict[str, Any]
    ) -> SupportSession:
        """Write ``changes`` only if the stored status is still ``session.status``."""
        try:
            stored = self.sessions.update_session(
                session.id, changes, expected_status=session.status
            )
        except StaleSessionUpdate as exc:
            raise InvalidTransitionException(session.id, exc.actual, target) from exc
        if stored is None:
            raise NotFoundException(f"Session {session.id} not found", code="SESSION_NOT_FOUND")
        return stored

    # Completion and rescheduling

    @BaseService.measure_operation("complete_session")
    def complete(self, session_id: str) -> SupportSession:
        session = self.get_session(session_id)
        now = self.clock.now()
        completed = session.complete(now)
        stored = self._conditional_update(
            session,
            SessionStatus.COMPLETED.value,
            {"status": completed.status, "completed_at": completed.completed_at},
        )
        self.reminders.cancel_all(session.id)
        self.publisher.publish(SessionCompleted(session_id=session.id, completed_at=now))
        return stored

    @BaseService.measure_operation("reschedule_session")
    def reschedule(self, session_id: str, new_slot: TimeSlot) -> SupportSession:
        """
        Move an active session to another offered slot.

        The session's own interval does not block the new slot, so it can
        shift by less than its duration.
        """
        session = self.get_session(session_id)
        if not session.is_active:
            raise InvalidTransitionException(session.id, session.status.value, "rescheduled")

        self._require_offered(
            session.supporter_id,
            new_slot,
            session.duration_minutes,
            exclude_session_id=session.id,
        )
        moved = session.moved_to(new_slot.start_utc)
        try:
            stored = self._conditional_update(
                session, "rescheduled", {"scheduled_at_utc": moved.scheduled_at_utc}
            )
        except SessionWriteConflict as exc:
            prometheus_metrics.record_booking_conflict("write")
            raise SlotConflictException(
                details={
                    "supporter_id": session.supporter_id,
                    "slot_start_utc": new_slot.start_utc.isoformat(),
                }
            ) from exc

        self.reminders.reschedule(stored)
        self.publisher.publish(
            SessionRescheduled(
                session_id=session.id,
                previous_start_utc=session.scheduled_at_utc,
                new_start_utc=stored.scheduled_at_utc,
            )
        )
        return stored
