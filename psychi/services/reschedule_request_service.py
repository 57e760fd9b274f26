# psychi/services/reschedule_request_service.py
"""
Reschedule Request Service.

A supporter who cannot make a booked session proposes a new start time. The
client answers before the response deadline (``reschedule_response_hours``
before the original start):

    pending -> accepted        session moves to the proposed time
    pending -> declined        session keeps its original time
    pending -> auto_cancelled  deadline passed unanswered; the session is
                               cancelled as a supporter cancellation (full refund)
    pending -> expired         deadline passed but the session had already ended

Every status change is a conditional write on ``pending``, so an answer and
the expiry sweep racing on the same request cannot both win.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import List, Optional

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import CancellationActor, RescheduleRequestStatus
from ..core.exceptions import (
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
    RescheduleDeadlinePassedException,
    RescheduleRequestClosedException,
    SlotConflictException,
    StaleRescheduleRequestUpdate,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..domain.availability import TimeSlot
from ..domain.reschedule import RescheduleRequest
from ..domain.session import SupportSession
from ..events.booking_events import RescheduleRequested, RescheduleRequestResolved
from ..events.publisher import EventPublisher
from ..repositories.interfaces import RescheduleRequestStore
from .base import BaseService
from .booking_scheduler import BookingScheduler

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "Reschedule request was not answered before the response deadline"


@dataclass(frozen=True)
class ExpirySweepResult:
    processed: int
    cancelled_session_ids: List[str] = field(default_factory=list)


class RescheduleRequestService(BaseService):
    """Supporter-initiated reschedule requests on top of ``BookingScheduler``."""

    def __init__(
        self,
        scheduler: BookingScheduler,
        requests: RescheduleRequestStore,
        publisher: Optional[EventPublisher] = None,
        clock: Optional[Clock] = None,
        response_hours: Optional[float] = None,
    ) -> None:
        super().__init__(clock or scheduler.clock)
        self.scheduler = scheduler
        self.requests = requests
        self.publisher = publisher or scheduler.publisher
        self.response_hours = (
            settings.reschedule_response_hours if response_hours is None else response_hours
        )

    def get_request(self, request_id: str) -> RescheduleRequest:
        request = self.requests.get_request(request_id)
        if request is None:
            raise NotFoundException(
                f"Reschedule request {request_id} not found", code="RESCHEDULE_REQUEST_NOT_FOUND"
            )
        return request

    def pending_for_client(self, client_id: str) -> List[RescheduleRequest]:
        """Requests waiting on the client, most urgent first."""
        return self.requests.list_pending(client_id=client_id)

    @BaseService.measure_operation("request_reschedule")
    def request_reschedule(
        self,
        session_id: str,
        supporter_id: str,
        proposed_start_utc: datetime,
        reason: Optional[str] = None,
    ) -> RescheduleRequest:
        """
        Ask the client to move a session to ``proposed_start_utc``.

        Raises:
            ValidationException: The caller is not the session's supporter, or
                the proposed time is the current one
            InvalidTransitionException: The session is completed or cancelled
            RescheduleDeadlinePassedException: Too close to the session to ask
            ConflictException: A request for this session is already pending
            SlotConflictException: The supporter's schedule does not offer the new time
        """
        session = self.scheduler.get_session(session_id)
        if session.supporter_id != supporter_id:
            raise ValidationException("Only the session's supporter can ask to reschedule it")
        if not session.is_active:
            raise InvalidTransitionException(session.id, session.status.value, "rescheduled")
        proposed_start_utc = ensure_utc(proposed_start_utc)
        if proposed_start_utc == session.scheduled_at_utc:
            raise ValidationException("The proposed time is the session's current time")

        now = self.clock.now()
        request = RescheduleRequest.open(
            session_id=session.id,
            supporter_id=session.supporter_id,
            client_id=session.client_id,
            original_start_utc=session.scheduled_at_utc,
            proposed_start_utc=proposed_start_utc,
            hours_before=self.response_hours,
            reason=(reason or "").strip() or None,
            created_at=now,
        )
        if request.is_expired(now):
            raise RescheduleDeadlinePassedException(
                session.id, request.response_deadline_utc.isoformat()
            )
        if self.requests.get_pending_for_session(session.id) is not None:
            raise ConflictException(
                "This session already has a pending reschedule request",
                code="RESCHEDULE_REQUEST_PENDING",
                details={"session_id": session.id},
            )
        self._proposed_slot(session, request)

        stored = self.requests.create_request(request)
        self.publisher.publish(
            RescheduleRequested(
                request_id=stored.id,
                session_id=session.id,
                notify_user_id=session.client_id,
                original_start_utc=stored.original_start_utc,
                proposed_start_utc=stored.proposed_start_utc,
                response_deadline_utc=stored.response_deadline_utc,
                reason=stored.reason,
            )
        )
        self.log_operation("request_reschedule", session_id=session.id, request_id=stored.id)
        return stored

    @BaseService.measure_operation("accept_reschedule")
    def accept(self, request_id: str) -> SupportSession:
        """
        Move the session to the proposed time.

        The request is claimed first and put back to pending if the move
        fails, so the client can still decline or let it expire.
        """
        request = self._open_request(request_id)
        now = self.clock.now()
        session = self.scheduler.get_session(request.session_id)
        if not session.is_active:
            self._close(request, RescheduleRequestStatus.EXPIRED, now)
            raise InvalidTransitionException(session.id, session.status.value, "rescheduled")

        slot = self._proposed_slot(session, request)
        self._claim(request, RescheduleRequestStatus.ACCEPTED, now)
        try:
            moved = self.scheduler.reschedule(session.id, slot)
        except Exception:
            self.logger.info(f"Could not move session {session.id}; request {request.id} reopened")
            self.requests.update_request_status(
                request.id,
                RescheduleRequestStatus.PENDING,
                None,
                expected_status=RescheduleRequestStatus.ACCEPTED,
            )
            raise
        self._announce(request, RescheduleRequestStatus.ACCEPTED, request.supporter_id, now)
        return moved

    @BaseService.measure_operation("decline_reschedule")
    def decline(self, request_id: str) -> RescheduleRequest:
        """Keep the original time."""
        request = self._open_request(request_id)
        now = self.clock.now()
        declined = self._claim(request, RescheduleRequestStatus.DECLINED, now)
        self._announce(request, RescheduleRequestStatus.DECLINED, request.supporter_id, now)
        return declined

    @BaseService.measure_operation("expire_reschedule_requests")
    def process_expired(self, client_id: Optional[str] = None) -> ExpirySweepResult:
        """
        Close every pending request whose deadline has passed.

        Sessions still active are cancelled by the supporter, which refunds
        the client in full; requests on sessions that already ended are only
        marked expired. Meant to run periodically.
        """
        now = self.clock.now()
        overdue = self.requests.list_pending(client_id=client_id, deadline_before=now)
        cancelled: List[str] = []
        for request in overdue:
            session = self.scheduler.sessions.get_session(request.session_id)
            outcome = (
                RescheduleRequestStatus.AUTO_CANCELLED
                if session is not None and session.is_active
                else RescheduleRequestStatus.EXPIRED
            )
            try:
                self.requests.update_request_status(request.id, outcome, now)
            except StaleRescheduleRequestUpdate:
                self.logger.info(f"Reschedule request {request.id} was answered during the sweep")
                continue

            if outcome == RescheduleRequestStatus.AUTO_CANCELLED:
                try:
                    self.scheduler.cancel(
                        request.session_id, CancellationActor.SUPPORTER, reason=AUTO_CANCEL_REASON
                    )
                except InvalidTransitionException:
                    # Completed or cancelled since it was read
                    outcome = RescheduleRequestStatus.EXPIRED
                    self.requests.update_request_status(
                        request.id,
                        outcome,
                        now,
                        expected_status=RescheduleRequestStatus.AUTO_CANCELLED,
                    )
                except Exception:
                    self.requests.update_request_status(
                        request.id,
                        RescheduleRequestStatus.PENDING,
                        None,
                        expected_status=RescheduleRequestStatus.AUTO_CANCELLED,
                    )
                    raise
                else:
                    cancelled.append(request.session_id)

            self._announce(request, outcome, request.client_id, now)

        if overdue:
            self.logger.info(
                f"Expired {len(overdue)} reschedule requests, cancelled {len(cancelled)} sessions"
            )
        return ExpirySweepResult(processed=len(overdue), cancelled_session_ids=cancelled)

    def _open_request(self, request_id: str) -> RescheduleRequest:
        request = self.get_request(request_id)
        if not request.status.is_open:
            raise RescheduleRequestClosedException(request.id, request.status.value)
        if request.is_expired(self.clock.now()):
            raise RescheduleDeadlinePassedException(
                request.session_id, request.response_deadline_utc.isoformat()
            )
        return request

    def _proposed_slot(self, session: SupportSession, request: RescheduleRequest) -> TimeSlot:
        slot = self.scheduler.slot_at(
            session.supporter_id, request.proposed_start_utc, session.duration_minutes
        )
        if slot is None:
            raise SlotConflictException(
                details={
                    "supporter_id": session.supporter_id,
                    "slot_start_utc": request.proposed_start_utc.isoformat(),
                }
            )
        return slot

    def _claim(
        self, request: RescheduleRequest, status: RescheduleRequestStatus, now: datetime
    ) -> RescheduleRequest:
        resolved = request.resolve(status, now)
        try:
            stored = self.requests.update_request_status(request.id, status, now)
        except StaleRescheduleRequestUpdate as exc:
            raise RescheduleRequestClosedException(request.id, exc.actual) from exc
        return stored or resolved

    def _close(
        self, request: RescheduleRequest, status: RescheduleRequestStatus, now: datetime
    ) -> None:
        try:
            self.requests.update_request_status(request.id, status, now)
        except StaleRescheduleRequestUpdate:
            return
        self._announce(request, status, request.client_id, now)

    def _announce(
        self,
        request: RescheduleRequest,
        status: RescheduleRequestStatus,
        notify_user_id: str,
        now: datetime,
    ) -> None:
        self.publisher.publish(
            RescheduleRequestResolved(
                request_id=request.id,
                session_id=request.session_id,
                status=status.value,
                notify_user_id=notify_user_id,
                resolved_at=now,
            )
        )
        self.log_operation(
            "resolve_reschedule_request", request_id=request.id, status=status.value
        )
