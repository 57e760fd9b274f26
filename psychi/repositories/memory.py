# psychi/repositories/memory.py
"""
In-memory store implementations.

Each store guards its state with a single lock so check-then-write sequences
(the overlap guard, conditional status updates) are atomic across threads.
"""

from __future__ import annotations

from dataclasses import fields, replace
from datetime import datetime
import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.enums import (
    AssignmentEndReason,
    AssignmentStatus,
    RescheduleRequestStatus,
    SessionStatus,
)
from ..core.exceptions import (
    RepositoryException,
    SessionWriteConflict,
    StaleRescheduleRequestUpdate,
    StaleSessionUpdate,
)
from ..core.ulid_helper import generate_ulid
from ..domain.availability import WeeklyAvailability
from ..domain.reschedule import RescheduleRequest
from ..domain.session import SupportSession
from ..domain.supporters import ClientAssignment, SupporterProfile
from .interfaces import (
    AssignmentStore,
    AvailabilityStore,
    RescheduleRequestStore,
    SessionStore,
    SupporterDirectory,
)

logger = logging.getLogger(__name__)

_SESSION_FIELDS = frozenset(f.name for f in fields(SupportSession)) - {"id"}


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, SupportSession] = {}
        self._lock = threading.Lock()

    def _find_overlap(
        self, candidate: SupportSession, exclude_id: Optional[str] = None
    ) -> Optional[SupportSession]:
        for existing in self._sessions.values():
            if existing.id == exclude_id or existing.supporter_id != candidate.supporter_id:
                continue
            if existing.is_active and existing.overlaps(
                candidate.scheduled_at_utc, candidate.end_at_utc
            ):
                return existing
        return None

    def create_session(self, session: SupportSession) -> SupportSession:
        with self._lock:
            if session.id in self._sessions:
                raise RepositoryException(f"Session {session.id} already exists")
            if session.is_active:
                clash = self._find_overlap(session)
                if clash is not None:
                    logger.info(
                        f"Rejected session for supporter {session.supporter_id}: "
                        f"overlaps {clash.id}"
                    )
                    raise SessionWriteConflict(
                        f"Supporter {session.supporter_id} already has session {clash.id} "
                        f"at {clash.scheduled_at_utc.isoformat()}"
                    )
            self._sessions[session.id] = session
            return session

    def get_session(self, session_id: str) -> Optional[SupportSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def update_session(
        self,
        session_id: str,
        changes: Mapping[str, Any],
        expected_status: Optional[SessionStatus] = None,
    ) -> Optional[SupportSession]:
        unknown = set(changes) - _SESSION_FIELDS
        if unknown:
            raise RepositoryException(f"Unknown session fields: {sorted(unknown)}")
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            if expected_status is not None and current.status != SessionStatus(expected_status):
                raise StaleSessionUpdate(
                    session_id, SessionStatus(expected_status).value, current.status.value
                )
            updated = replace(current, **dict(changes))
            if "scheduled_at_utc" in changes and updated.is_active:
                clash = self._find_overlap(updated, exclude_id=session_id)
                if clash is not None:
                    raise SessionWriteConflict(
                        f"Supporter {updated.supporter_id} already has session {clash.id}"
                    )
            self._sessions[session_id] = updated
            return updated

    def list_active_sessions(
        self, supporter_id: str, start_utc: datetime, end_utc: datetime
    ) -> List[SupportSession]:
        with self._lock:
            matches = [
                session
                for session in self._sessions.values()
                if session.supporter_id == supporter_id
                and session.is_active
                and session.overlaps(start_utc, end_utc)
            ]
        return sorted(matches, key=lambda session: session.scheduled_at_utc)

    def all_sessions(self) -> List[SupportSession]:
        with self._lock:
            return list(self._sessions.values())


class InMemoryAvailabilityStore(AvailabilityStore):
    def __init__(self, initial: Optional[Mapping[str, WeeklyAvailability]] = None) -> None:
        self._schedules: Dict[str, WeeklyAvailability] = dict(initial or {})
        self._lock = threading.Lock()

    def read_availability(self, supporter_id: str) -> Optional[WeeklyAvailability]:
        with self._lock:
            return self._schedules.get(supporter_id)

    def save_availability(self, supporter_id: str, availability: WeeklyAvailability) -> None:
        with self._lock:
            self._schedules[supporter_id] = availability


class InMemoryAssignmentStore(AssignmentStore):
    def __init__(self) -> None:
        self._assignments: Dict[str, ClientAssignment] = {}
        self._lock = threading.Lock()

    def get_active_assignment(self, client_id: str) -> Optional[ClientAssignment]:
        with self._lock:
            for assignment in self._assignments.values():
                if (
                    assignment.client_id == client_id
                    and assignment.status == AssignmentStatus.ACTIVE
                ):
                    return assignment
        return None

    def end_assignment(
        self, assignment_id: str, reason: AssignmentEndReason, ended_at: datetime
    ) -> Optional[ClientAssignment]:
        with self._lock:
            current = self._assignments.get(assignment_id)
            if current is None:
                return None
            ended = replace(
                current,
                status=AssignmentStatus.ENDED,
                ended_at=ended_at,
                end_reason=AssignmentEndReason(reason),
            )
            self._assignments[assignment_id] = ended
            return ended

    def create_assignment(
        self, client_id: str, supporter_id: str, started_at: datetime
    ) -> ClientAssignment:
        with self._lock:
            for assignment in self._assignments.values():
                if (
                    assignment.client_id == client_id
                    and assignment.status == AssignmentStatus.ACTIVE
                ):
                    raise RepositoryException(f"Client {client_id} already has an active supporter")
            assignment = ClientAssignment(
                id=generate_ulid(),
                client_id=client_id,
                supporter_id=supporter_id,
                started_at=started_at,
            )
            self._assignments[assignment.id] = assignment
            return assignment

    def reopen_assignment(self, assignment_id: str) -> Optional[ClientAssignment]:
        with self._lock:
            current = self._assignments.get(assignment_id)
            if current is None:
                return None
            reopened = replace(
                current, status=AssignmentStatus.ACTIVE, ended_at=None, end_reason=None
            )
            self._assignments[assignment_id] = reopened
            return reopened

    def history(self, client_id: str) -> List[ClientAssignment]:
        with self._lock:
            return [a for a in self._assignments.values() if a.client_id == client_id]


class InMemorySupporterDirectory(SupporterDirectory):
    def __init__(self, profiles: Iterable[SupporterProfile] = ()) -> None:
        self._profiles: Dict[str, SupporterProfile] = {p.id: p for p in profiles}
        self._lock = threading.Lock()

    def add(self, profile: SupporterProfile) -> None:
        with self._lock:
            self._profiles[profile.id] = profile

    def list_candidates(self) -> List[SupporterProfile]:
        with self._lock:
            return list(self._profiles.values())

    def get_supporter(self, supporter_id: str) -> Optional[SupporterProfile]:
        with self._lock:
            return self._profiles.get(supporter_id)


class InMemoryRescheduleRequestStore(RescheduleRequestStore):
    def __init__(self) -> None:
        self._requests: Dict[str, RescheduleRequest] = {}
        self._lock = threading.Lock()

    def create_request(self, request: RescheduleRequest) -> RescheduleRequest:
        with self._lock:
            for existing in self._requests.values():
                if existing.session_id == request.session_id and existing.status.is_open:
                    raise RepositoryException(
                        f"Session {request.session_id} already has pending request {existing.id}"
                    )
            self._requests[request.id] = request
            return request

    def get_request(self, request_id: str) -> Optional[RescheduleRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def get_pending_for_session(self, session_id: str) -> Optional[RescheduleRequest]:
        with self._lock:
            for request in self._requests.values():
                if request.session_id == session_id and request.status.is_open:
                    return request
        return None

    def update_request_status(
        self,
        request_id: str,
        status: RescheduleRequestStatus,
        responded_at: Optional[datetime],
        expected_status: RescheduleRequestStatus = RescheduleRequestStatus.PENDING,
    ) -> Optional[RescheduleRequest]:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                return None
            expected = RescheduleRequestStatus(expected_status)
            if current.status != expected:
                raise StaleRescheduleRequestUpdate(
                    request_id, expected.value, current.status.value
                )
            updated = replace(
                current, status=RescheduleRequestStatus(status), responded_at=responded_at
            )
            self._requests[request_id] = updated
            return updated

    def list_pending(
        self, client_id: Optional[str] = None, deadline_before: Optional[datetime] = None
    ) -> List[RescheduleRequest]:
        with self._lock:
            matches = [
                request
                for request in self._requests.values()
                if request.status.is_open
                and (client_id is None or request.client_id == client_id)
                and (deadline_before is None or request.response_deadline_utc < deadline_before)
            ]
        return sorted(matches, key=lambda request: request.response_deadline_utc)
