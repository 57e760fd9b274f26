# psychi/repositories/interfaces.py
"""
Storage ports used by the services.

Services depend only on these interfaces. ``memory`` provides thread-safe
in-process implementations; the SQL repositories persist through SQLAlchemy.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Mapping, Optional

from ..core.enums import AssignmentEndReason, RescheduleRequestStatus, SessionStatus
from ..domain.availability import WeeklyAvailability
from ..domain.reschedule import RescheduleRequest
from ..domain.session import SupportSession
from ..domain.supporters import ClientAssignment, SupporterProfile


class SessionStore(ABC):
    """Durable session records with an atomic double-booking guard."""

    @abstractmethod
    def create_session(self, session: SupportSession) -> SupportSession:
        """
        Persist a new session.

        Raises:
            SessionWriteConflict: If the supporter already has an active session
                overlapping ``session``'s interval
        """

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[SupportSession]:
        """Return the session or None."""

    @abstractmethod
    def update_session(
        self,
        session_id: str,
        changes: Mapping[str, Any],
        expected_status: Optional[SessionStatus] = None,
    ) -> Optional[SupportSession]:
        """
        Apply ``changes`` to a session.

        When ``expected_status`` is given the write only happens if the stored
        status still matches; otherwise ``StaleSessionUpdate`` is raised. A
        change to ``scheduled_at_utc`` is checked against the supporter's
        other active sessions and raises ``SessionWriteConflict`` on overlap.

        Returns:
            The updated session, or None if it does not exist
        """

    @abstractmethod
    def list_active_sessions(
        self, supporter_id: str, start_utc: datetime, end_utc: datetime
    ) -> List[SupportSession]:
        """Active sessions of a supporter overlapping ``[start_utc, end_utc)``."""


class RescheduleRequestStore(ABC):
    """Reschedule requests; at most one pending request per session."""

    @abstractmethod
    def create_request(self, request: RescheduleRequest) -> RescheduleRequest:
        """
        Persist a new request.

        Raises:
            RepositoryException: If the session already has a pending request
        """

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[RescheduleRequest]:
        pass

    @abstractmethod
    def get_pending_for_session(self, session_id: str) -> Optional[RescheduleRequest]:
        pass

    @abstractmethod
    def update_request_status(
        self,
        request_id: str,
        status: RescheduleRequestStatus,
        responded_at: Optional[datetime],
        expected_status: RescheduleRequestStatus = RescheduleRequestStatus.PENDING,
    ) -> Optional[RescheduleRequest]:
        """
        Set the request's status if it is still ``expected_status``.

        Raises:
            StaleRescheduleRequestUpdate: The stored status no longer matches

        Returns:
            The updated request, or None if it does not exist
        """

    @abstractmethod
    def list_pending(
        self, client_id: Optional[str] = None, deadline_before: Optional[datetime] = None
    ) -> List[RescheduleRequest]:
        """Pending requests, soonest deadline first, optionally past ``deadline_before``."""


class AvailabilityStore(ABC):
    @abstractmethod
    def read_availability(self, supporter_id: str) -> Optional[WeeklyAvailability]:
        """Return the supporter's current weekly schedule, or None if never saved."""

    @abstractmethod
    def save_availability(self, supporter_id: str, availability: WeeklyAvailability) -> None:
        """Replace the supporter's weekly schedule in one write."""


class AssignmentStore(ABC):
    @abstractmethod
    def get_active_assignment(self, client_id: str) -> Optional[ClientAssignment]:
        pass

    @abstractmethod
    def end_assignment(
        self, assignment_id: str, reason: AssignmentEndReason, ended_at: datetime
    ) -> Optional[ClientAssignment]:
        pass

    @abstractmethod
    def create_assignment(
        self, client_id: str, supporter_id: str, started_at: datetime
    ) -> ClientAssignment:
        pass

    @abstractmethod
    def reopen_assignment(self, assignment_id: str) -> Optional[ClientAssignment]:
        """Make an ended assignment active again, clearing its end fields."""


class SupporterDirectory(ABC):
    @abstractmethod
    def list_candidates(self) -> List[SupporterProfile]:
        """Every supporter profile known to the directory."""

    @abstractmethod
    def get_supporter(self, supporter_id: str) -> Optional[SupporterProfile]:
        pass
