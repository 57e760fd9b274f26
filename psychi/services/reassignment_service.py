# psychi/services/reassignment_service.py
"""
Supporter reassignment.

A client asking for a new supporter gets the best-ranked candidate who can
actually be booked: verified, accepting clients, not the current supporter,
offering a session type the client wants, with at least one bookable date in
the horizon and, when the client named preferred times, weekly windows in
them. The search runs before anything is written, so an empty search leaves
the current assignment untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import List, Optional

from ..core.clock import Clock
from ..core.enums import AssignmentEndReason
from ..core.exceptions import NoMatchFoundException
from ..domain.supporters import ClientAssignment, SupporterProfile
from ..events.booking_events import SupporterReassigned
from ..events.publisher import EventPublisher
from ..repositories.interfaces import AssignmentStore, AvailabilityStore, SupporterDirectory
from ..schemas.preferences import ClientPreferences
from .availability_service import AvailabilityResolver
from .base import BaseService
from .matching_service import MatchingService, SupporterMatch, time_match_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReassignmentResult:
    assignment: ClientAssignment
    match: SupporterMatch
    previous_assignment: Optional[ClientAssignment] = None

    @property
    def supporter_id(self) -> str:
        return self.assignment.supporter_id


class SupporterReassignmentService(BaseService):
    def __init__(
        self,
        directory: SupporterDirectory,
        assignments: AssignmentStore,
        availability: Optional[AvailabilityStore] = None,
        resolver: Optional[AvailabilityResolver] = None,
        matching: Optional[MatchingService] = None,
        publisher: Optional[EventPublisher] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self.directory = directory
        self.assignments = assignments
        self.availability = availability
        self.resolver = resolver or AvailabilityResolver(clock=self.clock)
        self.matching = matching or MatchingService()
        self.publisher = publisher or EventPublisher()

    def _with_current_availability(self, supporter: SupporterProfile) -> SupporterProfile:
        """Prefer the stored schedule over the profile's copy when a store is wired."""
        if self.availability is None:
            return supporter
        stored = self.availability.read_availability(supporter.id)
        if stored is None:
            return supporter
        return SupporterProfile(
            id=supporter.id,
            availability=stored,
            full_name=supporter.full_name,
            specialties=supporter.specialties,
            session_types=supporter.session_types,
            approach=supporter.approach,
            is_available=supporter.is_available,
            accepting_clients=supporter.accepting_clients,
            is_verified=supporter.is_verified,
        )

    def eligible_candidates(
        self,
        preferences: ClientPreferences,
        exclude_supporter_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[SupporterProfile]:
        now = now or self.clock.now()
        wanted_types = set(preferences.preferred_session_types)
        eligible = []
        for supporter in self.directory.list_candidates():
            if supporter.id == exclude_supporter_id or not supporter.is_matchable:
                continue
            if wanted_types and not wanted_types & set(supporter.session_types):
                continue
            supporter = self._with_current_availability(supporter)
            if not self.resolver.list_bookable_dates(supporter.availability, now=now):
                continue
            if (
                preferences.preferred_times
                and not supporter.availability.is_unconstrained
                and time_match_score(preferences.preferred_times, supporter.availability) == 0
            ):
                continue
            eligible.append(supporter)
        return eligible

    @BaseService.measure_operation("reassign_supporter")
    def reassign(
        self,
        client_id: str,
        preferences: ClientPreferences,
        current_supporter_id: Optional[str] = None,
    ) -> ReassignmentResult:
        """
        Move a client to the best available other supporter.

        Raises:
            NoMatchFoundException: No candidate passed the filters; nothing changed
        """
        current = self.assignments.get_active_assignment(client_id)
        exclude = current_supporter_id or (current.supporter_id if current else None)

        candidates = self.eligible_candidates(preferences, exclude_supporter_id=exclude)
        ranked = self.matching.rank(preferences, candidates)
        if not ranked:
            self.logger.info(f"No reassignment candidates for client {client_id}")
            raise NoMatchFoundException(client_id, details={"excluded_supporter_id": exclude})
        best = ranked[0]

        now = self.clock.now()
        ended: Optional[ClientAssignment] = None
        if current is not None:
            ended = self.assignments.end_assignment(
                current.id, AssignmentEndReason.CLIENT_REQUESTED, now
            )
        try:
            assignment = self.assignments.create_assignment(client_id, best.supporter_id, now)
        except Exception:
            if ended is not None:
                self.logger.error(
                    f"Could not assign client {client_id} to {best.supporter_id}; "
                    f"restoring assignment {ended.id}"
                )
                self.assignments.reopen_assignment(ended.id)
            raise

        self.publisher.publish(
            SupporterReassigned(
                client_id=client_id,
                previous_supporter_id=current.supporter_id if current else current_supporter_id,
                new_supporter_id=best.supporter_id,
                match_score=best.score,
                reassigned_at=now,
            )
        )
        self.log_operation(
            "reassign_supporter",
            client_id=client_id,
            supporter_id=best.supporter_id,
            score=best.score,
        )
        return ReassignmentResult(assignment=assignment, match=best, previous_assignment=ended)
