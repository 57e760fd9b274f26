"""Supporter directory entries and client-supporter assignments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional, Tuple

from ..core.enums import AssignmentEndReason, AssignmentStatus, SessionType
from .availability import WeeklyAvailability


@dataclass(frozen=True)
class SupporterProfile:
    """What matching needs to know about a supporter."""

    id: str
    availability: WeeklyAvailability
    full_name: str = ""
    specialties: Tuple[str, ...] = ()
    session_types: FrozenSet[SessionType] = field(
        default_factory=lambda: frozenset(SessionType)
    )
    approach: str = ""
    is_available: bool = False
    accepting_clients: bool = True
    is_verified: bool = False

    @property
    def is_matchable(self) -> bool:
        return self.accepting_clients and self.is_verified


@dataclass(frozen=True)
class ClientAssignment:
    id: str
    client_id: str
    supporter_id: str
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[AssignmentEndReason] = None
