"""
Supporter-initiated reschedule requests.

A supporter proposes a new start time for a booked session and the client
answers before the response deadline, a fixed number of hours before the
original start. Accepting moves the session; declining keeps the original
time. A request left pending past its deadline is swept up and the session is
cancelled on the supporter's behalf, which refunds the client in full.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from ..core.enums import RescheduleRequestStatus
from ..core.exceptions import RescheduleRequestClosedException
from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import generate_ulid


def response_deadline_for(original_start_utc: datetime, hours_before: float) -> datetime:
    return ensure_utc(original_start_utc) - timedelta(hours=hours_before)


@dataclass(frozen=True)
class RescheduleRequest:
    id: str
    session_id: str
    supporter_id: str
    client_id: str
    original_start_utc: datetime
    proposed_start_utc: datetime
    response_deadline_utc: datetime
    status: RescheduleRequestStatus = RescheduleRequestStatus.PENDING
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "original_start_utc", ensure_utc(self.original_start_utc))
        object.__setattr__(self, "proposed_start_utc", ensure_utc(self.proposed_start_utc))
        object.__setattr__(
            self, "response_deadline_utc", ensure_utc(self.response_deadline_utc)
        )
        object.__setattr__(self, "status", RescheduleRequestStatus(self.status))

    @classmethod
    def open(
        cls,
        *,
        session_id: str,
        supporter_id: str,
        client_id: str,
        original_start_utc: datetime,
        proposed_start_utc: datetime,
        hours_before: float,
        reason: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "RescheduleRequest":
        return cls(
            id=generate_ulid(),
            session_id=session_id,
            supporter_id=supporter_id,
            client_id=client_id,
            original_start_utc=original_start_utc,
            proposed_start_utc=proposed_start_utc,
            response_deadline_utc=response_deadline_for(original_start_utc, hours_before),
            reason=reason,
            created_at=created_at,
        )

    def is_expired(self, now: datetime) -> bool:
        """Past the deadline; a response exactly at the deadline still counts."""
        return ensure_utc(now) > self.response_deadline_utc

    def resolve(self, status: RescheduleRequestStatus, at: datetime) -> "RescheduleRequest":
        """Close a pending request with ``status``."""
        status = RescheduleRequestStatus(status)
        if not self.status.is_open:
            raise RescheduleRequestClosedException(self.id, self.status.value)
        if status.is_open:
            raise ValueError("A reschedule request can only be resolved to a closed status")
        return replace(self, status=status, responded_at=ensure_utc(at))
