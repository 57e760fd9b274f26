# psychi/schemas/booking.py
"""
Booking and cancellation request schemas.

These validate what a client app sends before it reaches the scheduler. The
slot is identified by its UTC start; the scheduler resolves it against the
freshly listed slots, so a stale client-side list can never smuggle in an
interval the supporter no longer offers.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field, field_validator

from ..core.constants import MAX_REASON_LENGTH
from ..core.enums import CancellationActor, SessionType
from ._strict_base import StrictRequestModel


class BookingRequest(StrictRequestModel):
    """Book one slot with a supporter."""

    client_id: str = Field(..., min_length=1, description="Client making the booking")
    supporter_id: str = Field(..., min_length=1, description="Supporter to book")
    session_type: SessionType = Field(..., description="chat, phone or video")
    slot_start_utc: datetime = Field(..., description="Start of the chosen slot")
    payment_method_ref: str = Field(
        ..., min_length=1, description="Processor reference for the client's payment method"
    )

    @field_validator("slot_start_utc")
    @classmethod
    def _normalize_start(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class CancellationRequest(StrictRequestModel):
    """Cancel a session on behalf of one of its participants."""

    session_id: str = Field(..., min_length=1)
    actor: CancellationActor = Field(..., description="client or supporter")
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)

    @field_validator("actor")
    @classmethod
    def _reject_none_actor(cls, value: CancellationActor) -> CancellationActor:
        if value == CancellationActor.NONE:
            raise ValueError("actor must be client or supporter")
        return value

    @field_validator("reason")
    @classmethod
    def _blank_reason_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None
