# psychi/services/refund_calculator.py
"""
Tiered refund computation.

A supporter cancelling always refunds the client in full. A client
cancelling is refunded by how far ahead of the session they cancel:

    hours >= full_refund_hours                     -> 100%
    no_refund_hours <= hours < full_refund_hours   -> partial (50% by default)
    hours < no_refund_hours                        -> 0%

Sessions that already started have negative hours and fall into the last
tier. Everything here is pure: no clock, no store, no processor.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Mapping, Optional

from ..core.config import settings
from ..core.enums import CancellationActor, SessionType
from ..core.exceptions import ValidationException
from ..core.timezone_utils import ensure_utc


@dataclass(frozen=True)
class RefundPolicy:
    full_refund_hours: float = 24.0
    no_refund_hours: float = 2.0
    partial_percentage: int = 50

    def __post_init__(self) -> None:
        if self.no_refund_hours < 0 or self.no_refund_hours >= self.full_refund_hours:
            raise ValidationException(
                "Refund policy needs 0 <= no_refund_hours < full_refund_hours",
                details={
                    "full_refund_hours": self.full_refund_hours,
                    "no_refund_hours": self.no_refund_hours,
                },
            )
        if not 0 <= self.partial_percentage <= 100:
            raise ValidationException("Partial refund percentage must be between 0 and 100")

    @classmethod
    def from_settings(cls) -> "RefundPolicy":
        return cls(
            full_refund_hours=settings.full_refund_hours,
            no_refund_hours=settings.no_refund_hours,
            partial_percentage=settings.partial_refund_percentage,
        )


@dataclass(frozen=True)
class RefundQuote:
    percentage: int
    amount_cents: int
    reason: str
    hours_until_session: float

    def to_payload(self) -> dict[str, object]:
        return {
            "percentage": int(self.percentage),
            "amount_cents": int(self.amount_cents),
            "reason": self.reason,
            "hours_until_session": round(self.hours_until_session, 2),
        }


def _hours_label(hours: float) -> str:
    return f"{hours:g}"


def _apply_percentage(price_cents: int, percentage: int) -> int:
    amount = Decimal(price_cents) * Decimal(percentage) / Decimal(100)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_refund(
    price_cents: int,
    scheduled_at_utc: datetime,
    now_utc: datetime,
    cancelled_by: CancellationActor,
    policy: Optional[RefundPolicy] = None,
) -> RefundQuote:
    """Quote the refund for cancelling a session at ``now_utc``."""
    policy = policy or RefundPolicy.from_settings()
    actor = CancellationActor(cancelled_by)
    if actor == CancellationActor.NONE:
        raise ValidationException("Refunds are only computed for client or supporter cancellations")
    if price_cents < 0:
        raise ValidationException("Session price cannot be negative")

    hours_until = (ensure_utc(scheduled_at_utc) - ensure_utc(now_utc)).total_seconds() / 3600

    if actor == CancellationActor.SUPPORTER:
        return RefundQuote(100, price_cents, "Full refund - cancelled by supporter", hours_until)

    if hours_until >= policy.full_refund_hours:
        percentage = 100
        reason = (
            f"Full refund - cancelled {_hours_label(policy.full_refund_hours)}+ hours "
            "before session"
        )
    elif hours_until >= policy.no_refund_hours:
        percentage = policy.partial_percentage
        reason = (
            f"Partial refund ({percentage}%) - cancelled within "
            f"{_hours_label(policy.full_refund_hours)} hours of session"
        )
    else:
        percentage = 0
        reason = (
            f"No refund - cancelled within {_hours_label(policy.no_refund_hours)} hours "
            "of session"
        )

    return RefundQuote(percentage, _apply_percentage(price_cents, percentage), reason, hours_until)


class RefundCalculator:
    """
    Refund computation with an injectable policy.

    ``overrides`` maps a session type to its own policy; types without an
    override use the default policy.
    """

    def __init__(
        self,
        policy: Optional[RefundPolicy] = None,
        overrides: Optional[Mapping[SessionType, RefundPolicy]] = None,
    ) -> None:
        self.policy = policy or RefundPolicy.from_settings()
        self._overrides: Dict[SessionType, RefundPolicy] = {
            SessionType(key): value for key, value in (overrides or {}).items()
        }

    def policy_for(self, session_type: Optional[SessionType] = None) -> RefundPolicy:
        if session_type is None:
            return self.policy
        return self._overrides.get(SessionType(session_type), self.policy)

    def compute(
        self,
        price_cents: int,
        scheduled_at_utc: datetime,
        now_utc: datetime,
        cancelled_by: CancellationActor,
        session_type: Optional[SessionType] = None,
    ) -> RefundQuote:
        return compute_refund(
            price_cents,
            scheduled_at_utc,
            now_utc,
            cancelled_by,
            policy=self.policy_for(session_type),
        )
