"""
Notification content for session reminders and cancellations.

Delivery channels (push, email, in-app) render these payloads; the engine only
decides what to say and when.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

from ..core.enums import SessionType


@dataclass(frozen=True)
class NotificationContent:
    title: str
    body: str
    notification_type: str
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_time_until(minutes: int) -> str:
    """Human phrase for a lead time: ``15 minutes``, ``1 hour``, ``2 days``."""
    if minutes < 60:
        return f"{minutes} minutes"
    if minutes < 1440:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    days = minutes // 1440
    return "1 day" if days == 1 else f"{days} days"


def reminder_content(
    *,
    session_id: str,
    session_type: SessionType,
    other_party_name: str,
    offset_minutes: int,
) -> NotificationContent:
    return NotificationContent(
        title="Session Starting Soon",
        body=(
            f"Your {SessionType(session_type).value} session with {other_party_name} "
            f"starts in {format_time_until(offset_minutes)}"
        ),
        notification_type="session_reminder",
        data={"session_id": session_id, "offset_minutes": offset_minutes},
    )


def cancellation_content(
    *, session_id: str, cancelled_by: str, refund_amount_cents: int
) -> NotificationContent:
    body = f"Your session was cancelled by the {cancelled_by}."
    if refund_amount_cents > 0:
        body += f" A refund of ${refund_amount_cents / 100:.2f} is on its way."
    return NotificationContent(
        title="Session Cancelled",
        body=body,
        notification_type="session_cancelled",
        data={"session_id": session_id, "refund_amount_cents": refund_amount_cents},
    )
