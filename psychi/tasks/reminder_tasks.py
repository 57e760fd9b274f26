# psychi/tasks/reminder_tasks.py
"""Reminder delivery task."""

import logging
from typing import Any, Dict, List

from ..notifications.templates import reminder_content
from .celery_app import celery_app

logger = logging.getLogger(__name__)


def build_reminder_notifications(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One notification per participant, each naming the other side."""
    names = payload.get("names") or {}
    recipients = (
        (payload["client_id"], names.get(payload["supporter_id"], "your supporter")),
        (payload["supporter_id"], names.get(payload["client_id"], "your client")),
    )
    notifications = []
    for recipient_id, other_party_name in recipients:
        content = reminder_content(
            session_id=payload["session_id"],
            session_type=payload["session_type"],
            other_party_name=other_party_name,
            offset_minutes=int(payload["offset_minutes"]),
        )
        notifications.append({"user_id": recipient_id, **content.to_dict()})
    return notifications


@celery_app.task(name="psychi.tasks.reminder_tasks.deliver_session_reminder")  # type: ignore[misc]
def deliver_session_reminder(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Render and hand off a session reminder for both participants."""
    notifications = build_reminder_notifications(payload)
    for notification in notifications:
        logger.info(
            f"Reminder for session {payload['session_id']} to {notification['user_id']}: "
            f"{notification['body']}",
            extra={
                "session_id": payload["session_id"],
                "offset_minutes": payload["offset_minutes"],
            },
        )
    return notifications
