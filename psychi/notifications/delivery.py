"""
Reminder delivery backends.

The reminder scheduler decides which reminders exist; a delivery backend
arranges for each one to fire at its instant and can revoke it before then.
Handles are unique per scheduling call, so a reminder that is cancelled and
scheduled again never reuses a revoked handle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
import logging
import threading
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import generate_ulid

logger = logging.getLogger(__name__)


class ReminderDelivery(ABC):
    @abstractmethod
    def schedule_fire(self, reminder_id: str, at_utc: datetime, payload: Dict[str, Any]) -> str:
        """Arrange for ``payload`` to be delivered at ``at_utc``; return a cancel handle."""

    @abstractmethod
    def cancel(self, handle: str) -> None:
        """Revoke a scheduled delivery. Unknown or already-fired handles are ignored."""


@dataclass
class ScheduledFire:
    handle: str
    reminder_id: str
    at_utc: datetime
    payload: Dict[str, Any]


class InMemoryReminderDelivery(ReminderDelivery):
    """Keeps scheduled fires in a dict; ``due`` pops what a clock says is ready."""

    def __init__(self) -> None:
        self._scheduled: Dict[str, ScheduledFire] = {}
        self._lock = threading.Lock()

    def schedule_fire(self, reminder_id: str, at_utc: datetime, payload: Dict[str, Any]) -> str:
        handle = f"{reminder_id}:{generate_ulid()}"
        with self._lock:
            self._scheduled[handle] = ScheduledFire(
                handle, reminder_id, ensure_utc(at_utc), payload
            )
        return handle

    def cancel(self, handle: str) -> None:
        with self._lock:
            self._scheduled.pop(handle, None)

    @property
    def scheduled(self) -> List[ScheduledFire]:
        with self._lock:
            return sorted(self._scheduled.values(), key=lambda fire: fire.at_utc)

    def due(self, now: datetime) -> List[ScheduledFire]:
        now = ensure_utc(now)
        with self._lock:
            ready = [fire for fire in self._scheduled.values() if fire.at_utc <= now]
            for fire in ready:
                del self._scheduled[fire.handle]
        return sorted(ready, key=lambda fire: fire.at_utc)


class CeleryReminderDelivery(ReminderDelivery):
    """Schedules reminders as Celery tasks with an ETA and revokes them on cancel."""

    def __init__(self, task: Any = None, app: Any = None, queue: Optional[str] = None) -> None:
        if task is None:
            from ..tasks.reminder_tasks import deliver_session_reminder

            task = deliver_session_reminder
        if app is None:
            from ..tasks.celery_app import celery_app

            app = celery_app
        self.task = task
        self.app = app
        self.queue = queue or settings.reminder_queue

    def schedule_fire(self, reminder_id: str, at_utc: datetime, payload: Dict[str, Any]) -> str:
        handle = f"{reminder_id}:{generate_ulid()}"
        self.task.apply_async(
            args=[payload], eta=ensure_utc(at_utc), task_id=handle, queue=self.queue
        )
        logger.debug(f"Queued reminder {reminder_id} for {at_utc.isoformat()} as {handle}")
        return handle

    def cancel(self, handle: str) -> None:
        self.app.control.revoke(handle)
        logger.debug(f"Revoked reminder task {handle}")
