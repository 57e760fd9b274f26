# psychi/services/reminder_scheduler.py
"""
Reminder Scheduler for the booking engine.

Each session gets one reminder per configured offset (15 minutes, 1 hour and
1 day before by default). Reminders are addressed by ``(session_id,
offset)``, so cancelling one session never touches another session's
reminders. A session's reminders are replaced as a whole: ``reschedule``
cancels everything before scheduling again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import threading
from typing import Any, Dict, List, Optional, Sequence

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import ValidationException
from ..domain.session import SupportSession
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..notifications.delivery import ReminderDelivery
from .base import BaseService


@dataclass(frozen=True)
class ReminderHandle:
    reminder_id: str
    session_id: str
    offset_minutes: int
    fire_at_utc: datetime
    delivery_handle: str


def reminder_id_for(session_id: str, offset_minutes: int) -> str:
    return f"{session_id}:{offset_minutes}"


class ReminderScheduler(BaseService):
    def __init__(
        self,
        delivery: ReminderDelivery,
        offsets_minutes: Optional[Sequence[int]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        offsets = settings.reminder_offsets_minutes if offsets_minutes is None else offsets_minutes
        if any(offset <= 0 for offset in offsets):
            raise ValidationException("Reminder offsets must be positive")
        self.offsets_minutes = tuple(sorted(set(offsets)))
        self.delivery = delivery
        self._pending: Dict[str, Dict[int, ReminderHandle]] = {}
        self._lock = threading.Lock()

    def _payload(
        self, session: SupportSession, offset: int, fire_at: datetime, names: Dict[str, str]
    ) -> Dict[str, Any]:
        return {
            "session_id": session.id,
            "session_type": session.session_type.value,
            "client_id": session.client_id,
            "supporter_id": session.supporter_id,
            "scheduled_at_utc": session.scheduled_at_utc.isoformat(),
            "offset_minutes": offset,
            "fire_at_utc": fire_at.isoformat(),
            "names": names,
        }

    @BaseService.measure_operation("schedule_reminders")
    def schedule(
        self, session: SupportSession, names: Optional[Dict[str, str]] = None
    ) -> List[ReminderHandle]:
        """
        Schedule every reminder whose fire time is still in the future.

        Raises:
            ValidationException: If the session already has pending reminders
        """
        if not session.is_active:
            self.logger.info(
                f"Not scheduling reminders for {session.status.value} session {session.id}"
            )
            return []

        now = self.clock.now()
        handles: List[ReminderHandle] = []
        with self._lock:
            if self._pending.get(session.id):
                raise ValidationException(
                    f"Session {session.id} already has pending reminders; reschedule instead",
                    details={"session_id": session.id},
                )
            try:
                for offset in self.offsets_minutes:
                    fire_at = session.scheduled_at_utc - timedelta(minutes=offset)
                    if fire_at <= now:
                        continue
                    reminder_id = reminder_id_for(session.id, offset)
                    delivery_handle = self.delivery.schedule_fire(
                        reminder_id, fire_at, self._payload(session, offset, fire_at, names or {})
                    )
                    handles.append(
                        ReminderHandle(reminder_id, session.id, offset, fire_at, delivery_handle)
                    )
            except Exception:
                for handle in handles:
                    self.delivery.cancel(handle.delivery_handle)
                raise
            if handles:
                self._pending[session.id] = {handle.offset_minutes: handle for handle in handles}

        prometheus_metrics.record_reminders("scheduled", len(handles))
        self.log_operation(
            "schedule_reminders", session_id=session.id, scheduled=len(handles)
        )
        return sorted(handles, key=lambda handle: handle.fire_at_utc)

    def cancel_all(self, session_id: str) -> int:
        """Cancel every pending reminder of a session; returns how many were pending."""
        with self._lock:
            pending = self._pending.pop(session_id, {})
            for handle in pending.values():
                self.delivery.cancel(handle.delivery_handle)
        prometheus_metrics.record_reminders("cancelled", len(pending))
        if pending:
            self.logger.info(f"Cancelled {len(pending)} reminders for session {session_id}")
        return len(pending)

    def cancel(self, session_id: str, offset_minutes: int) -> bool:
        with self._lock:
            by_offset = self._pending.get(session_id, {})
            handle = by_offset.pop(offset_minutes, None)
            if handle is None:
                return False
            self.delivery.cancel(handle.delivery_handle)
            if not by_offset:
                self._pending.pop(session_id, None)
        prometheus_metrics.record_reminders("cancelled")
        return True

    def pending(self, session_id: str) -> List[ReminderHandle]:
        with self._lock:
            handles = list(self._pending.get(session_id, {}).values())
        return sorted(handles, key=lambda handle: handle.fire_at_utc)

    def reschedule(
        self, session: SupportSession, names: Optional[Dict[str, str]] = None
    ) -> List[ReminderHandle]:
        self.cancel_all(session.id)
        return self.schedule(session, names=names)
