# psychi/repositories/session_repository.py
"""
SQL session store.

The double-booking guard runs inside one transaction: the supporter's
availability row is locked (``FOR UPDATE`` where the dialect supports it),
overlapping active rows are looked up, and the insert is flushed. The partial
unique index on ``(supporter_id, scheduled_at_utc)`` backs this up for
same-start races, and its ``IntegrityError`` is reported as a write conflict.
"""

from datetime import datetime
import logging
from typing import Any, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import SessionStatus
from ..core.exceptions import RepositoryException, SessionWriteConflict, StaleSessionUpdate
from ..core.timezone_utils import ensure_utc
from ..domain.session import ACTIVE_STATUSES, SupportSession
from ..models.availability import AvailabilityRecord
from ..models.session import SessionRecord
from .base_repository import BaseRepository
from .interfaces import SessionStore

logger = logging.getLogger(__name__)

_ACTIVE_VALUES = [status.value for status in ACTIVE_STATUSES]

_ENUM_COLUMNS = ("session_type", "status", "cancelled_by", "refund_status")
_DATETIME_COLUMNS = ("scheduled_at_utc", "created_at", "cancelled_at", "completed_at")
_UPDATABLE = frozenset(
    {
        "status",
        "cancelled_by",
        "cancellation_reason",
        "refund_amount_cents",
        "refund_status",
        "payment_ref",
        "cancelled_at",
        "completed_at",
        "scheduled_at_utc",
    }
)


def _to_domain(record: SessionRecord) -> SupportSession:
    def _dt(value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    return SupportSession(
        id=record.id,
        client_id=record.client_id,
        supporter_id=record.supporter_id,
        session_type=record.session_type,
        scheduled_at_utc=ensure_utc(record.scheduled_at_utc),
        duration_minutes=record.duration_minutes,
        price_cents=record.price_cents,
        status=record.status,
        cancelled_by=record.cancelled_by,
        cancellation_reason=record.cancellation_reason,
        refund_amount_cents=record.refund_amount_cents,
        refund_status=record.refund_status,
        payment_ref=record.payment_ref,
        created_at=_dt(record.created_at),
        cancelled_at=_dt(record.cancelled_at),
        completed_at=_dt(record.completed_at),
    )


def _column_value(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in _ENUM_COLUMNS:
        return getattr(value, "value", value)
    if name in _DATETIME_COLUMNS:
        return ensure_utc(value)
    return value


class SessionRepository(BaseRepository[SessionRecord], SessionStore):
    def __init__(self, db: Session):
        super().__init__(db, SessionRecord)

    def _lock_supporter(self, supporter_id: str) -> None:
        """Serialize writers for one supporter on dialects with row locks."""
        if self.dialect_name == "sqlite":
            return
        self.db.execute(
            select(AvailabilityRecord.supporter_id)
            .where(AvailabilityRecord.supporter_id == supporter_id)
            .with_for_update()
        )

    def _overlapping(
        self,
        supporter_id: str,
        start_utc: datetime,
        end_utc: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[SessionRecord]:
        query = select(SessionRecord).where(
            SessionRecord.supporter_id == supporter_id,
            SessionRecord.status.in_(_ACTIVE_VALUES),
            SessionRecord.scheduled_at_utc < ensure_utc(end_utc),
            SessionRecord.ends_at_utc > ensure_utc(start_utc),
        )
        if exclude_id:
            query = query.where(SessionRecord.id != exclude_id)
        return list(self.db.scalars(query.order_by(SessionRecord.scheduled_at_utc)))

    def create_session(self, session: SupportSession) -> SupportSession:
        try:
            with self.transaction():
                self._lock_supporter(session.supporter_id)
                if session.is_active:
                    clashes = self._overlapping(
                        session.supporter_id, session.scheduled_at_utc, session.end_at_utc
                    )
                    if clashes:
                        raise SessionWriteConflict(
                            f"Supporter {session.supporter_id} already has session "
                            f"{clashes[0].id} in that interval"
                        )
                record = SessionRecord(
                    id=session.id,
                    client_id=session.client_id,
                    supporter_id=session.supporter_id,
                    session_type=session.session_type.value,
                    scheduled_at_utc=session.scheduled_at_utc,
                    ends_at_utc=session.end_at_utc,
                    duration_minutes=session.duration_minutes,
                    price_cents=session.price_cents,
                    status=session.status.value,
                    cancelled_by=session.cancelled_by.value,
                    cancellation_reason=session.cancellation_reason,
                    refund_amount_cents=session.refund_amount_cents,
                    refund_status=session.refund_status.value,
                    payment_ref=session.payment_ref,
                )
                if session.created_at is not None:
                    record.created_at = ensure_utc(session.created_at)
                self.db.add(record)
                self.db.flush()
        except IntegrityError as exc:
            self.logger.warning(
                f"Integrity error creating session for supporter {session.supporter_id}: {exc}"
            )
            raise SessionWriteConflict(
                f"Supporter {session.supporter_id} already has a session at "
                f"{session.scheduled_at_utc.isoformat()}"
            ) from exc
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create session: {str(e)}") from e
        return _to_domain(record)

    def get_session(self, session_id: str) -> Optional[SupportSession]:
        record = self.get_by_id(session_id)
        return _to_domain(record) if record is not None else None

    def update_session(
        self,
        session_id: str,
        changes: Mapping[str, Any],
        expected_status: Optional[SessionStatus] = None,
    ) -> Optional[SupportSession]:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise RepositoryException(f"Session fields cannot be updated: {sorted(unknown)}")
        try:
            with self.transaction():
                query = select(SessionRecord).where(SessionRecord.id == session_id)
                if self.dialect_name != "sqlite":
                    query = query.with_for_update()
                record = self.db.scalars(query).first()
                if record is None:
                    return None
                if expected_status is not None:
                    expected = SessionStatus(expected_status).value
                    if record.status != expected:
                        raise StaleSessionUpdate(session_id, expected, record.status)
                for name, value in changes.items():
                    setattr(record, name, _column_value(name, value))
                if "scheduled_at_utc" in changes:
                    current = _to_domain(record)
                    record.ends_at_utc = current.end_at_utc
                    if current.is_active and self._overlapping(
                        current.supporter_id,
                        current.scheduled_at_utc,
                        current.end_at_utc,
                        exclude_id=session_id,
                    ):
                        raise SessionWriteConflict(
                            f"Supporter {current.supporter_id} already has a session "
                            "in that interval"
                        )
                self.db.flush()
        except IntegrityError as exc:
            raise SessionWriteConflict(
                f"Session {session_id} collides with another session"
            ) from exc
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update session {session_id}: {str(e)}") from e
        return _to_domain(record)

    def list_active_sessions(
        self, supporter_id: str, start_utc: datetime, end_utc: datetime
    ) -> List[SupportSession]:
        try:
            return [
                _to_domain(record)
                for record in self._overlapping(supporter_id, start_utc, end_utc)
            ]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing sessions for supporter {supporter_id}: {str(e)}")
            raise RepositoryException(f"Failed to list sessions: {str(e)}") from e
