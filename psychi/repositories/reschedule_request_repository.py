# psychi/repositories/reschedule_request_repository.py
"""
SQL store for supporter reschedule requests.

The partial unique index on ``session_id`` for pending rows keeps a session to
one open request; its ``IntegrityError`` surfaces as ``RepositoryException``.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import RescheduleRequestStatus
from ..core.exceptions import RepositoryException, StaleRescheduleRequestUpdate
from ..core.timezone_utils import ensure_utc
from ..domain.reschedule import RescheduleRequest
from ..models.reschedule_request import RescheduleRequestRecord
from .base_repository import BaseRepository
from .interfaces import RescheduleRequestStore

logger = logging.getLogger(__name__)

_PENDING = RescheduleRequestStatus.PENDING.value


def _to_domain(record: RescheduleRequestRecord) -> RescheduleRequest:
    return RescheduleRequest(
        id=record.id,
        session_id=record.session_id,
        supporter_id=record.supporter_id,
        client_id=record.client_id,
        original_start_utc=record.original_start_utc,
        proposed_start_utc=record.proposed_start_utc,
        response_deadline_utc=record.response_deadline_utc,
        status=record.status,
        reason=record.reason,
        created_at=ensure_utc(record.created_at) if record.created_at else None,
        responded_at=ensure_utc(record.responded_at) if record.responded_at else None,
    )


class RescheduleRequestRepository(BaseRepository[RescheduleRequestRecord], RescheduleRequestStore):
    def __init__(self, db: Session):
        super().__init__(db, RescheduleRequestRecord)

    def create_request(self, request: RescheduleRequest) -> RescheduleRequest:
        try:
            with self.transaction():
                record = RescheduleRequestRecord(
                    id=request.id,
                    session_id=request.session_id,
                    supporter_id=request.supporter_id,
                    client_id=request.client_id,
                    original_start_utc=request.original_start_utc,
                    proposed_start_utc=request.proposed_start_utc,
                    response_deadline_utc=request.response_deadline_utc,
                    status=request.status.value,
                    reason=request.reason,
                )
                if request.created_at is not None:
                    record.created_at = ensure_utc(request.created_at)
                self.db.add(record)
                self.db.flush()
        except IntegrityError as exc:
            raise RepositoryException(
                f"Session {request.session_id} already has a pending reschedule request"
            ) from exc
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create reschedule request: {str(e)}") from e
        return _to_domain(record)

    def get_request(self, request_id: str) -> Optional[RescheduleRequest]:
        record = self.get_by_id(request_id)
        return _to_domain(record) if record is not None else None

    def get_pending_for_session(self, session_id: str) -> Optional[RescheduleRequest]:
        try:
            record = self.db.scalars(
                select(RescheduleRequestRecord).where(
                    RescheduleRequestRecord.session_id == session_id,
                    RescheduleRequestRecord.status == _PENDING,
                )
            ).first()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load reschedule request: {str(e)}") from e
        return _to_domain(record) if record is not None else None

    def update_request_status(
        self,
        request_id: str,
        status: RescheduleRequestStatus,
        responded_at: Optional[datetime],
        expected_status: RescheduleRequestStatus = RescheduleRequestStatus.PENDING,
    ) -> Optional[RescheduleRequest]:
        expected = RescheduleRequestStatus(expected_status).value
        try:
            with self.transaction():
                query = select(RescheduleRequestRecord).where(
                    RescheduleRequestRecord.id == request_id
                )
                if self.dialect_name != "sqlite":
                    query = query.with_for_update()
                record = self.db.scalars(query).first()
                if record is None:
                    return None
                if record.status != expected:
                    raise StaleRescheduleRequestUpdate(request_id, expected, record.status)
                record.status = RescheduleRequestStatus(status).value
                record.responded_at = ensure_utc(responded_at) if responded_at else None
                self.db.flush()
        except IntegrityError as exc:
            raise RepositoryException(
                f"Reschedule request {request_id} collides with another pending request"
            ) from exc
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to update reschedule request {request_id}: {str(e)}"
            ) from e
        return _to_domain(record)

    def list_pending(
        self, client_id: Optional[str] = None, deadline_before: Optional[datetime] = None
    ) -> List[RescheduleRequest]:
        query = select(RescheduleRequestRecord).where(RescheduleRequestRecord.status == _PENDING)
        if client_id is not None:
            query = query.where(RescheduleRequestRecord.client_id == client_id)
        if deadline_before is not None:
            query = query.where(
                RescheduleRequestRecord.response_deadline_utc < ensure_utc(deadline_before)
            )
        try:
            records = self.db.scalars(
                query.order_by(RescheduleRequestRecord.response_deadline_utc)
            )
            return [_to_domain(record) for record in records]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing pending reschedule requests: {str(e)}")
            raise RepositoryException(f"Failed to list reschedule requests: {str(e)}") from e
