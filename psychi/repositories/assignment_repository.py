# psychi/repositories/assignment_repository.py
"""SQL store for client-supporter assignments."""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import AssignmentEndReason, AssignmentStatus
from ..core.exceptions import RepositoryException
from ..core.timezone_utils import ensure_utc
from ..domain.supporters import ClientAssignment
from ..models.assignment import AssignmentRecord
from .base_repository import BaseRepository
from .interfaces import AssignmentStore

logger = logging.getLogger(__name__)


def _to_domain(record: AssignmentRecord) -> ClientAssignment:
    return ClientAssignment(
        id=record.id,
        client_id=record.client_id,
        supporter_id=record.supporter_id,
        status=AssignmentStatus(record.status),
        started_at=ensure_utc(record.started_at) if record.started_at else None,
        ended_at=ensure_utc(record.ended_at) if record.ended_at else None,
        end_reason=AssignmentEndReason(record.end_reason) if record.end_reason else None,
    )


class AssignmentRepository(BaseRepository[AssignmentRecord], AssignmentStore):
    def __init__(self, db: Session):
        super().__init__(db, AssignmentRecord)

    def get_active_assignment(self, client_id: str) -> Optional[ClientAssignment]:
        try:
            record = self.db.scalars(
                select(AssignmentRecord).where(
                    AssignmentRecord.client_id == client_id,
                    AssignmentRecord.status == AssignmentStatus.ACTIVE.value,
                )
            ).first()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load assignment: {str(e)}") from e
        return _to_domain(record) if record is not None else None

    def end_assignment(
        self, assignment_id: str, reason: AssignmentEndReason, ended_at: datetime
    ) -> Optional[ClientAssignment]:
        try:
            with self.transaction():
                record = self.get_by_id(assignment_id)
                if record is None:
                    return None
                record.status = AssignmentStatus.ENDED.value
                record.ended_at = ensure_utc(ended_at)
                record.end_reason = AssignmentEndReason(reason).value
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to end assignment: {str(e)}") from e
        return _to_domain(record)

    def reopen_assignment(self, assignment_id: str) -> Optional[ClientAssignment]:
        try:
            with self.transaction():
                record = self.get_by_id(assignment_id)
                if record is None:
                    return None
                record.status = AssignmentStatus.ACTIVE.value
                record.ended_at = None
                record.end_reason = None
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to reopen assignment: {str(e)}") from e
        return _to_domain(record)

    def create_assignment(
        self, client_id: str, supporter_id: str, started_at: datetime
    ) -> ClientAssignment:
        try:
            with self.transaction():
                record = AssignmentRecord(
                    client_id=client_id,
                    supporter_id=supporter_id,
                    status=AssignmentStatus.ACTIVE.value,
                    started_at=ensure_utc(started_at),
                )
                self.db.add(record)
                self.db.flush()
        except IntegrityError as exc:
            raise RepositoryException(
                f"Client {client_id} already has an active supporter"
            ) from exc
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create assignment: {str(e)}") from e
        return _to_domain(record)
