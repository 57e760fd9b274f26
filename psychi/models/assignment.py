# psychi/models/assignment.py
"""Client-supporter assignment model."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, text
import ulid

from ..database import Base


class AssignmentRecord(Base):
    __tablename__ = "client_assignments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    client_id = Column(String(64), nullable=False, index=True)
    supporter_id = Column(String(64), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")
    started_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    ended_at = Column(DateTime(timezone=True), nullable=True)
    end_reason = Column(String(40), nullable=True)

    __table_args__ = (
        # At most one active assignment per client
        Index(
            "uq_client_assignments_active_client",
            "client_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
