# psychi/models/reschedule_request.py
"""Supporter reschedule request model."""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, text
import ulid

from ..database import Base

PENDING_SQL = "status = 'pending'"


class RescheduleRequestRecord(Base):
    __tablename__ = "reschedule_requests"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    session_id = Column(
        String(26), ForeignKey("support_sessions.id"), nullable=False, index=True
    )
    supporter_id = Column(String(64), nullable=False)
    client_id = Column(String(64), nullable=False, index=True)

    original_start_utc = Column(DateTime(timezone=True), nullable=False)
    proposed_start_utc = Column(DateTime(timezone=True), nullable=False)
    response_deadline_utc = Column(DateTime(timezone=True), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="pending")
    reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired', 'auto_cancelled')",
            name="ck_reschedule_requests_status",
        ),
        # At most one pending request per session
        Index(
            "uq_reschedule_requests_pending_session",
            "session_id",
            unique=True,
            sqlite_where=text(PENDING_SQL),
            postgresql_where=text(PENDING_SQL),
        ),
    )

    def __repr__(self) -> str:
        return f"<RescheduleRequestRecord {self.id} session={self.session_id} {self.status}>"
