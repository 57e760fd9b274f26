# psychi/models/session.py
"""
Session model.

One row per booked support session. Cancelled and completed rows are kept
for history; only ``requested`` and ``confirmed`` rows take part in the
double-booking guard.
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, Text, text
import ulid

from ..database import Base

ACTIVE_STATUS_SQL = "status IN ('requested', 'confirmed')"


class SessionRecord(Base):
    __tablename__ = "support_sessions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    client_id = Column(String(64), nullable=False, index=True)
    supporter_id = Column(String(64), nullable=False, index=True)
    session_type = Column(String(10), nullable=False)

    scheduled_at_utc = Column(DateTime(timezone=True), nullable=False)
    ends_at_utc = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default="requested", index=True)
    cancelled_by = Column(String(20), nullable=False, default="none")
    cancellation_reason = Column(Text, nullable=True)
    refund_amount_cents = Column(Integer, nullable=False, default=0)
    refund_status = Column(String(20), nullable=False, default="not_required")
    payment_ref = Column(String(255), nullable=True, comment="Processor charge reference")

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('requested', 'confirmed', 'completed', 'cancelled')",
            name="ck_support_sessions_status",
        ),
        CheckConstraint(
            "session_type IN ('chat', 'phone', 'video')", name="ck_support_sessions_type"
        ),
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("price_cents >= 0", name="check_price_non_negative"),
        CheckConstraint("refund_amount_cents >= 0", name="check_refund_non_negative"),
        Index(
            "uq_support_sessions_supporter_start_active",
            "supporter_id",
            "scheduled_at_utc",
            unique=True,
            sqlite_where=text(ACTIVE_STATUS_SQL),
            postgresql_where=text(ACTIVE_STATUS_SQL),
        ),
        Index(
            "ix_support_sessions_supporter_window",
            "supporter_id",
            "scheduled_at_utc",
            "ends_at_utc",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<SessionRecord {self.id} supporter={self.supporter_id} "
            f"at={self.scheduled_at_utc} status={self.status}>"
        )
