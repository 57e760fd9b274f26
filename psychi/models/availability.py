# psychi/models/availability.py
"""
Availability model.

The whole weekly schedule is one JSON document per supporter, so a save is
a single-row replace and readers always see a complete week.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from ..database import Base


class AvailabilityRecord(Base):
    __tablename__ = "supporter_availability"

    supporter_id = Column(String(64), primary_key=True)
    timezone = Column(String(64), nullable=False)
    # {"monday": ["09:00-12:00", "13:00-17:00"], "tuesday": [], ...}
    schedule = Column(JSON, nullable=False, default=dict)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
