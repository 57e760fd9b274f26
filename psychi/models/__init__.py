# psychi/models/__init__.py
"""SQLAlchemy models for the SQL-backed stores."""

from .assignment import AssignmentRecord
from .availability import AvailabilityRecord
from .reschedule_request import RescheduleRequestRecord
from .session import SessionRecord

__all__ = ["AssignmentRecord", "AvailabilityRecord", "RescheduleRequestRecord", "SessionRecord"]
