# psychi/repositories/availability_repository.py
"""SQL availability store: one JSON schedule row per supporter."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..domain.availability import WeeklyAvailability
from ..models.availability import AvailabilityRecord
from .base_repository import BaseRepository
from .interfaces import AvailabilityStore

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilityRecord], AvailabilityStore):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityRecord)

    def read_availability(self, supporter_id: str) -> Optional[WeeklyAvailability]:
        record = self.get_by_id(supporter_id)
        if record is None:
            return None
        return WeeklyAvailability.from_mapping(record.schedule or {}, timezone=record.timezone)

    def save_availability(self, supporter_id: str, availability: WeeklyAvailability) -> None:
        try:
            with self.transaction():
                record = self.get_by_id(supporter_id)
                if record is None:
                    record = AvailabilityRecord(supporter_id=supporter_id)
                    self.db.add(record)
                record.timezone = availability.timezone
                record.schedule = availability.to_mapping()
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to save availability for {supporter_id}: {str(e)}"
            ) from e
        logger.info(
            f"Saved availability for supporter {supporter_id}",
            extra={"enabled_days": [day.value for day in availability.enabled_days]},
        )
