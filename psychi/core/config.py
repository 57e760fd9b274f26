# psychi/core/config.py
"""
Runtime configuration for the Psychi booking engine.

Values come from environment variables prefixed with ``PSYCHI_`` (or a local
``.env`` file). Services read the module-level ``settings`` instance by
default and accept explicit overrides in their constructors, which is how the
tests pin policy values.
"""

import logging
import os
from typing import List, Literal, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)


def _parse_minutes(value: str) -> List[int]:
    return [int(token) for token in value.split(",") if token.strip()]


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: str = Field(default="INFO", description="Root log level for workers")

    # Refund policy (hours before the session start)
    full_refund_hours: float = Field(
        default=24.0, gt=0, description="Client cancellations at or beyond this get 100%"
    )
    no_refund_hours: float = Field(
        default=2.0, ge=0, description="Client cancellations inside this window get 0%"
    )
    partial_refund_percentage: int = Field(
        default=50, ge=0, le=100, description="Refund percentage between the two thresholds"
    )

    # Slot generation
    slot_granularity_minutes: int = Field(default=30, gt=0, le=720)
    booking_horizon_days: int = Field(default=14, gt=0, le=365)
    default_timezone: str = Field(default="America/New_York")

    # Reminders, comma-separated minutes before the session
    reminder_offsets_csv: str = Field(default="15,60,1440")

    # Supporter reschedule requests must be answered this long before the session
    reschedule_response_hours: float = Field(default=3.0, ge=0)

    # Matching
    high_match_threshold: int = Field(default=15, ge=0, le=100)

    # Persistence
    database_url: str = Field(default="sqlite:///./psychi.db")
    database_echo: bool = False

    # Payments
    stripe_secret_key: Optional[SecretStr] = Field(default=None)
    payment_currency: str = Field(default="usd")

    # Reminder delivery
    celery_broker_url: str = Field(default="redis://localhost:6379/0")
    celery_result_backend: Optional[str] = Field(default=None)
    reminder_queue: str = Field(default="notifications")

    model_config = SettingsConfigDict(
        env_prefix="PSYCHI_",
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("reminder_offsets_csv")
    @classmethod
    def _validate_offsets(cls, value: str) -> str:
        try:
            offsets = _parse_minutes(value)
        except ValueError as exc:
            raise ValueError("Reminder offsets must be comma-separated integers") from exc
        if any(offset <= 0 for offset in offsets):
            raise ValueError("Reminder offsets must be positive minute counts")
        return value

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @model_validator(mode="after")
    def _check_refund_thresholds(self) -> "Settings":
        if self.no_refund_hours >= self.full_refund_hours:
            raise ValueError("no_refund_hours must be lower than full_refund_hours")
        return self

    @property
    def reminder_offsets_minutes(self) -> List[int]:
        return sorted(set(_parse_minutes(self.reminder_offsets_csv)))

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key and self.stripe_secret_key.get_secret_value())


settings = Settings()