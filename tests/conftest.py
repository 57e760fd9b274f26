# tests/conftest.py
"""
Shared fixtures for the booking engine tests.

Everything here is in-process: in-memory stores, a fixed clock, a fake
payment processor and a recording event sink. SQL tests build their own
in-memory SQLite engine in ``tests/integration``.
"""

import os

# Set before any psychi import so Settings never reads a developer .env
os.environ.setdefault("CI", "true")
os.environ.setdefault("PSYCHI_ENVIRONMENT", "test")

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from psychi.core.clock import FixedClock
from psychi.core.enums import Weekday
from psychi.domain.availability import DayAvailability, TimeWindow, WeeklyAvailability
from psychi.events.publisher import EventPublisher, RecordingSink
from psychi.integrations.payments import ChargeResult, PaymentProcessor, RefundResult
from psychi.notifications.delivery import InMemoryReminderDelivery
from psychi.repositories.memory import (
    InMemoryAssignmentStore,
    InMemoryAvailabilityStore,
    InMemorySessionStore,
    InMemorySupporterDirectory,
)
from psychi.services.availability_service import AvailabilityResolver
from psychi.services.booking_scheduler import BookingScheduler
from psychi.services.refund_calculator import RefundCalculator, RefundPolicy
from psychi.services.reminder_scheduler import ReminderScheduler

# Sunday 2026-01-04 12:00 UTC; the next day is a Monday
NOW = datetime(2026, 1, 4, 12, 0, tzinfo=timezone.utc)

CLIENT_ID = "client-1"
SUPPORTER_ID = "supporter-1"


class FakePaymentProcessor(PaymentProcessor):
    """Records charges and refunds; failures are switched on per test."""

    def __init__(self) -> None:
        self.charges: List[Tuple[int, str, Dict[str, str]]] = []
        self.refunds: List[Tuple[str, int]] = []
        self.fail_charge: Optional[str] = None
        self.fail_refund: Optional[str] = None
        self.refund_raises: Optional[Exception] = None

    def charge(self, amount_cents, method_ref, metadata=None) -> ChargeResult:
        if self.fail_charge:
            return ChargeResult(success=False, error=self.fail_charge)
        self.charges.append((amount_cents, method_ref, dict(metadata or {})))
        return ChargeResult(success=True, charge_ref=f"pi_{len(self.charges)}")

    def refund(self, charge_ref, amount_cents) -> RefundResult:
        if self.refund_raises is not None:
            raise self.refund_raises
        if self.fail_refund:
            return RefundResult(success=False, error=self.fail_refund)
        self.refunds.append((charge_ref, amount_cents))
        return RefundResult(success=True, refund_ref=f"re_{len(self.refunds)}")


def weekly(timezone_name: str = "UTC", **days: str) -> WeeklyAvailability:
    """``weekly(monday="09:00-12:00,13:00-15:00")``"""
    return WeeklyAvailability(
        timezone=timezone_name,
        days={
            Weekday(name): DayAvailability.open(
                TimeWindow.parse(window) for window in ranges.split(",")
            )
            for name, ranges in days.items()
        },
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def monday_morning() -> WeeklyAvailability:
    return weekly(monday="09:00-12:00")


@pytest.fixture
def resolver(clock) -> AvailabilityResolver:
    return AvailabilityResolver(granularity_minutes=30, horizon_days=14, clock=clock)


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def availability_store(monday_morning) -> InMemoryAvailabilityStore:
    return InMemoryAvailabilityStore({SUPPORTER_ID: monday_morning})


@pytest.fixture
def assignment_store() -> InMemoryAssignmentStore:
    return InMemoryAssignmentStore()


@pytest.fixture
def directory() -> InMemorySupporterDirectory:
    return InMemorySupporterDirectory()


@pytest.fixture
def payments() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def delivery() -> InMemoryReminderDelivery:
    return InMemoryReminderDelivery()


@pytest.fixture
def reminders(delivery, clock) -> ReminderScheduler:
    return ReminderScheduler(delivery, offsets_minutes=[15, 60, 1440], clock=clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def publisher(sink) -> EventPublisher:
    return EventPublisher(sink)


@pytest.fixture
def scheduler(
    session_store, availability_store, payments, reminders, resolver, publisher, clock
) -> BookingScheduler:
    return BookingScheduler(
        sessions=session_store,
        availability=availability_store,
        payments=payments,
        reminders=reminders,
        resolver=resolver,
        refunds=RefundCalculator(RefundPolicy(full_refund_hours=24, no_refund_hours=2)),
        publisher=publisher,
        clock=clock,
    )
