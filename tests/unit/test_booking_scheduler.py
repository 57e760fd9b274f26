"""Booking, cancellation, completion and rescheduling."""

from datetime import date, datetime, timedelta, timezone

import pytest

from psychi.core.enums import CancellationActor, RefundStatus, SessionStatus, SessionType
from psychi.core.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    PaymentFailedException,
    RefundIssuanceFailedException,
    RepositoryException,
    SlotConflictException,
    ValidationException,
)
from psychi.schemas.booking import BookingRequest, CancellationRequest
from tests.conftest import CLIENT_ID, SUPPORTER_ID

MONDAY = date(2026, 1, 5)
NINE = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _slot(scheduler, start: datetime, session_type=SessionType.CHAT):
    for slot in scheduler.list_available_slots(SUPPORTER_ID, start.date(), session_type):
        if slot.start_utc == start:
            return slot
    raise AssertionError(f"{start} not offered")


@pytest.fixture
def booked(scheduler):
    return scheduler.request_booking(
        CLIENT_ID, SUPPORTER_ID, SessionType.CHAT, _slot(scheduler, NINE), "pm_card"
    )


class TestRequestBooking:
    def test_successful_booking(self, scheduler, booked, payments, session_store, reminders, sink):
        assert booked.status == SessionStatus.CONFIRMED
        assert booked.scheduled_at_utc == NINE
        assert booked.duration_minutes == 30
        assert booked.price_cents == 700
        assert booked.payment_ref == "pi_1"
        assert session_store.get_session(booked.id) == booked

        amount, method, metadata = payments.charges[0]
        assert (amount, method) == (700, "pm_card")
        assert metadata["supporter_id"] == SUPPORTER_ID

        # 21 hours out: the one-day reminder is already in the past
        assert [h.offset_minutes for h in reminders.pending(booked.id)] == [60, 15]

        [event] = sink.of_type("SessionBooked")
        assert event["session_id"] == booked.id
        assert event["scheduled_at_utc"] == NINE.isoformat()

    def test_canonical_price_and_duration_per_type(self, scheduler):
        slot = _slot(scheduler, NINE, SessionType.VIDEO)
        session = scheduler.request_booking(
            CLIENT_ID, SUPPORTER_ID, SessionType.VIDEO, slot, "pm_card"
        )
        assert (session.price_cents, session.duration_minutes) == (2000, 45)

    def test_booked_slot_disappears_from_listing(self, scheduler, booked):
        starts = [
            slot.start_utc
            for slot in scheduler.list_available_slots(SUPPORTER_ID, MONDAY, SessionType.CHAT)
        ]
        assert NINE not in starts
        assert NINE + timedelta(minutes=30) in starts

    def test_second_booking_of_same_slot_conflicts(self, scheduler, booked, payments, sink):
        # A slot list fetched before the first booking landed
        stale_slot = scheduler.resolver.find_slot(
            NINE, scheduler.availability.read_availability(SUPPORTER_ID), 30
        )
        assert stale_slot is not None

        with pytest.raises(SlotConflictException) as exc_info:
            scheduler.request_booking(
                "client-2", SUPPORTER_ID, SessionType.CHAT, stale_slot, "pm_other"
            )

        assert exc_info.value.code == "SLOT_CONFLICT"
        assert "no longer available" in exc_info.value.message
        assert len(payments.charges) == 1
        assert len(sink.of_type("SessionBooked")) == 1

    def test_slot_outside_availability_conflicts(self, scheduler, payments):
        slot = _slot(scheduler, NINE)
        shifted = type(slot)(
            start_utc=slot.start_utc + timedelta(hours=3),
            end_utc=slot.end_utc + timedelta(hours=3),
            display="12:00 PM",
            local_date=slot.local_date,
            local_start=slot.local_start,
        )
        with pytest.raises(SlotConflictException):
            scheduler.request_booking(CLIENT_ID, SUPPORTER_ID, SessionType.CHAT, shifted, "pm")
        assert payments.charges == []

    def test_slot_in_the_past_conflicts(self, scheduler, clock):
        slot = _slot(scheduler, NINE)
        clock.set(NINE + timedelta(minutes=1))
        with pytest.raises(SlotConflictException):
            scheduler.request_booking(CLIENT_ID, SUPPORTER_ID, SessionType.CHAT, slot, "pm")

    def test_supporter_without_saved_availability(self, scheduler):
        slot = _slot(scheduler, NINE)
        with pytest.raises(SlotConflictException):
            scheduler.request_booking(CLIENT_ID, "supporter-unknown", SessionType.CHAT, slot, "pm")

    def test_payment_failure_creates_nothing(
        self, scheduler, payments, session_store, delivery, sink
    ):
        payments.fail_charge = "card_declined"
        slot = _slot(scheduler, NINE)

        with pytest.raises(PaymentFailedException) as exc_info:
            scheduler.request_booking(CLIENT_ID, SUPPORTER_ID, SessionType.CHAT, slot, "pm")

        assert exc_info.value.code == "PAYMENT_FAILED"
        assert "card_declined" in exc_info.value.message
        assert session_store.all_sessions() == []
        assert delivery.scheduled == []
        assert sink.events == []

    def test_write_conflict_refunds_the_charge(
        self, scheduler, booked, payments, session_store, monkeypatch
    ):
        # Advisory listing is stale: it does not see the existing booking
        monkeypatch.setattr(session_store, "list_active_sessions", lambda *args, **kwargs: [])
        slot = _slot(scheduler, NINE)

        with pytest.raises(SlotConflictException):
            scheduler.request_booking("client-2", SUPPORTER_ID, SessionType.CHAT, slot, "pm_2")

        assert payments.refunds == [("pi_2", 700)]
        assert [s.id for s in session_store.all_sessions()] == [booked.id]

    def test_failed_compensation_asks_for_reconciliation(
        self, scheduler, booked, payments, session_store, sink, monkeypatch
    ):
        monkeypatch.setattr(session_store, "list_active_sessions", lambda *args, **kwargs: [])
        slot = _slot(scheduler, NINE)
        payments.fail_refund = "processor_down"

        with pytest.raises(SlotConflictException):
            scheduler.request_booking("client-2", SUPPORTER_ID, SessionType.CHAT, slot, "pm_2")

        [event] = sink.of_type("RefundReconciliationRequired")
        assert event["context"] == "booking_compensation"
        assert event["charge_ref"] == "pi_2"
        assert event["amount_cents"] == 700

    def test_store_failure_after_charge_refunds_the_charge(
        self, scheduler, payments, session_store, delivery, sink, monkeypatch
    ):
        def broken_create(session):
            raise RepositoryException("db down")

        monkeypatch.setattr(session_store, "create_session", broken_create)
        slot = _slot(scheduler, NINE)

        with pytest.raises(RepositoryException):
            scheduler.request_booking(CLIENT_ID, SUPPORTER_ID, SessionType.CHAT, slot, "pm")

        assert payments.refunds == [("pi_1", 700)]
        assert session_store.all_sessions() == []
        assert delivery.scheduled == []
        assert sink.of_type("SessionBooked") == []

    def test_store_failure_with_raising_refund_asks_for_reconciliation(
        self, scheduler, payments, session_store, sink, monkeypatch
    ):
        def broken_create(session):
            raise RepositoryException("db down")

        monkeypatch.setattr(session_store, "create_session", broken_create)
        payments.refund_raises = ConnectionError("processor unreachable")
        slot = _slot(scheduler, NINE)

        with pytest.raises(RepositoryException):
            scheduler.request_booking(CLIENT_ID, SUPPORTER_ID, SessionType.CHAT, slot, "pm")

        [event] = sink.of_type("RefundReconciliationRequired")
        assert event["context"] == "booking_compensation"
        assert event["error"] == "processor unreachable"

    def test_cannot_book_yourself(self, scheduler):
        slot = _slot(scheduler, NINE)
        with pytest.raises(ValidationException):
            scheduler.request_booking(SUPPORTER_ID, SUPPORTER_ID, SessionType.CHAT, slot, "pm")

    def test_submit_booking_request(self, scheduler):
        request = BookingRequest(
            client_id=CLIENT_ID,
            supporter_id=SUPPORTER_ID,
            session_type="phone",
            slot_start_utc="2026-01-05T04:30:00-05:00",
            payment_method_ref="pm_card",
        )
        session = scheduler.submit_booking(request)
        assert session.scheduled_at_utc == NINE + timedelta(minutes=30)
        assert session.session_type == SessionType.PHONE

    def test_submit_booking_for_unoffered_start(self, scheduler):
        request = BookingRequest(
            client_id=CLIENT_ID,
            supporter_id=SUPPORTER_ID,
            session_type="chat",
            slot_start_utc=NINE + timedelta(minutes=10),
            payment_method_ref="pm_card",
        )
        with pytest.raises(SlotConflictException):
            scheduler.submit_booking(request)


class TestCancel:
    def test_client_cancel_inside_a_day_gets_half(
        self, scheduler, booked, payments, delivery, sink
    ):
        result = scheduler.cancel(booked.id, CancellationActor.CLIENT, reason="Exam moved")

        assert result.session.status == SessionStatus.CANCELLED
        assert result.session.cancelled_by == CancellationActor.CLIENT
        assert result.session.cancellation_reason == "Exam moved"
        assert result.session.refund_amount_cents == 350
        assert result.session.refund_status == RefundStatus.ISSUED
        assert result.refund.percentage == 50
        assert result.refund_error is None
        assert result.refund_issued
        assert result.reminders_cancelled == 2
        assert payments.refunds == [("pi_1", 350)]
        assert delivery.scheduled == []

        [event] = sink.of_type("SessionCancelled")
        assert event["notify_user_id"] == SUPPORTER_ID
        assert event["refund_amount_cents"] == 350
        assert event["cancelled_by"] == "client"
        assert "$3.50" in event["message"]

    def test_supporter_cancel_refunds_everything(self, scheduler, booked, payments, sink, clock):
        clock.set(NINE - timedelta(minutes=30))
        result = scheduler.cancel(booked.id, CancellationActor.SUPPORTER)

        assert result.refund.percentage == 100
        assert payments.refunds == [("pi_1", 700)]
        [event] = sink.of_type("SessionCancelled")
        assert event["notify_user_id"] == CLIENT_ID

    def test_late_client_cancel_issues_no_refund_call(self, scheduler, booked, payments, clock):
        clock.set(NINE - timedelta(hours=1))
        result = scheduler.cancel(booked.id, CancellationActor.CLIENT)

        assert result.refund.amount_cents == 0
        assert result.session.refund_status == RefundStatus.NOT_REQUIRED
        assert payments.refunds == []

    def test_cancelling_twice_is_an_invalid_transition(self, scheduler, booked, payments):
        scheduler.cancel(booked.id, CancellationActor.CLIENT)

        with pytest.raises(InvalidTransitionException):
            scheduler.cancel(booked.id, CancellationActor.CLIENT)
        assert len(payments.refunds) == 1

    def test_concurrent_cancel_loses_the_race(
        self, scheduler, booked, payments, session_store, monkeypatch
    ):
        scheduler.cancel(booked.id, CancellationActor.CLIENT)
        # Second caller read the session before the first cancel landed
        monkeypatch.setattr(session_store, "get_session", lambda session_id: booked)

        with pytest.raises(InvalidTransitionException) as exc_info:
            scheduler.cancel(booked.id, CancellationActor.SUPPORTER)

        assert exc_info.value.details["current_status"] == "cancelled"
        assert len(payments.refunds) == 1

    def test_refund_failure_still_cancels(
        self, scheduler, booked, payments, session_store, delivery, sink
    ):
        payments.fail_refund = "processor_down"

        result = scheduler.cancel(booked.id, CancellationActor.SUPPORTER)

        assert isinstance(result.refund_error, RefundIssuanceFailedException)
        assert result.refund_error.code == "REFUND_ISSUANCE_FAILED"
        assert result.refund_error.details["amount_cents"] == 700
        assert not result.refund_issued
        stored = session_store.get_session(booked.id)
        assert stored.status == SessionStatus.CANCELLED
        assert stored.refund_status == RefundStatus.FAILED
        assert delivery.scheduled == []
        [event] = sink.of_type("RefundReconciliationRequired")
        assert event["context"] == "cancellation"
        assert len(sink.of_type("SessionCancelled")) == 1
        assert result.to_payload()["refund_error"]["code"] == "REFUND_ISSUANCE_FAILED"

    def test_processor_exception_during_refund_still_cancels(
        self, scheduler, booked, payments, session_store, reminders, sink
    ):
        payments.refund_raises = ConnectionError("processor timed out")

        result = scheduler.cancel(booked.id, CancellationActor.SUPPORTER)

        assert isinstance(result.refund_error, RefundIssuanceFailedException)
        assert result.refund_error.details["reason"] == "processor timed out"
        assert result.reminders_cancelled == 2
        stored = session_store.get_session(booked.id)
        assert stored.status == SessionStatus.CANCELLED
        assert stored.refund_status == RefundStatus.FAILED
        assert reminders.pending(booked.id) == []
        [event] = sink.of_type("RefundReconciliationRequired")
        assert event["context"] == "cancellation"
        assert event["amount_cents"] == 700
        assert len(sink.of_type("SessionCancelled")) == 1

    def test_store_failure_after_claim_still_notifies(
        self, scheduler, booked, session_store, reminders, sink, monkeypatch
    ):
        update = session_store.update_session

        def update_then_fail(session_id, changes, expected_status=None):
            if "refund_status" in changes and expected_status is None:
                raise RepositoryException("db down")
            return update(session_id, changes, expected_status=expected_status)

        monkeypatch.setattr(session_store, "update_session", update_then_fail)

        with pytest.raises(RepositoryException):
            scheduler.cancel(booked.id, CancellationActor.SUPPORTER)

        assert session_store.get_session(booked.id).status == SessionStatus.CANCELLED
        assert reminders.pending(booked.id) == []
        assert len(sink.of_type("SessionCancelled")) == 1

    def test_unknown_session(self, scheduler):
        with pytest.raises(NotFoundException):
            scheduler.cancel("missing", CancellationActor.CLIENT)

    def test_actor_is_required(self, scheduler, booked):
        with pytest.raises(ValidationException):
            scheduler.cancel(booked.id, CancellationActor.NONE)

    def test_submit_cancellation_request(self, scheduler, booked):
        request = CancellationRequest(session_id=booked.id, actor="supporter", reason="  ")
        result = scheduler.submit_cancellation(request)
        assert result.session.cancelled_by == CancellationActor.SUPPORTER
        assert result.session.cancellation_reason is None


class TestComplete:
    def test_complete_confirmed_session(self, scheduler, booked, clock, delivery, sink):
        clock.set(NINE + timedelta(minutes=30))
        completed = scheduler.complete(booked.id)

        assert completed.status == SessionStatus.COMPLETED
        assert completed.completed_at == NINE + timedelta(minutes=30)
        assert delivery.scheduled == []
        assert len(sink.of_type("SessionCompleted")) == 1

    def test_completed_session_is_terminal(self, scheduler, booked, payments):
        scheduler.complete(booked.id)

        with pytest.raises(InvalidTransitionException):
            scheduler.complete(booked.id)
        with pytest.raises(InvalidTransitionException):
            scheduler.cancel(booked.id, CancellationActor.SUPPORTER)
        assert payments.refunds == []


class TestReschedule:
    def test_move_to_another_slot(self, scheduler, booked, reminders, sink):
        ten = NINE + timedelta(hours=1)
        moved = scheduler.reschedule(booked.id, _slot(scheduler, ten))

        assert moved.scheduled_at_utc == ten
        assert [h.fire_at_utc for h in reminders.pending(booked.id)] == [
            ten - timedelta(minutes=60),
            ten - timedelta(minutes=15),
        ]
        [event] = sink.of_type("SessionRescheduled")
        assert event["previous_start_utc"] == NINE.isoformat()
        assert event["new_start_utc"] == ten.isoformat()

    def test_move_by_less_than_its_own_length(self, scheduler, booked):
        half_past = NINE + timedelta(minutes=30)
        slot = scheduler.resolver.find_slot(
            half_past, scheduler.availability.read_availability(SUPPORTER_ID), 30
        )
        moved = scheduler.reschedule(booked.id, slot)
        assert moved.scheduled_at_utc == half_past

    def test_cannot_move_onto_another_booking(self, scheduler, booked):
        ten = NINE + timedelta(hours=1)
        other = scheduler.request_booking(
            "client-2", SUPPORTER_ID, SessionType.CHAT, _slot(scheduler, ten), "pm_2"
        )
        slot = scheduler.resolver.find_slot(
            ten, scheduler.availability.read_availability(SUPPORTER_ID), 30
        )

        with pytest.raises(SlotConflictException):
            scheduler.reschedule(booked.id, slot)
        assert scheduler.get_session(booked.id).scheduled_at_utc == NINE
        assert scheduler.get_session(other.id).scheduled_at_utc == ten

    def test_cancelled_session_cannot_move(self, scheduler, booked):
        scheduler.cancel(booked.id, CancellationActor.CLIENT)
        with pytest.raises(InvalidTransitionException):
            scheduler.reschedule(booked.id, _slot(scheduler, NINE + timedelta(hours=1)))


class TestReads:
    def test_get_session(self, scheduler, booked):
        assert scheduler.get_session(booked.id) == booked
        with pytest.raises(NotFoundException):
            scheduler.get_session("missing")

    def test_bookable_dates(self, scheduler):
        assert scheduler.list_bookable_dates(SUPPORTER_ID) == [
            MONDAY,
            MONDAY + timedelta(days=7),
        ]
