"""Reminder scheduling and cancellation."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from psychi.core.enums import SessionType
from psychi.core.exceptions import ValidationException
from psychi.domain.session import SupportSession
from psychi.services.reminder_scheduler import ReminderScheduler
from tests.conftest import CLIENT_ID, NOW, SUPPORTER_ID


def _session(starts_in: timedelta, **overrides) -> SupportSession:
    fields = dict(
        client_id=CLIENT_ID,
        supporter_id=SUPPORTER_ID,
        session_type=SessionType.CHAT,
        scheduled_at_utc=NOW + starts_in,
        duration_minutes=30,
        price_cents=700,
    )
    fields.update(overrides)
    return SupportSession.request(**fields).confirm()


class TestSchedule:
    def test_three_reminders_for_a_session_a_day_out(self, reminders, delivery):
        session = _session(timedelta(hours=26))

        handles = reminders.schedule(session)

        assert [h.fire_at_utc for h in handles] == [
            NOW + timedelta(hours=2),
            NOW + timedelta(hours=25),
            NOW + timedelta(hours=25, minutes=45),
        ]
        assert [h.offset_minutes for h in handles] == [1440, 60, 15]
        assert [h.reminder_id for h in handles] == [
            f"{session.id}:1440",
            f"{session.id}:60",
            f"{session.id}:15",
        ]
        assert len(delivery.scheduled) == 3

    def test_cancel_all_removes_all_three(self, reminders, delivery):
        session = _session(timedelta(hours=26))
        reminders.schedule(session)

        assert reminders.cancel_all(session.id) == 3
        assert reminders.pending(session.id) == []
        assert delivery.scheduled == []

    def test_reminders_in_the_past_are_skipped(self, reminders):
        handles = reminders.schedule(_session(timedelta(minutes=30)))
        assert [h.offset_minutes for h in handles] == [15]

    def test_reminder_due_exactly_now_is_skipped(self, reminders):
        assert reminders.schedule(_session(timedelta(minutes=15))) == []

    def test_inactive_session_gets_no_reminders(self, reminders, delivery):
        session = _session(timedelta(hours=26)).complete(NOW)
        assert reminders.schedule(session) == []
        assert delivery.scheduled == []

    def test_scheduling_twice_is_rejected(self, reminders):
        session = _session(timedelta(hours=26))
        reminders.schedule(session)
        with pytest.raises(ValidationException):
            reminders.schedule(session)

    def test_payload_carries_session_details(self, reminders, delivery):
        session = _session(timedelta(hours=2), session_type=SessionType.VIDEO)
        reminders.schedule(session, names={SUPPORTER_ID: "Sam"})

        payload = delivery.scheduled[0].payload
        assert payload["session_id"] == session.id
        assert payload["session_type"] == "video"
        assert payload["offset_minutes"] == 60
        assert payload["names"] == {SUPPORTER_ID: "Sam"}

    def test_delivery_failure_rolls_back_earlier_fires(self, clock):
        delivery = MagicMock()
        delivery.schedule_fire.side_effect = ["h1", RuntimeError("broker down")]
        scheduler = ReminderScheduler(delivery, offsets_minutes=[15, 60], clock=clock)
        session = _session(timedelta(hours=3))

        with pytest.raises(RuntimeError):
            scheduler.schedule(session)

        delivery.cancel.assert_called_once_with("h1")
        assert scheduler.pending(session.id) == []

    def test_offsets_must_be_positive(self, delivery):
        with pytest.raises(ValidationException):
            ReminderScheduler(delivery, offsets_minutes=[15, 0])


class TestCancel:
    def test_cancel_all_is_idempotent(self, reminders, delivery):
        session = _session(timedelta(hours=26))
        reminders.schedule(session)

        assert reminders.cancel_all(session.id) == 3
        assert reminders.cancel_all(session.id) == 0
        assert delivery.scheduled == []

    def test_cancel_all_leaves_other_sessions_alone(self, reminders, delivery):
        first = _session(timedelta(hours=26))
        second = _session(timedelta(hours=27), supporter_id="supporter-2")
        reminders.schedule(first)
        reminders.schedule(second)

        reminders.cancel_all(first.id)

        assert len(reminders.pending(second.id)) == 3
        assert {fire.payload["session_id"] for fire in delivery.scheduled} == {second.id}

    def test_cancel_single_offset(self, reminders):
        session = _session(timedelta(hours=26))
        reminders.schedule(session)

        assert reminders.cancel(session.id, 60) is True
        assert reminders.cancel(session.id, 60) is False
        assert [h.offset_minutes for h in reminders.pending(session.id)] == [1440, 15]

    def test_unknown_session(self, reminders):
        assert reminders.cancel_all("missing") == 0
        assert reminders.cancel("missing", 15) is False


class TestReschedule:
    def test_reschedule_replaces_every_reminder(self, reminders, delivery):
        session = _session(timedelta(hours=26))
        old_handles = {h.delivery_handle for h in reminders.schedule(session)}

        moved = session.moved_to(session.scheduled_at_utc + timedelta(hours=1))
        new = reminders.reschedule(moved)

        assert [h.fire_at_utc for h in new] == [
            NOW + timedelta(hours=3),
            NOW + timedelta(hours=26),
            NOW + timedelta(hours=26, minutes=45),
        ]
        assert old_handles.isdisjoint({fire.handle for fire in delivery.scheduled})
        assert len(delivery.scheduled) == 3

    def test_due_fires_pop_in_order(self, reminders, delivery, clock):
        reminders.schedule(_session(timedelta(hours=26)))

        clock.advance(hours=25)
        due = delivery.due(clock.now())

        assert [fire.payload["offset_minutes"] for fire in due] == [1440, 60]
        assert len(delivery.scheduled) == 1
