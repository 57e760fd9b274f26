"""Request schema validation."""

from datetime import datetime, timezone

from pydantic import ValidationError
import pytest

from psychi.core.enums import CancellationActor, SessionType, Weekday
from psychi.core.exceptions import AvailabilityOverlapException
from psychi.schemas.availability import WeeklyAvailabilityIn
from psychi.schemas.booking import BookingRequest, CancellationRequest
from psychi.schemas.preferences import ClientPreferences


def _booking(**overrides):
    values = dict(
        client_id="client-1",
        supporter_id="supporter-1",
        session_type="video",
        slot_start_utc="2026-01-05T09:00:00Z",
        payment_method_ref="pm_card",
    )
    values.update(overrides)
    return BookingRequest(**values)


class TestBookingRequest:
    def test_valid(self):
        request = _booking()
        assert request.session_type == SessionType.VIDEO
        assert request.slot_start_utc == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def test_naive_start_is_read_as_utc(self):
        request = _booking(slot_start_utc=datetime(2026, 1, 5, 9, 0))
        assert request.slot_start_utc.tzinfo == timezone.utc

    def test_offset_start_is_converted(self):
        request = _booking(slot_start_utc="2026-01-05T10:00:00+01:00")
        assert request.slot_start_utc == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def test_unknown_session_type(self):
        with pytest.raises(ValidationError):
            _booking(session_type="webinar")

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError):
            _booking(price_cents=1)

    def test_blank_ids_rejected(self):
        with pytest.raises(ValidationError):
            _booking(client_id="   ")


class TestCancellationRequest:
    def test_valid(self):
        request = CancellationRequest(session_id="s1", actor="client", reason=" Sick ")
        assert request.actor == CancellationActor.CLIENT
        assert request.reason == "Sick"

    def test_none_actor_rejected(self):
        with pytest.raises(ValidationError):
            CancellationRequest(session_id="s1", actor="none")

    def test_blank_reason_becomes_none(self):
        assert CancellationRequest(session_id="s1", actor="supporter", reason="").reason is None

    def test_reason_length_capped(self):
        with pytest.raises(ValidationError):
            CancellationRequest(session_id="s1", actor="client", reason="x" * 501)


class TestWeeklyAvailabilityIn:
    def test_to_domain(self):
        payload = WeeklyAvailabilityIn(
            timezone="America/New_York",
            days={
                "Monday": {
                    "enabled": True,
                    "windows": [
                        {"start": "13:00", "end": "15:00"},
                        {"start": "09:00", "end": "12:00"},
                    ],
                },
                "friday": {"enabled": True, "windows": [{"start": "20:00", "end": "00:00"}]},
                "sunday": {"enabled": False},
            },
        )
        availability = payload.to_domain()

        assert availability.timezone == "America/New_York"
        assert [w.label() for w in availability.windows_for(Weekday.MONDAY)] == [
            "09:00-12:00",
            "13:00-15:00",
        ]
        assert [w.label() for w in availability.windows_for(Weekday.FRIDAY)] == ["20:00-24:00"]
        assert not availability.is_enabled(Weekday.SUNDAY)
        assert availability.enabled_days == (Weekday.MONDAY, Weekday.FRIDAY)

    def test_enabled_day_needs_windows(self):
        with pytest.raises(ValidationError):
            WeeklyAvailabilityIn(timezone="UTC", days={"monday": {"enabled": True}})

    def test_disabled_day_cannot_have_windows(self):
        with pytest.raises(ValidationError):
            WeeklyAvailabilityIn(
                timezone="UTC",
                days={
                    "monday": {
                        "enabled": False,
                        "windows": [{"start": "09:00", "end": "10:00"}],
                    }
                },
            )

    def test_unknown_weekday(self):
        with pytest.raises(ValidationError):
            WeeklyAvailabilityIn(timezone="UTC", days={"funday": {"enabled": False}})

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            WeeklyAvailabilityIn(timezone="Mars/Olympus_Mons")

    def test_overlapping_windows(self):
        payload = WeeklyAvailabilityIn(
            timezone="UTC",
            days={
                "tuesday": {
                    "enabled": True,
                    "windows": [
                        {"start": "09:00", "end": "11:00"},
                        {"start": "10:30", "end": "12:00"},
                    ],
                }
            },
        )
        with pytest.raises(AvailabilityOverlapException) as exc_info:
            payload.to_domain()
        assert exc_info.value.details["weekday"] == "tuesday"


class TestClientPreferences:
    def test_quiz_defaults(self):
        preferences = ClientPreferences()
        assert preferences.preferred_session_types == [
            SessionType.CHAT,
            SessionType.PHONE,
            SessionType.VIDEO,
        ]
        assert preferences.preferred_times == ["morning", "afternoon", "evening"]
        assert preferences.communication_style == "balanced"
        assert preferences.topics == []

    def test_unknown_answers_are_ignored(self):
        preferences = ClientPreferences(mood=4, favourite_colour="blue")
        assert preferences.mood == 4

    def test_mood_range(self):
        with pytest.raises(ValidationError):
            ClientPreferences(mood=9)
