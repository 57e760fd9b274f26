"""Tiered refund computation."""

from datetime import datetime, timedelta, timezone

import pytest

from psychi.core.enums import CancellationActor, SessionType
from psychi.core.exceptions import ValidationException
from psychi.services.refund_calculator import RefundCalculator, RefundPolicy, compute_refund

START = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
FOUR_TWO = RefundPolicy(full_refund_hours=4, no_refund_hours=2)


def _quote(hours_before, actor=CancellationActor.CLIENT, price=5000, policy=FOUR_TWO):
    return compute_refund(price, START, START - timedelta(hours=hours_before), actor, policy=policy)


class TestClientTiers:
    @pytest.mark.parametrize(
        "hours_before, percentage, amount",
        [(5, 100, 5000), (3, 50, 2500), (1, 0, 0)],
    )
    def test_fifty_dollar_session(self, hours_before, percentage, amount):
        quote = _quote(hours_before)
        assert quote.percentage == percentage
        assert quote.amount_cents == amount

    def test_threshold_boundaries_are_inclusive_of_the_higher_tier(self):
        assert _quote(4).percentage == 100
        assert _quote(2).percentage == 50
        assert _quote(1.99).percentage == 0

    def test_session_already_started_gets_nothing(self):
        quote = _quote(-0.5)
        assert quote.percentage == 0
        assert quote.amount_cents == 0
        assert quote.hours_until_session == pytest.approx(-0.5)

    def test_percentage_never_increases_as_the_session_approaches(self):
        previous = 100
        for tenth_hours in range(60, -20, -1):
            current = _quote(tenth_hours / 10).percentage
            assert current in (0, 50, 100)
            assert current <= previous
            previous = current

    def test_partial_amount_rounds_half_up(self):
        assert _quote(3, price=1505).amount_cents == 753
        assert _quote(3, price=1).amount_cents == 1

    def test_default_policy_reasons(self):
        policy = RefundPolicy()
        assert _quote(30, policy=policy).reason == (
            "Full refund - cancelled 24+ hours before session"
        )
        assert _quote(3, policy=policy).reason == (
            "Partial refund (50%) - cancelled within 24 hours of session"
        )
        assert _quote(1, policy=policy).reason == "No refund - cancelled within 2 hours of session"


class TestSupporterCancellation:
    @pytest.mark.parametrize("hours_before", [100, 5, 3, 1, 0, -2])
    def test_always_full_refund(self, hours_before):
        quote = _quote(hours_before, actor=CancellationActor.SUPPORTER)
        assert quote.percentage == 100
        assert quote.amount_cents == 5000
        assert quote.reason == "Full refund - cancelled by supporter"


class TestValidation:
    def test_none_actor_is_rejected(self):
        with pytest.raises(ValidationException):
            _quote(5, actor=CancellationActor.NONE)

    def test_negative_price_is_rejected(self):
        with pytest.raises(ValidationException):
            _quote(5, price=-1)

    def test_policy_thresholds_must_be_ordered(self):
        with pytest.raises(ValidationException):
            RefundPolicy(full_refund_hours=2, no_refund_hours=2)
        with pytest.raises(ValidationException):
            RefundPolicy(full_refund_hours=4, no_refund_hours=1, partial_percentage=120)

    def test_naive_datetimes_are_treated_as_utc(self):
        naive_start = START.replace(tzinfo=None)
        quote = compute_refund(
            5000, naive_start, naive_start - timedelta(hours=3), "client", policy=FOUR_TWO
        )
        assert quote.percentage == 50


class TestRefundCalculator:
    def test_session_type_override(self):
        calculator = RefundCalculator(
            FOUR_TWO,
            overrides={SessionType.CHAT: RefundPolicy(4, 1, partial_percentage=25)},
        )
        now = START - timedelta(hours=1.5)

        chat = calculator.compute(700, START, now, CancellationActor.CLIENT, SessionType.CHAT)
        video = calculator.compute(2000, START, now, CancellationActor.CLIENT, SessionType.VIDEO)

        assert (chat.percentage, chat.amount_cents) == (25, 175)
        assert (video.percentage, video.amount_cents) == (0, 0)

    def test_policy_for_without_type_is_default(self):
        calculator = RefundCalculator(FOUR_TWO)
        assert calculator.policy_for() is FOUR_TWO
        assert calculator.policy_for(SessionType.PHONE) is FOUR_TWO

    def test_payload(self):
        payload = _quote(3).to_payload()
        assert payload == {
            "percentage": 50,
            "amount_cents": 2500,
            "reason": "Partial refund (50%) - cancelled within 4 hours of session",
            "hours_until_session": 3.0,
        }
