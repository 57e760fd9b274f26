# psychi/integrations/stripe_client.py
"""
Stripe-backed payment processor.

Charges are confirmed PaymentIntents on a saved payment method; redirects are
disabled because the client is not present when a booking is finalized.
"""

import logging
from typing import Dict, Optional

import stripe

from ..core.config import settings
from .payments import ChargeResult, PaymentProcessor, RefundResult

logger = logging.getLogger(__name__)

# PaymentIntent statuses that Stripe still allows to be cancelled
CANCELABLE_STATUSES = frozenset(
    {"requires_payment_method", "requires_confirmation", "requires_action", "requires_capture"}
)


class StripePaymentProcessor(PaymentProcessor):
    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None) -> None:
        if api_key is None and settings.stripe_secret_key is not None:
            api_key = settings.stripe_secret_key.get_secret_value()
        if api_key:
            stripe.api_key = api_key
        else:
            logger.warning("Stripe secret key not configured; charges will fail")
        self.currency = currency or settings.payment_currency

    def charge(
        self,
        amount_cents: int,
        method_ref: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> ChargeResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=self.currency,
                payment_method=method_ref,
                confirm=True,
                metadata={"platform": "psychi", **(metadata or {})},
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating charge: {str(e)}")
            return ChargeResult(success=False, error=str(e))

        status = getattr(intent, "status", "")
        if status != "succeeded":
            logger.warning(f"PaymentIntent {intent.id} ended in status {status}")
            if status in CANCELABLE_STATUSES:
                self._cancel_intent(intent.id)
            return ChargeResult(success=False, charge_ref=intent.id, error=f"status {status}")
        logger.info(f"Charged {amount_cents} cents via PaymentIntent {intent.id}")
        return ChargeResult(success=True, charge_ref=intent.id)

    def _cancel_intent(self, intent_id: str) -> None:
        """Cancel an intent the booking will not use."""
        try:
            stripe.PaymentIntent.cancel(intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error cancelling PaymentIntent {intent_id}: {str(e)}")

    def refund(self, charge_ref: str, amount_cents: int) -> RefundResult:
        try:
            refund = stripe.Refund.create(payment_intent=charge_ref, amount=amount_cents)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {charge_ref}: {str(e)}")
            return RefundResult(success=False, error=str(e))

        status = getattr(refund, "status", "")
        if status in ("failed", "canceled"):
            return RefundResult(success=False, refund_ref=refund.id, error=f"status {status}")
        logger.info(f"Refunded {amount_cents} cents of {charge_ref} ({refund.id})")
        return RefundResult(success=True, refund_ref=refund.id)
