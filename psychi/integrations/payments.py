# psychi/integrations/payments.py
"""
Payment processor port.

The booking engine charges when a session is requested and refunds when it
is cancelled. Processors report failures through the result objects instead
of raising, so the scheduler decides what a failure means in each phase.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    charge_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_ref: Optional[str] = None
    error: Optional[str] = None


class PaymentProcessor(ABC):
    @abstractmethod
    def charge(
        self,
        amount_cents: int,
        method_ref: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> ChargeResult:
        """Charge the client's payment method."""

    @abstractmethod
    def refund(self, charge_ref: str, amount_cents: int) -> RefundResult:
        """Refund part or all of an earlier charge."""

