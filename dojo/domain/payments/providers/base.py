"""
Payment provider interface

Every provider (Stripe, Square, mock) turns its own API and webhook format
into these shapes so the payment and webhook services stay provider-agnostic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


class PaymentProviderError(Exception):
    """Raised when a provider call fails or a webhook cannot be parsed"""


@dataclass
class PaymentIntent:
    id: str
    amount: Optional[int]  # cents
    currency: str
    status: str  # pending, processing, succeeded, failed, cancelled
    client_secret: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    receipt_url: Optional[str] = None
    payment_method_type: Optional[str] = None
    card_last4: Optional[str] = None


@dataclass
class RefundResult:
    id: str
    amount: Optional[int]
    status: str  # pending, succeeded, failed
    reason: Optional[str] = None


@dataclass
class ParsedWebhookEvent:
    """
    A provider webhook normalized to payment.succeeded, payment.failed,
    payment.processing, payment.created or the raw type.
    """

    type: str
    raw_type: str
    event_id: str
    intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    amount: Optional[int] = None
    receipt_url: Optional[str] = None
    payment_method_type: Optional[str] = None
    card_last4: Optional[str] = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


class PaymentProvider(ABC):
    provider_id: str = ""
    display_name: str = ""

    @abstractmethod
    async def create_payment_intent(
        self, amount: int, currency: str, metadata: dict[str, str], description: Optional[str] = None
    ) -> PaymentIntent: ...

    @abstractmethod
    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    @abstractmethod
    async def cancel_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    @abstractmethod
    async def create_refund(
        self, intent_id: str, amount: Optional[int] = None, reason: Optional[str] = None
    ) -> RefundResult: ...

    @abstractmethod
    def parse_webhook_event(self, payload: bytes, headers: dict[str, str], request_url: str) -> ParsedWebhookEvent:
        """Verify the signature and normalize the event; raises PaymentProviderError"""

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    def get_client_config(self) -> dict[str, Any]:
        """Public keys the browser needs to render the payment form"""

    def get_dashboard_url(self, intent_id: str) -> Optional[str]:
        return None
