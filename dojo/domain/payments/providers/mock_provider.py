"""
Mock payment provider for development and tests

Webhooks are unsigned JSON: {"id": ..., "type": ..., "data": {"object": {...}}}
where the object carries id, amount, metadata and optionally receipt_url,
payment_method_type and card_last4.
"""

import json
import logging
import secrets
from typing import Any, ClassVar, Optional

from ....config import CURRENCY
from .base import ParsedWebhookEvent, PaymentIntent, PaymentProvider, PaymentProviderError, RefundResult
from .stripe_provider import STRIPE_EVENT_TYPES

logger = logging.getLogger(__name__)


class MockPaymentProvider(PaymentProvider):
    provider_id = "mock"
    display_name = "Mock"

    # Shared across instances so a webhook can find an intent created earlier
    intents: ClassVar[dict[str, PaymentIntent]] = {}

    async def create_payment_intent(
        self, amount: int, currency: str, metadata: dict[str, str], description: Optional[str] = None
    ) -> PaymentIntent:
        intent_id = f"mock_pi_{secrets.token_hex(8)}"
        intent = PaymentIntent(
            id=intent_id,
            amount=amount,
            currency=currency,
            status="pending",
            client_secret=f"{intent_id}_secret",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        logger.info(f"🧪 Mock intent created: {intent_id} ({amount} {currency})")
        return intent

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        intent = self.intents.get(intent_id)
        if intent is None:
            return PaymentIntent(id=intent_id, amount=None, currency=CURRENCY, status="pending")
        return intent

    async def cancel_payment_intent(self, intent_id: str) -> PaymentIntent:
        intent = await self.retrieve_payment_intent(intent_id)
        intent.status = "cancelled"
        return intent

    async def create_refund(
        self, intent_id: str, amount: Optional[int] = None, reason: Optional[str] = None
    ) -> RefundResult:
        intent = await self.retrieve_payment_intent(intent_id)
        return RefundResult(
            id=f"mock_re_{secrets.token_hex(8)}",
            amount=amount if amount is not None else intent.amount,
            status="succeeded",
            reason=reason,
        )

    def parse_webhook_event(self, payload: bytes, headers: dict[str, str], request_url: str) -> ParsedWebhookEvent:
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise PaymentProviderError(f"Invalid mock webhook payload: {e}") from e

        if not isinstance(event, dict) or not event.get("type"):
            raise PaymentProviderError("Invalid mock webhook payload structure")

        raw_type = event["type"]
        obj = (event.get("data") or {}).get("object") or {}
        intent_id = obj.get("id") or event.get("id")
        if not intent_id:
            raise PaymentProviderError("Mock webhook is missing an intent id")

        intent = self.intents.get(intent_id)
        if intent is not None:
            intent.status = {"payment.succeeded": "succeeded", "payment.failed": "failed"}.get(
                STRIPE_EVENT_TYPES.get(raw_type, raw_type), intent.status
            )

        return ParsedWebhookEvent(
            type=STRIPE_EVENT_TYPES.get(raw_type, raw_type),
            raw_type=raw_type,
            event_id=event.get("id") or intent_id,
            intent_id=intent_id,
            metadata={k: str(v) for k, v in (obj.get("metadata") or {}).items()},
            amount=obj.get("amount"),
            receipt_url=obj.get("receipt_url"),
            payment_method_type=obj.get("payment_method_type"),
            card_last4=obj.get("card_last4"),
            raw_payload=event,
        )

    def is_configured(self) -> bool:
        return True

    def get_client_config(self) -> dict[str, Any]:
        return {"provider": self.provider_id}
