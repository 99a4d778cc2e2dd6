"""Stripe payment provider"""

import json
import logging
from typing import Any, Optional

import stripe

from ....config import STRIPE_PUBLISHABLE_KEY, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from .base import ParsedWebhookEvent, PaymentIntent, PaymentProvider, PaymentProviderError, RefundResult

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY

STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": "payment.succeeded",
    "payment_intent.payment_failed": "payment.failed",
    "payment_intent.processing": "payment.processing",
}

STRIPE_STATUSES = {
    "succeeded": "succeeded",
    "processing": "processing",
    "canceled": "cancelled",
    "requires_payment_method": "pending",
    "requires_confirmation": "pending",
    "requires_action": "pending",
}


def _charge_details(intent: Any) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """receipt_url, payment method type and card last4 from the expanded latest_charge"""
    charge = intent.get("latest_charge")
    if not charge or isinstance(charge, str):
        return None, None, None

    details = charge.get("payment_method_details") or {}
    method_type = details.get("type")
    card = details.get("card") or {}
    return charge.get("receipt_url"), method_type, card.get("last4")


class StripePaymentProvider(PaymentProvider):
    provider_id = "stripe"
    display_name = "Stripe"

    def __init__(self, webhook_secret: Optional[str] = STRIPE_WEBHOOK_SECRET):
        self.webhook_secret = webhook_secret

    def _to_intent(self, intent: Any) -> PaymentIntent:
        receipt_url, method_type, last4 = _charge_details(intent)
        return PaymentIntent(
            id=intent["id"],
            amount=intent.get("amount"),
            currency=(intent.get("currency") or "").upper(),
            status=STRIPE_STATUSES.get(intent.get("status"), "pending"),
            client_secret=intent.get("client_secret"),
            metadata=dict(intent.get("metadata") or {}),
            receipt_url=receipt_url,
            payment_method_type=method_type,
            card_last4=last4,
        )

    async def create_payment_intent(
        self, amount: int, currency: str, metadata: dict[str, str], description: Optional[str] = None
    ) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                metadata=metadata,
                description=description,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe PaymentIntent creation failed: {e}")
            raise PaymentProviderError(f"Failed to create Stripe payment intent: {e}") from e

        logger.info(f"✅ Stripe PaymentIntent created: {intent['id']} ({amount} {currency})")
        return self._to_intent(intent)

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, expand=["latest_charge"])
        except stripe.StripeError as e:
            raise PaymentProviderError(f"Failed to retrieve Stripe payment intent {intent_id}: {e}") from e
        return self._to_intent(intent)

    async def cancel_payment_intent(self, intent_id: str) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.cancel(intent_id)
        except stripe.StripeError as e:
            raise PaymentProviderError(f"Failed to cancel Stripe payment intent {intent_id}: {e}") from e
        return self._to_intent(intent)

    async def create_refund(
        self, intent_id: str, amount: Optional[int] = None, reason: Optional[str] = None
    ) -> RefundResult:
        params: dict[str, Any] = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = amount
        if reason:
            params["metadata"] = {"reason": reason}
        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            raise PaymentProviderError(f"Failed to refund Stripe payment intent {intent_id}: {e}") from e

        return RefundResult(
            id=refund["id"],
            amount=refund.get("amount"),
            status="succeeded" if refund.get("status") == "succeeded" else "pending",
            reason=reason,
        )

    def parse_webhook_event(self, payload: bytes, headers: dict[str, str], request_url: str) -> ParsedWebhookEvent:
        if not self.webhook_secret:
            raise PaymentProviderError("STRIPE_WEBHOOK_SECRET not configured")

        signature = headers.get("stripe-signature", "")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise PaymentProviderError(f"Invalid Stripe payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise PaymentProviderError(f"Invalid Stripe signature: {e}") from e

        raw_type = event["type"]
        obj = event["data"]["object"]
        receipt_url, method_type, last4 = _charge_details(obj)

        return ParsedWebhookEvent(
            type=STRIPE_EVENT_TYPES.get(raw_type, raw_type),
            raw_type=raw_type,
            event_id=event["id"],
            intent_id=obj.get("id") or event["id"],
            metadata=dict(obj.get("metadata") or {}),
            amount=obj.get("amount"),
            receipt_url=receipt_url,
            payment_method_type=method_type,
            card_last4=last4,
            raw_payload=json.loads(payload),
        )

    def is_configured(self) -> bool:
        return bool(STRIPE_SECRET_KEY and STRIPE_PUBLISHABLE_KEY)

    def get_client_config(self) -> dict[str, Any]:
        return {"provider": self.provider_id, "publishable_key": STRIPE_PUBLISHABLE_KEY}

    def get_dashboard_url(self, intent_id: str) -> Optional[str]:
        if not intent_id:
            return None
        mode = "" if (STRIPE_SECRET_KEY or "").startswith("sk_live") else "test/"
        return f"https://dashboard.stripe.com/{mode}payments/{intent_id}"
