"""
Square payment provider

Square has no payment intents: the browser tokenizes the card with the Web
Payments SDK and the server charges the token. create_payment_intent hands
out a reference id that confirm_payment later attaches to the real Square
payment as reference_id.
"""

import json
import logging
import secrets
import time
import uuid
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from ....config import (
    CURRENCY,
    SQUARE_ACCESS_TOKEN,
    SQUARE_APPLICATION_ID,
    SQUARE_ENVIRONMENT,
    SQUARE_LOCATION_ID,
    SQUARE_WEBHOOK_SIGNATURE_KEY,
    SQUARE_WEBHOOK_URL,
)
from ....webhook_security import verify_square_signature
from ..repository import PaymentRepository
from .base import ParsedWebhookEvent, PaymentIntent, PaymentProvider, PaymentProviderError, RefundResult

logger = logging.getLogger(__name__)

SQUARE_VERSION = "2024-12-18"
if SQUARE_ENVIRONMENT == "production":
    SQUARE_API_URL = "https://connect.squareup.com/v2"
else:
    SQUARE_API_URL = "https://connect.squareupsandbox.com/v2"

REFERENCE_PREFIX = "dojo_"

SQUARE_STATUSES = {
    "APPROVED": "succeeded",
    "COMPLETED": "succeeded",
    "PENDING": "processing",
    "FAILED": "failed",
    "CANCELED": "failed",
}

SQUARE_EVENT_TYPES = {
    "payment.created": "payment.created",
    "payment.updated": "payment.processing",
    "order.created": "payment.created",
    "order.updated": "payment.processing",
    "order.fulfilled": "payment.succeeded",
}


def map_square_event_type(raw_type: str, obj: dict) -> str:
    """Normalize a Square event type, looking at the payment status / order state"""
    normalized = SQUARE_EVENT_TYPES.get(raw_type, raw_type)

    if raw_type == "payment.updated":
        status = obj.get("status")
        if status == "COMPLETED":
            return "payment.succeeded"
        if status in ("FAILED", "CANCELED"):
            return "payment.failed"
    elif raw_type == "order.updated":
        state = obj.get("state")
        if state == "COMPLETED":
            return "payment.succeeded"
        if state == "CANCELED":
            return "payment.failed"

    return normalized


class SquarePaymentProvider(PaymentProvider):
    provider_id = "square"
    display_name = "Square"

    def __init__(
        self,
        access_token: Optional[str] = SQUARE_ACCESS_TOKEN,
        location_id: Optional[str] = SQUARE_LOCATION_ID,
        signature_key: Optional[str] = SQUARE_WEBHOOK_SIGNATURE_KEY,
    ):
        self.access_token = access_token
        self.location_id = location_id
        self.signature_key = signature_key

    def _headers(self) -> dict[str, str]:
        return {
            "Square-Version": SQUARE_VERSION,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json_body: Optional[dict] = None) -> dict:
        if not self.access_token:
            raise PaymentProviderError("SQUARE_ACCESS_TOKEN not configured")

        try:
            async with httpx.AsyncClient(timeout=30.0) as http_client:
                response = await http_client.request(
                    method, f"{SQUARE_API_URL}{path}", json=json_body, headers=self._headers()
                )
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"Square API request failed: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"❌ Square API error {response.status_code} on {path}: {response.text}")
            raise PaymentProviderError(f"Square API error {response.status_code}: {response.text}")

        return response.json()

    @staticmethod
    def _to_intent(payment: dict, fallback_id: str) -> PaymentIntent:
        amount_money = payment.get("amount_money") or {}
        card = (payment.get("card_details") or {}).get("card") or {}
        source_type = payment.get("source_type")
        return PaymentIntent(
            id=payment.get("id") or fallback_id,
            amount=amount_money.get("amount"),
            currency=amount_money.get("currency") or CURRENCY,
            status=SQUARE_STATUSES.get(payment.get("status", "PENDING"), "pending"),
            client_secret=fallback_id,
            metadata={"referenceId": payment["reference_id"]} if payment.get("reference_id") else {},
            receipt_url=payment.get("receipt_url"),
            payment_method_type=source_type.lower() if source_type else None,
            card_last4=card.get("last_4"),
        )

    async def create_payment_intent(
        self, amount: int, currency: str, metadata: dict[str, str], description: Optional[str] = None
    ) -> PaymentIntent:
        reference_id = f"{REFERENCE_PREFIX}{int(time.time())}_{secrets.token_hex(5)}"
        logger.info(f"✅ Square payment reference created: {reference_id} ({amount} {currency})")
        return PaymentIntent(
            id=reference_id,
            amount=amount,
            currency=currency,
            status="pending",
            client_secret=reference_id,
            metadata=metadata,
        )

    async def confirm_payment(self, reference_id: str, source_id: str, amount: int, currency: str) -> PaymentIntent:
        """Charge a Web Payments SDK token; reference_id ties the charge to the local payment"""
        data = await self._request(
            "POST",
            "/payments",
            {
                "idempotency_key": str(uuid.uuid4()),
                "source_id": source_id,
                "amount_money": {"amount": amount, "currency": currency},
                "location_id": self.location_id,
                "reference_id": reference_id,
            },
        )
        payment = data.get("payment") or {}
        logger.info(f"💰 Square payment {payment.get('id')} created with status {payment.get('status')}")
        return self._to_intent(payment, reference_id)

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        if intent_id.startswith(REFERENCE_PREFIX):
            # Not charged yet
            return PaymentIntent(id=intent_id, amount=None, currency=CURRENCY, status="pending", client_secret=intent_id)

        data = await self._request("GET", f"/payments/{intent_id}")
        return self._to_intent(data.get("payment") or {}, intent_id)

    async def cancel_payment_intent(self, intent_id: str) -> PaymentIntent:
        if intent_id.startswith(REFERENCE_PREFIX):
            return PaymentIntent(id=intent_id, amount=None, currency=CURRENCY, status="cancelled")

        data = await self._request("POST", f"/payments/{intent_id}/cancel")
        intent = self._to_intent(data.get("payment") or {}, intent_id)
        intent.status = "cancelled"
        return intent

    async def create_refund(
        self, intent_id: str, amount: Optional[int] = None, reason: Optional[str] = None
    ) -> RefundResult:
        if amount is None:
            amount = (await self.retrieve_payment_intent(intent_id)).amount or 0

        data = await self._request(
            "POST",
            "/refunds",
            {
                "idempotency_key": str(uuid.uuid4()),
                "payment_id": intent_id,
                "amount_money": {"amount": amount, "currency": CURRENCY},
                "reason": reason or "Refund requested",
            },
        )
        refund = data.get("refund") or {}
        return RefundResult(
            id=refund.get("id", ""),
            amount=(refund.get("amount_money") or {}).get("amount"),
            status="succeeded" if refund.get("status") == "COMPLETED" else "pending",
            reason=refund.get("reason"),
        )

    def parse_webhook_event(self, payload: bytes, headers: dict[str, str], request_url: str) -> ParsedWebhookEvent:
        signature = headers.get("x-square-hmacsha256-signature")
        notification_url = SQUARE_WEBHOOK_URL or request_url
        if not verify_square_signature(payload, signature, notification_url, self.signature_key):
            raise PaymentProviderError("Invalid Square webhook signature")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise PaymentProviderError(f"Invalid Square webhook payload: {e}") from e

        raw_type = event.get("type")
        data = event.get("data")
        if not raw_type or not isinstance(data, dict):
            raise PaymentProviderError("Invalid Square webhook payload structure")

        wrapper = data.get("object") or {}
        metadata: dict[str, str] = {}
        amount = None
        receipt_url = None
        method_type = None
        last4 = None

        if raw_type.startswith("payment."):
            payment = wrapper.get("payment", wrapper)
            intent_id = payment.get("id") or data.get("id")
            event_type = map_square_event_type(raw_type, payment)
            amount = (payment.get("amount_money") or {}).get("amount")
            receipt_url = payment.get("receipt_url")
            if payment.get("source_type"):
                method_type = payment["source_type"].lower()
            last4 = ((payment.get("card_details") or {}).get("card") or {}).get("last_4")
            if payment.get("order_id"):
                metadata["squareOrderId"] = payment["order_id"]
            if payment.get("reference_id"):
                metadata["referenceId"] = payment["reference_id"]

        elif raw_type.startswith("order."):
            order = wrapper.get("order") or wrapper.get("order_updated") or wrapper
            intent_id = order.get("id") or order.get("order_id") or data.get("id")
            event_type = map_square_event_type(raw_type, order)
            if order.get("reference_id"):
                metadata["referenceId"] = order["reference_id"]
            tenders = order.get("tenders") or []
            if tenders:
                tender = tenders[0]
                last4 = ((tender.get("card_details") or {}).get("card") or {}).get("last_4")
                if tender.get("type"):
                    method_type = tender["type"].lower()
                if tender.get("payment_id"):
                    intent_id = tender["payment_id"]

        else:
            intent_id = data.get("id") or event.get("event_id") or "unknown"
            event_type = raw_type

        return ParsedWebhookEvent(
            type=event_type,
            raw_type=raw_type,
            event_id=event.get("event_id") or intent_id,
            intent_id=intent_id,
            metadata=metadata,
            amount=amount,
            receipt_url=receipt_url,
            payment_method_type=method_type,
            card_last4=last4,
            raw_payload=event,
        )

    def enrich_webhook_metadata(self, db: Session, metadata: dict[str, str], intent_id: str) -> dict[str, str]:
        """
        Square events carry no custom metadata, so the keys the webhook
        handlers need are filled from the local Payment row.
        """
        payment = PaymentRepository.get_by_intent_id(db, intent_id)
        if payment is None and metadata.get("referenceId"):
            payment = PaymentRepository.get_by_intent_id(db, metadata["referenceId"])

        if payment is None:
            logger.warning(f"⚠️ No local payment found for Square intent {intent_id}")
            return metadata

        enriched = {
            "paymentId": str(payment.id),
            "type": payment.type,
            "familyId": str(payment.family_id),
            "subtotal_amount": str(payment.subtotal_amount),
            "tax_amount": str(payment.tax_amount),
            "total_amount": str(payment.total_amount),
            "studentIds": ",".join(str(sid) for sid in payment.student_ids),
        }
        if payment.order_id:
            enriched["orderId"] = str(payment.order_id)

        enriched.update({k: v for k, v in metadata.items() if v})
        logger.info(f"🔍 Enriched Square metadata for intent {intent_id} from payment {payment.id}")
        return enriched

    def is_configured(self) -> bool:
        return bool(SQUARE_APPLICATION_ID and self.location_id and self.access_token)

    def get_client_config(self) -> dict[str, Any]:
        return {
            "provider": self.provider_id,
            "application_id": SQUARE_APPLICATION_ID,
            "location_id": self.location_id,
            "environment": SQUARE_ENVIRONMENT,
        }

    def get_dashboard_url(self, intent_id: str) -> Optional[str]:
        if not intent_id or intent_id.startswith(REFERENCE_PREFIX):
            return None
        if SQUARE_ENVIRONMENT == "production":
            return f"https://squareup.com/dashboard/sales/transactions/{intent_id}"
        return f"https://squareupsandbox.com/dashboard/sales/transactions/{intent_id}"
