"""
Payment webhook pipeline

parse -> (Square) enrich metadata -> idempotency check -> record event ->
dispatch -> mark event. Nothing raises out of handle_payment_webhook: every
outcome is a WebhookResult and failures are recorded on the event row.
"""

import logging
import time
import traceback
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...email_service import send_payment_receipt
from ...models import Family
from ...models_payment import EventRegistration, Order, Payment
from ...shared.dates import utcnow
from ...shared.money import format_cents
from ..discounts.automation import AutoDiscountService
from ..payments.paid_until import apply_payment_to_enrollments
from ..payments.providers import (
    ParsedWebhookEvent,
    PaymentProvider,
    PaymentProviderError,
    SquarePaymentProvider,
    get_payment_provider,
)
from ..payments.service import PAYMENT_TYPE_LABELS, build_intent_metadata
from .repository import DuplicateWebhookEventError, WebhookEventRepository

logger = logging.getLogger(__name__)

SUCCESS_METADATA_KEYS = ("paymentId", "type", "familyId", "subtotal_amount", "tax_amount", "total_amount")
ACKNOWLEDGED_RAW_TYPES = ("mandate.updated", "charge.succeeded", "charge.updated")


@dataclass
class WebhookResult:
    success: bool
    error: Optional[str] = None
    is_duplicate: bool = False


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def idempotency_key(event: ParsedWebhookEvent) -> str:
    """An intent settles once; every other event is keyed by the provider's event id"""
    if event.type == "payment.succeeded":
        return event.intent_id
    return event.event_id or event.intent_id


def request_id_from_headers(headers: dict[str, str]) -> Optional[str]:
    return headers.get("x-request-id") or headers.get("traceparent")


def source_ip_from_headers(headers: dict[str, str]) -> Optional[str]:
    if headers.get("x-real-ip"):
        return headers["x-real-ip"]
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("cf-connecting-ip")


class WebhookService:
    """Settles payments from provider webhooks"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WebhookEventRepository()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_payment_webhook(
        self, provider: PaymentProvider, payload: bytes, headers: dict[str, str], request_url: str
    ) -> WebhookResult:
        try:
            event = provider.parse_webhook_event(payload, headers, request_url)
        except PaymentProviderError as e:
            logger.warning(f"🚫 [{provider.provider_id}] Rejected webhook: {e}")
            return WebhookResult(success=False, error=str(e))

        return await self.process_event(provider, event, headers)

    async def process_event(
        self, provider: PaymentProvider, event: ParsedWebhookEvent, headers: Optional[dict[str, str]] = None
    ) -> WebhookResult:
        headers = headers or {}
        started_at = time.perf_counter()
        webhook_event_id = None

        try:
            metadata = dict(event.metadata)
            if isinstance(provider, SquarePaymentProvider):
                metadata = provider.enrich_webhook_metadata(self.db, metadata, event.intent_id)

            logger.info(
                f"📥 [{provider.provider_id}] Webhook raw_type={event.raw_type} type={event.type} "
                f"intent={event.intent_id} metadata_keys={','.join(metadata) or 'none'}"
            )

            key = idempotency_key(event)
            is_duplicate, existing = self.repo.check_webhook_idempotency(self.db, provider.provider_id, key)
            if is_duplicate:
                logger.warning(
                    f"⚠️ [{provider.provider_id}] Duplicate event {key} (original status {existing.status}), skipping"
                )
                return WebhookResult(success=True, is_duplicate=True)

            try:
                webhook_event = self.repo.create_webhook_event(
                    self.db,
                    provider=provider.provider_id,
                    event_id=key,
                    event_type=event.type,
                    raw_type=event.raw_type,
                    raw_payload=event.raw_payload,
                    parsed_metadata={**metadata, "intentId": event.intent_id},
                    request_id=request_id_from_headers(headers),
                    source_ip=source_ip_from_headers(headers),
                )
                webhook_event_id = webhook_event.id
            except DuplicateWebhookEventError:
                logger.warning(f"⚠️ [{provider.provider_id}] Event {key} already being processed elsewhere")
                return WebhookResult(success=True, is_duplicate=True)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ [{provider.provider_id}] Could not record webhook event {key}: {e}")

            result = await self.dispatch(provider, event, metadata)

            if webhook_event_id is not None:
                if result.is_duplicate:
                    self.repo.mark_webhook_event_duplicate(self.db, webhook_event_id)
                elif result.success:
                    self.repo.mark_webhook_event_succeeded(
                        self.db, webhook_event_id, _parse_int(metadata.get("paymentId")), started_at
                    )
                else:
                    self.repo.mark_webhook_event_failed(
                        self.db, webhook_event_id, result.error or "Unknown error", None, started_at
                    )
            return result

        except Exception as e:
            logger.error(f"❌ [{provider.provider_id}] Error processing webhook: {e}")
            self.db.rollback()
            if webhook_event_id is not None:
                self.repo.mark_webhook_event_failed(
                    self.db, webhook_event_id, str(e), {"traceback": traceback.format_exc()}, started_at
                )
            return WebhookResult(success=False, error=str(e))

    async def dispatch(
        self, provider: PaymentProvider, event: ParsedWebhookEvent, metadata: dict[str, str]
    ) -> WebhookResult:
        if event.type == "payment.succeeded":
            return await self.handle_payment_success(provider, event, metadata)
        if event.type == "payment.failed":
            return await self.handle_payment_failure(provider, event, metadata)

        if event.type == "payment.processing":
            logger.info(f"⏳ [{provider.provider_id}] Processing event for intent {event.intent_id}, no action")
        elif event.raw_type in ACKNOWLEDGED_RAW_TYPES:
            logger.info(f"ℹ️ [{provider.provider_id}] {event.raw_type} acknowledged")
        else:
            logger.info(f"ℹ️ [{provider.provider_id}] Unhandled event type: {event.raw_type}")
        return WebhookResult(success=True)

    async def retry_webhook_event(self, webhook_event_id: int) -> WebhookResult:
        """Re-dispatch a stored event; the signature was verified when it first arrived"""
        stored = self.repo.get_event(self.db, webhook_event_id)
        if stored is None:
            return WebhookResult(success=False, error="Webhook event not found")

        try:
            provider = get_payment_provider(stored.provider)
        except PaymentProviderError as e:
            return WebhookResult(success=False, error=str(e))

        metadata = dict(stored.parsed_metadata or {})
        intent_id = metadata.pop("intentId", stored.event_id)
        event = ParsedWebhookEvent(
            type=stored.event_type,
            raw_type=stored.raw_type or stored.event_type,
            event_id=stored.event_id,
            intent_id=intent_id,
            metadata=metadata,
            raw_payload=stored.raw_payload or {},
        )

        retry_count = self.repo.increment_webhook_retry_count(self.db, webhook_event_id)
        logger.info(f"🔁 Retrying webhook event {webhook_event_id} (attempt {retry_count})")

        started_at = time.perf_counter()
        stored.status = "processing"
        self.db.commit()

        try:
            result = await self.dispatch(provider, event, metadata)
        except Exception as e:
            self.db.rollback()
            self.repo.mark_webhook_event_failed(
                self.db, webhook_event_id, str(e), {"traceback": traceback.format_exc()}, started_at
            )
            return WebhookResult(success=False, error=str(e))

        if result.is_duplicate:
            self.repo.mark_webhook_event_duplicate(self.db, webhook_event_id)
        elif result.success:
            self.repo.mark_webhook_event_succeeded(
                self.db, webhook_event_id, _parse_int(metadata.get("paymentId")), started_at
            )
        else:
            self.repo.mark_webhook_event_failed(self.db, webhook_event_id, result.error or "Unknown error", None, started_at)
        return result

    async def sync_pending_payment(self, payment: Payment) -> WebhookResult:
        """
        Ask the provider about a payment whose webhook never arrived and settle
        it through the same pipeline.
        """
        try:
            provider = get_payment_provider(payment.provider)
            intent = await provider.retrieve_payment_intent(payment.payment_intent_id)
        except PaymentProviderError as e:
            logger.warning(f"⚠️ Could not sync payment {payment.id}: {e}")
            return WebhookResult(success=False, error=str(e))

        if intent.status == "succeeded":
            event_type = "payment.succeeded"
        elif intent.status in ("failed", "cancelled"):
            event_type = "payment.failed"
        else:
            return WebhookResult(success=True)

        event = ParsedWebhookEvent(
            type=event_type,
            raw_type=f"sync.{intent.status}",
            event_id=f"sync_{intent.id}_{intent.status}",
            intent_id=intent.id,
            metadata=build_intent_metadata(payment),
            amount=intent.amount,
            receipt_url=intent.receipt_url,
            payment_method_type=intent.payment_method_type,
            card_last4=intent.card_last4,
            raw_payload={"source": "sync_pending_payments", "payment_id": payment.id},
        )
        return await self.process_event(provider, event)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def handle_payment_success(
        self, provider: PaymentProvider, event: ParsedWebhookEvent, metadata: dict[str, str]
    ) -> WebhookResult:
        payment_type = metadata.get("type")
        missing = [key for key in SUCCESS_METADATA_KEYS if metadata.get(key) in (None, "")]
        if payment_type == "store_purchase" and not metadata.get("orderId"):
            missing.append("orderId")
        if missing:
            logger.error(f"❌ [{provider.provider_id}] Missing metadata {missing} on success event {event.intent_id}")
            return WebhookResult(success=False, error=f"Missing required metadata: {', '.join(missing)}")

        payment_id = _parse_int(metadata["paymentId"])
        total_amount = _parse_int(metadata["total_amount"])

        receipt_url = event.receipt_url
        method = event.payment_method_type
        card_last4 = event.card_last4
        charged = event.amount

        try:
            intent = await provider.retrieve_payment_intent(event.intent_id)
            receipt_url = intent.receipt_url or receipt_url
            method = intent.payment_method_type or method
            card_last4 = intent.card_last4 or card_last4
            if intent.amount is not None:
                charged = intent.amount
        except PaymentProviderError as e:
            logger.error(f"❌ [{provider.provider_id}] Could not retrieve intent {event.intent_id}: {e}")

        if charged is not None and charged != total_amount:
            logger.error(
                f"❌ [{provider.provider_id}] Amount mismatch on intent {event.intent_id}: "
                f"charged {charged}, expected {total_amount}"
            )
            return WebhookResult(success=False, error="Amount mismatch detected")

        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        if payment is None:
            return WebhookResult(success=False, error=f"Payment {metadata['paymentId']} not found")
        if payment.status == "succeeded":
            logger.info(f"ℹ️ Payment {payment.id} already succeeded, nothing to do")
            return WebhookResult(success=True, is_duplicate=True)

        try:
            payment.status = "succeeded"
            payment.payment_date = utcnow()
            payment.receipt_url = receipt_url
            payment.payment_method = method
            payment.card_last4 = card_last4
            payment.payment_intent_id = event.intent_id
            payment.provider = provider.provider_id

            apply_payment_to_enrollments(self.db, payment)

            if payment.type == "store_purchase":
                self._complete_store_order(_parse_int(metadata["orderId"]))
            elif payment.type == "event_registration":
                self._confirm_event_registrations(payment.id)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Post-payment processing failed for payment {payment_id}: {e}")
            return WebhookResult(success=False, error="Database update or post-processing failed")

        logger.info(f"✅ Payment {payment.id} succeeded via {provider.provider_id} ({format_cents(payment.total_amount)})")
        AutoDiscountService(self.db).record_first_payment(payment.family_id, payment.id)
        await self._send_receipt(payment)
        return WebhookResult(success=True)

    async def handle_payment_failure(
        self, provider: PaymentProvider, event: ParsedWebhookEvent, metadata: dict[str, str]
    ) -> WebhookResult:
        payment_id = _parse_int(metadata.get("paymentId"))
        if payment_id is None:
            logger.error(f"❌ [{provider.provider_id}] Missing paymentId on failure event {event.intent_id}")
            return WebhookResult(success=False, error="Missing required metadata: paymentId")

        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        if payment is None:
            return WebhookResult(success=False, error=f"Payment {payment_id} not found")
        if payment.status == "succeeded":
            logger.warning(f"⚠️ Ignoring failure event for already succeeded payment {payment_id}")
            return WebhookResult(success=True)

        try:
            payment.status = "failed"
            payment.payment_method = event.payment_method_type or payment.payment_method
            payment.card_last4 = event.card_last4 or payment.card_last4
            payment.payment_intent_id = event.intent_id

            order_id = _parse_int(metadata.get("orderId"))
            if metadata.get("type") == "store_purchase" and order_id is not None:
                order = self.db.query(Order).filter(Order.id == order_id).first()
                if order:
                    order.status = "cancelled"
                    logger.info(f"🛒 Order {order_id} cancelled after failed payment")

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failure processing for payment {payment_id} failed: {e}")
            return WebhookResult(success=False, error="Database update or post-processing failed")

        logger.warning(f"⚠️ Payment {payment_id} failed via {provider.provider_id}")
        return WebhookResult(success=True)

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _complete_store_order(self, order_id: Optional[int]) -> None:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            logger.error(f"❌ Order {order_id} not found for store purchase")
            return

        order.status = "paid_pending_pickup"
        for item in order.items:
            variant = item.variant
            if variant is None:
                continue
            variant.stock_quantity = max(0, (variant.stock_quantity or 0) - item.quantity)
            logger.info(f"📦 Variant {variant.id} stock -{item.quantity} -> {variant.stock_quantity}")

    def _confirm_event_registrations(self, payment_id: int) -> None:
        registrations = self.db.query(EventRegistration).filter(EventRegistration.payment_id == payment_id).all()
        for registration in registrations:
            registration.registration_status = "confirmed"
            registration.payment_status = "succeeded"
        logger.info(f"🎟️ Confirmed {len(registrations)} event registrations for payment {payment_id}")

    async def _send_receipt(self, payment: Payment) -> None:
        family = self.db.query(Family).filter(Family.id == payment.family_id).first()
        if not family or not family.email:
            logger.info(f"ℹ️ No email on file for family {payment.family_id}, receipt not sent")
            return
        try:
            await send_payment_receipt(
                to=family.email,
                family_name=family.name,
                payment_type_label=PAYMENT_TYPE_LABELS.get(payment.type, payment.type),
                amount=format_cents(payment.total_amount),
                payment_date=payment.payment_date.strftime("%B %d, %Y"),
                receipt_url=payment.receipt_url,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send receipt for payment {payment.id}: {e}")
