import asyncio
import json

import pytest

from dojo.domain.payments.providers import (
    MockPaymentProvider,
    ParsedWebhookEvent,
    PaymentProviderError,
    SquarePaymentProvider,
)
from dojo.domain.discounts.automation import AutoDiscountService
from dojo.domain.payments.service import PaymentService, build_intent_metadata
from dojo.domain.webhooks.service import WebhookService, idempotency_key, source_ip_from_headers
from dojo.models import Enrollment
from dojo.models_payment import DiscountCode, Order, OrderItem, ProductVariant, WebhookEvent
from dojo.webhook_security import compute_hmac_sha256_base64, verify_square_signature

WEBHOOK_URL = "https://api.dojo.example/webhooks/square"


def mock_event(event_id, event_type, intent_id, amount, metadata):
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "data": {
                "object": {
                    "id": intent_id,
                    "amount": amount,
                    "metadata": metadata,
                    "receipt_url": "https://pay.example/receipt/1",
                    "payment_method_type": "card",
                    "card_last4": "4242",
                }
            },
        }
    ).encode()


@pytest.fixture
def pending_payment(db, family, student, karate_class):
    db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=karate_class.program_id, status="active"))
    db.commit()

    service = PaymentService(db, MockPaymentProvider())
    payment = service.create_payment(family.id, "monthly_group", [student.id], 12000)
    intent = asyncio.run(service.create_payment_intent(payment.id))
    db.refresh(payment)
    return payment, intent["intent_id"]


def deliver(db, payload, provider=None, headers=None):
    return asyncio.run(
        WebhookService(db).handle_payment_webhook(provider or MockPaymentProvider(), payload, headers or {}, WEBHOOK_URL)
    )


class TestPaymentSucceeded:
    def test_settles_payment_and_extends_enrollment(self, db, pending_payment, student, outbox):
        payment, intent_id = pending_payment
        payload = mock_event("evt_1", "payment_intent.succeeded", intent_id, 12000, build_intent_metadata(payment))

        result = deliver(db, payload, headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1"})

        assert result.success and not result.is_duplicate
        db.refresh(payment)
        assert payment.status == "succeeded"
        assert payment.card_last4 == "4242"
        assert payment.provider == "mock"

        enrollment = db.query(Enrollment).filter(Enrollment.student_id == student.id).one()
        assert enrollment.paid_until is not None
        assert enrollment.paid_until > payment.payment_date

        event = db.query(WebhookEvent).one()
        assert event.event_id == intent_id
        assert event.status == "succeeded"
        assert event.payment_id == payment.id
        assert event.source_ip == "203.0.113.9"

        assert [mail["to"] for mail in outbox] == ["tanaka@example.com"]
        assert outbox[0]["subject"].startswith("Payment Received")

    def test_redelivery_is_a_duplicate(self, db, pending_payment):
        payment, intent_id = pending_payment
        metadata = build_intent_metadata(payment)
        deliver(db, mock_event("evt_1", "payment_intent.succeeded", intent_id, 12000, metadata))

        # a different event id for the same intent is still the same settlement
        again = deliver(db, mock_event("evt_2", "payment_intent.succeeded", intent_id, 12000, metadata))

        assert again.success and again.is_duplicate
        assert db.query(WebhookEvent).count() == 1

    def test_retry_of_settled_event_is_marked_duplicate(self, db, pending_payment, outbox):
        payment, intent_id = pending_payment
        deliver(db, mock_event("evt_1", "payment_intent.succeeded", intent_id, 12000, build_intent_metadata(payment)))
        event = db.query(WebhookEvent).one()

        result = asyncio.run(WebhookService(db).retry_webhook_event(event.id))

        assert result.success and result.is_duplicate
        db.refresh(event)
        assert event.status == "duplicate"
        assert event.retry_count == 1
        assert len(outbox) == 1

    def test_first_payment_issues_automatic_discount(self, db, pending_payment, family):
        auto = AutoDiscountService(db)
        template = auto.create_template(
            {"name": "First payment", "discount_type": "percentage", "discount_value": 5, "applicable_to": ["monthly_group"]}
        )
        auto.create_rule({"name": "Thanks", "event_type": "first_payment", "discount_template_id": template.id})
        payment, intent_id = pending_payment

        deliver(db, mock_event("evt_fp", "payment_intent.succeeded", intent_id, 12000, build_intent_metadata(payment)))

        code = db.query(DiscountCode).one()
        assert code.family_id == family.id
        assert code.name == "First payment - Auto Assigned"

    def test_amount_mismatch_is_rejected(self, db, pending_payment):
        payment, _ = pending_payment
        payload = mock_event("evt_3", "payment_intent.succeeded", "mock_pi_unknown", 100, build_intent_metadata(payment))

        result = deliver(db, payload)

        assert not result.success
        assert result.error == "Amount mismatch detected"
        db.refresh(payment)
        assert payment.status == "pending"
        event = db.query(WebhookEvent).one()
        assert event.status == "failed"
        assert event.error_message == "Amount mismatch detected"

    def test_missing_metadata(self, db, pending_payment):
        _, intent_id = pending_payment

        result = deliver(db, mock_event("evt_4", "payment_intent.succeeded", intent_id, 12000, {"type": "monthly_group"}))

        assert not result.success
        assert result.error.startswith("Missing required metadata: paymentId")

    def test_store_purchase_updates_order_and_stock(self, db, family, student):
        variant = ProductVariant(name="Gi", size="130", price=5000, stock_quantity=3)
        db.add(variant)
        db.flush()
        order = Order(family_id=family.id, student_id=student.id, total_amount=10000)
        db.add(order)
        db.flush()
        db.add(OrderItem(order_id=order.id, product_variant_id=variant.id, quantity=2, price_per_item=5000))
        db.commit()

        service = PaymentService(db, MockPaymentProvider())
        payment = service.create_payment(family.id, "store_purchase", [student.id], 10000, order_id=order.id)
        intent_id = asyncio.run(service.create_payment_intent(payment.id))["intent_id"]

        result = deliver(
            db,
            mock_event("evt_5", "payment_intent.succeeded", intent_id, payment.total_amount, build_intent_metadata(payment)),
        )

        assert result.success
        db.refresh(order)
        db.refresh(variant)
        assert order.status == "paid_pending_pickup"
        assert variant.stock_quantity == 1


class TestPaymentFailed:
    def test_marks_payment_failed(self, db, pending_payment):
        payment, intent_id = pending_payment

        result = deliver(
            db, mock_event("evt_f1", "payment_intent.payment_failed", intent_id, 12000, build_intent_metadata(payment))
        )

        assert result.success
        db.refresh(payment)
        assert payment.status == "failed"

    def test_failure_after_success_is_ignored(self, db, pending_payment):
        payment, intent_id = pending_payment
        metadata = build_intent_metadata(payment)
        deliver(db, mock_event("evt_s", "payment_intent.succeeded", intent_id, 12000, metadata))

        result = deliver(db, mock_event("evt_f2", "payment_intent.payment_failed", intent_id, 12000, metadata))

        assert result.success
        db.refresh(payment)
        assert payment.status == "succeeded"


def test_unparseable_payload_rejected(db):
    result = deliver(db, b"not json")

    assert not result.success
    assert "Invalid mock webhook payload" in result.error
    assert db.query(WebhookEvent).count() == 0


def test_sync_pending_payment_settles_succeeded_intent(db, pending_payment):
    payment, intent_id = pending_payment
    MockPaymentProvider.intents[intent_id].status = "succeeded"

    result = asyncio.run(WebhookService(db).sync_pending_payment(payment))

    assert result.success
    db.refresh(payment)
    assert payment.status == "succeeded"


class TestIdempotencyKey:
    def test_success_keyed_by_intent(self):
        event = ParsedWebhookEvent(type="payment.succeeded", raw_type="x", event_id="evt_9", intent_id="pi_9")
        assert idempotency_key(event) == "pi_9"

    def test_other_events_keyed_by_event_id(self):
        event = ParsedWebhookEvent(type="payment.failed", raw_type="x", event_id="evt_9", intent_id="pi_9")
        assert idempotency_key(event) == "evt_9"

    def test_source_ip_prefers_real_ip(self):
        assert source_ip_from_headers({"x-real-ip": "1.2.3.4", "x-forwarded-for": "5.6.7.8"}) == "1.2.3.4"
        assert source_ip_from_headers({}) is None


class TestSquareWebhooks:
    def _payload(self):
        return json.dumps(
            {
                "event_id": "sq_evt_1",
                "type": "payment.updated",
                "data": {
                    "id": "sq_pay_1",
                    "object": {
                        "payment": {
                            "id": "sq_pay_1",
                            "status": "COMPLETED",
                            "amount_money": {"amount": 12600, "currency": "CAD"},
                            "source_type": "CARD",
                            "card_details": {"card": {"last_4": "1111"}},
                            "reference_id": "dojo_abc",
                        }
                    },
                },
            }
        ).encode()

    def test_signature_helpers(self):
        body = b'{"hello": "dojo"}'
        signature = compute_hmac_sha256_base64("sig-key", WEBHOOK_URL.encode() + body)

        assert verify_square_signature(body, signature, WEBHOOK_URL, "sig-key")
        assert not verify_square_signature(body, signature, WEBHOOK_URL, "other-key")
        assert not verify_square_signature(body, None, WEBHOOK_URL, "sig-key")
        assert not verify_square_signature(body, signature, WEBHOOK_URL, None)

    def test_parse_signed_payment_update(self):
        provider = SquarePaymentProvider(signature_key="sig-key")
        payload = self._payload()
        signature = compute_hmac_sha256_base64("sig-key", WEBHOOK_URL.encode() + payload)

        event = provider.parse_webhook_event(payload, {"x-square-hmacsha256-signature": signature}, WEBHOOK_URL)

        assert event.type == "payment.succeeded"
        assert event.event_id == "sq_evt_1"
        assert event.intent_id == "sq_pay_1"
        assert event.amount == 12600
        assert event.card_last4 == "1111"
        assert event.payment_method_type == "card"
        assert event.metadata == {"referenceId": "dojo_abc"}

    def test_bad_signature_rejected(self):
        provider = SquarePaymentProvider(signature_key="sig-key")

        with pytest.raises(PaymentProviderError):
            provider.parse_webhook_event(self._payload(), {"x-square-hmacsha256-signature": "bogus"}, WEBHOOK_URL)

    def test_enrich_metadata_from_local_payment(self, db, family, student):
        payment = PaymentService(db, MockPaymentProvider()).create_payment(family.id, "monthly_group", [student.id], 12000)
        payment.payment_intent_id = "dojo_abc"
        db.commit()

        enriched = SquarePaymentProvider(signature_key="sig-key").enrich_webhook_metadata(
            db, {"referenceId": "dojo_abc"}, "sq_pay_1"
        )

        assert enriched["paymentId"] == str(payment.id)
        assert enriched["total_amount"] == "12000"
        assert enriched["referenceId"] == "dojo_abc"
