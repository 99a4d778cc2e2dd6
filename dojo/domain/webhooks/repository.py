"""
Webhook event repository

One row per (provider, event_id). The unique constraint is what stops two
workers from processing the same event concurrently.
"""

import logging
import time
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models_payment import WebhookEvent
from ...shared.dates import utcnow

logger = logging.getLogger(__name__)


class DuplicateWebhookEventError(Exception):
    """Another request already recorded this (provider, event_id)"""


def elapsed_ms(started_at: Optional[float]) -> Optional[int]:
    """started_at comes from time.perf_counter()"""
    if started_at is None:
        return None
    return int((time.perf_counter() - started_at) * 1000)


class WebhookEventRepository:
    """Repository for webhook event bookkeeping"""

    @staticmethod
    def check_webhook_idempotency(
        db: Session, provider: str, event_id: str
    ) -> tuple[bool, Optional[WebhookEvent]]:
        try:
            existing = (
                db.query(WebhookEvent)
                .filter(WebhookEvent.provider == provider, WebhookEvent.event_id == event_id)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Webhook idempotency lookup failed for {provider}/{event_id}: {e}")
            db.rollback()
            return False, None

        if existing is None:
            return False, None

        logger.warning(
            f"⚠️ Duplicate webhook detected: provider={provider} event_id={event_id} "
            f"status={existing.status} processed_at={existing.processed_at}"
        )
        return True, existing

    @staticmethod
    def create_webhook_event(
        db: Session,
        provider: str,
        event_id: str,
        event_type: str,
        raw_type: Optional[str] = None,
        raw_payload: Optional[dict[str, Any]] = None,
        parsed_metadata: Optional[dict[str, str]] = None,
        request_id: Optional[str] = None,
        source_ip: Optional[str] = None,
        signature_verified: bool = True,
    ) -> WebhookEvent:
        event = WebhookEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            raw_type=raw_type,
            raw_payload=raw_payload,
            parsed_metadata=parsed_metadata or {},
            request_id=request_id,
            source_ip=source_ip,
            signature_verified=signature_verified,
            status="processing",
            received_at=utcnow(),
        )
        db.add(event)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"⚠️ Duplicate webhook event on insert: {provider}/{event_id}")
            raise DuplicateWebhookEventError(f"{provider}/{event_id}") from e

        db.refresh(event)
        return event

    @staticmethod
    def get_event(db: Session, webhook_event_id: int) -> Optional[WebhookEvent]:
        return db.query(WebhookEvent).filter(WebhookEvent.id == webhook_event_id).first()

    @staticmethod
    def list_events(
        db: Session, provider: Optional[str] = None, status: Optional[str] = None, limit: int = 100
    ) -> list[WebhookEvent]:
        query = db.query(WebhookEvent)
        if provider:
            query = query.filter(WebhookEvent.provider == provider)
        if status:
            query = query.filter(WebhookEvent.status == status)
        return query.order_by(WebhookEvent.received_at.desc(), WebhookEvent.id.desc()).limit(limit).all()

    @staticmethod
    def mark_webhook_event_succeeded(
        db: Session, webhook_event_id: int, payment_id: Optional[int] = None, started_at: Optional[float] = None
    ) -> None:
        event = WebhookEventRepository.get_event(db, webhook_event_id)
        if event is None:
            logger.error(f"❌ Webhook event {webhook_event_id} vanished before it could be marked succeeded")
            return
        event.status = "succeeded"
        event.processed_at = utcnow()
        event.payment_id = payment_id
        event.processing_duration_ms = elapsed_ms(started_at)
        event.error_message = None
        db.commit()

    @staticmethod
    def mark_webhook_event_failed(
        db: Session,
        webhook_event_id: int,
        error_message: str,
        error_details: Optional[dict[str, Any]] = None,
        started_at: Optional[float] = None,
    ) -> None:
        event = WebhookEventRepository.get_event(db, webhook_event_id)
        if event is None:
            logger.error(f"❌ Webhook event {webhook_event_id} vanished before it could be marked failed")
            return
        event.status = "failed"
        event.processed_at = utcnow()
        event.error_message = error_message
        event.error_details = error_details
        event.processing_duration_ms = elapsed_ms(started_at)
        db.commit()

    @staticmethod
    def mark_webhook_event_duplicate(db: Session, webhook_event_id: int) -> None:
        event = WebhookEventRepository.get_event(db, webhook_event_id)
        if event is None:
            return
        event.status = "duplicate"
        event.processed_at = utcnow()
        db.commit()

    @staticmethod
    def increment_webhook_retry_count(db: Session, webhook_event_id: int) -> int:
        event = WebhookEventRepository.get_event(db, webhook_event_id)
        if event is None:
            return 0
        event.retry_count = (event.retry_count or 0) + 1
        db.commit()
        return event.retry_count
