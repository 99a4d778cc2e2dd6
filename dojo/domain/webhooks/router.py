"""
Payment webhook router

Provider endpoints answer 200 for processed or duplicate events so the
provider stops retrying, and 400 for anything that failed.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ... import config
from ...auth import require_admin
from ...database import get_db
from ...models import Profile
from ..payments.providers import get_payment_provider
from .repository import WebhookEventRepository
from .schemas import WebhookEventResponse, WebhookResultResponse
from .service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_webhook_service(db: Session = Depends(get_db)) -> WebhookService:
    """Dependency injection for WebhookService"""
    return WebhookService(db)


async def _handle(provider_name: str, request: Request, service: WebhookService) -> dict:
    body = await request.body()
    headers = {key.lower(): value for key, value in request.headers.items()}
    logger.info(f"📥 Received {provider_name} webhook ({len(body)} bytes)")

    result = await service.handle_payment_webhook(get_payment_provider(provider_name), body, headers, str(request.url))
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error or "Webhook processing failed")
    return {"received": True, "duplicate": result.is_duplicate}


# ============================================================================
# PROVIDER ENDPOINTS
# ============================================================================


@router.post("/stripe")
async def stripe_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    return await _handle("stripe", request, service)


@router.post("/square")
async def square_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    return await _handle("square", request, service)


@router.post("/mock")
async def mock_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    # Unsigned test events only exist when the mock provider is the live one
    if config.PAYMENT_PROVIDER != "mock":
        logger.warning(f"🚫 Mock webhook rejected: active provider is {config.PAYMENT_PROVIDER}")
        raise HTTPException(status_code=404, detail="Not Found")
    return await _handle("mock", request, service)


# ============================================================================
# ADMIN
# ============================================================================


@router.get("/events", response_model=list[WebhookEventResponse])
async def list_webhook_events(
    provider: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user: Profile = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return WebhookEventRepository.list_events(service.db, provider, status, limit)


@router.post("/events/{webhook_event_id}/retry", response_model=WebhookResultResponse)
async def retry_webhook_event(
    webhook_event_id: int,
    current_user: Profile = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    if WebhookEventRepository.get_event(service.db, webhook_event_id) is None:
        raise HTTPException(status_code=404, detail="Webhook event not found")
    return asdict(await service.retry_webhook_event(webhook_event_id))
