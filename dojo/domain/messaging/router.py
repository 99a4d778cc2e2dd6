"""Messaging router - conversations, class announcements and push subscriptions"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_staff
from ...config import VAPID_PUBLIC_KEY
from ...database import get_db
from ...models import Profile
from .schemas import (
    ClassAnnouncementCreate,
    ConversationCreate,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
    PushSubscriptionCreate,
    PushUnsubscribe,
    UnreadSummaryResponse,
)
from .service import MessagingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messaging"])


def get_messaging_service(db: Session = Depends(get_db)) -> MessagingService:
    """Dependency injection for MessagingService"""
    return MessagingService(db)


# ============================================================================
# CONVERSATIONS
# ============================================================================


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.list_conversations(current_user)


@router.post("/conversations", response_model=ConversationResponse)
async def create_conversation(
    data: ConversationCreate,
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.create_conversation(current_user, data.subject, data.participant_profile_ids, data.message)


@router.get("/unread", response_model=UnreadSummaryResponse)
async def get_unread_summary(
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.get_unread_summary(current_user)


@router.get("/conversations/{conversation_id}", response_model=list[MessageResponse])
async def get_conversation_messages(
    conversation_id: int,
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.get_conversation_messages(conversation_id, current_user)


@router.post("/conversations/{conversation_id}", response_model=MessageResponse)
async def send_message(
    conversation_id: int,
    data: MessageCreate,
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.send_message(conversation_id, current_user, data.content)


@router.post("/conversations/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: int,
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.mark_conversation_read(conversation_id, current_user)


@router.post("/announcements", response_model=ConversationResponse)
async def send_class_announcement(
    data: ClassAnnouncementCreate,
    current_user: Profile = Depends(require_staff),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.send_class_announcement(data.class_id, current_user, data.subject, data.content)


# ============================================================================
# PUSH SUBSCRIPTIONS
# ============================================================================


@router.get("/push/vapid-public-key")
async def get_vapid_public_key():
    if not VAPID_PUBLIC_KEY:
        raise HTTPException(status_code=503, detail="Push notifications are not configured")
    return {"public_key": VAPID_PUBLIC_KEY}


@router.post("/push/subscribe")
async def subscribe(
    data: PushSubscriptionCreate,
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    subscription = service.subscribe(current_user, data.endpoint, data.keys.model_dump())
    return {"id": subscription.id, "endpoint": subscription.endpoint}


@router.post("/push/unsubscribe")
async def unsubscribe(
    data: PushUnsubscribe,
    current_user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return {"removed": service.unsubscribe(current_user, data.endpoint)}
