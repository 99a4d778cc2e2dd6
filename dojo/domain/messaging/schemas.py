"""Messaging schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


def _non_empty(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("Message content cannot be empty")
    return v.strip()


class ConversationCreate(BaseModel):
    subject: Optional[str] = None
    participant_profile_ids: list[int]
    message: str

    @field_validator("message")
    @classmethod
    def check_message(cls, v):
        return _non_empty(v)

    @field_validator("participant_profile_ids")
    @classmethod
    def check_participants(cls, v):
        if not v:
            raise ValueError("At least one participant is required")
        return v


class MessageCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, v):
        return _non_empty(v)


class ClassAnnouncementCreate(BaseModel):
    class_id: int
    subject: str
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, v):
        return _non_empty(v)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    sender_name: Optional[str] = None
    content: str
    created_at: datetime


class ConversationResponse(BaseModel):
    id: int
    subject: Optional[str] = None
    conversation_type: str
    class_id: Optional[int] = None
    created_by: Optional[int] = None
    last_message_at: datetime
    participant_ids: list[int] = []
    unread_count: int = 0
    last_message: Optional[str] = None


class UnreadSummaryResponse(BaseModel):
    total_unread: int
    conversations_with_unread: int


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionCreate(BaseModel):
    endpoint: str
    keys: PushKeys

    @field_validator("endpoint")
    @classmethod
    def check_endpoint(cls, v):
        if not v.startswith("https://"):
            raise ValueError("Push endpoint must be an https URL")
        return v


class PushUnsubscribe(BaseModel):
    endpoint: str
