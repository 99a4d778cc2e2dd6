"""Webhook event schemas"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class WebhookEventResponse(BaseModel):
    id: int
    provider: str
    event_id: str
    event_type: str
    raw_type: Optional[str] = None
    status: str
    received_at: datetime
    processed_at: Optional[datetime] = None
    processing_duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    error_details: Optional[dict[str, Any]] = None
    retry_count: int
    payment_id: Optional[int] = None
    request_id: Optional[str] = None
    source_ip: Optional[str] = None

    class Config:
        from_attributes = True


class WebhookResultResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    is_duplicate: bool = False
