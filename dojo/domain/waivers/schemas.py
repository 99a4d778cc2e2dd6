"""Waiver schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class WaiverBase(BaseModel):
    title: str
    description: Optional[str] = None
    content: str
    required_for_registration: bool = False

    @field_validator("title", "content")
    @classmethod
    def check_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()


class WaiverCreate(WaiverBase):
    pass


class WaiverUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    required_for_registration: Optional[bool] = None


class WaiverResponse(WaiverBase):
    id: int

    class Config:
        from_attributes = True


class WaiverSignRequest(BaseModel):
    signature_data: Optional[str] = None


class WaiverSignatureResponse(BaseModel):
    id: int
    waiver_id: int
    profile_id: int
    family_id: Optional[int] = None
    signed_at: datetime

    class Config:
        from_attributes = True


class ProgramWaiverCreate(BaseModel):
    waiver_id: int
    is_required: bool = True


class ProgramWaiverResponse(BaseModel):
    id: int
    program_id: int
    waiver_id: int
    is_required: bool

    class Config:
        from_attributes = True


class WaiverSummary(BaseModel):
    id: int
    title: str


class FamilyWaiverStatusResponse(BaseModel):
    family_id: int
    required: list[WaiverSummary]
    signed: list[WaiverSummary]
    missing: list[WaiverSummary]
    all_signed: bool
