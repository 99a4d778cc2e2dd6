"""Enrollment domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class EnrollmentCreate(BaseModel):
    class_id: int
    student_id: int
    status: str = "active"
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in ("active", "trial", "waitlist"):
            raise ValueError("New enrollments must be active, trial or waitlist")
        return v


class EnrollmentUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None
    paid_until: Optional[datetime] = None


class DropRequest(BaseModel):
    reason: Optional[str] = None


class BulkEnrollRequest(BaseModel):
    class_id: int
    student_ids: list[int]
    status: str = "active"
    notes: Optional[str] = None


class EnrollmentResponse(BaseModel):
    id: int
    class_id: int
    student_id: int
    program_id: int
    status: str
    enrolled_at: datetime
    paid_until: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    dropped_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BulkFailure(BaseModel):
    student_id: int
    error: str


class BulkEnrollResponse(BaseModel):
    successful: list[EnrollmentResponse]
    failed: list[BulkFailure]


class ValidationResponse(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    capacity_available: bool
    meets_eligibility: bool


class EnrollmentStatsResponse(BaseModel):
    total_enrollments: int
    active_enrollments: int
    waitlist_count: int
    completion_rate: float
