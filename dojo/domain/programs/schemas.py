"""Program domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...models import BELT_RANKS


class ProgramBase(BaseModel):
    name: str
    description: Optional[str] = None
    duration_minutes: int = 60
    max_capacity: Optional[int] = None
    sessions_per_week: int = 1
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    min_belt_rank: Optional[str] = None
    max_belt_rank: Optional[str] = None
    gender_restriction: str = "none"
    prerequisite_programs: list[int] = []
    monthly_fee: Optional[int] = None
    yearly_fee: Optional[int] = None
    individual_session_fee: Optional[int] = None
    registration_fee: Optional[int] = None
    is_active: bool = True

    @field_validator("min_belt_rank", "max_belt_rank")
    @classmethod
    def check_belt(cls, v):
        if v is not None and v not in BELT_RANKS:
            raise ValueError(f"Belt must be one of: {', '.join(BELT_RANKS)}")
        return v

    @field_validator("gender_restriction")
    @classmethod
    def check_gender_restriction(cls, v):
        if v not in ("male", "female", "none"):
            raise ValueError("Gender restriction must be male, female or none")
        return v

    @field_validator("monthly_fee", "yearly_fee", "individual_session_fee", "registration_fee")
    @classmethod
    def check_fee(cls, v):
        if v is not None and v < 0:
            raise ValueError("Fees cannot be negative")
        return v


class ProgramCreate(ProgramBase):
    @model_validator(mode="after")
    def check_age_range(self):
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age cannot be greater than max_age")
        return self


class ProgramUpdate(ProgramBase):
    name: Optional[str] = None
    duration_minutes: Optional[int] = None
    sessions_per_week: Optional[int] = None
    gender_restriction: Optional[str] = None
    prerequisite_programs: Optional[list[int]] = None
    is_active: Optional[bool] = None

    @field_validator("gender_restriction")
    @classmethod
    def check_gender_restriction(cls, v):
        if v is not None and v not in ("male", "female", "none"):
            raise ValueError("Gender restriction must be male, female or none")
        return v


class ProgramResponse(ProgramBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EligibilityResponse(BaseModel):
    program_id: int
    student_id: int
    eligible: bool
    reasons: list[str]
