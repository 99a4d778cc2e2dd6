"""Family domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import BELT_RANKS
from ...shared.validators import validate_email, validate_phone, validate_postal_code


class FamilyBase(BaseModel):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    primary_phone: Optional[str] = None
    email: Optional[str] = None
    referral_source: Optional[str] = None
    emergency_contact: Optional[str] = None
    health_info: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("primary_phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("postal_code")
    @classmethod
    def check_postal_code(cls, v):
        return validate_postal_code(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class FamilyCreate(FamilyBase):
    """Schema for creating a new family"""


class FamilyUpdate(FamilyBase):
    """Every field optional on update"""

    name: Optional[str] = None


class FamilyResponse(FamilyBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GuardianCreate(BaseModel):
    first_name: str
    last_name: str
    relationship_type: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class GuardianUpdate(GuardianCreate):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class GuardianResponse(GuardianCreate):
    id: int
    family_id: int

    class Config:
        from_attributes = True


class StudentCreate(BaseModel):
    family_id: int
    first_name: str
    last_name: str
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    t_shirt_size: Optional[str] = None
    school: Optional[str] = None
    grade_level: Optional[str] = None
    cell_phone: Optional[str] = None
    email: Optional[str] = None
    allergies: Optional[str] = None
    medications: Optional[str] = None
    special_needs: Optional[str] = None

    @field_validator("cell_phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("gender")
    @classmethod
    def check_gender(cls, v):
        if v is not None and v not in ("male", "female", "other"):
            raise ValueError("Gender must be male, female or other")
        return v


class StudentUpdate(StudentCreate):
    family_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class StudentResponse(StudentCreate):
    id: int

    class Config:
        from_attributes = True


class BeltAwardCreate(BaseModel):
    type: str
    awarded_date: date
    description: Optional[str] = None

    @field_validator("type")
    @classmethod
    def check_rank(cls, v):
        if v not in BELT_RANKS:
            raise ValueError(f"Belt must be one of: {', '.join(BELT_RANKS)}")
        return v


class BeltAwardResponse(BeltAwardCreate):
    id: int
    student_id: int

    class Config:
        from_attributes = True


class FamilyDetailsResponse(FamilyResponse):
    guardians: list[GuardianResponse] = []
    students: list[StudentResponse] = []


class StudentEnrollmentSummary(BaseModel):
    id: int
    class_id: int
    class_name: str
    program_id: int
    status: str
    paid_until: Optional[datetime] = None


class StudentDetailsResponse(StudentResponse):
    current_belt: str
    belt_awards: list[BeltAwardResponse] = []
    enrollments: list[StudentEnrollmentSummary] = []
    attendance: dict
