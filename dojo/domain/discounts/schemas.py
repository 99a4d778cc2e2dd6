"""Discount code, template and automation rule schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...models_payment import DISCOUNT_EVENT_TYPES, PAYMENT_TYPES

DISCOUNT_TYPES = ("fixed_amount", "percentage")
USAGE_TYPES = ("one_time", "ongoing")
DISCOUNT_SCOPES = ("per_student", "per_family")


class DiscountTermsBase(BaseModel):
    """What a discount is worth and where it applies; shared by codes and templates"""

    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    usage_type: str = "one_time"
    max_uses: Optional[int] = None
    applicable_to: list[str] = ["monthly_group", "yearly_group"]
    scope: str = "per_family"

    @field_validator("discount_type")
    @classmethod
    def check_discount_type(cls, v):
        if v not in DISCOUNT_TYPES:
            raise ValueError(f"discount_type must be one of {', '.join(DISCOUNT_TYPES)}")
        return v

    @field_validator("usage_type")
    @classmethod
    def check_usage_type(cls, v):
        if v not in USAGE_TYPES:
            raise ValueError(f"usage_type must be one of {', '.join(USAGE_TYPES)}")
        return v

    @field_validator("scope")
    @classmethod
    def check_scope(cls, v):
        if v not in DISCOUNT_SCOPES:
            raise ValueError(f"scope must be one of {', '.join(DISCOUNT_SCOPES)}")
        return v

    @field_validator("applicable_to")
    @classmethod
    def check_applicable_to(cls, v):
        unknown = [t for t in v if t not in PAYMENT_TYPES]
        if unknown:
            raise ValueError(f"Unknown payment types: {', '.join(unknown)}")
        if not v:
            raise ValueError("applicable_to must list at least one payment type")
        return v

    @model_validator(mode="after")
    def check_value(self):
        if self.discount_value <= 0:
            raise ValueError("discount_value must be positive")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("Percentage discounts cannot exceed 100")
        if self.max_uses is not None and self.max_uses < 1:
            raise ValueError("max_uses must be at least 1")
        return self


class DiscountCodeBase(DiscountTermsBase):
    family_id: Optional[int] = None
    student_id: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class DiscountCodeCreate(DiscountCodeBase):
    code: Optional[str] = None  # generated when omitted

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return v
        v = v.strip().upper()
        if not v:
            return None
        return v


class DiscountCodeUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    max_uses: Optional[int] = None
    applicable_to: Optional[list[str]] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class DiscountCodeResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    usage_type: str
    max_uses: Optional[int] = None
    current_uses: int
    applicable_to: list[str]
    scope: str
    family_id: Optional[int] = None
    student_id: Optional[int] = None
    is_active: bool
    valid_from: datetime
    valid_until: Optional[datetime] = None
    created_automatically: bool
    usage_count: int = 0

    class Config:
        from_attributes = True


class AutomaticDiscountCreate(BaseModel):
    name: str
    discount_type: str
    discount_value: float
    family_id: Optional[int] = None
    student_id: Optional[int] = None
    applicable_to: list[str] = ["monthly_group", "yearly_group"]
    scope: str = "per_family"
    valid_until: Optional[datetime] = None


class DiscountValidateRequest(BaseModel):
    code: str
    family_id: int
    student_id: Optional[int] = None
    subtotal_amount: int
    applicable_to: str  # the payment type being paid for


class DiscountValidationResponse(BaseModel):
    is_valid: bool
    discount_code_id: Optional[int] = None
    discount_amount: int = 0
    error_message: Optional[str] = None


class DiscountUsageResponse(BaseModel):
    id: int
    discount_code_id: int
    payment_id: int
    family_id: int
    student_id: Optional[int] = None
    discount_amount: int
    original_amount: int
    final_amount: int
    used_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Automatic discounts
# ============================================================================

RULE_CONDITION_KEYS = ("belt_rank", "min_family_size", "attendance_count", "min_age", "max_age")


class DiscountTemplateCreate(DiscountTermsBase):
    is_active: bool = True


class DiscountTemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    max_uses: Optional[int] = None
    applicable_to: Optional[list[str]] = None
    is_active: Optional[bool] = None


class DiscountTemplateResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    usage_type: str
    max_uses: Optional[int] = None
    applicable_to: list[str]
    scope: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


def _check_conditions(v):
    if v is None:
        return v
    unknown = [key for key in v if key not in RULE_CONDITION_KEYS]
    if unknown:
        raise ValueError(f"Unknown rule conditions: {', '.join(unknown)}")
    return v


class AutomationRuleCreate(BaseModel):
    name: str
    description: Optional[str] = None
    event_type: str
    discount_template_id: Optional[int] = None
    template_ids: list[int] = []  # several codes per event, issued in this order
    conditions: Optional[dict] = None
    applicable_programs: Optional[list[int]] = None
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    @field_validator("event_type")
    @classmethod
    def check_event_type(cls, v):
        if v not in DISCOUNT_EVENT_TYPES:
            raise ValueError(f"event_type must be one of {', '.join(DISCOUNT_EVENT_TYPES)}")
        return v

    @field_validator("conditions")
    @classmethod
    def check_conditions(cls, v):
        return _check_conditions(v)


class AutomationRuleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    discount_template_id: Optional[int] = None
    conditions: Optional[dict] = None
    applicable_programs: Optional[list[int]] = None
    is_active: Optional[bool] = None
    valid_until: Optional[datetime] = None

    @field_validator("conditions")
    @classmethod
    def check_conditions(cls, v):
        return _check_conditions(v)


class AutomationRuleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    event_type: str
    discount_template_id: Optional[int] = None
    conditions: Optional[dict] = None
    applicable_programs: Optional[list[int]] = None
    is_active: bool
    valid_from: datetime
    valid_until: Optional[datetime] = None

    class Config:
        from_attributes = True


class DiscountEventCreate(BaseModel):
    event_type: str
    student_id: Optional[int] = None
    family_id: Optional[int] = None
    event_data: Optional[dict] = None

    @field_validator("event_type")
    @classmethod
    def check_event_type(cls, v):
        if v not in DISCOUNT_EVENT_TYPES:
            raise ValueError(f"event_type must be one of {', '.join(DISCOUNT_EVENT_TYPES)}")
        return v

    @model_validator(mode="after")
    def check_subject(self):
        if self.student_id is None and self.family_id is None:
            raise ValueError("A discount event needs a student_id or a family_id")
        return self


class DiscountEventResponse(BaseModel):
    id: int
    event_type: str
    student_id: Optional[int] = None
    family_id: Optional[int] = None
    event_data: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DiscountAssignmentResponse(BaseModel):
    id: int
    automation_rule_id: int
    discount_event_id: int
    student_id: Optional[int] = None
    family_id: Optional[int] = None
    discount_code_id: int
    assigned_at: datetime

    class Config:
        from_attributes = True
