"""Payment domain schemas"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from ...models_payment import PAYMENT_TYPES


class PaymentCreate(BaseModel):
    family_id: int
    type: str
    student_ids: list[int] = []
    # Staff only; families are charged the program or order price
    subtotal_amount: Optional[int] = None
    quantity: int = 1
    discount_code: Optional[str] = None
    order_id: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        if v not in PAYMENT_TYPES:
            raise ValueError(f"type must be one of {', '.join(PAYMENT_TYPES)}")
        return v

    @field_validator("subtotal_amount")
    @classmethod
    def check_subtotal(cls, v):
        if v is not None and v < 0:
            raise ValueError("subtotal_amount cannot be negative")
        return v

    @field_validator("quantity")
    @classmethod
    def check_quantity(cls, v):
        if v < 1:
            raise ValueError("quantity must be at least 1")
        return v


class PaymentTaxResponse(BaseModel):
    tax_rate_id: int
    tax_amount: int
    tax_rate_snapshot: float
    tax_name_snapshot: str

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    family_id: int
    type: str
    status: str
    subtotal_amount: int
    tax_amount: int
    discount_amount: int
    total_amount: int
    discount_code_id: Optional[int] = None
    payment_method: Optional[str] = None
    receipt_url: Optional[str] = None
    card_last4: Optional[str] = None
    provider: Optional[str] = None
    payment_intent_id: Optional[str] = None
    order_id: Optional[int] = None
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    student_ids: list[int] = []
    taxes: list[PaymentTaxResponse] = []

    class Config:
        from_attributes = True


class PaymentIntentResponse(BaseModel):
    payment_id: int
    intent_id: str
    client_secret: Optional[str] = None
    amount: int
    currency: str
    provider: str
    client_config: dict[str, Any]


class SquareConfirmRequest(BaseModel):
    source_id: str  # card token from the Web Payments SDK


class PaymentEligibilityResponse(BaseModel):
    eligible: bool
    reason: str
    paid_until: Optional[datetime] = None


class TaxRateCreate(BaseModel):
    name: str
    rate: float
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("rate")
    @classmethod
    def check_rate(cls, v):
        if v < 0 or v >= 1:
            raise ValueError("rate is a fraction between 0 and 1 (0.05 = 5%)")
        return v


class TaxRateUpdate(BaseModel):
    rate: Optional[float] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class TaxRateResponse(BaseModel):
    id: int
    name: str
    rate: float
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True
