"""Invoice schemas"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

INVOICE_STATUSES = ("draft", "sent", "viewed", "paid", "partially_paid", "overdue", "cancelled")
LINE_ITEM_TYPES = ("class_enrollment", "individual_session", "product", "fee", "discount", "other")
INVOICE_PAYMENT_METHODS = ("cash", "check", "card", "bank_transfer", "other")


class LineItemCreate(BaseModel):
    item_type: str = "other"
    description: str
    quantity: int = 1
    unit_price: int
    tax_rate_ids: list[int] = []
    discount_rate: float = 0

    @field_validator("item_type")
    @classmethod
    def check_item_type(cls, v):
        if v not in LINE_ITEM_TYPES:
            raise ValueError(f"item_type must be one of {', '.join(LINE_ITEM_TYPES)}")
        return v

    @field_validator("quantity")
    @classmethod
    def check_quantity(cls, v):
        if v < 1:
            raise ValueError("quantity must be at least 1")
        return v

    @field_validator("discount_rate")
    @classmethod
    def check_discount_rate(cls, v):
        if v < 0 or v > 100:
            raise ValueError("discount_rate is a percentage between 0 and 100")
        return v


class InvoiceCreate(BaseModel):
    family_id: int
    issue_date: date
    due_date: date
    line_items: list[LineItemCreate]
    notes: Optional[str] = None
    terms: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        if not self.line_items:
            raise ValueError("An invoice needs at least one line item")
        return self


class InvoiceUpdate(BaseModel):
    due_date: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    line_items: Optional[list[LineItemCreate]] = None


class InvoiceStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in INVOICE_STATUSES:
            raise ValueError(f"status must be one of {', '.join(INVOICE_STATUSES)}")
        return v


class InvoicePaymentCreate(BaseModel):
    amount: int
    payment_method: str
    payment_date: date
    reference_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def check_method(cls, v):
        if v not in INVOICE_PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of {', '.join(INVOICE_PAYMENT_METHODS)}")
        return v


class LineItemTaxResponse(BaseModel):
    tax_rate_id: int
    tax_name_snapshot: str
    tax_rate_snapshot: float
    tax_amount: int

    class Config:
        from_attributes = True


class LineItemResponse(BaseModel):
    id: int
    item_type: str
    description: str
    quantity: int
    unit_price: int
    line_total: int
    discount_rate: float
    discount_amount: int
    tax_amount: int
    sort_order: int
    taxes: list[LineItemTaxResponse] = []

    class Config:
        from_attributes = True


class InvoicePaymentResponse(BaseModel):
    id: int
    amount: int
    payment_method: str
    payment_date: date
    reference_number: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    old_status: Optional[str] = None
    new_status: str
    notes: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    family_id: int
    status: str
    issue_date: date
    due_date: date
    subtotal: int
    tax_amount: int
    discount_amount: int
    total_amount: int
    amount_paid: int
    amount_due: int
    notes: Optional[str] = None
    terms: Optional[str] = None
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    line_items: list[LineItemResponse] = []
    payments: list[InvoicePaymentResponse] = []
    status_history: list[StatusHistoryResponse] = []

    class Config:
        from_attributes = True


class InvoiceStatsResponse(BaseModel):
    total_invoices: int
    total_amount: int
    paid_amount: int
    outstanding_amount: int
    overdue_count: int
