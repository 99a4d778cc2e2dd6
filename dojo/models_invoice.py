"""
Invoice Models for Family Billing
"""

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.dates import utcnow


class Invoice(Base):
    """Invoice issued to a family (amounts in cents)"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False, index=True)

    # Status: draft, sent, viewed, paid, partially_paid, overdue, cancelled
    status = Column(String(20), default="draft", nullable=False)

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    subtotal = Column(Integer, default=0, nullable=False)
    tax_amount = Column(Integer, default=0, nullable=False)
    discount_amount = Column(Integer, default=0, nullable=False)
    total_amount = Column(Integer, default=0, nullable=False)
    amount_paid = Column(Integer, default=0, nullable=False)
    amount_due = Column(Integer, default=0, nullable=False)

    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    family = relationship("Family")
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.sort_order",
    )
    payments = relationship("InvoicePayment", back_populates="invoice", cascade="all, delete-orphan")
    status_history = relationship(
        "InvoiceStatusHistory", back_populates="invoice", cascade="all, delete-orphan"
    )


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    # class_enrollment, individual_session, product, fee, discount, other
    item_type = Column(String(30), default="other", nullable=False)
    description = Column(String(500), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Integer, nullable=False)
    line_total = Column(Integer, nullable=False)
    discount_rate = Column(Float, default=0, nullable=False)  # percent
    discount_amount = Column(Integer, default=0, nullable=False)
    tax_amount = Column(Integer, default=0, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    invoice = relationship("Invoice", back_populates="line_items")
    taxes = relationship("InvoiceLineItemTax", back_populates="line_item", cascade="all, delete-orphan")


class InvoiceLineItemTax(Base):
    __tablename__ = "invoice_line_item_taxes"

    id = Column(Integer, primary_key=True, index=True)
    invoice_line_item_id = Column(Integer, ForeignKey("invoice_line_items.id"), nullable=False)
    tax_rate_id = Column(Integer, ForeignKey("tax_rates.id"), nullable=False)
    tax_name_snapshot = Column(String(50), nullable=False)
    tax_rate_snapshot = Column(Float, nullable=False)
    tax_amount = Column(Integer, nullable=False)

    line_item = relationship("InvoiceLineItem", back_populates="taxes")


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    payment_method = Column(String(30), nullable=False)  # cash, check, card, bank_transfer, other
    payment_date = Column(Date, nullable=False)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="payments")


class InvoiceStatusHistory(Base):
    __tablename__ = "invoice_status_history"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime, default=utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="status_history")
