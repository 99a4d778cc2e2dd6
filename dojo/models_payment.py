"""
Payment, discount, webhook and store models
All money columns are integer cents
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.dates import utcnow

PAYMENT_TYPES = [
    "monthly_group",
    "yearly_group",
    "individual_session",
    "other",
    "store_purchase",
    "event_registration",
]


class TaxRate(Base):
    __tablename__ = "tax_rates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)  # GST, PST_BC
    rate = Column(Float, nullable=False)  # fraction, 0.05 = 5%
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)  # one of PAYMENT_TYPES
    status = Column(String(20), default="pending", nullable=False)  # pending, succeeded, failed
    subtotal_amount = Column(Integer, nullable=False, default=0)
    tax_amount = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False, default=0)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True)
    payment_method = Column(String(50), nullable=True)  # card, cash, e-transfer
    receipt_url = Column(String(500), nullable=True)
    card_last4 = Column(String(4), nullable=True)
    provider = Column(String(20), nullable=True)  # stripe, square, mock
    payment_intent_id = Column(String(255), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    family = relationship("Family")
    students = relationship("PaymentStudent", back_populates="payment", cascade="all, delete-orphan")
    taxes = relationship("PaymentTax", back_populates="payment", cascade="all, delete-orphan")
    discount_code = relationship("DiscountCode")
    order = relationship("Order")

    @property
    def student_ids(self) -> list[int]:
        return [ps.student_id for ps in self.students]


class PaymentStudent(Base):
    __tablename__ = "payment_students"
    __table_args__ = (UniqueConstraint("payment_id", "student_id", name="uq_payment_student"),)

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)

    payment = relationship("Payment", back_populates="students")
    student = relationship("Student")


class PaymentTax(Base):
    __tablename__ = "payment_taxes"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    tax_rate_id = Column(Integer, ForeignKey("tax_rates.id"), nullable=False)
    tax_amount = Column(Integer, nullable=False)
    tax_rate_snapshot = Column(Float, nullable=False)
    tax_name_snapshot = Column(String(50), nullable=False)

    payment = relationship("Payment", back_populates="taxes")


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # fixed_amount (cents), percentage
    discount_value = Column(Float, nullable=False)
    usage_type = Column(String(20), default="one_time", nullable=False)  # one_time, ongoing
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)
    applicable_to = Column(JSON, default=list, nullable=False)  # payment types
    scope = Column(String(20), default="per_family", nullable=False)  # per_student, per_family
    family_id = Column(Integer, ForeignKey("families.id"), nullable=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    valid_from = Column(DateTime, default=utcnow, nullable=False)
    valid_until = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_automatically = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    usages = relationship("DiscountCodeUsage", back_populates="discount_code", cascade="all, delete-orphan")


class DiscountCodeUsage(Base):
    __tablename__ = "discount_code_usage"

    id = Column(Integer, primary_key=True, index=True)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, index=True)
    discount_amount = Column(Integer, nullable=False)
    original_amount = Column(Integer, nullable=False, default=0)
    final_amount = Column(Integer, nullable=False, default=0)
    used_at = Column(DateTime, default=utcnow, nullable=False)

    discount_code = relationship("DiscountCode", back_populates="usages")


DISCOUNT_EVENT_TYPES = [
    "student_enrollment",
    "first_payment",
    "belt_promotion",
    "attendance_milestone",
    "family_referral",
    "birthday",
    "seasonal_promotion",
]


class DiscountTemplate(Base):
    """Blueprint for the codes an automation rule hands out"""

    __tablename__ = "discount_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # fixed_amount (cents), percentage
    discount_value = Column(Float, nullable=False)
    usage_type = Column(String(20), default="one_time", nullable=False)
    max_uses = Column(Integer, nullable=True)
    applicable_to = Column(JSON, default=list, nullable=False)
    scope = Column(String(20), default="per_family", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class DiscountAutomationRule(Base):
    __tablename__ = "discount_automation_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=False, index=True)  # one of DISCOUNT_EVENT_TYPES
    discount_template_id = Column(Integer, ForeignKey("discount_templates.id"), nullable=True)
    # belt_rank, min_family_size, attendance_count, min_age, max_age
    conditions = Column(JSON, nullable=True)
    applicable_programs = Column(JSON, nullable=True)  # program ids
    is_active = Column(Boolean, default=True, nullable=False)
    valid_from = Column(DateTime, default=utcnow, nullable=False)
    valid_until = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    template = relationship("DiscountTemplate")
    template_links = relationship(
        "AutomationRuleTemplate",
        cascade="all, delete-orphan",
        order_by="AutomationRuleTemplate.sequence_order",
    )


class AutomationRuleTemplate(Base):
    """Extra templates for a rule that hands out more than one code"""

    __tablename__ = "automation_rule_templates"
    __table_args__ = (UniqueConstraint("rule_id", "template_id", name="uq_rule_template"),)

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("discount_automation_rules.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("discount_templates.id"), nullable=False)
    sequence_order = Column(Integer, default=1, nullable=False)

    template = relationship("DiscountTemplate")


class DiscountEvent(Base):
    __tablename__ = "discount_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=True, index=True)
    event_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class DiscountAssignment(Base):
    """One row per code an automation rule issued"""

    __tablename__ = "discount_assignments"

    id = Column(Integer, primary_key=True, index=True)
    automation_rule_id = Column(Integer, ForeignKey("discount_automation_rules.id"), nullable=False, index=True)
    discount_event_id = Column(Integer, ForeignKey("discount_events.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=True, index=True)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=False)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)

    discount_code = relationship("DiscountCode")


class WebhookEvent(Base):
    """One row per provider event; (provider, event_id) is the idempotency key"""

    __tablename__ = "webhook_events"
    __table_args__ = (UniqueConstraint("provider", "event_id", name="uq_webhook_provider_event"),)

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False)  # stripe, square, mock
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False)
    raw_type = Column(String(100), nullable=True)
    raw_payload = Column(JSON, nullable=True)
    parsed_metadata = Column(JSON, nullable=True)
    request_id = Column(String(255), nullable=True)
    source_ip = Column(String(64), nullable=True)
    signature_verified = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, succeeded, failed, duplicate
    received_at = Column(DateTime, default=utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    processing_duration_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    size = Column(String(20), nullable=True)
    price = Column(Integer, nullable=False)
    stock_quantity = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True)
    status = Column(
        String(30), default="pending_payment", nullable=False
    )  # pending_payment, paid_pending_pickup, completed, cancelled
    total_amount = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_per_item = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    variant = relationship("ProductVariant")


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_name = Column(String(255), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True, index=True)
    registration_status = Column(String(20), default="pending", nullable=False)  # pending, confirmed, cancelled
    payment_status = Column(String(20), default="pending", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
