"""Payment service - creating payments and handing them to the provider"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import CURRENCY, SCHOOL_NAME
from ...models import Family
from ...models_payment import PAYMENT_TYPES, Payment, PaymentStudent, PaymentTax, TaxRate
from ..discounts.service import DiscountCodeService
from .options import (
    calculate_payment_subtotal,
    get_family_payment_options,
    get_student_payment_eligibility,
    get_student_payment_options,
)
from .providers import PaymentProvider, PaymentProviderError, SquarePaymentProvider, get_payment_provider
from .repository import PaymentRepository
from .taxes import calculate_taxes_for_payment

logger = logging.getLogger(__name__)

PAYMENT_TYPE_LABELS = {
    "monthly_group": "Monthly membership",
    "yearly_group": "Yearly membership",
    "individual_session": "Individual session",
    "other": "Other",
    "store_purchase": "Store purchase",
    "event_registration": "Event registration",
}


def build_intent_metadata(payment: Payment) -> dict[str, str]:
    """Everything the webhook needs to settle the payment without a lookup"""
    metadata = {
        "paymentId": str(payment.id),
        "type": payment.type,
        "familyId": str(payment.family_id),
        "subtotal_amount": str(payment.subtotal_amount),
        "tax_amount": str(payment.tax_amount),
        "total_amount": str(payment.total_amount),
        "studentIds": ",".join(str(sid) for sid in payment.student_ids),
    }
    if payment.order_id:
        metadata["orderId"] = str(payment.order_id)
    return metadata


class PaymentService:
    """Service layer for payments"""

    def __init__(self, db: Session, provider: Optional[PaymentProvider] = None):
        self.db = db
        self.repo = PaymentRepository()
        self._provider = provider

    @property
    def provider(self) -> PaymentProvider:
        if self._provider is None:
            try:
                self._provider = get_payment_provider()
            except PaymentProviderError as e:
                raise HTTPException(status_code=500, detail=str(e)) from e
        return self._provider

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.repo.get(self.db, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return payment

    def list_payments(
        self, family_id: Optional[int] = None, status: Optional[str] = None, payment_type: Optional[str] = None
    ) -> list[Payment]:
        return self.repo.list_payments(self.db, family_id, status, payment_type)

    def get_student_payment_options(self, student_id: int) -> dict:
        return get_student_payment_options(self.db, student_id)

    def get_family_payment_options(self, family_id: int) -> list[dict]:
        return get_family_payment_options(self.db, family_id)

    def get_student_payment_eligibility(self, student_id: int) -> dict:
        return get_student_payment_eligibility(self.db, student_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_payment(
        self,
        family_id: int,
        payment_type: str,
        student_ids: list[int],
        subtotal_amount: Optional[int] = None,
        discount_code: Optional[str] = None,
        order_id: Optional[int] = None,
        notes: Optional[str] = None,
        quantity: int = 1,
    ) -> Payment:
        """
        Store a pending payment. Taxes are computed on the discounted subtotal
        and snapshotted per rate. A discount code is consumed immediately.

        Without a subtotal_amount the price comes from the server: program fees
        for memberships and sessions, the order total for store purchases.
        """
        if payment_type not in PAYMENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid payment type: {payment_type}")
        if not self.db.query(Family.id).filter(Family.id == family_id).first():
            raise HTTPException(status_code=404, detail="Family not found")

        unique_student_ids = list(dict.fromkeys(student_ids))
        students = self.repo.family_students(self.db, family_id, unique_student_ids)
        if len(students) != len(unique_student_ids):
            raise HTTPException(status_code=400, detail="All students must belong to the paying family")

        if payment_type == "store_purchase":
            if order_id is None:
                raise HTTPException(status_code=400, detail="Store purchases require an order_id")
            order = self.repo.get_order(self.db, order_id)
            if not order or order.family_id != family_id:
                raise HTTPException(status_code=404, detail="Order not found")
            if subtotal_amount is None:
                subtotal_amount = order.total_amount

        if subtotal_amount is None:
            subtotal_amount = calculate_payment_subtotal(self.db, payment_type, students, quantity)

        discount_amount = 0
        discount_code_id = None
        discount_service = DiscountCodeService(self.db)
        discount_student_id = unique_student_ids[0] if len(unique_student_ids) == 1 else None

        if discount_code:
            validation = discount_service.validate_discount_code(
                discount_code, family_id, discount_student_id, subtotal_amount, payment_type
            )
            if not validation.is_valid:
                raise HTTPException(status_code=400, detail=validation.error_message)
            discount_amount = validation.discount_amount
            discount_code_id = validation.discount_code_id

        taxable_amount = subtotal_amount - discount_amount
        tax_amount, tax_rows = calculate_taxes_for_payment(self.db, taxable_amount, payment_type, students)

        payment = Payment(
            family_id=family_id,
            type=payment_type,
            status="pending",
            subtotal_amount=subtotal_amount,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            total_amount=taxable_amount + tax_amount,
            discount_code_id=discount_code_id,
            order_id=order_id,
            notes=notes,
        )
        self.db.add(payment)
        self.db.flush()

        for student_id in unique_student_ids:
            self.db.add(PaymentStudent(payment_id=payment.id, student_id=student_id))
        for row in tax_rows:
            self.db.add(PaymentTax(payment_id=payment.id, **row))

        if discount_code_id is not None:
            discount_service.apply_discount_code(
                discount_code_id,
                payment.id,
                family_id,
                discount_amount,
                student_id=discount_student_id,
                original_amount=subtotal_amount,
                commit=False,
            )

        self.db.commit()
        self.db.refresh(payment)

        logger.info(
            f"💰 Payment {payment.id} created for family {family_id}: {payment_type} "
            f"subtotal={subtotal_amount} discount={discount_amount} tax={tax_amount} total={payment.total_amount}"
        )
        return payment

    async def create_payment_intent(self, payment_id: int) -> dict:
        payment = self.get_payment(payment_id)
        if payment.status != "pending":
            raise HTTPException(status_code=400, detail=f"Payment is already {payment.status}")
        if payment.total_amount <= 0:
            raise HTTPException(status_code=400, detail="Payment total must be greater than zero")

        provider = self.provider
        description = f"{SCHOOL_NAME} - {PAYMENT_TYPE_LABELS.get(payment.type, payment.type)}"
        try:
            intent = await provider.create_payment_intent(
                payment.total_amount, CURRENCY, build_intent_metadata(payment), description
            )
        except PaymentProviderError as e:
            logger.error(f"❌ Payment intent creation failed for payment {payment_id}: {e}")
            raise HTTPException(status_code=502, detail="Payment provider unavailable") from e

        payment.payment_intent_id = intent.id
        payment.provider = provider.provider_id
        self.db.commit()

        return {
            "payment_id": payment.id,
            "intent_id": intent.id,
            "client_secret": intent.client_secret,
            "amount": payment.total_amount,
            "currency": CURRENCY,
            "provider": provider.provider_id,
            "client_config": provider.get_client_config(),
        }

    async def confirm_square_payment(self, payment_id: int, source_id: str) -> Payment:
        """Charge a Square card token; the webhook or the sync job settles the result"""
        payment = self.get_payment(payment_id)
        provider = self.provider
        if not isinstance(provider, SquarePaymentProvider):
            raise HTTPException(status_code=400, detail="Card confirmation is only used with Square")
        if payment.status != "pending" or not payment.payment_intent_id:
            raise HTTPException(status_code=400, detail="Payment has no pending Square reference")

        try:
            intent = await provider.confirm_payment(payment.payment_intent_id, source_id, payment.total_amount, CURRENCY)
        except PaymentProviderError as e:
            logger.error(f"❌ Square charge failed for payment {payment_id}: {e}")
            raise HTTPException(status_code=402, detail="Card was declined or could not be charged") from e

        payment.payment_intent_id = intent.id
        self.db.commit()
        self.db.refresh(payment)
        return payment

    async def cancel_payment(self, payment_id: int) -> Payment:
        payment = self.get_payment(payment_id)
        if payment.status != "pending":
            raise HTTPException(status_code=400, detail=f"Cannot cancel a {payment.status} payment")

        if payment.payment_intent_id and payment.provider:
            try:
                await get_payment_provider(payment.provider).cancel_payment_intent(payment.payment_intent_id)
            except PaymentProviderError as e:
                logger.warning(f"⚠️ Could not cancel intent {payment.payment_intent_id}: {e}")

        payment.status = "failed"
        payment.notes = "Cancelled by user" if not payment.notes else f"{payment.notes}\nCancelled by user"
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"🚫 Payment {payment_id} cancelled")
        return payment

    # ------------------------------------------------------------------
    # Tax rates
    # ------------------------------------------------------------------

    def list_tax_rates(self) -> list[TaxRate]:
        return self.repo.list_tax_rates(self.db)

    def create_tax_rate(self, data: dict) -> TaxRate:
        if self.repo.get_tax_rate_by_name(self.db, data["name"]):
            raise HTTPException(status_code=409, detail=f"Tax rate {data['name']} already exists")
        tax_rate = TaxRate(**data)
        self.db.add(tax_rate)
        self.db.commit()
        self.db.refresh(tax_rate)
        return tax_rate

    def update_tax_rate(self, tax_rate_id: int, updates: dict) -> TaxRate:
        tax_rate = self.repo.get_tax_rate(self.db, tax_rate_id)
        if not tax_rate:
            raise HTTPException(status_code=404, detail="Tax rate not found")
        for key, value in updates.items():
            if value is not None:
                setattr(tax_rate, key, value)
        self.db.commit()
        self.db.refresh(tax_rate)
        return tax_rate
