"""
Sales tax rules

BC PST is not charged on memberships, one-off sessions or event
registrations, nor on store purchases for students under 15.
"""

from collections.abc import Iterable
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Student
from ...models_payment import TaxRate
from ...shared.dates import calculate_age
from ...shared.money import multiply_cents

PST_BC = "PST_BC"
PST_EXEMPT_PAYMENT_TYPES = ("monthly_group", "yearly_group", "individual_session", "event_registration")
PST_EXEMPT_INVOICE_ITEM_TYPES = ("class_enrollment", "individual_session")
PST_EXEMPT_AGE = 15


def get_active_tax_rates(db: Session) -> list[TaxRate]:
    return db.query(TaxRate).filter(TaxRate.is_active.is_(True)).order_by(TaxRate.name).all()


def has_students_under(students: Iterable[Student], age: int = PST_EXEMPT_AGE, today: Optional[date] = None) -> bool:
    """Students without a birth date never qualify"""
    for student in students:
        student_age = calculate_age(student.birth_date, today)
        if student_age is not None and student_age < age:
            return True
    return False


def is_pst_exempt(payment_type: str, students: Iterable[Student], today: Optional[date] = None) -> bool:
    if payment_type in PST_EXEMPT_PAYMENT_TYPES:
        return True
    if payment_type == "store_purchase":
        return has_students_under(students, today=today)
    return False


def applicable_tax_rates(rates: list[TaxRate], exempt_from_pst: bool) -> list[TaxRate]:
    if exempt_from_pst:
        return [rate for rate in rates if rate.name != PST_BC]
    return list(rates)


def calculate_taxes_for_payment(
    db: Session,
    subtotal_amount: int,
    payment_type: str,
    students: Iterable[Student] = (),
    today: Optional[date] = None,
) -> tuple[int, list[dict]]:
    """
    Returns (total_tax, rows) where each row snapshots the rate it was
    computed with: tax_rate_id, tax_amount, tax_rate_snapshot, tax_name_snapshot.
    """
    rates = applicable_tax_rates(get_active_tax_rates(db), is_pst_exempt(payment_type, list(students), today))

    rows = []
    total = 0
    for rate in rates:
        amount = multiply_cents(subtotal_amount, rate.rate)
        total += amount
        rows.append(
            {
                "tax_rate_id": rate.id,
                "tax_amount": amount,
                "tax_rate_snapshot": rate.rate,
                "tax_name_snapshot": rate.name,
            }
        )
    return total, rows
