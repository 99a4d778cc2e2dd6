"""
Payment options per student and family

Which payment types a program supports, what each costs, and whether a
student is currently paid up.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from ...models import Class, Enrollment, Family, Program, Student
from ...models_payment import Payment, PaymentStudent
from ...shared.dates import utcnow

logger = logging.getLogger(__name__)

# A subscription payment younger than this keeps the enrollment "active"
ACTIVE_SUBSCRIPTION_WINDOW_DAYS = 32


def get_supported_payment_types(program: Program) -> list[str]:
    supported = []
    if program.individual_session_fee and program.individual_session_fee > 0:
        supported.append("individual_session")
    if program.monthly_fee and program.monthly_fee > 0:
        supported.append("monthly_subscription")
    if program.yearly_fee and program.yearly_fee > 0:
        supported.append("yearly_subscription")
    return supported


def calculate_payment_amount(payment_type: str, program: Program, quantity: int = 1) -> int:
    """Amount in cents; raises ValueError for unknown types"""
    if payment_type == "trial":
        return 0
    if payment_type == "individual_session":
        return (program.individual_session_fee or 0) * quantity
    if payment_type == "monthly_subscription":
        return program.monthly_fee or 0
    if payment_type == "yearly_subscription":
        return program.yearly_fee or 0
    raise ValueError(f"Unsupported payment type: {payment_type}")


# Payment types whose subtotal comes from program fees rather than the caller
PRICED_PAYMENT_TYPES = {
    "monthly_group": "monthly_subscription",
    "yearly_group": "yearly_subscription",
    "individual_session": "individual_session",
}


def _priced_program(db: Session, student_id: int, option_type: str) -> Optional[Program]:
    """Program of the student's oldest active/trial enrollment that charges for option_type"""
    enrollments = (
        db.query(Enrollment)
        .options(joinedload(Enrollment.class_).joinedload(Class.program))
        .filter(Enrollment.student_id == student_id, Enrollment.status.in_(("active", "trial")))
        .order_by(Enrollment.enrolled_at, Enrollment.id)
        .all()
    )
    for enrollment in enrollments:
        program = enrollment.class_.program if enrollment.class_ else None
        if program is not None and option_type in get_supported_payment_types(program):
            return program
    return None


def calculate_payment_subtotal(db: Session, payment_type: str, students: list[Student], quantity: int = 1) -> int:
    """
    Server-side subtotal for a membership or session payment: the fee of each
    student's enrolled program. Individual sessions are bought for one student.
    """
    option_type = PRICED_PAYMENT_TYPES.get(payment_type)
    if option_type is None:
        raise HTTPException(status_code=400, detail=f"{payment_type} payments cannot be priced automatically")
    if not students:
        raise HTTPException(status_code=400, detail="Select at least one student")
    if payment_type == "individual_session":
        if len(students) != 1:
            raise HTTPException(status_code=400, detail="Individual sessions are paid for one student at a time")
        if quantity < 1:
            raise HTTPException(status_code=400, detail="Quantity must be at least 1")

    subtotal = 0
    for student in students:
        program = _priced_program(db, student.id, option_type)
        if program is None:
            raise HTTPException(
                status_code=400,
                detail=f"{student.first_name} {student.last_name} has no enrollment offering {payment_type} pricing",
            )
        subtotal += calculate_payment_amount(option_type, program, quantity)
    return subtotal


def _recent_subscription_types(db: Session, student_id: int) -> set[str]:
    since = utcnow() - timedelta(days=ACTIVE_SUBSCRIPTION_WINDOW_DAYS)
    rows = (
        db.query(Payment.type)
        .join(PaymentStudent, PaymentStudent.payment_id == Payment.id)
        .filter(
            PaymentStudent.student_id == student_id,
            Payment.status == "succeeded",
            Payment.type.in_(("monthly_group", "yearly_group")),
            Payment.created_at >= since,
        )
        .all()
    )
    return {row[0] for row in rows}


def _current_status(enrollment: Enrollment, subscription_types: set[str]) -> str:
    if "yearly_group" in subscription_types:
        return "active_yearly"
    if "monthly_group" in subscription_types:
        return "active_monthly"
    if enrollment.status == "trial":
        return "trial"
    return "expired"


def get_student_payment_options(db: Session, student_id: int) -> dict:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    enrollments = (
        db.query(Enrollment)
        .options(joinedload(Enrollment.class_).joinedload(Class.program))
        .filter(Enrollment.student_id == student_id, Enrollment.status.in_(("active", "trial")))
        .all()
    )

    subscription_types = _recent_subscription_types(db, student_id)
    has_subscription = bool(subscription_types)
    student_name = f"{student.first_name} {student.last_name}"

    options = []
    for enrollment in enrollments:
        if enrollment.class_ is None or enrollment.class_.program is None:
            logger.error(f"❌ Skipping enrollment {enrollment.id}: broken class/program reference")
            continue

        program = enrollment.class_.program
        options.append(
            {
                "enrollment_id": enrollment.id,
                "student_id": student_id,
                "student_name": student_name,
                "program_id": program.id,
                "program_name": program.name,
                "class_id": enrollment.class_id,
                "class_name": enrollment.class_.name,
                "supported_payment_types": get_supported_payment_types(program),
                "current_status": _current_status(enrollment, subscription_types),
                "monthly_amount": program.monthly_fee or None,
                "yearly_amount": program.yearly_fee or None,
                "individual_session_amount": program.individual_session_fee or None,
                "has_active_subscription": has_subscription,
                "paid_until": enrollment.paid_until if has_subscription else None,
            }
        )

    return {
        "student_id": student_id,
        "student_name": student_name,
        "enrollments": options,
        "has_any_active_subscription": has_subscription,
    }


def get_family_payment_options(db: Session, family_id: int) -> list[dict]:
    if not db.query(Family.id).filter(Family.id == family_id).first():
        raise HTTPException(status_code=404, detail="Family not found")

    students = db.query(Student).filter(Student.family_id == family_id).order_by(Student.first_name).all()
    return [get_student_payment_options(db, student.id) for student in students]


def get_student_payment_eligibility(db: Session, student_id: int) -> dict:
    """
    Paid: an active or trial enrollment is paid up to now or later.
    Trial: the student has never had a succeeded payment.
    Expired: everything else.
    """
    now = utcnow()
    enrollments = (
        db.query(Enrollment)
        .filter(Enrollment.student_id == student_id, Enrollment.status.in_(("active", "trial")))
        .all()
    )

    latest_paid_until: Optional[datetime] = max(
        (e.paid_until for e in enrollments if e.paid_until is not None), default=None
    )
    if latest_paid_until is not None and latest_paid_until >= now:
        return {"eligible": True, "reason": "Paid", "paid_until": latest_paid_until}

    has_payment = (
        db.query(Payment.id)
        .join(PaymentStudent, PaymentStudent.payment_id == Payment.id)
        .filter(PaymentStudent.student_id == student_id, Payment.status == "succeeded")
        .first()
    )
    if not has_payment:
        return {"eligible": True, "reason": "Trial", "paid_until": latest_paid_until}

    return {"eligible": False, "reason": "Expired", "paid_until": latest_paid_until}
