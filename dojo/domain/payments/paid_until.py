"""
Paid-until calculator

Decides the new expiration date of a student's enrollment when a monthly or
yearly payment lands. Rules, in order of precedence:

1. Not expired yet: extend from the current paid_until.
2. Grace period: paid within PAYMENT_GRACE_PERIOD_DAYS of expiring, extend
   from the expiration date.
3. Attendance credit: the student attended (present) within
   PAYMENT_ATTENDANCE_LOOKBACK_DAYS after expiring, extend from the
   expiration date.
4. Otherwise extend from the payment date.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...config import PAYMENT_ATTENDANCE_LOOKBACK_DAYS, PAYMENT_GRACE_PERIOD_DAYS
from ...models import Enrollment
from ...models_payment import Payment
from ..attendance.repository import AttendanceRepository

logger = logging.getLogger(__name__)

SUBSCRIPTION_PAYMENT_TYPES = ("monthly_group", "yearly_group")


@dataclass
class PaidUntilResult:
    new_paid_until: datetime
    reason: str
    rule_applied: str  # grace_period, attendance_credit, default


def extend_paid_until(start: datetime, payment_type: str) -> datetime:
    """+1 calendar month or year; month ends clamp (Jan 31 -> Feb 28/29)"""
    if payment_type == "monthly_group":
        return start + relativedelta(months=1)
    if payment_type == "yearly_group":
        return start + relativedelta(years=1)
    logger.warning(f"⚠️ Unknown payment type for paid_until: {payment_type}, defaulting to monthly")
    return start + relativedelta(months=1)


def days_overdue(current_paid_until: Optional[datetime], payment_date: datetime) -> int:
    if current_paid_until is None:
        return 0
    return (payment_date - current_paid_until) // timedelta(days=1)


def needs_attendance_check(
    current_paid_until: Optional[datetime],
    payment_date: datetime,
    grace_period_days: int = PAYMENT_GRACE_PERIOD_DAYS,
) -> bool:
    return current_paid_until is not None and days_overdue(current_paid_until, payment_date) > grace_period_days


def calculate_paid_until(
    current_paid_until: Optional[datetime],
    payment_date: datetime,
    payment_type: str,
    attendance_after_expiration: Optional[date] = None,
    grace_period_days: int = PAYMENT_GRACE_PERIOD_DAYS,
) -> PaidUntilResult:
    """
    Pure rule evaluation. attendance_after_expiration is the earliest
    present-attendance date inside the lookback window, looked up by the
    caller only when needs_attendance_check() says so.
    """
    if current_paid_until is not None and current_paid_until > payment_date:
        return PaidUntilResult(
            extend_paid_until(current_paid_until, payment_type),
            "Extending from future paid_until date (not expired)",
            "default",
        )

    overdue = days_overdue(current_paid_until, payment_date)

    if current_paid_until is not None and 0 <= overdue <= grace_period_days:
        return PaidUntilResult(
            extend_paid_until(current_paid_until, payment_type),
            f"Within {grace_period_days}-day grace period ({overdue} days after expiration)",
            "grace_period",
        )

    expired_beyond_grace = current_paid_until is not None and overdue > grace_period_days

    if expired_beyond_grace and attendance_after_expiration is not None:
        return PaidUntilResult(
            extend_paid_until(current_paid_until, payment_type),
            f"Student attended on {attendance_after_expiration.isoformat()} "
            f"after expiration on {current_paid_until.date().isoformat()}",
            "attendance_credit",
        )

    if expired_beyond_grace:
        return PaidUntilResult(
            extend_paid_until(payment_date, payment_type),
            f"Payment {overdue} days after expiration, outside grace period, no attendance recorded",
            "default",
        )

    return PaidUntilResult(
        extend_paid_until(current_paid_until or payment_date, payment_type),
        "New enrollment or extending from current date",
        "default",
    )


def find_attendance_after_expiration(
    db: Session,
    student_id: int,
    expiration: datetime,
    lookback_days: int = PAYMENT_ATTENDANCE_LOOKBACK_DAYS,
) -> Optional[date]:
    """Earliest present attendance dated within lookback_days after expiration"""
    start = expiration.date()
    return AttendanceRepository.first_present_between(
        db, student_id, start, start + timedelta(days=lookback_days)
    )


def calculate_paid_until_for_enrollment(
    db: Session, enrollment: Enrollment, payment_date: datetime, payment_type: str
) -> PaidUntilResult:
    attendance_date = None
    if needs_attendance_check(enrollment.paid_until, payment_date):
        attendance_date = find_attendance_after_expiration(db, enrollment.student_id, enrollment.paid_until)
    return calculate_paid_until(enrollment.paid_until, payment_date, payment_type, attendance_date)


def apply_payment_to_enrollments(db: Session, payment: Payment) -> list[Enrollment]:
    """
    Extend paid_until on every active or trial enrollment of each student the
    payment covers. Only subscription payments move paid_until. The caller commits.
    """
    if payment.type not in SUBSCRIPTION_PAYMENT_TYPES:
        return []

    payment_date = payment.payment_date or payment.created_at
    student_ids = payment.student_ids
    if not student_ids:
        logger.warning(f"⚠️ Payment {payment.id} has no students; paid_until unchanged")
        return []

    enrollments = (
        db.query(Enrollment)
        .filter(Enrollment.student_id.in_(student_ids), Enrollment.status.in_(("active", "trial")))
        .all()
    )

    for enrollment in enrollments:
        result = calculate_paid_until_for_enrollment(db, enrollment, payment_date, payment.type)
        logger.info(
            f"💰 Enrollment {enrollment.id}: paid_until {enrollment.paid_until} -> {result.new_paid_until} "
            f"[{result.rule_applied}] {result.reason}"
        )
        enrollment.paid_until = result.new_paid_until

    return enrollments
