from datetime import date, datetime, time

from dojo.domain.payments.paid_until import (
    apply_payment_to_enrollments,
    calculate_paid_until,
    extend_paid_until,
    needs_attendance_check,
)
from dojo.models import Attendance, ClassSession, Enrollment
from dojo.models_payment import Payment, PaymentStudent

EXPIRES = datetime(2025, 10, 12, 16, 0)


class TestCalculatePaidUntil:
    def test_not_expired_extends_from_current_paid_until(self):
        result = calculate_paid_until(EXPIRES, datetime(2025, 10, 5, 9, 0), "monthly_group")

        assert result.new_paid_until == datetime(2025, 11, 12, 16, 0)
        assert result.rule_applied == "default"
        assert "not expired" in result.reason

    def test_grace_period_extends_from_expiration(self):
        result = calculate_paid_until(EXPIRES, datetime(2025, 10, 15, 18, 0), "monthly_group")

        assert result.new_paid_until == datetime(2025, 11, 12, 16, 0)
        assert result.rule_applied == "grace_period"
        assert "3 days after expiration" in result.reason

    def test_last_day_of_grace_period(self):
        result = calculate_paid_until(EXPIRES, datetime(2025, 10, 19, 17, 0), "monthly_group")

        assert result.rule_applied == "grace_period"
        assert result.new_paid_until == datetime(2025, 11, 12, 16, 0)

    def test_outside_grace_without_attendance_extends_from_payment_date(self):
        paid_at = datetime(2025, 10, 20, 18, 0)
        result = calculate_paid_until(EXPIRES, paid_at, "monthly_group")

        assert result.new_paid_until == datetime(2025, 11, 20, 18, 0)
        assert result.rule_applied == "default"
        assert "outside grace period" in result.reason

    def test_attendance_after_expiration_gives_credit(self):
        result = calculate_paid_until(
            EXPIRES, datetime(2025, 10, 25, 12, 0), "monthly_group", attendance_after_expiration=date(2025, 10, 17)
        )

        assert result.new_paid_until == datetime(2025, 11, 12, 16, 0)
        assert result.rule_applied == "attendance_credit"
        assert "2025-10-17" in result.reason

    def test_yearly_extends_one_year(self):
        result = calculate_paid_until(EXPIRES, datetime(2025, 10, 1), "yearly_group")

        assert result.new_paid_until == datetime(2026, 10, 12, 16, 0)

    def test_first_payment_starts_from_payment_date(self):
        paid_at = datetime(2025, 3, 3, 10, 30)
        result = calculate_paid_until(None, paid_at, "monthly_group")

        assert result.new_paid_until == datetime(2025, 4, 3, 10, 30)
        assert result.rule_applied == "default"

    def test_month_end_clamps(self):
        assert extend_paid_until(datetime(2025, 1, 31), "monthly_group") == datetime(2025, 2, 28)
        assert extend_paid_until(datetime(2024, 1, 31), "monthly_group") == datetime(2024, 2, 29)

    def test_unknown_type_defaults_to_monthly(self):
        assert extend_paid_until(datetime(2025, 5, 10), "other") == datetime(2025, 6, 10)

    def test_attendance_lookup_only_needed_beyond_grace(self):
        assert not needs_attendance_check(None, datetime(2025, 10, 30))
        assert not needs_attendance_check(EXPIRES, datetime(2025, 10, 15))
        assert needs_attendance_check(EXPIRES, datetime(2025, 10, 25))


class TestApplyPaymentToEnrollments:
    def _payment(self, db, family, student, payment_type, paid_at):
        payment = Payment(
            family_id=family.id,
            type=payment_type,
            status="succeeded",
            subtotal_amount=12000,
            total_amount=12000,
            payment_date=paid_at,
        )
        db.add(payment)
        db.flush()
        db.add(PaymentStudent(payment_id=payment.id, student_id=student.id))
        db.commit()
        db.refresh(payment)
        return payment

    def _enroll(self, db, karate_class, student, paid_until):
        enrollment = Enrollment(
            class_id=karate_class.id,
            student_id=student.id,
            program_id=karate_class.program_id,
            status="active",
            paid_until=paid_until,
        )
        db.add(enrollment)
        db.commit()
        return enrollment

    def test_attendance_credit_from_recorded_session(self, db, family, student, karate_class):
        enrollment = self._enroll(db, karate_class, student, EXPIRES)
        session = ClassSession(
            class_id=karate_class.id, session_date=date(2025, 10, 17), start_time=time(17, 0), end_time=time(18, 0)
        )
        db.add(session)
        db.flush()
        db.add(Attendance(student_id=student.id, class_session_id=session.id, status="present"))
        db.commit()

        payment = self._payment(db, family, student, "monthly_group", datetime(2025, 10, 25, 12, 0))
        updated = apply_payment_to_enrollments(db, payment)
        db.commit()

        assert updated == [enrollment]
        assert enrollment.paid_until == datetime(2025, 11, 12, 16, 0)

    def test_absence_does_not_count_as_attendance(self, db, family, student, karate_class):
        enrollment = self._enroll(db, karate_class, student, EXPIRES)
        session = ClassSession(
            class_id=karate_class.id, session_date=date(2025, 10, 17), start_time=time(17, 0), end_time=time(18, 0)
        )
        db.add(session)
        db.flush()
        db.add(Attendance(student_id=student.id, class_session_id=session.id, status="absent"))
        db.commit()

        payment = self._payment(db, family, student, "monthly_group", datetime(2025, 10, 25, 12, 0))
        apply_payment_to_enrollments(db, payment)

        assert enrollment.paid_until == datetime(2025, 11, 25, 12, 0)

    def test_non_subscription_payment_leaves_paid_until(self, db, family, student, karate_class):
        enrollment = self._enroll(db, karate_class, student, EXPIRES)
        payment = self._payment(db, family, student, "individual_session", datetime(2025, 10, 25))

        assert apply_payment_to_enrollments(db, payment) == []
        assert enrollment.paid_until == EXPIRES
