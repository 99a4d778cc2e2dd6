import asyncio
from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from dojo.domain.discounts.service import DiscountCodeService
from dojo.domain.payments.options import (
    calculate_payment_amount,
    calculate_payment_subtotal,
    get_student_payment_eligibility,
    get_student_payment_options,
    get_supported_payment_types,
)
from dojo.domain.payments.providers import MockPaymentProvider
from dojo.domain.payments.service import PaymentService, build_intent_metadata
from dojo.domain.payments.taxes import calculate_taxes_for_payment, is_pst_exempt
from dojo.models import Class, Enrollment, Program, Student
from dojo.models_payment import Order, Payment, PaymentStudent
from dojo.shared.dates import utcnow


class TestTaxes:
    def test_memberships_skip_pst(self, db, tax_rates, student):
        total, rows = calculate_taxes_for_payment(db, 12000, "monthly_group", [student])

        assert total == 600
        assert [row["tax_name_snapshot"] for row in rows] == ["GST"]
        assert rows[0]["tax_rate_snapshot"] == 0.05

    def test_store_purchase_for_adult_pays_pst(self, db, tax_rates):
        adult = Student(first_name="Grown", last_name="Up", birth_date=date(1990, 1, 1))

        total, rows = calculate_taxes_for_payment(db, 10000, "store_purchase", [adult])

        assert total == 1200
        assert {row["tax_name_snapshot"] for row in rows} == {"GST", "PST_BC"}

    def test_store_purchase_for_child_is_pst_exempt(self):
        child = Student(first_name="Kid", last_name="Tanaka", birth_date=date(2015, 6, 1))
        unknown = Student(first_name="Nobody", last_name="Known", birth_date=None)

        assert is_pst_exempt("store_purchase", [child], today=date(2025, 10, 1))
        assert not is_pst_exempt("store_purchase", [unknown], today=date(2025, 10, 1))
        assert not is_pst_exempt("other", [child], today=date(2025, 10, 1))

    def test_inactive_rates_ignored(self, db, tax_rates):
        tax_rates["GST"].is_active = False
        db.commit()

        total, rows = calculate_taxes_for_payment(db, 10000, "other")

        assert total == 700
        assert [row["tax_name_snapshot"] for row in rows] == ["PST_BC"]


class TestCreatePayment:
    def test_pending_payment_with_taxes(self, db, family, student, tax_rates):
        payment = PaymentService(db).create_payment(family.id, "monthly_group", [student.id, student.id], 12000)

        assert payment.status == "pending"
        assert payment.student_ids == [student.id]
        assert payment.tax_amount == 600
        assert payment.total_amount == 12600
        assert [t.tax_name_snapshot for t in payment.taxes] == ["GST"]

    def test_discount_reduces_taxable_amount(self, db, family, student, tax_rates):
        discounts = DiscountCodeService(db)
        code = discounts.create_discount_code(
            {
                "code": "HALF",
                "name": "Half off",
                "discount_type": "percentage",
                "discount_value": 50,
                "family_id": family.id,
            },
            created_by=1,
        )

        payment = PaymentService(db).create_payment(family.id, "monthly_group", [student.id], 12000, discount_code="half")
        db.refresh(code)

        assert payment.discount_amount == 6000
        assert payment.tax_amount == 300
        assert payment.total_amount == 6300
        assert payment.discount_code_id == code.id
        assert code.current_uses == 1

    def test_invalid_discount_code_rejected(self, db, family, student):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db).create_payment(family.id, "monthly_group", [student.id], 12000, discount_code="NOPE")
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Invalid or inactive discount code"

    def test_students_must_belong_to_family(self, db, other_family, student):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db).create_payment(other_family.id, "monthly_group", [student.id], 12000)
        assert exc_info.value.status_code == 400

    def test_store_purchase_needs_own_order(self, db, family, other_family, student):
        service = PaymentService(db)
        with pytest.raises(HTTPException) as exc_info:
            service.create_payment(family.id, "store_purchase", [student.id], 5000)
        assert exc_info.value.status_code == 400

        order = Order(family_id=other_family.id, total_amount=5000)
        db.add(order)
        db.commit()
        with pytest.raises(HTTPException) as exc_info:
            service.create_payment(family.id, "store_purchase", [student.id], 5000, order_id=order.id)
        assert exc_info.value.status_code == 404

    def test_server_price_from_enrolled_programs(self, db, family, student, sibling, karate_class, program):
        adults = Program(name="Adult Karate", monthly_fee=15000, gender_restriction="none", prerequisite_programs=[])
        db.add(adults)
        db.flush()
        adult_class = Class(program_id=adults.id, name="Evening Adults", is_active=True)
        db.add(adult_class)
        db.flush()
        db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=program.id, status="active"))
        db.add(Enrollment(class_id=adult_class.id, student_id=sibling.id, program_id=adults.id, status="trial"))
        db.commit()

        payment = PaymentService(db).create_payment(family.id, "monthly_group", [student.id, sibling.id])

        assert payment.subtotal_amount == 27000

    def test_server_price_needs_a_priced_enrollment(self, db, family, student, karate_class, program):
        db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=program.id, status="dropped"))
        db.commit()

        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db).create_payment(family.id, "yearly_group", [student.id])
        assert exc_info.value.status_code == 400

    def test_single_student_for_individual_sessions(self, db, family, student, sibling):
        with pytest.raises(HTTPException) as exc_info:
            calculate_payment_subtotal(db, "individual_session", [student, sibling], quantity=2)
        assert exc_info.value.detail == "Individual sessions are paid for one student at a time"

    def test_store_purchase_priced_from_order(self, db, family, student):
        order = Order(family_id=family.id, total_amount=4500)
        db.add(order)
        db.commit()

        payment = PaymentService(db).create_payment(family.id, "store_purchase", [student.id], order_id=order.id)

        assert payment.subtotal_amount == 4500

    def test_unknown_type(self, db, family):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db).create_payment(family.id, "donation", [], 1000)
        assert exc_info.value.status_code == 400

    def test_intent_metadata(self, db, family, student, sibling):
        payment = PaymentService(db).create_payment(family.id, "yearly_group", [student.id, sibling.id], 120000)

        metadata = build_intent_metadata(payment)

        assert metadata["paymentId"] == str(payment.id)
        assert metadata["type"] == "yearly_group"
        assert metadata["total_amount"] == str(payment.total_amount)
        assert metadata["studentIds"] == f"{student.id},{sibling.id}"
        assert "orderId" not in metadata


class TestPaymentIntent:
    def test_mock_intent(self, db, family, student):
        service = PaymentService(db, MockPaymentProvider())
        payment = service.create_payment(family.id, "monthly_group", [student.id], 12000)

        result = asyncio.run(service.create_payment_intent(payment.id))
        db.refresh(payment)

        assert result["provider"] == "mock"
        assert result["amount"] == 12000
        assert payment.payment_intent_id == result["intent_id"]
        assert MockPaymentProvider.intents[result["intent_id"]].metadata["paymentId"] == str(payment.id)

    def test_zero_total_rejected(self, db, family, student):
        service = PaymentService(db, MockPaymentProvider())
        payment = service.create_payment(family.id, "other", [student.id], 0)

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(service.create_payment_intent(payment.id))
        assert exc_info.value.status_code == 400

    def test_cancel_pending_payment(self, db, family, student):
        service = PaymentService(db, MockPaymentProvider())
        payment = service.create_payment(family.id, "monthly_group", [student.id], 12000)
        asyncio.run(service.create_payment_intent(payment.id))

        cancelled = asyncio.run(service.cancel_payment(payment.id))

        assert cancelled.status == "failed"
        assert cancelled.notes == "Cancelled by user"


class TestPaymentOptions:
    def test_supported_types_and_amounts(self, program):
        assert get_supported_payment_types(program) == [
            "individual_session",
            "monthly_subscription",
            "yearly_subscription",
        ]
        assert calculate_payment_amount("individual_session", program, quantity=3) == 9000
        assert calculate_payment_amount("trial", program) == 0
        with pytest.raises(ValueError):
            calculate_payment_amount("lifetime", program)

    def test_free_program_supports_nothing(self):
        assert get_supported_payment_types(Program(name="Open Mat")) == []

    def test_student_options(self, db, karate_class, student):
        db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=karate_class.program_id, status="trial"))
        db.commit()

        options = get_student_payment_options(db, student.id)

        assert options["student_name"] == "Hana Tanaka"
        assert options["has_any_active_subscription"] is False
        entry = options["enrollments"][0]
        assert entry["class_name"] == "Monday Juniors"
        assert entry["current_status"] == "trial"
        assert entry["monthly_amount"] == 12000
        assert entry["paid_until"] is None


class TestPaymentEligibility:
    def _enroll(self, db, karate_class, student, paid_until=None):
        db.add(
            Enrollment(
                class_id=karate_class.id,
                student_id=student.id,
                program_id=karate_class.program_id,
                status="active",
                paid_until=paid_until,
            )
        )
        db.commit()

    def test_paid(self, db, karate_class, student):
        self._enroll(db, karate_class, student, paid_until=utcnow() + timedelta(days=10))

        assert get_student_payment_eligibility(db, student.id)["reason"] == "Paid"

    def test_trial_without_any_payment(self, db, karate_class, student):
        self._enroll(db, karate_class, student)

        result = get_student_payment_eligibility(db, student.id)

        assert result == {"eligible": True, "reason": "Trial", "paid_until": None}

    def test_expired(self, db, family, karate_class, student):
        self._enroll(db, karate_class, student, paid_until=utcnow() - timedelta(days=2))
        payment = Payment(family_id=family.id, type="monthly_group", status="succeeded", subtotal_amount=12000, total_amount=12000)
        db.add(payment)
        db.flush()
        db.add(PaymentStudent(payment_id=payment.id, student_id=student.id))
        db.commit()

        result = get_student_payment_eligibility(db, student.id)

        assert result["eligible"] is False
        assert result["reason"] == "Expired"
