from datetime import date, time, timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from dojo.domain.attendance.schemas import AttendanceEntry
from dojo.domain.attendance.service import AttendanceService
from dojo.domain.discounts.automation import AutoDiscountService
from dojo.domain.enrollments.service import EnrollmentService
from dojo.domain.families.schemas import BeltAwardCreate
from dojo.domain.families.service import FamilyService
from dojo.models import Class, ClassSession, Enrollment
from dojo.models_payment import DiscountAssignment, DiscountCode, DiscountEvent, Payment
from dojo.shared.dates import utcnow


def new_template(service, **overrides):
    data = {
        "name": "Welcome",
        "description": "New student welcome",
        "discount_type": "percentage",
        "discount_value": 10,
        "usage_type": "one_time",
        "max_uses": 1,
        "applicable_to": ["monthly_group"],
        "scope": "per_family",
    }
    data.update(overrides)
    return service.create_template(data, created_by=None)


def new_rule(service, template, event_type="student_enrollment", **overrides):
    data = {"name": f"{event_type} rule", "event_type": event_type, "discount_template_id": template.id}
    data.update(overrides)
    return service.create_rule(data)


@pytest.fixture
def auto(db):
    return AutoDiscountService(db)


@pytest.fixture
def welcome(auto):
    return new_template(auto)


class TestEnrollmentEvents:
    def test_enrollment_issues_family_code(self, db, auto, welcome, karate_class, student, family):
        new_rule(auto, welcome)

        EnrollmentService(db).enroll_student(karate_class.id, student.id)

        code = db.query(DiscountCode).one()
        assert code.code.startswith("AUTO")
        assert len(code.code) == 12
        assert code.name == "Welcome - Auto Assigned"
        assert code.family_id == family.id
        assert code.student_id is None
        assert code.created_automatically
        assert code.applicable_to == ["monthly_group"]

        event = db.query(DiscountEvent).one()
        assert event.event_type == "student_enrollment"
        assert event.student_id == student.id
        assert event.family_id == family.id
        assert event.event_data == {"program_id": karate_class.program_id}

        assignment = db.query(DiscountAssignment).one()
        assert assignment.discount_code_id == code.id
        assert assignment.discount_event_id == event.id

    def test_one_assignment_per_rule_and_student(self, db, auto, welcome, program, karate_class, student, sibling):
        new_rule(auto, welcome)
        saturday = Class(program_id=program.id, name="Saturday Open Mat", max_capacity=10, is_active=True)
        db.add(saturday)
        db.commit()
        service = EnrollmentService(db)

        service.enroll_student(karate_class.id, student.id)
        service.enroll_student(saturday.id, student.id)
        service.enroll_student(karate_class.id, sibling.id)

        assert db.query(DiscountEvent).count() == 3
        assert sorted(a.student_id for a in db.query(DiscountAssignment).all()) == sorted([student.id, sibling.id])

    def test_waitlisted_enrollment_does_not_fire(self, db, auto, welcome, karate_class, student, sibling):
        new_rule(auto, welcome)
        karate_class.max_capacity = 1
        db.commit()
        service = EnrollmentService(db)
        service.enroll_student(karate_class.id, sibling.id)

        enrollment = service.enroll_student(karate_class.id, student.id)

        assert enrollment.status == "waitlist"
        assert [a.student_id for a in db.query(DiscountAssignment).all()] == [sibling.id]

    def test_per_student_template(self, db, auto, karate_class, student):
        template = new_template(auto, name="Junior", scope="per_student")
        new_rule(auto, template)

        EnrollmentService(db).enroll_student(karate_class.id, student.id)

        code = db.query(DiscountCode).one()
        assert code.scope == "per_student"
        assert code.student_id == student.id
        assert code.family_id is None

    def test_inactive_or_expired_rules_are_skipped(self, db, auto, welcome, karate_class, student):
        new_rule(auto, welcome, is_active=False)
        new_rule(
            auto,
            welcome,
            valid_from=utcnow() - timedelta(days=30),
            valid_until=utcnow() - timedelta(days=1),
        )

        EnrollmentService(db).enroll_student(karate_class.id, student.id)

        assert db.query(DiscountEvent).count() == 1
        assert db.query(DiscountCode).count() == 0

    def test_rule_with_several_templates(self, db, auto, welcome, karate_class, student):
        gear = new_template(auto, name="Gear", discount_type="fixed_amount", discount_value=1500, applicable_to=["store_purchase"])
        rule = new_rule(auto, welcome, discount_template_id=None, template_ids=[gear.id, welcome.id])

        EnrollmentService(db).enroll_student(karate_class.id, student.id)

        codes = db.query(DiscountCode).order_by(DiscountCode.id).all()
        assert [c.name for c in codes] == ["Gear - Auto Assigned", "Welcome - Auto Assigned"]
        assert codes[0].discount_value == 1500
        assert db.query(DiscountAssignment).filter(DiscountAssignment.automation_rule_id == rule.id).count() == 2

    def test_failures_do_not_block_enrollment(self, db, auto, welcome, karate_class, student, monkeypatch):
        new_rule(auto, welcome)

        def broken(self, *args, **kwargs):
            raise SQLAlchemyError("discount tables unavailable")

        monkeypatch.setattr(AutoDiscountService, "record_event", broken)

        enrollment = EnrollmentService(db).enroll_student(karate_class.id, student.id)

        assert enrollment.status == "active"
        assert db.query(Enrollment).count() == 1
        assert db.query(DiscountCode).count() == 0


class TestConditions:
    def test_applicable_programs(self, db, auto, welcome, karate_class, student, family):
        new_rule(auto, welcome, event_type="family_referral", applicable_programs=[karate_class.program_id])

        assert auto.record_event("family_referral", student_id=student.id) == []

        db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=karate_class.program_id, status="active"))
        db.commit()
        issued = auto.record_event("family_referral", student_id=student.id)

        assert [c.family_id for c in issued] == [family.id]

    def test_belt_promotion_matches_rank(self, db, auto, student, sibling):
        template = new_template(auto, name="Yellow belt", scope="per_student")
        new_rule(auto, template, event_type="belt_promotion", conditions={"belt_rank": "yellow"})
        families = FamilyService(db)

        families.award_belt(sibling.id, BeltAwardCreate(type="orange", awarded_date=date(2026, 1, 5)))
        families.award_belt(student.id, BeltAwardCreate(type="yellow", awarded_date=date(2026, 1, 5)))

        code = db.query(DiscountCode).one()
        assert code.student_id == student.id
        event = db.query(DiscountEvent).filter(DiscountEvent.student_id == student.id).one()
        assert event.event_data == {"new_belt_rank": "yellow"}

    def test_min_family_size(self, auto, welcome, family, student, sibling):
        new_rule(auto, welcome, event_type="seasonal_promotion", conditions={"min_family_size": 3})
        new_rule(auto, welcome, event_type="family_referral", conditions={"min_family_size": 2})

        assert auto.record_event("seasonal_promotion", family_id=family.id) == []
        assert len(auto.record_event("family_referral", family_id=family.id)) == 1

    def test_age_window(self, auto, welcome, student):
        new_rule(auto, welcome, event_type="birthday", conditions={"max_age": 8})
        new_rule(auto, welcome, event_type="family_referral", conditions={"min_age": 5, "max_age": 60})

        assert auto.record_event("birthday", student_id=student.id) == []
        assert len(auto.record_event("family_referral", student_id=student.id)) == 1

    def test_student_condition_needs_a_student(self, auto, welcome, family):
        new_rule(auto, welcome, event_type="family_referral", conditions={"belt_rank": "white"})

        assert auto.record_event("family_referral", family_id=family.id) == []

    def test_unknown_subjects(self, auto):
        with pytest.raises(HTTPException) as exc_info:
            auto.record_event("family_referral", family_id=999)
        assert exc_info.value.status_code == 404

        with pytest.raises(HTTPException) as exc_info:
            auto.record_event("graduation", family_id=999)
        assert exc_info.value.status_code == 400


class TestFirstPayment:
    def _succeeded(self, db, family):
        payment = Payment(family_id=family.id, type="monthly_group", status="succeeded", subtotal_amount=12000, total_amount=12000)
        db.add(payment)
        db.commit()
        return payment

    def test_only_the_first_succeeded_payment_counts(self, db, auto, welcome, family):
        new_rule(auto, welcome, event_type="first_payment")
        first = self._succeeded(db, family)

        issued = auto.record_first_payment(family.id, first.id)
        self._succeeded(db, family)
        again = auto.record_first_payment(family.id)

        assert len(issued) == 1
        assert again == []
        assert db.query(DiscountEvent).count() == 1

    def test_no_succeeded_payment(self, auto, welcome, family):
        new_rule(auto, welcome, event_type="first_payment")

        assert auto.record_first_payment(family.id) == []


class TestAttendanceMilestones:
    def test_fifth_attended_class(self, db, auto, karate_class, student):
        template = new_template(auto, name="Five classes", scope="per_student")
        new_rule(auto, template, event_type="attendance_milestone", conditions={"attendance_count": 5})
        attendance = AttendanceService(db)

        for day in range(6, 11):
            session = ClassSession(
                class_id=karate_class.id,
                session_date=date(2025, 10, day),
                start_time=time(17, 0),
                end_time=time(18, 0),
                status="scheduled",
            )
            db.add(session)
            db.commit()
            attendance.record_session_attendance(session.id, [AttendanceEntry(student_id=student.id, status="present")])
            # re-taking attendance for the same session does not count again
            attendance.record_session_attendance(session.id, [AttendanceEntry(student_id=student.id, status="late")])

            expected = 1 if day == 10 else 0
            assert db.query(DiscountCode).count() == expected

        event = db.query(DiscountEvent).one()
        assert event.event_data == {"attendance_count": 5}

    def test_nothing_before_first_class(self, auto, student):
        assert auto.record_attendance_milestone(student.id) == []


class TestRuleAdmin:
    def test_rule_needs_a_template(self, auto):
        with pytest.raises(HTTPException) as exc_info:
            auto.create_rule({"name": "Empty", "event_type": "birthday"})
        assert exc_info.value.status_code == 400

        with pytest.raises(HTTPException) as exc_info:
            auto.create_rule({"name": "Ghost", "event_type": "birthday", "discount_template_id": 999})
        assert exc_info.value.status_code == 404

    def test_used_rules_and_templates_cannot_be_deleted(self, auto, welcome, family):
        rule = new_rule(auto, welcome, event_type="family_referral")
        auto.record_event("family_referral", family_id=family.id)

        with pytest.raises(HTTPException) as exc_info:
            auto.delete_rule(rule.id)
        assert exc_info.value.status_code == 400
        with pytest.raises(HTTPException) as exc_info:
            auto.delete_template(welcome.id)
        assert exc_info.value.status_code == 400

        auto.update_rule(rule.id, {"is_active": False})
        assert auto.record_event("family_referral", family_id=family.id) == []

    def test_inactive_template_issues_nothing(self, auto, welcome, family):
        new_rule(auto, welcome, event_type="family_referral")
        auto.update_template(welcome.id, {"is_active": False})

        assert auto.record_event("family_referral", family_id=family.id) == []


class TestAutomationApi:
    def test_admin_sets_up_and_fires_a_rule(self, client, family):
        template = client.post(
            "/discount-automation/templates",
            json={"name": "Referral", "discount_type": "fixed_amount", "discount_value": 2500},
        )
        assert template.status_code == 200
        rule = client.post(
            "/discount-automation/rules",
            json={"name": "Referral thanks", "event_type": "family_referral", "discount_template_id": template.json()["id"]},
        )
        assert rule.status_code == 200

        issued = client.post("/discount-automation/events", json={"event_type": "family_referral", "family_id": family.id})

        assert issued.status_code == 200
        assert [c["name"] for c in issued.json()] == ["Referral - Auto Assigned"]
        assignments = client.get("/discount-automation/assignments", params={"family_id": family.id}).json()
        assert len(assignments) == 1
        assert assignments[0]["automation_rule_id"] == rule.json()["id"]

    def test_validation(self, client, family):
        bad_condition = client.post(
            "/discount-automation/rules",
            json={"name": "Odd", "event_type": "birthday", "discount_template_id": 1, "conditions": {"shoe_size": 5}},
        )
        no_subject = client.post("/discount-automation/events", json={"event_type": "birthday"})

        assert bad_condition.status_code == 422
        assert no_subject.status_code == 422

    def test_families_cannot_manage_rules(self, client, parent, login_as):
        login_as(parent)

        assert client.get("/discount-automation/rules").status_code == 403
        assert client.post("/discount-automation/events", json={"event_type": "birthday", "family_id": parent.family_id}).status_code == 403
