from datetime import date, time

import pytest

from dojo.domain.classes.conflicts import check_schedule_conflicts, slots_overlap
from dojo.domain.enrollments.service import EnrollmentService
from dojo.domain.enrollments.validation import EnrollmentValidationError
from dojo.domain.programs.eligibility import check_program_eligibility
from dojo.models import BeltAward, Class, ClassSchedule, Enrollment, Program, Student


def make_class(db, program, name, day="monday", start=time(17, 0), capacity=None):
    class_ = Class(program_id=program.id, name=name, max_capacity=capacity, is_active=True)
    db.add(class_)
    db.flush()
    db.add(ClassSchedule(class_id=class_.id, day_of_week=day, start_time=start))
    db.commit()
    db.refresh(class_)
    return class_


def make_student(db, family, first_name, birth_date=date(2014, 1, 1), gender="female"):
    student = Student(family_id=family.id, first_name=first_name, last_name="Test", birth_date=birth_date, gender=gender)
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


class TestEnrollStudent:
    def test_enroll_active(self, db, karate_class, student):
        enrollment = EnrollmentService(db).enroll_student(karate_class.id, student.id)

        assert enrollment.status == "active"
        assert enrollment.program_id == karate_class.program_id

    def test_duplicate_enrollment_rejected(self, db, karate_class, student):
        service = EnrollmentService(db)
        service.enroll_student(karate_class.id, student.id)

        with pytest.raises(EnrollmentValidationError) as exc_info:
            service.enroll_student(karate_class.id, student.id)
        assert "Student is already enrolled in this class" in exc_info.value.errors

    def test_full_class_goes_to_waitlist(self, db, program, family):
        class_ = make_class(db, program, "Tiny Class", capacity=1)
        first = make_student(db, family, "Aiko")
        second = make_student(db, family, "Mei")
        service = EnrollmentService(db)

        service.enroll_student(class_.id, first.id)
        waitlisted = service.enroll_student(class_.id, second.id)

        assert waitlisted.status == "waitlist"

    def test_drop_promotes_oldest_waitlist_entry(self, db, program, family):
        class_ = make_class(db, program, "Tiny Class", capacity=1)
        first = make_student(db, family, "Aiko")
        second = make_student(db, family, "Mei")
        third = make_student(db, family, "Sora")
        service = EnrollmentService(db)

        seated = service.enroll_student(class_.id, first.id)
        waiting = service.enroll_student(class_.id, second.id)
        also_waiting = service.enroll_student(class_.id, third.id)

        service.drop_student(seated.id, "Moved away")
        db.refresh(waiting)
        db.refresh(also_waiting)

        assert waiting.status == "active"
        assert waiting.notes == "Promoted from waitlist"
        assert also_waiting.status == "waitlist"
        assert service.promoted_enrollments == [waiting]

    def test_re_enroll_reuses_dropped_row(self, db, karate_class, student):
        service = EnrollmentService(db)
        enrollment = service.enroll_student(karate_class.id, student.id)
        service.drop_student(enrollment.id)

        again = service.enroll_student(karate_class.id, student.id, notes="back from break")

        assert again.id == enrollment.id
        assert again.status == "active"
        assert again.dropped_at is None
        assert again.notes == "Re-enrolled: back from break"

    def test_inactive_class_rejected(self, db, karate_class, student):
        karate_class.is_active = False
        db.commit()

        with pytest.raises(EnrollmentValidationError) as exc_info:
            EnrollmentService(db).enroll_student(karate_class.id, student.id)
        assert "Class is not active" in exc_info.value.errors

    def test_bulk_enroll_reports_failures(self, db, karate_class, family, student):
        service = EnrollmentService(db)
        service.enroll_student(karate_class.id, student.id)
        newcomer = make_student(db, family, "Kai")

        result = service.bulk_enroll(karate_class.id, [student.id, newcomer.id])

        assert [e.student_id for e in result["successful"]] == [newcomer.id]
        assert result["failed"][0]["student_id"] == student.id
        assert "already enrolled" in result["failed"][0]["error"]

    def test_process_all_waitlists(self, db, program, family):
        class_ = make_class(db, program, "Grows Later", capacity=1)
        first = make_student(db, family, "Aiko")
        second = make_student(db, family, "Mei")
        service = EnrollmentService(db)
        service.enroll_student(class_.id, first.id)
        waiting = service.enroll_student(class_.id, second.id)

        class_.max_capacity = 2
        db.commit()

        assert service.process_all_waitlists() == 1
        db.refresh(waiting)
        assert waiting.status == "active"

    def test_stats(self, db, program, family):
        class_ = make_class(db, program, "Stats Class", capacity=1)
        students = [make_student(db, family, name) for name in ("A", "B", "C")]
        service = EnrollmentService(db)
        first = service.enroll_student(class_.id, students[0].id)
        service.enroll_student(class_.id, students[1].id)
        service.update_enrollment(first.id, status="completed")

        stats = service.get_enrollment_stats(class_.id)

        assert stats["total_enrollments"] == 2
        assert stats["active_enrollments"] == 1
        assert stats["waitlist_count"] == 0
        assert stats["completion_rate"] == 100.0


class TestEligibility:
    def test_age_range(self, db, family):
        program = Program(name="Teens", min_age=13, max_age=17, gender_restriction="none")
        db.add(program)
        db.commit()
        child = make_student(db, family, "Little", birth_date=date(2019, 6, 1))

        eligible, reasons = check_program_eligibility(db, program, child, today=date(2025, 9, 1))

        assert not eligible
        assert reasons == ["Student must be at least 13 years old"]

    def test_missing_birth_date(self, db, family):
        program = Program(name="Adults", min_age=18, gender_restriction="none")
        db.add(program)
        db.commit()
        unknown = make_student(db, family, "Unknown", birth_date=None)

        eligible, reasons = check_program_eligibility(db, program, unknown)

        assert not eligible
        assert "Student birth date is required for this program" in reasons

    def test_belt_and_gender(self, db, family):
        program = Program(name="Advanced Girls", min_belt_rank="green", gender_restriction="female")
        db.add(program)
        db.commit()
        boy = make_student(db, family, "Taro", gender="male")

        eligible, reasons = check_program_eligibility(db, program, boy)
        assert not eligible
        assert "Requires at least a green belt" in reasons
        assert "Program is restricted to female students" in reasons

        girl = make_student(db, family, "Emi", gender="female")
        db.add(BeltAward(student_id=girl.id, type="blue", awarded_date=date(2025, 1, 10)))
        db.commit()
        db.refresh(girl)

        assert check_program_eligibility(db, program, girl) == (True, [])

    def test_prerequisites(self, db, family, program, karate_class, student):
        advanced = Program(name="Competition Team", prerequisite_programs=[program.id], gender_restriction="none")
        db.add(advanced)
        db.commit()

        eligible, reasons = check_program_eligibility(db, advanced, student)
        assert not eligible
        assert reasons == [f"Prerequisite program {program.id} not completed"]

        db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=program.id, status="completed"))
        db.commit()

        assert check_program_eligibility(db, advanced, student) == (True, [])

    def test_ineligible_student_cannot_enroll(self, db, family):
        program = Program(name="Adults", min_age=18, gender_restriction="none")
        db.add(program)
        db.commit()
        class_ = make_class(db, program, "Adult Evening")
        child = make_student(db, family, "Kid", birth_date=date(2015, 2, 2))

        with pytest.raises(EnrollmentValidationError) as exc_info:
            EnrollmentService(db).enroll_student(class_.id, child.id)
        assert "Student must be at least 18 years old" in exc_info.value.errors


class TestScheduleConflicts:
    def test_overlapping_slots(self):
        assert slots_overlap(time(17, 0), time(17, 30))
        assert not slots_overlap(time(17, 0), time(18, 0))
        assert not slots_overlap(time(9, 0), time(17, 0))

    def test_conflict_blocks_enrollment(self, db, program, student):
        first = make_class(db, program, "Monday Early", start=time(17, 0))
        second = make_class(db, program, "Monday Overlap", start=time(17, 30))
        service = EnrollmentService(db)
        service.enroll_student(first.id, student.id)

        has_conflict, conflicts = check_schedule_conflicts(db, student.id, second.id)
        assert has_conflict
        assert conflicts[0]["conflicting_class_name"] == "Monday Early"
        assert conflicts[0]["conflict_day"] == "monday"

        with pytest.raises(EnrollmentValidationError) as exc_info:
            service.enroll_student(second.id, student.id)
        assert "Schedule conflict with Monday Early" in exc_info.value.errors

    def test_other_days_and_dropped_classes_do_not_conflict(self, db, program, student):
        monday = make_class(db, program, "Monday", day="monday")
        tuesday = make_class(db, program, "Tuesday", day="tuesday")
        monday_again = make_class(db, program, "Monday Again", day="monday")
        service = EnrollmentService(db)
        enrollment = service.enroll_student(monday.id, student.id)

        assert check_schedule_conflicts(db, student.id, tuesday.id) == (False, [])

        service.drop_student(enrollment.id)
        assert check_schedule_conflicts(db, student.id, monday_again.id) == (False, [])

    def test_trial_enrollments_do_not_conflict(self, db, program, student):
        trial_class = make_class(db, program, "Monday Trial", start=time(17, 0))
        same_slot = make_class(db, program, "Monday Regular", start=time(17, 0))
        EnrollmentService(db).enroll_student(trial_class.id, student.id, status="trial")

        assert check_schedule_conflicts(db, student.id, same_slot.id) == (False, [])
