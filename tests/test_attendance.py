from datetime import date, time

import pytest
from fastapi import HTTPException

from dojo.domain.attendance.schemas import AttendanceEntry
from dojo.domain.attendance.service import AttendanceService
from dojo.domain.attendance.stats import summarize_attendance
from dojo.models import Attendance, Class, ClassSession


def make_session(db, karate_class, session_date, status="scheduled"):
    session = ClassSession(
        class_id=karate_class.id,
        session_date=session_date,
        start_time=time(17, 0),
        end_time=time(18, 0),
        status=status,
    )
    db.add(session)
    db.commit()
    return session


@pytest.fixture
def monday(db, karate_class):
    return make_session(db, karate_class, date(2025, 10, 6))


class TestRecordSessionAttendance:
    def test_records_and_completes_session(self, db, monday, student, sibling):
        saved = AttendanceService(db).record_session_attendance(
            monday.id,
            [AttendanceEntry(student_id=student.id, status="present"), AttendanceEntry(student_id=sibling.id, status="late")],
        )

        assert {r.student_id: r.status for r in saved} == {student.id: "present", sibling.id: "late"}
        db.refresh(monday)
        assert monday.status == "completed"

    def test_second_call_updates_existing_row(self, db, monday, student):
        service = AttendanceService(db)
        service.record_session_attendance(monday.id, [AttendanceEntry(student_id=student.id, status="absent")])

        service.record_session_attendance(
            monday.id, [AttendanceEntry(student_id=student.id, status="excused", notes="Doctor's note")]
        )

        rows = db.query(Attendance).all()
        assert len(rows) == 1
        assert rows[0].status == "excused"
        assert rows[0].notes == "Doctor's note"

    def test_repeated_student_keeps_last_entry(self, db, monday, student):
        saved = AttendanceService(db).record_session_attendance(
            monday.id,
            [AttendanceEntry(student_id=student.id, status="absent"), AttendanceEntry(student_id=student.id, status="present")],
        )

        assert len(saved) == 1
        assert db.query(Attendance).one().status == "present"

    def test_cancelled_session_keeps_its_status(self, db, karate_class, student):
        cancelled = make_session(db, karate_class, date(2025, 10, 8), status="cancelled")

        AttendanceService(db).record_session_attendance(cancelled.id, [AttendanceEntry(student_id=student.id, status="present")])

        db.refresh(cancelled)
        assert cancelled.status == "cancelled"

    def test_unknown_student_or_session(self, db, monday):
        service = AttendanceService(db)

        with pytest.raises(HTTPException) as exc_info:
            service.record_session_attendance(monday.id, [AttendanceEntry(student_id=404, status="present")])
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Students not found: 404"

        with pytest.raises(HTTPException) as exc_info:
            service.record_session_attendance(999, [])
        assert exc_info.value.status_code == 404

    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError):
            AttendanceEntry(student_id=1, status="asleep")


class TestAttendanceQueries:
    def test_student_history_by_date(self, db, karate_class, monday, student):
        wednesday = make_session(db, karate_class, date(2025, 10, 8))
        service = AttendanceService(db)
        service.record_session_attendance(monday.id, [AttendanceEntry(student_id=student.id, status="present")])
        service.record_session_attendance(wednesday.id, [AttendanceEntry(student_id=student.id, status="absent")])

        history = service.get_attendance_by_student(student.id)
        only_wednesday = service.get_attendance_by_student(student.id, start_date=date(2025, 10, 7))

        assert [r.session.session_date for r in history] == [date(2025, 10, 8), date(2025, 10, 6)]
        assert [r.status for r in only_wednesday] == ["absent"]

    def test_date_range_filters_by_class(self, db, karate_class, program, monday, student):
        other_class = Class(program_id=program.id, name="Saturday Open Mat", is_active=True)
        db.add(other_class)
        db.commit()
        saturday = make_session(db, other_class, date(2025, 10, 11))
        service = AttendanceService(db)
        service.record_session_attendance(monday.id, [AttendanceEntry(student_id=student.id, status="present")])
        service.record_session_attendance(saturday.id, [AttendanceEntry(student_id=student.id, status="present")])

        everything = service.get_attendance_by_date_range(date(2025, 10, 1), date(2025, 10, 31))
        mondays_only = service.get_attendance_by_date_range(date(2025, 10, 1), date(2025, 10, 31), class_id=karate_class.id)

        assert len(everything) == 2
        assert [r.class_session_id for r in mondays_only] == [monday.id]

    def test_reversed_range_is_400(self, db):
        with pytest.raises(HTTPException) as exc_info:
            AttendanceService(db).get_attendance_by_date_range(date(2025, 10, 31), date(2025, 10, 1))
        assert exc_info.value.status_code == 400

    def test_delete_record(self, db, monday, student):
        service = AttendanceService(db)
        record = service.record_session_attendance(monday.id, [AttendanceEntry(student_id=student.id, status="present")])[0]

        service.delete_attendance_record(record.id)

        assert db.query(Attendance).count() == 0
        with pytest.raises(HTTPException) as exc_info:
            service.delete_attendance_record(record.id)
        assert exc_info.value.status_code == 404


class TestAttendanceStats:
    def test_late_counts_as_attended(self):
        stats = summarize_attendance(["present", "late", "absent", "excused"])

        assert stats["total_sessions"] == 4
        assert stats["present_count"] == 1
        assert stats["late_count"] == 1
        assert stats["attendance_rate"] == 0.5

    def test_no_rows(self):
        assert summarize_attendance([])["attendance_rate"] == 0.0

    def test_session_summary(self, db, monday, student, sibling):
        service = AttendanceService(db)
        service.record_session_attendance(
            monday.id,
            [AttendanceEntry(student_id=student.id, status="present"), AttendanceEntry(student_id=sibling.id, status="absent")],
        )

        summary = service.get_session_attendance_summary(monday.id)

        assert summary["present_count"] == 1
        assert summary["absent_count"] == 1
        assert summary["attendance_rate"] == 0.5


def test_family_reads_own_student_stats(client, db, monday, student, parent, outsider, login_as):
    client.post(f"/attendance/sessions/{monday.id}", json={"records": [{"student_id": student.id, "status": "present"}]})

    login_as(parent)
    response = client.get(f"/attendance/students/{student.id}/stats")
    assert response.status_code == 200
    assert response.json()["attendance_rate"] == 1.0

    login_as(outsider)
    assert client.get(f"/attendance/students/{student.id}/stats").status_code == 403
