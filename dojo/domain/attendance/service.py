"""Attendance service - Business logic for recording and reporting attendance"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Attendance, ClassSession, Student
from ..discounts.automation import AutoDiscountService
from .repository import AttendanceRepository
from .schemas import AttendanceEntry
from .stats import ATTENDED_STATUSES, summarize_attendance

logger = logging.getLogger(__name__)


def attendance_to_dict(record: Attendance) -> dict:
    return {
        "id": record.id,
        "student_id": record.student_id,
        "class_session_id": record.class_session_id,
        "status": record.status,
        "notes": record.notes,
        "session_date": record.session.session_date if record.session else None,
        "student_name": record.student.full_name if record.student else None,
    }


class AttendanceService:
    """Service layer for attendance"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AttendanceRepository()

    def _get_session(self, session_id: int) -> ClassSession:
        session = self.db.query(ClassSession).filter(ClassSession.id == session_id).first()
        if not session:
            raise HTTPException(status_code=404, detail="Class session not found")
        return session

    def record_session_attendance(self, session_id: int, records: list[AttendanceEntry]) -> list[Attendance]:
        """
        Upsert one attendance row per student for the session. A scheduled
        session is marked completed once attendance is taken.
        """
        session = self._get_session(session_id)

        # One row per student; a repeated student keeps the last entry sent
        entries = {entry.student_id: entry for entry in records}
        student_ids = set(entries)
        known = {
            row[0] for row in self.db.query(Student.id).filter(Student.id.in_(student_ids)).all()
        }
        missing = student_ids - known
        if missing:
            raise HTTPException(
                status_code=404, detail=f"Students not found: {', '.join(str(s) for s in sorted(missing))}"
            )

        saved = []
        newly_attended = []
        for entry in entries.values():
            record = self.repo.get_for_student_session(self.db, entry.student_id, session_id)
            was_attended = record is not None and record.status in ATTENDED_STATUSES
            if entry.status in ATTENDED_STATUSES and not was_attended:
                newly_attended.append(entry.student_id)
            if record:
                record.status = entry.status
                record.notes = entry.notes
            else:
                record = Attendance(
                    student_id=entry.student_id,
                    class_session_id=session_id,
                    status=entry.status,
                    notes=entry.notes,
                )
                self.db.add(record)
            saved.append(record)

        if session.status == "scheduled":
            session.status = "completed"

        self.db.commit()
        for record in saved:
            self.db.refresh(record)

        logger.info(f"✅ Recorded attendance for {len(saved)} students in session {session_id}")

        discounts = AutoDiscountService(self.db)
        for student_id in newly_attended:
            discounts.record_attendance_milestone(student_id)
        return saved

    def get_attendance_by_session(self, session_id: int) -> list[Attendance]:
        self._get_session(session_id)
        return self.repo.get_by_session(self.db, session_id)

    def get_attendance_by_student(
        self, student_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> list[Attendance]:
        return self.repo.get_by_student(self.db, student_id, start_date, end_date)

    def get_attendance_by_date_range(
        self, start_date: date, end_date: date, class_id: Optional[int] = None
    ) -> list[Attendance]:
        if end_date < start_date:
            raise HTTPException(status_code=400, detail="End date must be on or after start date")
        return self.repo.get_by_date_range(self.db, start_date, end_date, class_id)

    def get_student_attendance_stats(
        self, student_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> dict:
        records = self.repo.get_by_student(self.db, student_id, start_date, end_date)
        return summarize_attendance(record.status for record in records)

    def get_session_attendance_summary(self, session_id: int) -> dict:
        records = self.get_attendance_by_session(session_id)
        return summarize_attendance(record.status for record in records)

    def delete_attendance_record(self, attendance_id: int) -> dict:
        record = self.repo.get_record(self.db, attendance_id)
        if not record:
            raise HTTPException(status_code=404, detail="Attendance record not found")
        self.db.delete(record)
        self.db.commit()
        return {"message": "Attendance record deleted"}
