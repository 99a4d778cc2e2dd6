"""Attendance repository - Database operations for attendance records"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Attendance, ClassSession


class AttendanceRepository:
    """Repository for attendance database operations"""

    @staticmethod
    def get_record(db: Session, attendance_id: int) -> Optional[Attendance]:
        return db.query(Attendance).filter(Attendance.id == attendance_id).first()

    @staticmethod
    def get_for_student_session(db: Session, student_id: int, session_id: int) -> Optional[Attendance]:
        return (
            db.query(Attendance)
            .filter(Attendance.student_id == student_id, Attendance.class_session_id == session_id)
            .first()
        )

    @staticmethod
    def get_by_session(db: Session, session_id: int) -> list[Attendance]:
        return (
            db.query(Attendance)
            .options(joinedload(Attendance.student))
            .filter(Attendance.class_session_id == session_id)
            .order_by(Attendance.id)
            .all()
        )

    @staticmethod
    def get_by_student(
        db: Session,
        student_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Attendance]:
        query = (
            db.query(Attendance)
            .join(ClassSession, Attendance.class_session_id == ClassSession.id)
            .options(joinedload(Attendance.session))
            .filter(Attendance.student_id == student_id)
        )
        if start_date:
            query = query.filter(ClassSession.session_date >= start_date)
        if end_date:
            query = query.filter(ClassSession.session_date <= end_date)
        return query.order_by(ClassSession.session_date.desc()).all()

    @staticmethod
    def get_by_date_range(
        db: Session, start_date: date, end_date: date, class_id: Optional[int] = None
    ) -> list[Attendance]:
        query = (
            db.query(Attendance)
            .join(ClassSession, Attendance.class_session_id == ClassSession.id)
            .options(joinedload(Attendance.session), joinedload(Attendance.student))
            .filter(ClassSession.session_date >= start_date, ClassSession.session_date <= end_date)
        )
        if class_id is not None:
            query = query.filter(ClassSession.class_id == class_id)
        return query.order_by(ClassSession.session_date, Attendance.id).all()

    @staticmethod
    def first_present_between(
        db: Session, student_id: int, start_date: date, end_date: date
    ) -> Optional[date]:
        """Earliest session date in [start_date, end_date] the student attended as present"""
        row = (
            db.query(ClassSession.session_date)
            .join(Attendance, Attendance.class_session_id == ClassSession.id)
            .filter(
                Attendance.student_id == student_id,
                Attendance.status == "present",
                ClassSession.session_date >= start_date,
                ClassSession.session_date <= end_date,
            )
            .order_by(ClassSession.session_date.asc())
            .first()
        )
        return row[0] if row else None
