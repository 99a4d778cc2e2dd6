"""Class repository - Database operations for classes, schedules and sessions"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Attendance, Class, ClassSchedule, ClassSession, Enrollment


class ClassRepository:
    """Repository for class database operations"""

    @staticmethod
    def list_classes(
        db: Session, program_id: Optional[int] = None, is_active: Optional[bool] = None
    ) -> list[Class]:
        query = db.query(Class).options(joinedload(Class.schedules))
        if program_id is not None:
            query = query.filter(Class.program_id == program_id)
        if is_active is not None:
            query = query.filter(Class.is_active == is_active)
        return query.order_by(Class.name).all()

    @staticmethod
    def get_class(db: Session, class_id: int) -> Optional[Class]:
        return (
            db.query(Class)
            .options(joinedload(Class.schedules), joinedload(Class.program))
            .filter(Class.id == class_id)
            .first()
        )

    @staticmethod
    def has_enrollments(db: Session, class_id: int) -> bool:
        return db.query(Enrollment.id).filter(Enrollment.class_id == class_id).first() is not None

    @staticmethod
    def replace_schedules(db: Session, class_id: int, entries: list[dict]) -> None:
        db.query(ClassSchedule).filter(ClassSchedule.class_id == class_id).delete()
        for entry in entries:
            db.add(ClassSchedule(class_id=class_id, **entry))

    @staticmethod
    def get_session(db: Session, session_id: int) -> Optional[ClassSession]:
        return db.query(ClassSession).filter(ClassSession.id == session_id).first()

    @staticmethod
    def existing_session_dates(db: Session, class_id: int, start_date: date, end_date: date) -> set[date]:
        rows = (
            db.query(ClassSession.session_date)
            .filter(
                ClassSession.class_id == class_id,
                ClassSession.session_date >= start_date,
                ClassSession.session_date <= end_date,
            )
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def list_sessions(
        db: Session,
        class_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[ClassSession]:
        query = db.query(ClassSession)
        if class_id is not None:
            query = query.filter(ClassSession.class_id == class_id)
        if start_date:
            query = query.filter(ClassSession.session_date >= start_date)
        if end_date:
            query = query.filter(ClassSession.session_date <= end_date)
        if status:
            query = query.filter(ClassSession.status == status)
        return query.order_by(ClassSession.session_date, ClassSession.start_time).all()

    @staticmethod
    def session_has_attendance(db: Session, session_id: int) -> bool:
        return (
            db.query(Attendance.id).filter(Attendance.class_session_id == session_id).first()
            is not None
        )
