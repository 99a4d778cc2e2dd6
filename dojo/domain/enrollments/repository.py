"""Enrollment repository - Database operations for enrollments"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Class, Enrollment, Student


class EnrollmentRepository:
    """Repository for enrollment database operations"""

    @staticmethod
    def get(db: Session, enrollment_id: int) -> Optional[Enrollment]:
        return (
            db.query(Enrollment)
            .options(joinedload(Enrollment.class_), joinedload(Enrollment.student))
            .filter(Enrollment.id == enrollment_id)
            .first()
        )

    @staticmethod
    def get_for_class_student(db: Session, class_id: int, student_id: int) -> Optional[Enrollment]:
        return (
            db.query(Enrollment)
            .filter(Enrollment.class_id == class_id, Enrollment.student_id == student_id)
            .first()
        )

    @staticmethod
    def list_enrollments(
        db: Session,
        class_id: Optional[int] = None,
        student_id: Optional[int] = None,
        family_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[Enrollment]:
        query = db.query(Enrollment).options(
            joinedload(Enrollment.class_), joinedload(Enrollment.student)
        )
        if class_id is not None:
            query = query.filter(Enrollment.class_id == class_id)
        if student_id is not None:
            query = query.filter(Enrollment.student_id == student_id)
        if family_id is not None:
            query = query.join(Student, Enrollment.student_id == Student.id).filter(
                Student.family_id == family_id
            )
        if status:
            query = query.filter(Enrollment.status == status)
        return query.order_by(Enrollment.enrolled_at.desc()).all()

    @staticmethod
    def waitlist(db: Session, class_id: int, limit: int) -> list[Enrollment]:
        """Oldest waitlist entries first"""
        return (
            db.query(Enrollment)
            .filter(Enrollment.class_id == class_id, Enrollment.status == "waitlist")
            .order_by(Enrollment.enrolled_at.asc(), Enrollment.id.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def statuses(db: Session, class_id: Optional[int] = None) -> list[str]:
        query = db.query(Enrollment.status)
        if class_id is not None:
            query = query.filter(Enrollment.class_id == class_id)
        return [row[0] for row in query.all()]

    @staticmethod
    def classes_with_waitlist(db: Session) -> list[int]:
        rows = (
            db.query(Enrollment.class_id)
            .join(Class, Enrollment.class_id == Class.id)
            .filter(Enrollment.status == "waitlist", Class.is_active.is_(True))
            .distinct()
            .all()
        )
        return [row[0] for row in rows]
