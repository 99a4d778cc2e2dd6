"""Enrollment service - enrollment, waitlist promotion and drops"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Class, Enrollment
from ...shared.dates import utcnow
from ..discounts.automation import AutoDiscountService
from .repository import EnrollmentRepository
from .validation import (
    EnrollmentValidation,
    EnrollmentValidationError,
    count_seated,
    validate_enrollment,
)

logger = logging.getLogger(__name__)

ENROLLMENT_STATUSES = ("active", "trial", "waitlist", "dropped", "completed")
REENROLLABLE_STATUSES = ("dropped", "completed")
SEATED_STATUSES = ("active", "trial")


class EnrollmentService:
    """
    Service layer for enrollments.

    Students promoted off a waitlist during a call are collected in
    promoted_enrollments so the caller can notify the families afterwards.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = EnrollmentRepository()
        self.promoted_enrollments: list[Enrollment] = []
        self.discounts = AutoDiscountService(db)

    def get_enrollment(self, enrollment_id: int) -> Enrollment:
        enrollment = self.repo.get(self.db, enrollment_id)
        if not enrollment:
            raise HTTPException(status_code=404, detail="Enrollment not found")
        return enrollment

    def list_enrollments(
        self,
        class_id: Optional[int] = None,
        student_id: Optional[int] = None,
        family_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[Enrollment]:
        return self.repo.list_enrollments(self.db, class_id, student_id, family_id, status)

    def validate_enrollment(self, class_id: int, student_id: int) -> EnrollmentValidation:
        return validate_enrollment(self.db, class_id, student_id)

    def enroll_student(
        self, class_id: int, student_id: int, status: str = "active", notes: Optional[str] = None
    ) -> Enrollment:
        """
        Enroll a student. A full class turns an active request into a waitlist
        entry. A dropped or completed enrollment in the same class is reused.
        """
        validation = self.validate_enrollment(class_id, student_id)
        if not validation.is_valid:
            logger.warning(f"⚠️ Enrollment rejected for student {student_id} in class {class_id}: {validation.errors}")
            raise EnrollmentValidationError(validation.errors)

        enrollment_status = status or "active"
        if enrollment_status == "active" and not validation.capacity_available:
            enrollment_status = "waitlist"

        class_ = self.db.query(Class).filter(Class.id == class_id).first()
        existing = self.repo.get_for_class_student(self.db, class_id, student_id)

        if existing and existing.status in REENROLLABLE_STATUSES:
            existing.status = enrollment_status
            existing.notes = f"Re-enrolled: {notes}" if notes else "Re-enrolled"
            existing.enrolled_at = utcnow()
            existing.completed_at = None
            existing.dropped_at = None
            existing.program_id = class_.program_id
            enrollment = existing
            logger.info(f"🔁 Re-enrolled student {student_id} in class {class_id} as {enrollment_status}")
        else:
            enrollment = Enrollment(
                class_id=class_id,
                student_id=student_id,
                program_id=class_.program_id,
                status=enrollment_status,
                notes=notes,
            )
            self.db.add(enrollment)
            logger.info(f"✅ Enrolled student {student_id} in class {class_id} as {enrollment_status}")

        self.db.commit()
        self.db.refresh(enrollment)

        if enrollment_status in SEATED_STATUSES:
            self.discounts.record_student_enrollment(student_id, program_id=class_.program_id)
        if enrollment_status == "active":
            self.process_waitlist(class_id)

        return enrollment

    def update_enrollment(
        self,
        enrollment_id: int,
        status: Optional[str] = None,
        notes: Optional[str] = None,
        paid_until: Optional[datetime] = None,
    ) -> Enrollment:
        enrollment = self.get_enrollment(enrollment_id)

        if status is not None:
            if status not in ENROLLMENT_STATUSES:
                raise HTTPException(status_code=400, detail=f"Invalid enrollment status: {status}")
            enrollment.status = status
            if status == "completed":
                enrollment.completed_at = utcnow()
            elif status == "dropped":
                enrollment.dropped_at = utcnow()
        if notes is not None:
            enrollment.notes = notes
        if paid_until is not None:
            enrollment.paid_until = paid_until

        self.db.commit()
        self.db.refresh(enrollment)

        if status in REENROLLABLE_STATUSES:
            self.process_waitlist(enrollment.class_id)

        return enrollment

    def drop_student(self, enrollment_id: int, reason: Optional[str] = None) -> Enrollment:
        enrollment = self.get_enrollment(enrollment_id)
        enrollment.status = "dropped"
        enrollment.dropped_at = utcnow()
        enrollment.notes = f"Dropped: {reason}" if reason else "Dropped"
        self.db.commit()
        self.db.refresh(enrollment)

        logger.info(f"📤 Dropped enrollment {enrollment_id} from class {enrollment.class_id}")
        self.process_waitlist(enrollment.class_id)
        return enrollment

    def process_waitlist(self, class_id: int) -> int:
        """Promote waitlisted students, oldest first, into free seats; returns how many moved"""
        class_ = self.db.query(Class).filter(Class.id == class_id).first()
        if not class_:
            raise HTTPException(status_code=404, detail="Class not found")

        max_capacity = class_.max_capacity or 0
        available = max(0, max_capacity - count_seated(self.db, class_id)) if max_capacity > 0 else 0
        if available == 0:
            return 0

        promoted = 0
        for enrollment in self.repo.waitlist(self.db, class_id, available):
            validation = self.validate_enrollment(class_id, enrollment.student_id)
            if not (validation.capacity_available and validation.meets_eligibility):
                logger.info(
                    f"⏭️ Waitlist entry {enrollment.id} not promoted: {validation.errors or validation.warnings}"
                )
                continue

            enrollment.status = "active"
            enrollment.notes = "Promoted from waitlist"
            self.db.commit()
            self.db.refresh(enrollment)
            self.promoted_enrollments.append(enrollment)
            self.discounts.record_student_enrollment(enrollment.student_id, program_id=enrollment.program_id)
            promoted += 1

        if promoted:
            logger.info(f"🎉 Promoted {promoted} students from the waitlist of class {class_id}")
        return promoted

    def bulk_enroll(
        self, class_id: int, student_ids: list[int], status: str = "active", notes: Optional[str] = None
    ) -> dict:
        if not self.db.query(Class.id).filter(Class.id == class_id).first():
            raise HTTPException(status_code=404, detail="Class not found")

        successful = []
        failed = []
        for student_id in student_ids:
            try:
                successful.append(self.enroll_student(class_id, student_id, status, notes))
            except EnrollmentValidationError as e:
                self.db.rollback()
                failed.append({"student_id": student_id, "error": str(e)})

        logger.info(f"📋 Bulk enroll into class {class_id}: {len(successful)} ok, {len(failed)} failed")
        return {"successful": successful, "failed": failed}

    def get_enrollment_stats(self, class_id: Optional[int] = None) -> dict:
        statuses = self.repo.statuses(self.db, class_id)
        completed = statuses.count("completed")
        finished = completed + statuses.count("dropped")

        return {
            "total_enrollments": len(statuses),
            "active_enrollments": sum(1 for s in statuses if s in ("active", "trial")),
            "waitlist_count": statuses.count("waitlist"),
            "completion_rate": (completed / finished) * 100 if finished else 0.0,
        }

    def process_all_waitlists(self) -> int:
        total = 0
        for class_id in self.repo.classes_with_waitlist(self.db):
            total += self.process_waitlist(class_id)
        return total
