"""Family service - Business logic for families, guardians, students and belts"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import BeltAward, Family, Guardian, Student
from ..attendance.repository import AttendanceRepository
from ..attendance.stats import summarize_attendance
from ..discounts.automation import AutoDiscountService
from .belts import get_current_belt
from .repository import FamilyRepository
from .schemas import (
    BeltAwardCreate,
    FamilyCreate,
    FamilyUpdate,
    GuardianCreate,
    GuardianUpdate,
    StudentCreate,
    StudentUpdate,
)

logger = logging.getLogger(__name__)


class FamilyService:
    """Service layer for family business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = FamilyRepository()

    # ------------------------------------------------------------------
    # Families
    # ------------------------------------------------------------------

    def list_families(self, search: Optional[str] = None) -> list[Family]:
        return self.repo.list_families(self.db, search)

    def get_family(self, family_id: int) -> Family:
        family = self.repo.get_family(self.db, family_id)
        if not family:
            raise HTTPException(status_code=404, detail="Family not found")
        return family

    def get_family_details(self, family_id: int) -> Family:
        family = self.repo.get_family_with_members(self.db, family_id)
        if not family:
            raise HTTPException(status_code=404, detail="Family not found")
        return family

    def create_family(self, data: FamilyCreate) -> Family:
        logger.info(f"📥 Creating family: {data.name}")
        return self.repo.create(self.db, Family, **data.model_dump())

    def update_family(self, family_id: int, data: FamilyUpdate) -> Family:
        family = self.get_family(family_id)
        return self.repo.update(self.db, family, **data.model_dump(exclude_unset=True))

    # ------------------------------------------------------------------
    # Guardians
    # ------------------------------------------------------------------

    def add_guardian(self, family_id: int, data: GuardianCreate) -> Guardian:
        self.get_family(family_id)
        return self.repo.create(self.db, Guardian, family_id=family_id, **data.model_dump())

    def get_guardian(self, guardian_id: int) -> Guardian:
        guardian = self.repo.get_guardian(self.db, guardian_id)
        if not guardian:
            raise HTTPException(status_code=404, detail="Guardian not found")
        return guardian

    def update_guardian(self, guardian_id: int, data: GuardianUpdate) -> Guardian:
        guardian = self.get_guardian(guardian_id)
        return self.repo.update(self.db, guardian, **data.model_dump(exclude_unset=True))

    def delete_guardian(self, guardian_id: int) -> dict:
        guardian = self.get_guardian(guardian_id)
        self.repo.delete(self.db, guardian)
        return {"message": "Guardian deleted"}

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    def list_students(self, family_id: Optional[int] = None) -> list[Student]:
        return self.repo.list_students(self.db, family_id)

    def get_student(self, student_id: int) -> Student:
        student = self.repo.get_student(self.db, student_id)
        if not student:
            raise HTTPException(status_code=404, detail="Student not found")
        return student

    def create_student(self, data: StudentCreate) -> Student:
        self.get_family(data.family_id)
        logger.info(f"📥 Creating student {data.first_name} {data.last_name} in family {data.family_id}")
        return self.repo.create(self.db, Student, **data.model_dump())

    def update_student(self, student_id: int, data: StudentUpdate) -> Student:
        student = self.get_student(student_id)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("family_id") is not None:
            self.get_family(updates["family_id"])
        return self.repo.update(self.db, student, **updates)

    def delete_student(self, student_id: int) -> dict:
        """Students with payment history are kept for the financial record"""
        student = self.get_student(student_id)
        if self.repo.student_has_payments(self.db, student_id):
            logger.warning(f"⚠️ Refusing to delete student {student_id} with payment history")
            raise HTTPException(
                status_code=400, detail="Cannot delete a student with payment history"
            )
        self.repo.delete(self.db, student)
        logger.info(f"✅ Deleted student {student_id}")
        return {"message": "Student deleted"}

    def get_student_details(self, student_id: int) -> dict:
        """Student with current belt, enrollments and attendance summary"""
        student = self.get_student(student_id)
        records = AttendanceRepository.get_by_student(self.db, student_id)

        return {
            **{column.name: getattr(student, column.name) for column in Student.__table__.columns},
            "current_belt": get_current_belt(student),
            "belt_awards": list(student.belt_awards),
            "enrollments": [
                {
                    "id": e.id,
                    "class_id": e.class_id,
                    "class_name": e.class_.name if e.class_ else "",
                    "program_id": e.program_id,
                    "status": e.status,
                    "paid_until": e.paid_until,
                }
                for e in student.enrollments
            ],
            "attendance": summarize_attendance(r.status for r in records),
        }

    # ------------------------------------------------------------------
    # Belts
    # ------------------------------------------------------------------

    def award_belt(self, student_id: int, data: BeltAwardCreate) -> BeltAward:
        self.get_student(student_id)
        award = self.repo.create(self.db, BeltAward, student_id=student_id, **data.model_dump())
        logger.info(f"🥋 Awarded {data.type} belt to student {student_id}")
        AutoDiscountService(self.db).record_belt_promotion(student_id, data.type)
        return award

    def list_belt_awards(self, student_id: int) -> list[BeltAward]:
        return list(self.get_student(student_id).belt_awards)
