"""Family repository - Database operations for families, guardians and students"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Family, Guardian, Student
from ...models_payment import PaymentStudent


class FamilyRepository:
    """Repository for family database operations"""

    @staticmethod
    def list_families(db: Session, search: Optional[str] = None) -> list[Family]:
        query = db.query(Family)
        if search:
            query = query.filter(Family.name.ilike(f"%{search}%"))
        return query.order_by(Family.name).all()

    @staticmethod
    def get_family(db: Session, family_id: int) -> Optional[Family]:
        return db.query(Family).filter(Family.id == family_id).first()

    @staticmethod
    def get_family_with_members(db: Session, family_id: int) -> Optional[Family]:
        """Family with guardians and students eagerly loaded"""
        return (
            db.query(Family)
            .options(joinedload(Family.guardians), joinedload(Family.students))
            .filter(Family.id == family_id)
            .first()
        )

    @staticmethod
    def create(db: Session, model, **data):
        row = model(**data)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def update(db: Session, row, **updates):
        """Update a row with the provided (non-None) fields"""
        for key, value in updates.items():
            if value is not None and hasattr(row, key):
                setattr(row, key, value)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def delete(db: Session, row) -> None:
        db.delete(row)
        db.commit()

    @staticmethod
    def get_guardian(db: Session, guardian_id: int) -> Optional[Guardian]:
        return db.query(Guardian).filter(Guardian.id == guardian_id).first()

    @staticmethod
    def get_student(db: Session, student_id: int) -> Optional[Student]:
        return db.query(Student).filter(Student.id == student_id).first()

    @staticmethod
    def list_students(db: Session, family_id: Optional[int] = None) -> list[Student]:
        query = db.query(Student)
        if family_id is not None:
            query = query.filter(Student.family_id == family_id)
        return query.order_by(Student.last_name, Student.first_name).all()

    @staticmethod
    def student_has_payments(db: Session, student_id: int) -> bool:
        return (
            db.query(PaymentStudent.id).filter(PaymentStudent.student_id == student_id).first()
            is not None
        )
