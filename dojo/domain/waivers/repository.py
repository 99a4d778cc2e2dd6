"""Waiver repository"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Enrollment, Family, Profile, ProgramWaiver, Student, Waiver, WaiverSignature


class WaiverRepository:
    """Repository for waiver database operations"""

    @staticmethod
    def get(db: Session, waiver_id: int) -> Optional[Waiver]:
        return db.query(Waiver).filter(Waiver.id == waiver_id).first()

    @staticmethod
    def list_waivers(db: Session) -> list[Waiver]:
        return db.query(Waiver).order_by(Waiver.title).all()

    @staticmethod
    def registration_waivers(db: Session) -> list[Waiver]:
        return db.query(Waiver).filter(Waiver.required_for_registration.is_(True)).all()

    @staticmethod
    def get_program_waiver(db: Session, program_id: int, waiver_id: int) -> Optional[ProgramWaiver]:
        return (
            db.query(ProgramWaiver)
            .filter(ProgramWaiver.program_id == program_id, ProgramWaiver.waiver_id == waiver_id)
            .first()
        )

    @staticmethod
    def program_waivers(db: Session, program_id: int) -> list[ProgramWaiver]:
        return db.query(ProgramWaiver).filter(ProgramWaiver.program_id == program_id).all()

    @staticmethod
    def required_program_waivers_for_family(db: Session, family_id: int) -> list[Waiver]:
        """Required waivers of the programs the family is actively enrolled in"""
        program_ids = (
            db.query(Enrollment.program_id)
            .join(Student, Student.id == Enrollment.student_id)
            .filter(Student.family_id == family_id, or_(Enrollment.status == "active", Enrollment.status == "trial"))
            .distinct()
        )
        return (
            db.query(Waiver)
            .join(ProgramWaiver, ProgramWaiver.waiver_id == Waiver.id)
            .filter(ProgramWaiver.program_id.in_(program_ids), ProgramWaiver.is_required.is_(True))
            .distinct()
            .all()
        )

    @staticmethod
    def get_signature(db: Session, waiver_id: int, profile_id: int) -> Optional[WaiverSignature]:
        return (
            db.query(WaiverSignature)
            .filter(WaiverSignature.waiver_id == waiver_id, WaiverSignature.profile_id == profile_id)
            .first()
        )

    @staticmethod
    def signed_waiver_ids_for_family(db: Session, family_id: int) -> set[int]:
        """A waiver counts as signed when any login of the family signed it"""
        profile_ids = db.query(Profile.id).filter(Profile.family_id == family_id)
        rows = (
            db.query(WaiverSignature.waiver_id)
            .filter(or_(WaiverSignature.family_id == family_id, WaiverSignature.profile_id.in_(profile_ids)))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def signatures_for_family(db: Session, family_id: int) -> list[WaiverSignature]:
        profile_ids = db.query(Profile.id).filter(Profile.family_id == family_id)
        return (
            db.query(WaiverSignature)
            .filter(or_(WaiverSignature.family_id == family_id, WaiverSignature.profile_id.in_(profile_ids)))
            .order_by(WaiverSignature.signed_at.desc())
            .all()
        )

    @staticmethod
    def all_families(db: Session) -> list[Family]:
        return db.query(Family).order_by(Family.id).all()

    @staticmethod
    def signature_count(db: Session, waiver_id: int) -> int:
        return db.query(WaiverSignature).filter(WaiverSignature.waiver_id == waiver_id).count()
