"""Waiver service - waiver documents, signatures and per-family requirements"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Family, Profile, Program, ProgramWaiver, Waiver, WaiverSignature
from .repository import WaiverRepository

logger = logging.getLogger(__name__)


def _summary(waiver: Waiver) -> dict:
    return {"id": waiver.id, "title": waiver.title}


class WaiverService:
    """Service layer for waivers"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WaiverRepository()

    def get_waiver(self, waiver_id: int) -> Waiver:
        waiver = self.repo.get(self.db, waiver_id)
        if not waiver:
            raise HTTPException(status_code=404, detail="Waiver not found")
        return waiver

    def list_waivers(self) -> list[Waiver]:
        return self.repo.list_waivers(self.db)

    def create_waiver(self, data: dict) -> Waiver:
        waiver = Waiver(**data)
        self.db.add(waiver)
        self.db.commit()
        self.db.refresh(waiver)
        logger.info(f"✅ Waiver created: {waiver.title}")
        return waiver

    def update_waiver(self, waiver_id: int, updates: dict) -> Waiver:
        waiver = self.get_waiver(waiver_id)
        for key, value in updates.items():
            if value is not None:
                setattr(waiver, key, value)
        self.db.commit()
        self.db.refresh(waiver)
        return waiver

    def delete_waiver(self, waiver_id: int) -> None:
        waiver = self.get_waiver(waiver_id)
        if self.repo.signature_count(self.db, waiver_id):
            raise HTTPException(status_code=400, detail="Cannot delete a waiver that families have signed")
        self.db.query(ProgramWaiver).filter(ProgramWaiver.waiver_id == waiver_id).delete()
        self.db.delete(waiver)
        self.db.commit()
        logger.info(f"🗑️ Waiver {waiver_id} deleted")

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def sign_waiver(self, waiver_id: int, profile: Profile, signature_data: Optional[str] = None) -> WaiverSignature:
        """Signing twice returns the existing signature"""
        self.get_waiver(waiver_id)
        existing = self.repo.get_signature(self.db, waiver_id, profile.id)
        if existing:
            return existing

        signature = WaiverSignature(
            waiver_id=waiver_id,
            profile_id=profile.id,
            family_id=profile.family_id,
            signature_data=signature_data,
        )
        self.db.add(signature)
        try:
            self.db.commit()
        except IntegrityError:
            # concurrent sign by the same profile
            self.db.rollback()
            return self.repo.get_signature(self.db, waiver_id, profile.id)

        self.db.refresh(signature)
        logger.info(f"✍️ Waiver {waiver_id} signed by profile {profile.id}")
        return signature

    def list_family_signatures(self, family_id: int) -> list[WaiverSignature]:
        return self.repo.signatures_for_family(self.db, family_id)

    # ------------------------------------------------------------------
    # Program requirements
    # ------------------------------------------------------------------

    def list_program_waivers(self, program_id: int) -> list[ProgramWaiver]:
        return self.repo.program_waivers(self.db, program_id)

    def add_program_waiver(self, program_id: int, waiver_id: int, is_required: bool = True) -> ProgramWaiver:
        if not self.db.query(Program.id).filter(Program.id == program_id).first():
            raise HTTPException(status_code=404, detail="Program not found")
        self.get_waiver(waiver_id)

        link = self.repo.get_program_waiver(self.db, program_id, waiver_id)
        if link:
            link.is_required = is_required
        else:
            link = ProgramWaiver(program_id=program_id, waiver_id=waiver_id, is_required=is_required)
            self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        return link

    def remove_program_waiver(self, program_id: int, waiver_id: int) -> None:
        link = self.repo.get_program_waiver(self.db, program_id, waiver_id)
        if not link:
            raise HTTPException(status_code=404, detail="Waiver is not linked to this program")
        self.db.delete(link)
        self.db.commit()

    # ------------------------------------------------------------------
    # Family status
    # ------------------------------------------------------------------

    def get_family_waiver_status(self, family_id: int) -> dict:
        """
        Required = registration waivers plus the required waivers of programs
        the family has active or trial enrollments in.
        """
        if not self.db.query(Family.id).filter(Family.id == family_id).first():
            raise HTTPException(status_code=404, detail="Family not found")

        required = {w.id: w for w in self.repo.registration_waivers(self.db)}
        for waiver in self.repo.required_program_waivers_for_family(self.db, family_id):
            required.setdefault(waiver.id, waiver)

        signed_ids = self.repo.signed_waiver_ids_for_family(self.db, family_id)
        ordered = sorted(required.values(), key=lambda w: w.id)
        missing = [w for w in ordered if w.id not in signed_ids]

        return {
            "family_id": family_id,
            "required": [_summary(w) for w in ordered],
            "signed": [_summary(w) for w in ordered if w.id in signed_ids],
            "missing": [_summary(w) for w in missing],
            "all_signed": not missing,
        }

    def get_families_missing_waivers(self) -> list[dict]:
        results = []
        for family in self.repo.all_families(self.db):
            status = self.get_family_waiver_status(family.id)
            if status["missing"]:
                results.append(
                    {
                        "family_id": family.id,
                        "family_name": family.name,
                        "email": family.email,
                        "missing": status["missing"],
                    }
                )
        logger.info(f"🔍 {len(results)} families missing required waivers")
        return results
