"""Family router - FastAPI endpoints for families, guardians, students and belts"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import ensure_family_access, get_current_user, is_staff, require_staff
from ...database import get_db
from ...models import Profile
from .schemas import (
    BeltAwardCreate,
    BeltAwardResponse,
    FamilyCreate,
    FamilyDetailsResponse,
    FamilyResponse,
    FamilyUpdate,
    GuardianCreate,
    GuardianResponse,
    GuardianUpdate,
    StudentCreate,
    StudentDetailsResponse,
    StudentResponse,
    StudentUpdate,
)
from .service import FamilyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/families", tags=["Families"])
students_router = APIRouter(prefix="/students", tags=["Students"])


def get_family_service(db: Session = Depends(get_db)) -> FamilyService:
    """Dependency injection for FamilyService"""
    return FamilyService(db)


# ============================================================================
# FAMILIES
# ============================================================================


@router.get("", response_model=list[FamilyResponse])
async def list_families(
    search: Optional[str] = Query(None),
    current_user: Profile = Depends(require_staff),
    service: FamilyService = Depends(get_family_service),
):
    return service.list_families(search)


@router.post("", response_model=FamilyResponse)
async def create_family(
    data: FamilyCreate,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    """Create a family. A family user without one becomes its member."""
    if not is_staff(current_user) and current_user.family_id is not None:
        raise HTTPException(status_code=400, detail="Profile already belongs to a family")

    family = service.create_family(data)
    if not is_staff(current_user):
        current_user.family_id = family.id
        service.db.commit()
    return family


@router.get("/{family_id}", response_model=FamilyDetailsResponse)
async def get_family_details(
    family_id: int,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, family_id)
    return service.get_family_details(family_id)


@router.put("/{family_id}", response_model=FamilyResponse)
async def update_family(
    family_id: int,
    data: FamilyUpdate,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, family_id)
    return service.update_family(family_id, data)


# ============================================================================
# GUARDIANS
# ============================================================================


@router.post("/{family_id}/guardians", response_model=GuardianResponse)
async def add_guardian(
    family_id: int,
    data: GuardianCreate,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, family_id)
    return service.add_guardian(family_id, data)


@router.put("/guardians/{guardian_id}", response_model=GuardianResponse)
async def update_guardian(
    guardian_id: int,
    data: GuardianUpdate,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, service.get_guardian(guardian_id).family_id)
    return service.update_guardian(guardian_id, data)


@router.delete("/guardians/{guardian_id}")
async def delete_guardian(
    guardian_id: int,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, service.get_guardian(guardian_id).family_id)
    return service.delete_guardian(guardian_id)


# ============================================================================
# STUDENTS
# ============================================================================


@students_router.get("", response_model=list[StudentResponse])
async def list_students(
    family_id: Optional[int] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    if not is_staff(current_user):
        family_id = current_user.family_id
        if family_id is None:
            return []
    return service.list_students(family_id)


@students_router.post("", response_model=StudentResponse)
async def create_student(
    data: StudentCreate,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, data.family_id)
    return service.create_student(data)


@students_router.get("/{student_id}", response_model=StudentDetailsResponse)
async def get_student_details(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, service.get_student(student_id).family_id)
    return service.get_student_details(student_id)


@students_router.put("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: int,
    data: StudentUpdate,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, service.get_student(student_id).family_id)
    if data.family_id is not None:
        ensure_family_access(current_user, data.family_id)
    return service.update_student(student_id, data)


@students_router.delete("/{student_id}")
async def delete_student(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, service.get_student(student_id).family_id)
    return service.delete_student(student_id)


# ============================================================================
# BELTS (staff award, everyone with access can read)
# ============================================================================


@students_router.get("/{student_id}/belts", response_model=list[BeltAwardResponse])
async def list_belt_awards(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
):
    ensure_family_access(current_user, service.get_student(student_id).family_id)
    return service.list_belt_awards(student_id)


@students_router.post("/{student_id}/belts", response_model=BeltAwardResponse)
async def award_belt(
    student_id: int,
    data: BeltAwardCreate,
    current_user: Profile = Depends(require_staff),
    service: FamilyService = Depends(get_family_service),
):
    return service.award_belt(student_id, data)
