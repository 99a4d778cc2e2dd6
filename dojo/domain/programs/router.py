"""Program router - FastAPI endpoints for programs"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import ensure_student_access, get_current_user, require_admin
from ...database import get_db
from ...models import Profile
from .schemas import EligibilityResponse, ProgramCreate, ProgramResponse, ProgramUpdate
from .service import ProgramService

router = APIRouter(prefix="/programs", tags=["Programs"])


def get_program_service(db: Session = Depends(get_db)) -> ProgramService:
    """Dependency injection for ProgramService"""
    return ProgramService(db)


@router.get("", response_model=list[ProgramResponse])
async def list_programs(
    is_active: Optional[bool] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: ProgramService = Depends(get_program_service),
):
    return service.list_programs(is_active)


@router.post("", response_model=ProgramResponse)
async def create_program(
    data: ProgramCreate,
    current_user: Profile = Depends(require_admin),
    service: ProgramService = Depends(get_program_service),
):
    return service.create_program(data)


@router.get("/for-student/{student_id}", response_model=list[ProgramResponse])
async def get_programs_for_student(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: ProgramService = Depends(get_program_service),
):
    """Active programs the student currently qualifies for"""
    ensure_student_access(service.db, current_user, student_id)
    return service.get_programs_for_student(student_id)


@router.get("/{program_id}", response_model=ProgramResponse)
async def get_program(
    program_id: int,
    current_user: Profile = Depends(get_current_user),
    service: ProgramService = Depends(get_program_service),
):
    return service.get_program(program_id)


@router.put("/{program_id}", response_model=ProgramResponse)
async def update_program(
    program_id: int,
    data: ProgramUpdate,
    current_user: Profile = Depends(require_admin),
    service: ProgramService = Depends(get_program_service),
):
    return service.update_program(program_id, data)


@router.get("/{program_id}/eligibility/{student_id}", response_model=EligibilityResponse)
async def check_eligibility(
    program_id: int,
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: ProgramService = Depends(get_program_service),
):
    ensure_student_access(service.db, current_user, student_id)
    eligible, reasons = service.get_eligibility(program_id, student_id)
    return EligibilityResponse(
        program_id=program_id, student_id=student_id, eligible=eligible, reasons=reasons
    )
