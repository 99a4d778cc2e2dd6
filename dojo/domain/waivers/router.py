"""Waiver router - FastAPI endpoints for waivers and signatures"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import ensure_family_access, get_current_user, require_admin, require_staff
from ...database import get_db
from ...models import Profile
from .schemas import (
    FamilyWaiverStatusResponse,
    ProgramWaiverCreate,
    ProgramWaiverResponse,
    WaiverCreate,
    WaiverResponse,
    WaiverSignatureResponse,
    WaiverSignRequest,
    WaiverUpdate,
)
from .service import WaiverService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waivers", tags=["Waivers"])


def get_waiver_service(db: Session = Depends(get_db)) -> WaiverService:
    """Dependency injection for WaiverService"""
    return WaiverService(db)


# ============================================================================
# FAMILY STATUS
# ============================================================================


@router.get("/families/{family_id}/status", response_model=FamilyWaiverStatusResponse)
async def get_family_waiver_status(
    family_id: int,
    current_user: Profile = Depends(get_current_user),
    service: WaiverService = Depends(get_waiver_service),
):
    ensure_family_access(current_user, family_id)
    return service.get_family_waiver_status(family_id)


@router.get("/families/{family_id}/signatures", response_model=list[WaiverSignatureResponse])
async def list_family_signatures(
    family_id: int,
    current_user: Profile = Depends(get_current_user),
    service: WaiverService = Depends(get_waiver_service),
):
    ensure_family_access(current_user, family_id)
    return service.list_family_signatures(family_id)


@router.get("/missing")
async def get_families_missing_waivers(
    current_user: Profile = Depends(require_staff),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.get_families_missing_waivers()


# ============================================================================
# PROGRAM REQUIREMENTS (admin)
# ============================================================================


@router.get("/programs/{program_id}", response_model=list[ProgramWaiverResponse])
async def list_program_waivers(
    program_id: int,
    current_user: Profile = Depends(get_current_user),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.list_program_waivers(program_id)


@router.post("/programs/{program_id}", response_model=ProgramWaiverResponse)
async def add_program_waiver(
    program_id: int,
    data: ProgramWaiverCreate,
    current_user: Profile = Depends(require_admin),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.add_program_waiver(program_id, data.waiver_id, data.is_required)


@router.delete("/programs/{program_id}/{waiver_id}")
async def remove_program_waiver(
    program_id: int,
    waiver_id: int,
    current_user: Profile = Depends(require_admin),
    service: WaiverService = Depends(get_waiver_service),
):
    service.remove_program_waiver(program_id, waiver_id)
    return {"message": "Program waiver removed"}


# ============================================================================
# WAIVERS
# ============================================================================


@router.get("", response_model=list[WaiverResponse])
async def list_waivers(
    current_user: Profile = Depends(get_current_user),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.list_waivers()


@router.post("", response_model=WaiverResponse)
async def create_waiver(
    data: WaiverCreate,
    current_user: Profile = Depends(require_admin),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.create_waiver(data.model_dump())


@router.get("/{waiver_id}", response_model=WaiverResponse)
async def get_waiver(
    waiver_id: int,
    current_user: Profile = Depends(get_current_user),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.get_waiver(waiver_id)


@router.put("/{waiver_id}", response_model=WaiverResponse)
async def update_waiver(
    waiver_id: int,
    data: WaiverUpdate,
    current_user: Profile = Depends(require_admin),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.update_waiver(waiver_id, data.model_dump(exclude_unset=True))


@router.delete("/{waiver_id}")
async def delete_waiver(
    waiver_id: int,
    current_user: Profile = Depends(require_admin),
    service: WaiverService = Depends(get_waiver_service),
):
    service.delete_waiver(waiver_id)
    return {"message": "Waiver deleted"}


@router.post("/{waiver_id}/sign", response_model=WaiverSignatureResponse)
async def sign_waiver(
    waiver_id: int,
    data: WaiverSignRequest,
    current_user: Profile = Depends(get_current_user),
    service: WaiverService = Depends(get_waiver_service),
):
    return service.sign_waiver(waiver_id, current_user, data.signature_data)
