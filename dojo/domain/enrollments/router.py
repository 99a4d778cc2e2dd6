"""Enrollment router - FastAPI endpoints for enrollments and waitlists"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import ensure_family_access, ensure_student_access, get_current_user, is_staff, require_staff
from ...database import get_db
from ...models import Profile
from .notifications import notify_waitlist_promotions
from .schemas import (
    BulkEnrollRequest,
    BulkEnrollResponse,
    DropRequest,
    EnrollmentCreate,
    EnrollmentResponse,
    EnrollmentStatsResponse,
    EnrollmentUpdate,
    ValidationResponse,
)
from .service import EnrollmentService
from .validation import EnrollmentValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


def get_enrollment_service(db: Session = Depends(get_db)) -> EnrollmentService:
    """Dependency injection for EnrollmentService"""
    return EnrollmentService(db)


# ============================================================================
# LISTING
# ============================================================================


@router.get("", response_model=list[EnrollmentResponse])
async def list_enrollments(
    class_id: Optional[int] = Query(None),
    student_id: Optional[int] = Query(None),
    family_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    if not is_staff(current_user):
        if current_user.family_id is None:
            return []
        family_id = current_user.family_id
    return service.list_enrollments(class_id, student_id, family_id, status)


@router.get("/stats", response_model=EnrollmentStatsResponse)
async def get_enrollment_stats(
    class_id: Optional[int] = Query(None),
    current_user: Profile = Depends(require_staff),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    return service.get_enrollment_stats(class_id)


@router.get("/validate", response_model=ValidationResponse)
async def validate_enrollment(
    class_id: int = Query(...),
    student_id: int = Query(...),
    current_user: Profile = Depends(get_current_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    """Dry-run the enrollment rules"""
    ensure_student_access(service.db, current_user, student_id)
    return asdict(service.validate_enrollment(class_id, student_id))


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
async def get_enrollment(
    enrollment_id: int,
    current_user: Profile = Depends(get_current_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    enrollment = service.get_enrollment(enrollment_id)
    ensure_family_access(current_user, enrollment.student.family_id)
    return enrollment


# ============================================================================
# MUTATIONS
# ============================================================================


@router.post("", response_model=EnrollmentResponse)
async def enroll_student(
    data: EnrollmentCreate,
    current_user: Profile = Depends(get_current_user),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    ensure_student_access(service.db, current_user, data.student_id)
    try:
        enrollment = service.enroll_student(data.class_id, data.student_id, data.status, data.notes)
    except EnrollmentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    await notify_waitlist_promotions(service.db, service.promoted_enrollments)
    return enrollment


@router.post("/bulk", response_model=BulkEnrollResponse)
async def bulk_enroll(
    data: BulkEnrollRequest,
    current_user: Profile = Depends(require_staff),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    result = service.bulk_enroll(data.class_id, data.student_ids, data.status, data.notes)
    await notify_waitlist_promotions(service.db, service.promoted_enrollments)
    return result


@router.put("/{enrollment_id}", response_model=EnrollmentResponse)
async def update_enrollment(
    enrollment_id: int,
    data: EnrollmentUpdate,
    current_user: Profile = Depends(require_staff),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    enrollment = service.update_enrollment(enrollment_id, data.status, data.notes, data.paid_until)
    await notify_waitlist_promotions(service.db, service.promoted_enrollments)
    return enrollment


@router.post("/{enrollment_id}/drop", response_model=EnrollmentResponse)
async def drop_student(
    enrollment_id: int,
    data: DropRequest,
    current_user: Profile = Depends(require_staff),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    enrollment = service.drop_student(enrollment_id, data.reason)
    await notify_waitlist_promotions(service.db, service.promoted_enrollments)
    return enrollment


@router.post("/classes/{class_id}/process-waitlist")
async def process_waitlist(
    class_id: int,
    current_user: Profile = Depends(require_staff),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    promoted = service.process_waitlist(class_id)
    await notify_waitlist_promotions(service.db, service.promoted_enrollments)
    return {"promoted": promoted}
