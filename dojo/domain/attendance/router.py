"""Attendance router - FastAPI endpoints for attendance"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import ensure_student_access, get_current_user, require_staff
from ...database import get_db
from ...models import Profile
from .schemas import AttendanceResponse, AttendanceStatsResponse, SessionAttendanceRequest
from .service import AttendanceService, attendance_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attendance", tags=["Attendance"])


def get_attendance_service(db: Session = Depends(get_db)) -> AttendanceService:
    """Dependency injection for AttendanceService"""
    return AttendanceService(db)


# ============================================================================
# SESSION ATTENDANCE (staff)
# ============================================================================


@router.post("/sessions/{session_id}", response_model=list[AttendanceResponse])
async def record_session_attendance(
    session_id: int,
    data: SessionAttendanceRequest,
    current_user: Profile = Depends(require_staff),
    service: AttendanceService = Depends(get_attendance_service),
):
    """Record (or overwrite) attendance for a class session"""
    records = service.record_session_attendance(session_id, data.records)
    return [attendance_to_dict(r) for r in records]


@router.get("/sessions/{session_id}", response_model=list[AttendanceResponse])
async def get_session_attendance(
    session_id: int,
    current_user: Profile = Depends(require_staff),
    service: AttendanceService = Depends(get_attendance_service),
):
    return [attendance_to_dict(r) for r in service.get_attendance_by_session(session_id)]


@router.get("/sessions/{session_id}/summary", response_model=AttendanceStatsResponse)
async def get_session_summary(
    session_id: int,
    current_user: Profile = Depends(require_staff),
    service: AttendanceService = Depends(get_attendance_service),
):
    return service.get_session_attendance_summary(session_id)


@router.get("", response_model=list[AttendanceResponse])
async def get_attendance_by_date_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
    class_id: Optional[int] = Query(None),
    current_user: Profile = Depends(require_staff),
    service: AttendanceService = Depends(get_attendance_service),
):
    records = service.get_attendance_by_date_range(start_date, end_date, class_id)
    return [attendance_to_dict(r) for r in records]


@router.delete("/{attendance_id}")
async def delete_attendance_record(
    attendance_id: int,
    current_user: Profile = Depends(require_staff),
    service: AttendanceService = Depends(get_attendance_service),
):
    return service.delete_attendance_record(attendance_id)


# ============================================================================
# STUDENT ATTENDANCE
# ============================================================================


@router.get("/students/{student_id}", response_model=list[AttendanceResponse])
async def get_student_attendance(
    student_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: AttendanceService = Depends(get_attendance_service),
):
    ensure_student_access(service.db, current_user, student_id)
    records = service.get_attendance_by_student(student_id, start_date, end_date)
    return [attendance_to_dict(r) for r in records]


@router.get("/students/{student_id}/stats", response_model=AttendanceStatsResponse)
async def get_student_attendance_stats(
    student_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: AttendanceService = Depends(get_attendance_service),
):
    ensure_student_access(service.db, current_user, student_id)
    return service.get_student_attendance_stats(student_id, start_date, end_date)
