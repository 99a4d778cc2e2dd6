"""Class router - FastAPI endpoints for classes, schedules and sessions"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import ensure_student_access, get_current_user, require_admin, require_staff
from ...database import get_db
from ...models import Profile
from .schemas import (
    ClassCreate,
    ClassResponse,
    ClassUpdate,
    ConflictResponse,
    SchedulesReplace,
    SessionCreate,
    SessionGenerateRequest,
    SessionResponse,
    SessionUpdate,
)
from .service import ClassService

router = APIRouter(prefix="/classes", tags=["Classes"])


def get_class_service(db: Session = Depends(get_db)) -> ClassService:
    """Dependency injection for ClassService"""
    return ClassService(db)


# ============================================================================
# CLASSES
# ============================================================================


@router.get("", response_model=list[ClassResponse])
async def list_classes(
    program_id: Optional[int] = Query(None),
    is_active: Optional[bool] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: ClassService = Depends(get_class_service),
):
    return service.list_classes(program_id, is_active)


@router.post("", response_model=ClassResponse)
async def create_class(
    data: ClassCreate,
    current_user: Profile = Depends(require_admin),
    service: ClassService = Depends(get_class_service),
):
    return service.create_class(data)


@router.get("/weekly-schedule")
async def get_weekly_schedule(
    current_user: Profile = Depends(get_current_user),
    service: ClassService = Depends(get_class_service),
):
    """Active classes by weekday"""
    return service.get_weekly_schedule()


@router.get("/sessions", response_model=list[SessionResponse])
async def list_all_sessions(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: ClassService = Depends(get_class_service),
):
    return service.list_sessions(None, start_date, end_date, status)


@router.put("/sessions/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: int,
    data: SessionUpdate,
    current_user: Profile = Depends(require_staff),
    service: ClassService = Depends(get_class_service),
):
    return service.update_session(session_id, data)


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: int,
    current_user: Profile = Depends(require_admin),
    service: ClassService = Depends(get_class_service),
):
    return service.delete_session(session_id)


@router.get("/{class_id}", response_model=ClassResponse)
async def get_class(
    class_id: int,
    current_user: Profile = Depends(get_current_user),
    service: ClassService = Depends(get_class_service),
):
    return service.get_class(class_id)


@router.put("/{class_id}", response_model=ClassResponse)
async def update_class(
    class_id: int,
    data: ClassUpdate,
    current_user: Profile = Depends(require_admin),
    service: ClassService = Depends(get_class_service),
):
    return service.update_class(class_id, data)


@router.delete("/{class_id}")
async def delete_class(
    class_id: int,
    current_user: Profile = Depends(require_admin),
    service: ClassService = Depends(get_class_service),
):
    return service.delete_class(class_id)


@router.put("/{class_id}/schedules", response_model=ClassResponse)
async def replace_schedules(
    class_id: int,
    data: SchedulesReplace,
    current_user: Profile = Depends(require_admin),
    service: ClassService = Depends(get_class_service),
):
    return service.update_class_schedules(class_id, data.schedules)


@router.get("/{class_id}/conflicts/{student_id}", response_model=ConflictResponse)
async def check_conflicts(
    class_id: int,
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: ClassService = Depends(get_class_service),
):
    ensure_student_access(service.db, current_user, student_id)
    has_conflicts, conflicts = service.check_schedule_conflicts(student_id, class_id)
    return ConflictResponse(has_conflicts=has_conflicts, conflicts=conflicts)


# ============================================================================
# SESSIONS
# ============================================================================


@router.get("/{class_id}/sessions", response_model=list[SessionResponse])
async def list_sessions(
    class_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: ClassService = Depends(get_class_service),
):
    return service.list_sessions(class_id, start_date, end_date)


@router.post("/{class_id}/sessions", response_model=SessionResponse)
async def create_session(
    class_id: int,
    data: SessionCreate,
    current_user: Profile = Depends(require_staff),
    service: ClassService = Depends(get_class_service),
):
    return service.create_session(class_id, data)


@router.post("/{class_id}/sessions/generate")
async def generate_sessions(
    class_id: int,
    data: SessionGenerateRequest,
    current_user: Profile = Depends(require_admin),
    service: ClassService = Depends(get_class_service),
):
    created = service.generate_class_sessions(class_id, data.start_date, data.end_date, data.exclude_dates)
    return {"created": created}
