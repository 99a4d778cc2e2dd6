"""Class service - Business logic for classes, schedules and sessions"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Class, ClassSchedule, ClassSession, Program
from ...shared.dates import WEEKDAYS, weekday_name
from .conflicts import check_schedule_conflicts
from .repository import ClassRepository
from .schemas import ClassCreate, ClassUpdate, ScheduleEntry, SessionCreate, SessionUpdate

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MINUTES = 60


def add_minutes(start: time, minutes: int) -> time:
    return (datetime.combine(date(2000, 1, 1), start) + timedelta(minutes=minutes)).time()


def plan_session_dates(
    schedules: list[ClassSchedule],
    start_date: date,
    end_date: date,
    exclude_dates: set[date],
    existing_dates: set[date],
) -> list[tuple[date, time]]:
    """
    One (date, start_time) per schedule weekday in the inclusive range.
    Excluded dates and dates that already have a session are skipped.
    A class holds at most one session per day, so the earliest slot wins.
    """
    by_day: dict[str, time] = {}
    for schedule in schedules:
        current = by_day.get(schedule.day_of_week)
        if current is None or schedule.start_time < current:
            by_day[schedule.day_of_week] = schedule.start_time

    planned = []
    day = start_date
    while day <= end_date:
        start_time = by_day.get(weekday_name(day))
        if start_time is not None and day not in exclude_dates and day not in existing_dates:
            planned.append((day, start_time))
        day += timedelta(days=1)
    return planned


class ClassService:
    """Service layer for classes"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClassRepository()

    # ------------------------------------------------------------------
    # Classes and schedules
    # ------------------------------------------------------------------

    def list_classes(self, program_id: Optional[int] = None, is_active: Optional[bool] = None) -> list[Class]:
        return self.repo.list_classes(self.db, program_id, is_active)

    def get_class(self, class_id: int) -> Class:
        class_ = self.repo.get_class(self.db, class_id)
        if not class_:
            raise HTTPException(status_code=404, detail="Class not found")
        return class_

    def _ensure_program(self, program_id: int) -> Program:
        program = self.db.query(Program).filter(Program.id == program_id).first()
        if not program:
            raise HTTPException(status_code=404, detail="Program not found")
        return program

    def create_class(self, data: ClassCreate) -> Class:
        self._ensure_program(data.program_id)

        class_ = Class(**data.model_dump(exclude={"schedules"}))
        self.db.add(class_)
        self.db.flush()
        self.repo.replace_schedules(self.db, class_.id, [s.model_dump() for s in data.schedules])
        self.db.commit()

        logger.info(f"✅ Created class {class_.id} ({class_.name}) with {len(data.schedules)} schedules")
        return self.get_class(class_.id)

    def update_class(self, class_id: int, data: ClassUpdate) -> Class:
        class_ = self.get_class(class_id)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("program_id") is not None:
            self._ensure_program(updates["program_id"])
        for key, value in updates.items():
            setattr(class_, key, value)
        self.db.commit()
        self.db.refresh(class_)
        return class_

    def update_class_schedules(self, class_id: int, schedules: list[ScheduleEntry]) -> Class:
        """Replace every schedule row of the class"""
        self.get_class(class_id)
        self.repo.replace_schedules(self.db, class_id, [s.model_dump() for s in schedules])
        self.db.commit()
        self.db.expire_all()
        return self.get_class(class_id)

    def delete_class(self, class_id: int) -> dict:
        class_ = self.get_class(class_id)
        if self.repo.has_enrollments(self.db, class_id):
            raise HTTPException(
                status_code=400,
                detail="Cannot delete a class with enrollments. Deactivate it instead.",
            )
        self.db.delete(class_)
        self.db.commit()
        logger.info(f"🗑️ Deleted class {class_id}")
        return {"message": "Class deleted"}

    def check_schedule_conflicts(self, student_id: int, class_id: int) -> tuple[bool, list[dict]]:
        self.get_class(class_id)
        return check_schedule_conflicts(self.db, student_id, class_id)

    def get_weekly_schedule(self) -> dict[str, list[dict]]:
        """Active classes grouped by weekday, each day ordered by start time"""
        schedule: dict[str, list[dict]] = {day: [] for day in WEEKDAYS}
        for class_ in self.repo.list_classes(self.db, is_active=True):
            duration = (class_.program.duration_minutes if class_.program else None) or DEFAULT_SESSION_MINUTES
            for slot in class_.schedules:
                schedule[slot.day_of_week].append(
                    {
                        "class_id": class_.id,
                        "class_name": class_.name,
                        "program_id": class_.program_id,
                        "instructor_id": class_.instructor_id,
                        "start_time": slot.start_time,
                        "end_time": add_minutes(slot.start_time, duration),
                    }
                )
        for entries in schedule.values():
            entries.sort(key=lambda entry: entry["start_time"])
        return schedule

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def generate_class_sessions(
        self, class_id: int, start_date: date, end_date: date, exclude_dates: Optional[list[date]] = None
    ) -> int:
        """Create scheduled sessions from the class's weekly schedule; returns how many were created"""
        class_ = self.get_class(class_id)
        if end_date < start_date:
            raise HTTPException(status_code=400, detail="End date must be on or after start date")
        if not class_.schedules:
            raise HTTPException(status_code=400, detail="Class has no schedules to generate sessions from")

        duration = (class_.program.duration_minutes if class_.program else None) or DEFAULT_SESSION_MINUTES
        planned = plan_session_dates(
            class_.schedules,
            start_date,
            end_date,
            set(exclude_dates or []),
            self.repo.existing_session_dates(self.db, class_id, start_date, end_date),
        )

        for session_date, start_time in planned:
            self.db.add(
                ClassSession(
                    class_id=class_id,
                    session_date=session_date,
                    start_time=start_time,
                    end_time=add_minutes(start_time, duration),
                    status="scheduled",
                    instructor_id=class_.instructor_id,
                )
            )
        self.db.commit()

        logger.info(f"📅 Generated {len(planned)} sessions for class {class_id} ({start_date} - {end_date})")
        return len(planned)

    def list_sessions(
        self,
        class_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[ClassSession]:
        return self.repo.list_sessions(self.db, class_id, start_date, end_date, status)

    def get_session(self, session_id: int) -> ClassSession:
        session = self.repo.get_session(self.db, session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Class session not found")
        return session

    def create_session(self, class_id: int, data: SessionCreate) -> ClassSession:
        class_ = self.get_class(class_id)
        if data.session_date in self.repo.existing_session_dates(
            self.db, class_id, data.session_date, data.session_date
        ):
            raise HTTPException(status_code=409, detail="A session already exists for this class on that date")

        session = ClassSession(
            class_id=class_id,
            session_date=data.session_date,
            start_time=data.start_time,
            end_time=data.end_time,
            instructor_id=data.instructor_id or class_.instructor_id,
            notes=data.notes,
            status="scheduled",
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def update_session(self, session_id: int, data: SessionUpdate) -> ClassSession:
        session = self.get_session(session_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(session, key, value)
        self.db.commit()
        self.db.refresh(session)
        return session

    def delete_session(self, session_id: int) -> dict:
        session = self.get_session(session_id)
        if self.repo.session_has_attendance(self.db, session_id):
            raise HTTPException(
                status_code=400,
                detail="Cannot delete session with attendance records. Please remove attendance first.",
            )
        self.db.delete(session)
        self.db.commit()
        return {"message": "Session deleted"}
