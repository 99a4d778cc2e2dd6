"""Schedule conflict detection between a student's classes"""

from datetime import time
from typing import NamedTuple

from sqlalchemy.orm import Session, joinedload

from ...models import Class, ClassSchedule, Enrollment
from ...shared.dates import minutes_of_day

# class_schedules only store a start time; every slot is treated as one hour long
SLOT_MINUTES = 60


class ScheduleSlot(NamedTuple):
    class_id: int
    class_name: str
    day_of_week: str
    start_time: time


def slots_overlap(first: time, second: time, duration_minutes: int = SLOT_MINUTES) -> bool:
    """Half-open [start, start + duration) intervals on the same day"""
    a_start = minutes_of_day(first)
    b_start = minutes_of_day(second)
    return a_start < b_start + duration_minutes and b_start < a_start + duration_minutes


def find_conflicts(existing: list[ScheduleSlot], new: list[ScheduleSlot], student_id: int) -> list[dict]:
    conflicts = []
    for current in existing:
        for candidate in new:
            if current.day_of_week != candidate.day_of_week:
                continue
            if not slots_overlap(current.start_time, candidate.start_time):
                continue
            conflicts.append(
                {
                    "student_id": student_id,
                    "conflicting_class_id": current.class_id,
                    "conflicting_class_name": current.class_name,
                    "conflict_day": current.day_of_week,
                    "existing_start": current.start_time.strftime("%H:%M"),
                    "new_start": candidate.start_time.strftime("%H:%M"),
                }
            )
    return conflicts


def check_schedule_conflicts(db: Session, student_id: int, class_id: int) -> tuple[bool, list[dict]]:
    """Compare the new class's slots with the slots of the student's other active classes"""
    enrollments = (
        db.query(Enrollment)
        .options(joinedload(Enrollment.class_).joinedload(Class.schedules))
        .filter(
            Enrollment.student_id == student_id,
            Enrollment.status == "active",
            Enrollment.class_id != class_id,
        )
        .all()
    )
    if not enrollments:
        return False, []

    existing = [
        ScheduleSlot(e.class_id, e.class_.name, s.day_of_week, s.start_time)
        for e in enrollments
        for s in e.class_.schedules
    ]
    new = [
        ScheduleSlot(class_id, "", s.day_of_week, s.start_time)
        for s in db.query(ClassSchedule).filter(ClassSchedule.class_id == class_id).all()
    ]

    conflicts = find_conflicts(existing, new, student_id)
    return bool(conflicts), conflicts
