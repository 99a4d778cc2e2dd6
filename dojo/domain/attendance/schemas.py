"""Attendance domain schemas"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator

from .stats import ATTENDANCE_STATUSES


class AttendanceEntry(BaseModel):
    student_id: int
    status: str
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in ATTENDANCE_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(ATTENDANCE_STATUSES)}")
        return v


class SessionAttendanceRequest(BaseModel):
    records: list[AttendanceEntry]


class AttendanceResponse(BaseModel):
    id: int
    student_id: int
    class_session_id: int
    status: str
    notes: Optional[str] = None
    session_date: Optional[date] = None
    student_name: Optional[str] = None


class AttendanceStatsResponse(BaseModel):
    total_sessions: int
    present_count: int
    absent_count: int
    late_count: int
    excused_count: int
    attendance_rate: float
