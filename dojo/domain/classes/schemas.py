"""Class domain schemas - classes, schedules and sessions"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...shared.dates import WEEKDAYS

SESSION_STATUSES = ("scheduled", "completed", "cancelled")


class ScheduleEntry(BaseModel):
    day_of_week: str
    start_time: time

    @field_validator("day_of_week")
    @classmethod
    def check_day(cls, v):
        day = v.strip().lower()
        if day not in WEEKDAYS:
            raise ValueError(f"day_of_week must be one of: {', '.join(WEEKDAYS)}")
        return day


class ScheduleResponse(ScheduleEntry):
    id: int

    class Config:
        from_attributes = True


class ClassCreate(BaseModel):
    program_id: int
    name: str
    description: Optional[str] = None
    instructor_id: Optional[int] = None
    max_capacity: Optional[int] = None
    is_active: bool = True
    schedules: list[ScheduleEntry] = []

    @field_validator("max_capacity")
    @classmethod
    def check_capacity(cls, v):
        if v is not None and v < 0:
            raise ValueError("max_capacity cannot be negative")
        return v


class ClassUpdate(BaseModel):
    program_id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    instructor_id: Optional[int] = None
    max_capacity: Optional[int] = None
    is_active: Optional[bool] = None


class ClassResponse(BaseModel):
    id: int
    program_id: int
    name: str
    description: Optional[str] = None
    instructor_id: Optional[int] = None
    max_capacity: Optional[int] = None
    is_active: bool
    schedules: list[ScheduleResponse] = []

    class Config:
        from_attributes = True


class SchedulesReplace(BaseModel):
    schedules: list[ScheduleEntry]


class SessionGenerateRequest(BaseModel):
    start_date: date
    end_date: date
    exclude_dates: list[date] = []


class SessionCreate(BaseModel):
    session_date: date
    start_time: time
    end_time: time
    instructor_id: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SessionUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None
    instructor_id: Optional[int] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in SESSION_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(SESSION_STATUSES)}")
        return v


class SessionResponse(BaseModel):
    id: int
    class_id: int
    session_date: date
    start_time: time
    end_time: time
    status: str
    instructor_id: Optional[int] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ConflictResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[dict]
