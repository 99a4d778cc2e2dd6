"""Shared date helpers - all stored timestamps are naive UTC"""

from datetime import date, datetime, time, timezone
from typing import Optional

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def calculate_age(birth_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Whole years between birth_date and today"""
    if birth_date is None:
        return None
    today = today or utcnow().date()
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def weekday_name(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute
