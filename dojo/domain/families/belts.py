"""Belt rank helpers"""

from typing import Optional

from ...models import BELT_RANKS, Student

DEFAULT_BELT = "white"


def get_current_belt(student: Student) -> str:
    """Latest awarded belt, or white for a student with no awards"""
    if not student.belt_awards:
        return DEFAULT_BELT
    latest = max(student.belt_awards, key=lambda award: (award.awarded_date, award.id or 0))
    return latest.type


def belt_rank_index(belt: Optional[str]) -> int:
    """Position in the rank order; unknown belts rank as white"""
    if belt in BELT_RANKS:
        return BELT_RANKS.index(belt)
    return 0
