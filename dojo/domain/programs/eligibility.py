"""
Program eligibility rules

A student may join a program when every configured rule holds:
age range, belt range, gender restriction and completed prerequisites.
Rules left unset on the program are not checked.
"""

from collections.abc import Iterable
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Class, Enrollment, Program, Student
from ...shared.dates import calculate_age
from ..families.belts import belt_rank_index, get_current_belt


def evaluate_eligibility(
    program: Program,
    student: Student,
    current_belt: str,
    completed_program_ids: Iterable[int],
    today: Optional[date] = None,
) -> tuple[bool, list[str]]:
    reasons = []

    if program.min_age is not None or program.max_age is not None:
        age = calculate_age(student.birth_date, today)
        if age is None:
            reasons.append("Student birth date is required for this program")
        else:
            if program.min_age is not None and age < program.min_age:
                reasons.append(f"Student must be at least {program.min_age} years old")
            if program.max_age is not None and age > program.max_age:
                reasons.append(f"Student must be at most {program.max_age} years old")

    rank = belt_rank_index(current_belt)
    if program.min_belt_rank and rank < belt_rank_index(program.min_belt_rank):
        reasons.append(f"Requires at least a {program.min_belt_rank} belt")
    if program.max_belt_rank and rank > belt_rank_index(program.max_belt_rank):
        reasons.append(f"Requires a {program.max_belt_rank} belt or lower")

    restriction = program.gender_restriction or "none"
    if restriction != "none" and student.gender != restriction:
        reasons.append(f"Program is restricted to {restriction} students")

    completed = set(completed_program_ids)
    for prerequisite_id in program.prerequisite_programs or []:
        if prerequisite_id not in completed:
            reasons.append(f"Prerequisite program {prerequisite_id} not completed")

    return not reasons, reasons


def completed_program_ids_for(db: Session, student_id: int) -> set[int]:
    rows = (
        db.query(Class.program_id)
        .join(Enrollment, Enrollment.class_id == Class.id)
        .filter(Enrollment.student_id == student_id, Enrollment.status == "completed")
        .all()
    )
    return {row[0] for row in rows}


def check_program_eligibility(
    db: Session, program: Program, student: Student, today: Optional[date] = None
) -> tuple[bool, list[str]]:
    """Load the student's belt and completed programs, then evaluate the rules"""
    return evaluate_eligibility(
        program,
        student,
        get_current_belt(student),
        completed_program_ids_for(db, student.id),
        today,
    )
