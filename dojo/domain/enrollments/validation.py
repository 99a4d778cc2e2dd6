"""Enrollment validation - capacity, duplicates, eligibility and schedule conflicts"""

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ...models import Class, Enrollment, Student
from ..classes.conflicts import check_schedule_conflicts
from ..programs.eligibility import check_program_eligibility

SEATED_STATUSES = ("active", "trial")

DUPLICATE_MESSAGES = {
    "active": "Student is already enrolled in this class",
    "waitlist": "Student is already on the waitlist for this class",
    "trial": "Student is already enrolled in this class as a trial",
}


class EnrollmentValidationError(Exception):
    """Raised when an enrollment request fails validation"""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Enrollment validation failed: {', '.join(errors)}")


@dataclass
class EnrollmentValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    capacity_available: bool = False
    meets_eligibility: bool = False


def count_seated(db: Session, class_id: int) -> int:
    return (
        db.query(Enrollment)
        .filter(Enrollment.class_id == class_id, Enrollment.status.in_(SEATED_STATUSES))
        .count()
    )


def validate_enrollment(db: Session, class_id: int, student_id: int) -> EnrollmentValidation:
    errors: list[str] = []
    warnings: list[str] = []

    class_ = db.query(Class).filter(Class.id == class_id).first()
    if not class_:
        return EnrollmentValidation(is_valid=False, errors=["Class not found"])

    if not class_.is_active:
        errors.append("Class is not active")

    # None or 0 means unlimited
    seated = count_seated(db, class_id)
    max_capacity = class_.max_capacity or 0
    capacity_available = max_capacity == 0 or seated < max_capacity
    if not capacity_available:
        warnings.append(f"Class is at capacity ({seated}/{max_capacity})")

    existing = (
        db.query(Enrollment)
        .filter(Enrollment.class_id == class_id, Enrollment.student_id == student_id)
        .first()
    )
    if existing and existing.status in DUPLICATE_MESSAGES:
        errors.append(DUPLICATE_MESSAGES[existing.status])

    meets_eligibility = False
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        errors.append("Student not found")
    elif class_.program:
        meets_eligibility, reasons = check_program_eligibility(db, class_.program, student)
        errors.extend(reasons)

    _, conflicts = check_schedule_conflicts(db, student_id, class_id)
    errors.extend(f"Schedule conflict with {c['conflicting_class_name']}" for c in conflicts)

    return EnrollmentValidation(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        capacity_available=capacity_available,
        meets_eligibility=meets_eligibility,
    )
