"""Discount code repository"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Attendance, Enrollment, Student
from ...models_payment import (
    DiscountAssignment,
    DiscountAutomationRule,
    DiscountCode,
    DiscountCodeUsage,
    DiscountEvent,
    DiscountTemplate,
    Payment,
)
from ..attendance.stats import ATTENDED_STATUSES


class DiscountCodeRepository:
    """Repository for discount code database operations"""

    @staticmethod
    def get(db: Session, discount_code_id: int) -> Optional[DiscountCode]:
        return db.query(DiscountCode).filter(DiscountCode.id == discount_code_id).first()

    @staticmethod
    def get_by_code(db: Session, code: str, active_only: bool = True) -> Optional[DiscountCode]:
        query = db.query(DiscountCode).filter(DiscountCode.code == code.strip().upper())
        if active_only:
            query = query.filter(DiscountCode.is_active.is_(True))
        return query.first()

    @staticmethod
    def code_exists(db: Session, code: str) -> bool:
        return db.query(DiscountCode.id).filter(DiscountCode.code == code).first() is not None

    @staticmethod
    def list_codes(
        db: Session, is_active: Optional[bool] = None, family_id: Optional[int] = None
    ) -> list[DiscountCode]:
        query = db.query(DiscountCode)
        if is_active is not None:
            query = query.filter(DiscountCode.is_active.is_(is_active))
        if family_id is not None:
            query = query.filter(DiscountCode.family_id == family_id)
        return query.order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc()).all()

    @staticmethod
    def usage_counts(db: Session, discount_code_ids: list[int]) -> dict[int, int]:
        if not discount_code_ids:
            return {}
        rows = (
            db.query(DiscountCodeUsage.discount_code_id, func.count(DiscountCodeUsage.id))
            .filter(DiscountCodeUsage.discount_code_id.in_(discount_code_ids))
            .group_by(DiscountCodeUsage.discount_code_id)
            .all()
        )
        return dict(rows)

    @staticmethod
    def has_been_used_by(
        db: Session, discount_code_id: int, family_id: Optional[int] = None, student_id: Optional[int] = None
    ) -> bool:
        query = db.query(DiscountCodeUsage.id).filter(DiscountCodeUsage.discount_code_id == discount_code_id)
        if student_id is not None:
            query = query.filter(DiscountCodeUsage.student_id == student_id)
        elif family_id is not None:
            query = query.filter(DiscountCodeUsage.family_id == family_id)
        return query.first() is not None

    @staticmethod
    def usage_for_family(db: Session, family_id: int) -> list[DiscountCodeUsage]:
        return (
            db.query(DiscountCodeUsage)
            .filter(DiscountCodeUsage.family_id == family_id)
            .order_by(DiscountCodeUsage.used_at.desc())
            .all()
        )

    @staticmethod
    def usage_for_student(db: Session, student_id: int) -> list[DiscountCodeUsage]:
        return (
            db.query(DiscountCodeUsage)
            .filter(DiscountCodeUsage.student_id == student_id)
            .order_by(DiscountCodeUsage.used_at.desc())
            .all()
        )


class AutoDiscountRepository:
    """Repository for automation rules, templates, events and assignments"""

    @staticmethod
    def get_template(db: Session, template_id: int) -> Optional[DiscountTemplate]:
        return db.query(DiscountTemplate).filter(DiscountTemplate.id == template_id).first()

    @staticmethod
    def list_templates(db: Session, is_active: Optional[bool] = None) -> list[DiscountTemplate]:
        query = db.query(DiscountTemplate)
        if is_active is not None:
            query = query.filter(DiscountTemplate.is_active.is_(is_active))
        return query.order_by(DiscountTemplate.name).all()

    @staticmethod
    def template_in_use(db: Session, template_id: int) -> bool:
        return (
            db.query(DiscountAutomationRule.id)
            .filter(DiscountAutomationRule.discount_template_id == template_id)
            .first()
            is not None
        )

    @staticmethod
    def get_rule(db: Session, rule_id: int) -> Optional[DiscountAutomationRule]:
        return db.query(DiscountAutomationRule).filter(DiscountAutomationRule.id == rule_id).first()

    @staticmethod
    def list_rules(db: Session, event_type: Optional[str] = None) -> list[DiscountAutomationRule]:
        query = db.query(DiscountAutomationRule)
        if event_type:
            query = query.filter(DiscountAutomationRule.event_type == event_type)
        return query.order_by(DiscountAutomationRule.created_at.desc(), DiscountAutomationRule.id.desc()).all()

    @staticmethod
    def live_rules_for_event(db: Session, event_type: str, now: datetime) -> list[DiscountAutomationRule]:
        return (
            db.query(DiscountAutomationRule)
            .filter(
                DiscountAutomationRule.event_type == event_type,
                DiscountAutomationRule.is_active.is_(True),
                DiscountAutomationRule.valid_from <= now,
                or_(DiscountAutomationRule.valid_until.is_(None), DiscountAutomationRule.valid_until >= now),
            )
            .order_by(DiscountAutomationRule.id)
            .all()
        )

    @staticmethod
    def assignment_exists(
        db: Session, rule_id: int, student_id: Optional[int], family_id: Optional[int]
    ) -> bool:
        query = db.query(DiscountAssignment.id).filter(DiscountAssignment.automation_rule_id == rule_id)
        if student_id is None:
            query = query.filter(DiscountAssignment.student_id.is_(None))
        else:
            query = query.filter(DiscountAssignment.student_id == student_id)
        if family_id is None:
            query = query.filter(DiscountAssignment.family_id.is_(None))
        else:
            query = query.filter(DiscountAssignment.family_id == family_id)
        return query.first() is not None

    @staticmethod
    def rule_has_assignments(db: Session, rule_id: int) -> bool:
        return (
            db.query(DiscountAssignment.id).filter(DiscountAssignment.automation_rule_id == rule_id).first()
            is not None
        )

    @staticmethod
    def list_assignments(
        db: Session, family_id: Optional[int] = None, student_id: Optional[int] = None
    ) -> list[DiscountAssignment]:
        query = db.query(DiscountAssignment)
        if family_id is not None:
            query = query.filter(DiscountAssignment.family_id == family_id)
        if student_id is not None:
            query = query.filter(DiscountAssignment.student_id == student_id)
        return query.order_by(DiscountAssignment.assigned_at.desc(), DiscountAssignment.id.desc()).all()

    @staticmethod
    def list_events(db: Session, event_type: Optional[str] = None, limit: int = 100) -> list[DiscountEvent]:
        query = db.query(DiscountEvent)
        if event_type:
            query = query.filter(DiscountEvent.event_type == event_type)
        return query.order_by(DiscountEvent.created_at.desc(), DiscountEvent.id.desc()).limit(limit).all()

    @staticmethod
    def active_program_ids(db: Session, student_id: int) -> set[int]:
        rows = (
            db.query(Enrollment.program_id)
            .filter(Enrollment.student_id == student_id, Enrollment.status == "active")
            .all()
        )
        return {row[0] for row in rows if row[0] is not None}

    @staticmethod
    def family_size(db: Session, family_id: int) -> int:
        return db.query(Student).filter(Student.family_id == family_id).count()

    @staticmethod
    def attended_count(db: Session, student_id: int) -> int:
        return (
            db.query(Attendance)
            .filter(Attendance.student_id == student_id, Attendance.status.in_(ATTENDED_STATUSES))
            .count()
        )

    @staticmethod
    def succeeded_payment_count(db: Session, family_id: int) -> int:
        # Two rows are enough to tell a first payment from a repeat
        rows = (
            db.query(Payment.id)
            .filter(Payment.family_id == family_id, Payment.status == "succeeded")
            .limit(2)
            .all()
        )
        return len(rows)
