"""
Automatic discounts

Business events (enrollment, first payment, belt promotion, attendance
milestones, plus staff-recorded ones such as referrals) are stored as
DiscountEvent rows. Every active rule for the event type whose validity
window covers now and whose conditions match issues one code per template,
at most once per (rule, student, family).
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import Family, Student
from ...models_payment import (
    DISCOUNT_EVENT_TYPES,
    AutomationRuleTemplate,
    DiscountAssignment,
    DiscountAutomationRule,
    DiscountCode,
    DiscountEvent,
    DiscountTemplate,
)
from ...shared.dates import calculate_age, to_naive_utc, utcnow
from ..families.belts import get_current_belt
from .repository import AutoDiscountRepository
from .service import DiscountCodeError, DiscountCodeService

logger = logging.getLogger(__name__)

AUTO_CODE_PREFIX = "AUTO"
AUTO_CODE_LENGTH = 8
MILESTONE_EVERY = 5
STUDENT_CONDITIONS = ("belt_rank", "attendance_count", "min_age", "max_age")


def _template_code_data(template: DiscountTemplate) -> dict:
    return {
        "name": f"{template.name} - Auto Assigned",
        "description": f"Automatically assigned: {template.description or template.name}",
        "discount_type": template.discount_type,
        "discount_value": template.discount_value,
        "usage_type": template.usage_type,
        "max_uses": template.max_uses,
        "applicable_to": list(template.applicable_to or []),
    }


class AutoDiscountService:
    """Service layer for discount templates, automation rules and the events that fire them"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AutoDiscountRepository()
        self.codes = DiscountCodeService(db)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_template(self, template_id: int) -> DiscountTemplate:
        template = self.repo.get_template(self.db, template_id)
        if not template:
            raise HTTPException(status_code=404, detail="Discount template not found")
        return template

    def list_templates(self, is_active: Optional[bool] = None) -> list[DiscountTemplate]:
        return self.repo.list_templates(self.db, is_active)

    def create_template(self, data: dict, created_by: Optional[int] = None) -> DiscountTemplate:
        template = DiscountTemplate(**data, created_by=created_by)
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        logger.info(f"🏷️ Discount template '{template.name}' created")
        return template

    def update_template(self, template_id: int, updates: dict) -> DiscountTemplate:
        template = self.get_template(template_id)
        for key, value in updates.items():
            if value is not None:
                setattr(template, key, value)
        self.db.commit()
        self.db.refresh(template)
        return template

    def delete_template(self, template_id: int) -> None:
        template = self.get_template(template_id)
        linked = (
            self.db.query(AutomationRuleTemplate.id).filter(AutomationRuleTemplate.template_id == template_id).first()
        )
        if self.repo.template_in_use(self.db, template_id) or linked:
            raise HTTPException(status_code=400, detail="Template is used by an automation rule; deactivate it instead")
        self.db.delete(template)
        self.db.commit()

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def get_rule(self, rule_id: int) -> DiscountAutomationRule:
        rule = self.repo.get_rule(self.db, rule_id)
        if not rule:
            raise HTTPException(status_code=404, detail="Automation rule not found")
        return rule

    def list_rules(self, event_type: Optional[str] = None) -> list[DiscountAutomationRule]:
        return self.repo.list_rules(self.db, event_type)

    def create_rule(self, data: dict, created_by: Optional[int] = None) -> DiscountAutomationRule:
        template_ids = list(data.pop("template_ids", None) or [])
        primary_id = data.get("discount_template_id")
        if primary_id is None and not template_ids:
            raise HTTPException(status_code=400, detail="An automation rule needs at least one discount template")
        for template_id in ([primary_id] if primary_id is not None else []) + template_ids:
            self.get_template(template_id)

        valid_from = data.pop("valid_from", None)
        valid_until = data.pop("valid_until", None)
        rule = DiscountAutomationRule(
            **data,
            valid_from=to_naive_utc(valid_from) if valid_from else utcnow(),
            valid_until=to_naive_utc(valid_until) if valid_until else None,
            created_by=created_by,
        )
        if template_ids and primary_id is not None and primary_id not in template_ids:
            template_ids.insert(0, primary_id)
        for order, template_id in enumerate(template_ids, start=1):
            rule.template_links.append(AutomationRuleTemplate(template_id=template_id, sequence_order=order))

        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"🤖 Automation rule '{rule.name}' created for {rule.event_type}")
        return rule

    def update_rule(self, rule_id: int, updates: dict) -> DiscountAutomationRule:
        rule = self.get_rule(rule_id)
        for key, value in updates.items():
            if value is None:
                continue
            if key == "discount_template_id":
                self.get_template(value)
            if key in ("valid_from", "valid_until"):
                value = to_naive_utc(value)
            setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete_rule(self, rule_id: int) -> None:
        rule = self.get_rule(rule_id)
        if self.repo.rule_has_assignments(self.db, rule_id):
            raise HTTPException(status_code=400, detail="Rule has issued discounts; deactivate it instead")
        self.db.delete(rule)
        self.db.commit()

    def rule_templates(self, rule: DiscountAutomationRule) -> list[DiscountTemplate]:
        """Active linked templates in sequence order, else the rule's single template"""
        if rule.template_links:
            templates = [link.template for link in rule.template_links]
        elif rule.template is not None:
            templates = [rule.template]
        else:
            templates = []
        return [template for template in templates if template.is_active]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def list_events(self, event_type: Optional[str] = None) -> list[DiscountEvent]:
        return self.repo.list_events(self.db, event_type)

    def list_assignments(
        self, family_id: Optional[int] = None, student_id: Optional[int] = None
    ) -> list[DiscountAssignment]:
        return self.repo.list_assignments(self.db, family_id, student_id)

    def record_event(
        self,
        event_type: str,
        student_id: Optional[int] = None,
        family_id: Optional[int] = None,
        event_data: Optional[dict] = None,
    ) -> list[DiscountCode]:
        """Store the event and issue codes for every matching rule. Returns the new codes."""
        if event_type not in DISCOUNT_EVENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Unknown discount event type: {event_type}")
        if student_id is not None and family_id is None:
            student = self.db.query(Student).filter(Student.id == student_id).first()
            if not student:
                raise HTTPException(status_code=404, detail="Student not found")
            family_id = student.family_id
        elif family_id is not None and not self.db.query(Family.id).filter(Family.id == family_id).first():
            raise HTTPException(status_code=404, detail="Family not found")

        event = DiscountEvent(event_type=event_type, student_id=student_id, family_id=family_id, event_data=event_data)
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        logger.info(f"📥 Discount event {event_type} recorded (student={student_id}, family={family_id})")

        issued = []
        for rule in self.repo.live_rules_for_event(self.db, event_type, utcnow()):
            try:
                if not self.evaluate_rule_conditions(rule, event):
                    continue
                if self.repo.assignment_exists(self.db, rule.id, event.student_id, event.family_id):
                    logger.info(f"ℹ️ Rule {rule.id} already assigned for student={student_id} family={family_id}")
                    continue
                for template in self.rule_templates(rule):
                    issued.append(self.create_discount_from_template(rule, event, template))
            except (DiscountCodeError, HTTPException, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error(f"❌ Automation rule {rule.id} failed on event {event.id}: {e}")
        return issued

    def evaluate_rule_conditions(self, rule: DiscountAutomationRule, event: DiscountEvent) -> bool:
        """
        Program filter first, then each condition present on the rule.
        Student conditions never match an event that has no student.
        """
        conditions = rule.conditions or {}
        student = None
        if event.student_id is not None:
            student = self.db.query(Student).filter(Student.id == event.student_id).first()

        if rule.applicable_programs:
            if student is None:
                return False
            enrolled = self.repo.active_program_ids(self.db, student.id)
            if not enrolled.intersection(int(p) for p in rule.applicable_programs):
                return False

        if student is None and any(key in conditions for key in STUDENT_CONDITIONS):
            return False

        if "belt_rank" in conditions:
            belt = (event.event_data or {}).get("new_belt_rank") or get_current_belt(student)
            if belt != conditions["belt_rank"]:
                return False

        if "attendance_count" in conditions:
            if self.repo.attended_count(self.db, student.id) < int(conditions["attendance_count"]):
                return False

        if "min_age" in conditions or "max_age" in conditions:
            age = calculate_age(student.birth_date)
            if age is None:
                return False
            if "min_age" in conditions and age < int(conditions["min_age"]):
                return False
            if "max_age" in conditions and age > int(conditions["max_age"]):
                return False

        if "min_family_size" in conditions:
            if event.family_id is None:
                return False
            if self.repo.family_size(self.db, event.family_id) < int(conditions["min_family_size"]):
                return False

        return True

    def create_discount_from_template(
        self, rule: DiscountAutomationRule, event: DiscountEvent, template: DiscountTemplate
    ) -> DiscountCode:
        data = _template_code_data(template)
        data["code"] = self.codes.generate_unique_code(AUTO_CODE_PREFIX, AUTO_CODE_LENGTH)
        data["valid_until"] = rule.valid_until

        # Per-student templates fall back to the family when the event has no student
        if template.scope == "per_student" and event.student_id is not None:
            data.update(scope="per_student", student_id=event.student_id)
        elif event.family_id is not None:
            data.update(scope="per_family", family_id=event.family_id)
        else:
            raise DiscountCodeError(f"Event {event.id} has neither a student nor a family to assign to")

        discount_code = self.codes.create_discount_code(data, created_by=None)
        assignment = DiscountAssignment(
            automation_rule_id=rule.id,
            discount_event_id=event.id,
            student_id=event.student_id,
            family_id=event.family_id,
            discount_code_id=discount_code.id,
        )
        self.db.add(assignment)
        self.db.commit()

        logger.info(f"🎁 Discount {discount_code.code} auto-assigned by rule '{rule.name}' for event {event.id}")
        return discount_code

    # ------------------------------------------------------------------
    # Hooks called from other domains; failures are logged, never raised
    # ------------------------------------------------------------------

    def _record_quietly(self, event_type: str, **kwargs) -> list[DiscountCode]:
        try:
            return self.record_event(event_type, **kwargs)
        except (HTTPException, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record {event_type} discount event: {e}")
            return []

    def record_student_enrollment(
        self, student_id: int, family_id: Optional[int] = None, program_id: Optional[int] = None
    ) -> list[DiscountCode]:
        event_data = {"program_id": program_id} if program_id is not None else None
        return self._record_quietly(
            "student_enrollment", student_id=student_id, family_id=family_id, event_data=event_data
        )

    def record_first_payment(self, family_id: int, payment_id: Optional[int] = None) -> list[DiscountCode]:
        """Only fires while the family has exactly one succeeded payment"""
        try:
            if self.repo.succeeded_payment_count(self.db, family_id) != 1:
                return []
        except SQLAlchemyError as e:
            logger.error(f"❌ Could not count payments for family {family_id}: {e}")
            return []
        event_data = {"payment_id": payment_id} if payment_id is not None else None
        return self._record_quietly("first_payment", family_id=family_id, event_data=event_data)

    def record_belt_promotion(self, student_id: int, new_belt_rank: str) -> list[DiscountCode]:
        return self._record_quietly(
            "belt_promotion", student_id=student_id, event_data={"new_belt_rank": new_belt_rank}
        )

    def record_attendance_milestone(self, student_id: int) -> list[DiscountCode]:
        """Fires on every fifth attended class"""
        try:
            count = self.repo.attended_count(self.db, student_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Could not count attendance for student {student_id}: {e}")
            return []
        if count == 0 or count % MILESTONE_EVERY != 0:
            return []
        return self._record_quietly(
            "attendance_milestone", student_id=student_id, event_data={"attendance_count": count}
        )
