"""
Discount code service

Codes are either tied to one family (per_family) or one student
(per_student). fixed_amount values are cents; percentage values are 0-100.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Family, Student
from ...models_payment import DiscountCode, DiscountCodeUsage
from ...shared.dates import to_naive_utc, utcnow
from ...shared.money import percent_of
from .repository import DiscountCodeRepository

logger = logging.getLogger(__name__)

CODE_CHARSET = string.ascii_uppercase + string.digits
CODE_GENERATION_ATTEMPTS = 10
AUTOMATIC_CODE_PREFIX = "AUTO"
AUTOMATIC_CODE_LENGTH = 6


class DiscountCodeError(Exception):
    """Raised when a discount code cannot be created or applied"""


@dataclass
class DiscountValidationResult:
    is_valid: bool
    discount_code_id: Optional[int] = None
    discount_amount: int = 0
    error_message: Optional[str] = None


def calculate_discount_amount(discount_code: DiscountCode, subtotal_amount: int) -> int:
    """Never more than the subtotal"""
    if discount_code.discount_type == "fixed_amount":
        amount = int(discount_code.discount_value)
    else:
        amount = percent_of(subtotal_amount, discount_code.discount_value)
    return max(0, min(amount, subtotal_amount))


def check_association(scope: str, family_id: Optional[int], student_id: Optional[int]) -> None:
    if family_id is not None and student_id is not None:
        raise DiscountCodeError("A discount code cannot be tied to both a family and a student")
    if family_id is None and student_id is None:
        raise DiscountCodeError("A discount code must be tied to a family or a student")
    if scope == "per_family" and family_id is None:
        raise DiscountCodeError("per_family discount codes require a family_id")
    if scope == "per_student" and student_id is None:
        raise DiscountCodeError("per_student discount codes require a student_id")


class DiscountCodeService:
    """Service layer for discount codes"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DiscountCodeRepository()

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    def generate_unique_code(self, prefix: str = "", length: int = 8) -> str:
        for _ in range(CODE_GENERATION_ATTEMPTS):
            code = prefix + "".join(secrets.choice(CODE_CHARSET) for _ in range(length))
            if not self.repo.code_exists(self.db, code):
                return code
        raise DiscountCodeError(f"Could not generate a unique discount code after {CODE_GENERATION_ATTEMPTS} attempts")

    def get_discount_code(self, discount_code_id: int) -> DiscountCode:
        discount_code = self.repo.get(self.db, discount_code_id)
        if not discount_code:
            raise HTTPException(status_code=404, detail="Discount code not found")
        return discount_code

    def get_by_code(self, code: str) -> Optional[DiscountCode]:
        """Active codes only"""
        return self.repo.get_by_code(self.db, code)

    def list_discount_codes(self, is_active: Optional[bool] = None, family_id: Optional[int] = None) -> list[dict]:
        codes = self.repo.list_codes(self.db, is_active, family_id)
        counts = self.repo.usage_counts(self.db, [c.id for c in codes])
        results = []
        for code in codes:
            row = {column.name: getattr(code, column.name) for column in DiscountCode.__table__.columns}
            row["usage_count"] = counts.get(code.id, 0)
            results.append(row)
        return results

    def create_discount_code(self, data: dict, created_by: Optional[int] = None) -> DiscountCode:
        scope = data.get("scope", "per_family")
        family_id = data.get("family_id")
        student_id = data.get("student_id")
        check_association(scope, family_id, student_id)

        if family_id is not None and not self.db.query(Family.id).filter(Family.id == family_id).first():
            raise HTTPException(status_code=404, detail="Family not found")
        if student_id is not None and not self.db.query(Student.id).filter(Student.id == student_id).first():
            raise HTTPException(status_code=404, detail="Student not found")

        code = data.get("code") or self.generate_unique_code()
        if self.repo.code_exists(self.db, code):
            raise HTTPException(status_code=409, detail=f"Discount code {code} already exists")

        valid_from = data.get("valid_from")
        valid_until = data.get("valid_until")

        discount_code = DiscountCode(
            code=code,
            name=data["name"],
            description=data.get("description"),
            discount_type=data["discount_type"],
            discount_value=data["discount_value"],
            usage_type=data.get("usage_type", "one_time"),
            max_uses=data.get("max_uses"),
            applicable_to=list(data.get("applicable_to") or ["monthly_group", "yearly_group"]),
            scope=scope,
            family_id=family_id,
            student_id=student_id,
            is_active=True,
            valid_from=to_naive_utc(valid_from) if valid_from else utcnow(),
            valid_until=to_naive_utc(valid_until) if valid_until else None,
            created_by=created_by,
            created_automatically=created_by is None,
        )
        self.db.add(discount_code)
        self.db.commit()
        self.db.refresh(discount_code)

        logger.info(f"🏷️ Discount code {discount_code.code} created ({discount_code.discount_type} {discount_code.discount_value})")
        return discount_code

    def create_automatic_discount_code(
        self,
        name: str,
        discount_type: str,
        discount_value: float,
        family_id: Optional[int] = None,
        student_id: Optional[int] = None,
        applicable_to: Optional[list[str]] = None,
        scope: str = "per_family",
        valid_until: Optional[datetime] = None,
    ) -> DiscountCode:
        if family_id is None and student_id is None:
            raise DiscountCodeError("Automatic discount codes need a family_id or a student_id")
        if student_id is not None and family_id is None:
            scope = "per_student"

        code = self.generate_unique_code(AUTOMATIC_CODE_PREFIX, AUTOMATIC_CODE_LENGTH)
        return self.create_discount_code(
            {
                "code": code,
                "name": name,
                "description": "Automatically generated discount",
                "discount_type": discount_type,
                "discount_value": discount_value,
                "usage_type": "one_time",
                "max_uses": 1,
                "applicable_to": applicable_to or ["monthly_group", "yearly_group"],
                "scope": scope,
                "family_id": family_id,
                "student_id": student_id,
                "valid_until": valid_until,
            },
            created_by=None,
        )

    def update_discount_code(self, discount_code_id: int, updates: dict) -> DiscountCode:
        discount_code = self.get_discount_code(discount_code_id)
        for key, value in updates.items():
            if value is None:
                continue
            if key == "valid_until":
                value = to_naive_utc(value)
            setattr(discount_code, key, value)
        self.db.commit()
        self.db.refresh(discount_code)
        return discount_code

    def set_active(self, discount_code_id: int, is_active: bool) -> DiscountCode:
        discount_code = self.get_discount_code(discount_code_id)
        discount_code.is_active = is_active
        self.db.commit()
        self.db.refresh(discount_code)
        logger.info(f"🏷️ Discount code {discount_code.code} {'activated' if is_active else 'deactivated'}")
        return discount_code

    def activate_discount_code(self, discount_code_id: int) -> DiscountCode:
        return self.set_active(discount_code_id, True)

    def deactivate_discount_code(self, discount_code_id: int) -> DiscountCode:
        return self.set_active(discount_code_id, False)

    def delete_discount_code(self, discount_code_id: int) -> None:
        discount_code = self.get_discount_code(discount_code_id)
        if discount_code.current_uses > 0:
            raise HTTPException(status_code=400, detail="Cannot delete a discount code that has been used; deactivate it instead")
        self.db.delete(discount_code)
        self.db.commit()

    # ------------------------------------------------------------------
    # Validation and usage
    # ------------------------------------------------------------------

    def validate_discount_code(
        self,
        code: str,
        family_id: int,
        student_id: Optional[int],
        subtotal_amount: int,
        applicable_to: str,
    ) -> DiscountValidationResult:
        discount_code = self.repo.get_by_code(self.db, code)
        if not discount_code:
            return DiscountValidationResult(False, error_message="Invalid or inactive discount code")

        now = utcnow()
        if discount_code.valid_from and now < discount_code.valid_from:
            return DiscountValidationResult(False, error_message="Discount code is not yet valid")
        if discount_code.valid_until and now > discount_code.valid_until:
            return DiscountValidationResult(False, error_message="Discount code has expired")
        if discount_code.max_uses is not None and discount_code.current_uses >= discount_code.max_uses:
            return DiscountValidationResult(False, error_message="Discount code usage limit reached")
        if applicable_to not in (discount_code.applicable_to or []):
            return DiscountValidationResult(
                False, error_message="Discount code is not applicable to this payment type"
            )

        if discount_code.scope == "per_family" and discount_code.family_id not in (None, family_id):
            return DiscountValidationResult(False, error_message="Discount code is not valid for this family")
        if discount_code.scope == "per_student" and (student_id is None or discount_code.student_id != student_id):
            return DiscountValidationResult(False, error_message="Discount code is not valid for this student")

        if discount_code.usage_type == "one_time":
            if discount_code.scope == "per_student":
                used = self.repo.has_been_used_by(self.db, discount_code.id, student_id=student_id)
            else:
                used = self.repo.has_been_used_by(self.db, discount_code.id, family_id=family_id)
            if used:
                return DiscountValidationResult(False, error_message="Discount code has already been used")

        return DiscountValidationResult(
            True,
            discount_code_id=discount_code.id,
            discount_amount=calculate_discount_amount(discount_code, subtotal_amount),
        )

    def apply_discount_code(
        self,
        discount_code_id: int,
        payment_id: int,
        family_id: int,
        discount_amount: int,
        student_id: Optional[int] = None,
        original_amount: int = 0,
        commit: bool = True,
    ) -> DiscountCodeUsage:
        discount_code = self.repo.get(self.db, discount_code_id)
        if not discount_code:
            raise DiscountCodeError(f"Discount code {discount_code_id} not found")

        usage = DiscountCodeUsage(
            discount_code_id=discount_code_id,
            payment_id=payment_id,
            family_id=family_id,
            student_id=student_id,
            discount_amount=discount_amount,
            original_amount=original_amount,
            final_amount=original_amount - discount_amount,
        )
        self.db.add(usage)
        discount_code.current_uses = (discount_code.current_uses or 0) + 1

        if commit:
            self.db.commit()
            self.db.refresh(usage)

        logger.info(f"🏷️ Discount code {discount_code.code} applied to payment {payment_id} (-{discount_amount})")
        return usage

    def get_family_discount_usage(self, family_id: int) -> list[DiscountCodeUsage]:
        return self.repo.usage_for_family(self.db, family_id)

    def get_student_discount_usage(self, student_id: int) -> list[DiscountCodeUsage]:
        return self.repo.usage_for_student(self.db, student_id)
