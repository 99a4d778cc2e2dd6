"""Discount code router - FastAPI endpoints for discount codes and automatic discounts"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import ensure_family_access, ensure_student_access, get_current_user, require_admin
from ...database import get_db
from ...models import Profile
from ...rate_limiter import create_rate_limiter
from .automation import AutoDiscountService
from .schemas import (
    AutomaticDiscountCreate,
    AutomationRuleCreate,
    AutomationRuleResponse,
    AutomationRuleUpdate,
    DiscountAssignmentResponse,
    DiscountCodeCreate,
    DiscountCodeResponse,
    DiscountCodeUpdate,
    DiscountEventCreate,
    DiscountEventResponse,
    DiscountTemplateCreate,
    DiscountTemplateResponse,
    DiscountTemplateUpdate,
    DiscountUsageResponse,
    DiscountValidateRequest,
    DiscountValidationResponse,
)
from .service import DiscountCodeError, DiscountCodeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discount-codes", tags=["Discount Codes"])
automation_router = APIRouter(prefix="/discount-automation", tags=["Discount Automation"])

# Guessing codes is the obvious abuse, keep validation tight
validate_code_limiter = create_rate_limiter(limit=20, window_seconds=60, key_prefix="discount_validate")


def get_discount_service(db: Session = Depends(get_db)) -> DiscountCodeService:
    """Dependency injection for DiscountCodeService"""
    return DiscountCodeService(db)


def get_auto_discount_service(db: Session = Depends(get_db)) -> AutoDiscountService:
    return AutoDiscountService(db)


# ============================================================================
# VALIDATION
# ============================================================================


@router.post("/validate", response_model=DiscountValidationResponse)
async def validate_discount_code(
    data: DiscountValidateRequest,
    _: None = Depends(validate_code_limiter),
    current_user: Profile = Depends(get_current_user),
    service: DiscountCodeService = Depends(get_discount_service),
):
    ensure_family_access(current_user, data.family_id)
    result = service.validate_discount_code(
        data.code, data.family_id, data.student_id, data.subtotal_amount, data.applicable_to
    )
    return asdict(result)


# ============================================================================
# USAGE
# ============================================================================


@router.get("/usage/families/{family_id}", response_model=list[DiscountUsageResponse])
async def get_family_discount_usage(
    family_id: int,
    current_user: Profile = Depends(get_current_user),
    service: DiscountCodeService = Depends(get_discount_service),
):
    ensure_family_access(current_user, family_id)
    return service.get_family_discount_usage(family_id)


@router.get("/usage/students/{student_id}", response_model=list[DiscountUsageResponse])
async def get_student_discount_usage(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: DiscountCodeService = Depends(get_discount_service),
):
    ensure_student_access(service.db, current_user, student_id)
    return service.get_student_discount_usage(student_id)


# ============================================================================
# ADMIN CRUD
# ============================================================================


@router.get("", response_model=list[DiscountCodeResponse])
async def list_discount_codes(
    is_active: Optional[bool] = Query(None),
    family_id: Optional[int] = Query(None),
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    return service.list_discount_codes(is_active, family_id)


@router.post("", response_model=DiscountCodeResponse)
async def create_discount_code(
    data: DiscountCodeCreate,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    try:
        return service.create_discount_code(data.model_dump(), created_by=current_user.id)
    except DiscountCodeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/automatic", response_model=DiscountCodeResponse)
async def create_automatic_discount_code(
    data: AutomaticDiscountCreate,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    try:
        return service.create_automatic_discount_code(**data.model_dump())
    except DiscountCodeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/{discount_code_id}", response_model=DiscountCodeResponse)
async def get_discount_code(
    discount_code_id: int,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    return service.get_discount_code(discount_code_id)


@router.put("/{discount_code_id}", response_model=DiscountCodeResponse)
async def update_discount_code(
    discount_code_id: int,
    data: DiscountCodeUpdate,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    return service.update_discount_code(discount_code_id, data.model_dump(exclude_unset=True))


@router.post("/{discount_code_id}/activate", response_model=DiscountCodeResponse)
async def activate_discount_code(
    discount_code_id: int,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    return service.activate_discount_code(discount_code_id)


@router.post("/{discount_code_id}/deactivate", response_model=DiscountCodeResponse)
async def deactivate_discount_code(
    discount_code_id: int,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    return service.deactivate_discount_code(discount_code_id)


@router.delete("/{discount_code_id}")
async def delete_discount_code(
    discount_code_id: int,
    current_user: Profile = Depends(require_admin),
    service: DiscountCodeService = Depends(get_discount_service),
):
    service.delete_discount_code(discount_code_id)
    return {"message": "Discount code deleted"}


# ============================================================================
# AUTOMATIC DISCOUNTS
# ============================================================================


@automation_router.get("/templates", response_model=list[DiscountTemplateResponse])
async def list_discount_templates(
    is_active: Optional[bool] = Query(None),
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.list_templates(is_active)


@automation_router.post("/templates", response_model=DiscountTemplateResponse)
async def create_discount_template(
    data: DiscountTemplateCreate,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.create_template(data.model_dump(), created_by=current_user.id)


@automation_router.put("/templates/{template_id}", response_model=DiscountTemplateResponse)
async def update_discount_template(
    template_id: int,
    data: DiscountTemplateUpdate,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.update_template(template_id, data.model_dump(exclude_unset=True))


@automation_router.delete("/templates/{template_id}")
async def delete_discount_template(
    template_id: int,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    service.delete_template(template_id)
    return {"message": "Discount template deleted"}


@automation_router.get("/rules", response_model=list[AutomationRuleResponse])
async def list_automation_rules(
    event_type: Optional[str] = Query(None),
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.list_rules(event_type)


@automation_router.post("/rules", response_model=AutomationRuleResponse)
async def create_automation_rule(
    data: AutomationRuleCreate,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.create_rule(data.model_dump(), created_by=current_user.id)


@automation_router.put("/rules/{rule_id}", response_model=AutomationRuleResponse)
async def update_automation_rule(
    rule_id: int,
    data: AutomationRuleUpdate,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.update_rule(rule_id, data.model_dump(exclude_unset=True))


@automation_router.delete("/rules/{rule_id}")
async def delete_automation_rule(
    rule_id: int,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    service.delete_rule(rule_id)
    return {"message": "Automation rule deleted"}


@automation_router.get("/events", response_model=list[DiscountEventResponse])
async def list_discount_events(
    event_type: Optional[str] = Query(None),
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.list_events(event_type)


@automation_router.post("/events", response_model=list[DiscountCodeResponse])
async def record_discount_event(
    data: DiscountEventCreate,
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    """Record a staff-observed event (referral, birthday, promotion) and return any codes it issued"""
    return service.record_event(data.event_type, data.student_id, data.family_id, data.event_data)


@automation_router.get("/assignments", response_model=list[DiscountAssignmentResponse])
async def list_discount_assignments(
    family_id: Optional[int] = Query(None),
    student_id: Optional[int] = Query(None),
    current_user: Profile = Depends(require_admin),
    service: AutoDiscountService = Depends(get_auto_discount_service),
):
    return service.list_assignments(family_id, student_id)
