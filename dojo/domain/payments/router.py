"""Payment router - FastAPI endpoints for payments, options and tax rates"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import ensure_family_access, ensure_student_access, get_current_user, is_staff, require_admin
from ...database import get_db
from ...models import Profile
from ...rate_limiter import create_rate_limiter
from .schemas import (
    PaymentCreate,
    PaymentEligibilityResponse,
    PaymentIntentResponse,
    PaymentResponse,
    SquareConfirmRequest,
    TaxRateCreate,
    TaxRateResponse,
    TaxRateUpdate,
)
from .options import PRICED_PAYMENT_TYPES
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

payment_intent_limiter = create_rate_limiter(limit=10, window_seconds=60, key_prefix="payment_intent")

# Types a family may start on its own; everything else is entered by staff
FAMILY_PAYMENT_TYPES = (*PRICED_PAYMENT_TYPES, "store_purchase")


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


# ============================================================================
# TAX RATES
# ============================================================================


@router.get("/tax-rates", response_model=list[TaxRateResponse])
async def list_tax_rates(
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.list_tax_rates()


@router.post("/tax-rates", response_model=TaxRateResponse)
async def create_tax_rate(
    data: TaxRateCreate,
    current_user: Profile = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_tax_rate(data.model_dump())


@router.put("/tax-rates/{tax_rate_id}", response_model=TaxRateResponse)
async def update_tax_rate(
    tax_rate_id: int,
    data: TaxRateUpdate,
    current_user: Profile = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return service.update_tax_rate(tax_rate_id, data.model_dump(exclude_unset=True))


# ============================================================================
# OPTIONS AND ELIGIBILITY
# ============================================================================


@router.get("/options/students/{student_id}")
async def get_student_payment_options(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    ensure_student_access(service.db, current_user, student_id)
    return service.get_student_payment_options(student_id)


@router.get("/options/families/{family_id}")
async def get_family_payment_options(
    family_id: int,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    ensure_family_access(current_user, family_id)
    return service.get_family_payment_options(family_id)


@router.get("/eligibility/students/{student_id}", response_model=PaymentEligibilityResponse)
async def get_student_payment_eligibility(
    student_id: int,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    ensure_student_access(service.db, current_user, student_id)
    return service.get_student_payment_eligibility(student_id)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    family_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    payment_type: Optional[str] = Query(None, alias="type"),
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    if not is_staff(current_user):
        if current_user.family_id is None:
            return []
        family_id = current_user.family_id
    return service.list_payments(family_id, status, payment_type)


@router.post("", response_model=PaymentResponse)
async def create_payment(
    data: PaymentCreate,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    ensure_family_access(current_user, data.family_id)

    subtotal_amount = data.subtotal_amount
    if not is_staff(current_user):
        if data.type not in FAMILY_PAYMENT_TYPES:
            raise HTTPException(status_code=403, detail=f"{data.type} payments are created by staff")
        if subtotal_amount is not None:
            logger.warning(f"⚠️ Ignoring client subtotal {subtotal_amount} from profile {current_user.id}")
        # Families always pay the server price
        subtotal_amount = None

    return service.create_payment(
        data.family_id,
        data.type,
        data.student_ids,
        subtotal_amount,
        data.discount_code,
        data.order_id,
        data.notes,
        quantity=data.quantity,
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.get_payment(payment_id)
    ensure_family_access(current_user, payment.family_id)
    return payment


@router.post("/{payment_id}/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payment_id: int,
    _: None = Depends(payment_intent_limiter),
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.get_payment(payment_id)
    ensure_family_access(current_user, payment.family_id)
    return await service.create_payment_intent(payment_id)


@router.post("/{payment_id}/confirm", response_model=PaymentResponse)
async def confirm_square_payment(
    payment_id: int,
    data: SquareConfirmRequest,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.get_payment(payment_id)
    ensure_family_access(current_user, payment.family_id)
    return await service.confirm_square_payment(payment_id, data.source_id)


@router.post("/{payment_id}/cancel", response_model=PaymentResponse)
async def cancel_payment(
    payment_id: int,
    current_user: Profile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.get_payment(payment_id)
    ensure_family_access(current_user, payment.family_id)
    return await service.cancel_payment(payment_id)
