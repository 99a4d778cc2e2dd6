"""Invoice router - FastAPI endpoints for family invoices"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import ensure_family_access, get_current_user, is_staff, require_staff
from ...database import get_db
from ...models import Profile
from .schemas import (
    InvoiceCreate,
    InvoicePaymentCreate,
    InvoiceResponse,
    InvoiceStatsResponse,
    InvoiceStatusUpdate,
    InvoiceUpdate,
)
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db)


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = Query(None),
    family_id: Optional[int] = Query(None),
    current_user: Profile = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    if not is_staff(current_user):
        if current_user.family_id is None:
            return []
        family_id = current_user.family_id
    return service.list_invoices(status, family_id)


@router.get("/stats", response_model=InvoiceStatsResponse)
async def get_invoice_stats(
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoice_stats()


@router.get("/by-number/{invoice_number}", response_model=InvoiceResponse)
async def get_invoice_by_number(
    invoice_number: str,
    current_user: Profile = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = service.get_invoice_by_number(invoice_number)
    ensure_family_access(current_user, invoice.family_id)
    return service.get_invoice(invoice.id)


@router.post("", response_model=InvoiceResponse)
async def create_invoice(
    data: InvoiceCreate,
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.create_invoice(
        data.family_id,
        [item.model_dump() for item in data.line_items],
        data.issue_date,
        data.due_date,
        data.notes,
        data.terms,
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: Profile = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = service.get_invoice(invoice_id)
    ensure_family_access(current_user, invoice.family_id)
    if not is_staff(current_user) and invoice.status == "sent":
        invoice = service.update_invoice_status(invoice_id, "viewed", "Viewed by family")
    return invoice


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    updates = data.model_dump(exclude_unset=True)
    if data.line_items is not None:
        updates["line_items"] = [item.model_dump() for item in data.line_items]
    return service.update_invoice(invoice_id, updates)


@router.put("/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: int,
    data: InvoiceStatusUpdate,
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.update_invoice_status(invoice_id, data.status, data.notes)


@router.post("/{invoice_id}/payments", response_model=InvoiceResponse)
async def record_invoice_payment(
    invoice_id: int,
    data: InvoicePaymentCreate,
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.record_invoice_payment(
        invoice_id, data.amount, data.payment_method, data.payment_date, data.reference_number, data.notes
    )


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: int,
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.send_invoice(invoice_id)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    current_user: Profile = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    cancelled = service.delete_invoice(invoice_id)
    if cancelled is None:
        return {"message": "Invoice deleted"}
    return {"message": "Invoice cancelled", "status": cancelled.status}
