"""Invoice service - creating, paying and sending family invoices"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import EmailDeliveryError, send_invoice_email
from ...models import Family
from ...models_invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceLineItemTax,
    InvoicePayment,
    InvoiceStatusHistory,
)
from ...shared.dates import utcnow
from ...shared.money import format_cents
from ..payments.taxes import get_active_tax_rates
from .calculations import calculate_invoice_totals, calculate_line_item, rates_for_item
from .repository import InvoiceRepository
from .schemas import INVOICE_STATUSES

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service layer for invoices"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.repo.get(self.db, invoice_id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def get_invoice_by_number(self, invoice_number: str) -> Invoice:
        invoice = self.repo.get_by_number(self.db, invoice_number)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def list_invoices(self, status: Optional[str] = None, family_id: Optional[int] = None) -> list[Invoice]:
        return self.repo.list_invoices(self.db, status, family_id)

    def generate_invoice_number(self, issue_date: Optional[date] = None) -> str:
        """INV-YYYY-NNNN, sequential within the year"""
        year = (issue_date or utcnow().date()).year
        highest = 0
        for number in self.repo.numbers_for_year(self.db, year):
            suffix = number.rsplit("-", 1)[-1]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"INV-{year}-{highest + 1:04d}"

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def _build_line_items(self, invoice: Invoice, items: list[dict]) -> list[dict]:
        active_rates = get_active_tax_rates(self.db)
        known_ids = {rate.id for rate in active_rates}

        calculated = []
        for sort_order, item in enumerate(items):
            unknown = set(item.get("tax_rate_ids") or []) - known_ids
            if unknown:
                raise HTTPException(status_code=400, detail=f"Unknown or inactive tax rates: {sorted(unknown)}")

            rates = rates_for_item(item.get("item_type", "other"), item.get("tax_rate_ids") or [], active_rates)
            result = calculate_line_item(
                item["quantity"], item["unit_price"], [r.id for r in rates], rates, item.get("discount_rate", 0)
            )

            line_item = InvoiceLineItem(
                item_type=item.get("item_type", "other"),
                description=item["description"],
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                line_total=result["line_total"],
                discount_rate=item.get("discount_rate", 0) or 0,
                discount_amount=result["discount_amount"],
                tax_amount=result["tax_amount"],
                sort_order=sort_order,
            )
            line_item.taxes = [InvoiceLineItemTax(**tax) for tax in result["taxes"]]
            invoice.line_items.append(line_item)
            calculated.append(result)
        return calculated

    def _apply_totals(self, invoice: Invoice, calculated: list[dict]) -> None:
        totals = calculate_invoice_totals(calculated)
        invoice.subtotal = totals["subtotal"]
        invoice.tax_amount = totals["tax_amount"]
        invoice.discount_amount = totals["discount_amount"]
        invoice.total_amount = totals["total_amount"]
        invoice.amount_due = totals["total_amount"] - (invoice.amount_paid or 0)

    def _record_status(self, invoice: Invoice, new_status: str, notes: Optional[str] = None) -> None:
        self.db.add(
            InvoiceStatusHistory(invoice_id=invoice.id, old_status=invoice.status, new_status=new_status, notes=notes)
        )
        invoice.status = new_status
        if new_status == "sent" and invoice.sent_at is None:
            invoice.sent_at = utcnow()
        elif new_status == "paid":
            invoice.paid_at = utcnow()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_invoice(
        self,
        family_id: int,
        line_items: list[dict],
        issue_date: date,
        due_date: date,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
    ) -> Invoice:
        if not self.db.query(Family.id).filter(Family.id == family_id).first():
            raise HTTPException(status_code=404, detail="Family not found")
        if not line_items:
            raise HTTPException(status_code=400, detail="An invoice needs at least one line item")
        if due_date < issue_date:
            raise HTTPException(status_code=400, detail="due_date cannot be before issue_date")

        invoice = Invoice(
            invoice_number=self.generate_invoice_number(issue_date),
            family_id=family_id,
            status="draft",
            issue_date=issue_date,
            due_date=due_date,
            amount_paid=0,
            notes=notes,
            terms=terms,
        )
        self._apply_totals(invoice, self._build_line_items(invoice, line_items))
        self.db.add(invoice)
        self.db.flush()
        self.db.add(InvoiceStatusHistory(invoice_id=invoice.id, old_status=None, new_status="draft", notes="Invoice created"))
        self.db.commit()

        logger.info(f"🧾 Invoice {invoice.invoice_number} created for family {family_id}: {format_cents(invoice.total_amount)}")
        return self.get_invoice(invoice.id)

    def update_invoice(self, invoice_id: int, updates: dict) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status == "cancelled":
            raise HTTPException(status_code=400, detail="Cancelled invoices cannot be changed")

        line_items = updates.pop("line_items", None)
        if line_items is not None:
            if invoice.status != "draft":
                raise HTTPException(status_code=400, detail="Only draft invoices can change line items")
            if not line_items:
                raise HTTPException(status_code=400, detail="An invoice needs at least one line item")
            invoice.line_items.clear()
            self.db.flush()
            self._apply_totals(invoice, self._build_line_items(invoice, line_items))

        for key, value in updates.items():
            if value is not None:
                setattr(invoice, key, value)
        if invoice.due_date < invoice.issue_date:
            raise HTTPException(status_code=400, detail="due_date cannot be before issue_date")

        self.db.commit()
        return self.get_invoice(invoice.id)

    def update_invoice_status(self, invoice_id: int, status: str, notes: Optional[str] = None) -> Invoice:
        if status not in INVOICE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid invoice status: {status}")
        invoice = self.get_invoice(invoice_id)
        if invoice.status == status:
            return invoice

        self._record_status(invoice, status, notes)
        self.db.commit()
        logger.info(f"🧾 Invoice {invoice.invoice_number} -> {status}")
        return self.get_invoice(invoice.id)

    def record_invoice_payment(
        self,
        invoice_id: int,
        amount: int,
        payment_method: str,
        payment_date: date,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status in ("cancelled", "paid"):
            raise HTTPException(status_code=400, detail=f"Cannot record a payment on a {invoice.status} invoice")
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Payment amount must be greater than zero")
        if amount > invoice.amount_due:
            raise HTTPException(status_code=400, detail="Payment amount exceeds the amount due")

        self.db.add(
            InvoicePayment(
                invoice_id=invoice.id,
                amount=amount,
                payment_method=payment_method,
                payment_date=payment_date,
                reference_number=reference_number,
                notes=notes,
            )
        )
        invoice.amount_paid += amount
        invoice.amount_due -= amount

        new_status = "paid" if invoice.amount_due == 0 else "partially_paid"
        if new_status != invoice.status:
            self._record_status(invoice, new_status, f"Payment of {format_cents(amount)} recorded")

        self.db.commit()
        logger.info(f"💰 Invoice {invoice.invoice_number}: {format_cents(amount)} received, {format_cents(invoice.amount_due)} due")
        return self.get_invoice(invoice.id)

    def delete_invoice(self, invoice_id: int) -> Optional[Invoice]:
        """Drafts are deleted; anything else is cancelled. Returns the cancelled invoice, or None."""
        invoice = self.get_invoice(invoice_id)
        if invoice.payments:
            raise HTTPException(status_code=400, detail="Cannot delete an invoice with recorded payments")

        if invoice.status == "draft":
            self.db.delete(invoice)
            self.db.commit()
            logger.info(f"🗑️ Draft invoice {invoice.invoice_number} deleted")
            return None

        self._record_status(invoice, "cancelled", "Invoice cancelled via deletion")
        self.db.commit()
        return self.get_invoice(invoice.id)

    def get_invoice_stats(self) -> dict:
        today = utcnow().date()
        invoices = self.repo.non_cancelled(self.db)
        return {
            "total_invoices": len(invoices),
            "total_amount": sum(i.total_amount for i in invoices),
            "paid_amount": sum(i.amount_paid for i in invoices),
            "outstanding_amount": sum(i.amount_due for i in invoices),
            "overdue_count": sum(1 for i in invoices if i.status != "paid" and i.due_date < today),
        }

    async def send_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status == "cancelled":
            raise HTTPException(status_code=400, detail="Cancelled invoices cannot be sent")

        family = invoice.family
        if not family or not family.email:
            raise HTTPException(status_code=400, detail="Family has no email address")

        try:
            await send_invoice_email(
                to=family.email,
                family_name=family.name,
                invoice_number=invoice.invoice_number,
                amount_due=format_cents(invoice.amount_due),
                due_date=invoice.due_date.strftime("%B %d, %Y"),
                line_items=[
                    {
                        "description": item.description,
                        "quantity": item.quantity,
                        "line_total": format_cents(item.line_total),
                    }
                    for item in invoice.line_items
                ],
            )
        except EmailDeliveryError as e:
            logger.error(f"❌ Failed to email invoice {invoice.invoice_number}: {e}")
            raise HTTPException(status_code=502, detail="Invoice email could not be sent") from e

        if invoice.status == "draft":
            self._record_status(invoice, "sent", "Invoice emailed to family")
        else:
            invoice.sent_at = utcnow()
        self.db.commit()

        logger.info(f"📧 Invoice {invoice.invoice_number} sent to {family.email}")
        return self.get_invoice(invoice.id)
