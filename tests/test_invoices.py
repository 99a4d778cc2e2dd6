import asyncio
from datetime import date

import pytest
from fastapi import HTTPException

from dojo.domain.invoices.calculations import calculate_invoice_totals, calculate_line_item, rates_for_item
from dojo.domain.invoices.service import InvoiceService
from dojo.models_invoice import Invoice, InvoiceStatusHistory
from dojo.models_payment import TaxRate

ISSUED = date(2025, 10, 1)
DUE = date(2025, 10, 31)


def items(tax_rates):
    both = [tax_rates["GST"].id, tax_rates["PST_BC"].id]
    return [
        {
            "item_type": "class_enrollment",
            "description": "October membership",
            "quantity": 1,
            "unit_price": 12000,
            "tax_rate_ids": both,
        },
        {
            "item_type": "product",
            "description": "Sparring gloves",
            "quantity": 2,
            "unit_price": 2500,
            "discount_rate": 10,
            "tax_rate_ids": both,
        },
    ]


class TestCalculations:
    def test_line_item_discount_before_tax(self):
        gst = TaxRate(id=1, name="GST", rate=0.05)
        pst = TaxRate(id=2, name="PST_BC", rate=0.07)

        result = calculate_line_item(2, 2500, [1, 2], [gst, pst], discount_rate=10)

        assert result["line_total"] == 5000
        assert result["discount_amount"] == 500
        assert result["tax_amount"] == 540
        assert [t["tax_amount"] for t in result["taxes"]] == [225, 315]

    def test_enrollment_items_skip_pst(self):
        gst = TaxRate(id=1, name="GST", rate=0.05)
        pst = TaxRate(id=2, name="PST_BC", rate=0.07)

        assert rates_for_item("class_enrollment", [1, 2], [gst, pst]) == [gst]
        assert rates_for_item("product", [1, 2], [gst, pst]) == [gst, pst]
        assert rates_for_item("product", [2], [gst, pst]) == [pst]

    def test_invoice_totals(self):
        totals = calculate_invoice_totals(
            [
                {"line_total": 12000, "tax_amount": 600, "discount_amount": 0},
                {"line_total": 5000, "tax_amount": 540, "discount_amount": 500},
            ]
        )

        assert totals == {"subtotal": 17000, "tax_amount": 1140, "discount_amount": 500, "total_amount": 17640}


class TestInvoiceService:
    def test_create_invoice(self, db, family, tax_rates):
        invoice = InvoiceService(db).create_invoice(family.id, items(tax_rates), ISSUED, DUE, notes="Thanks!")

        assert invoice.invoice_number == "INV-2025-0001"
        assert invoice.status == "draft"
        assert invoice.subtotal == 17000
        assert invoice.tax_amount == 1140
        assert invoice.total_amount == 17640
        assert invoice.amount_due == 17640
        assert [item.sort_order for item in invoice.line_items] == [0, 1]
        assert [t.tax_name_snapshot for t in invoice.line_items[0].taxes] == ["GST"]
        assert [h.new_status for h in invoice.status_history] == ["draft"]

    def test_numbers_are_sequential_per_year(self, db, family, tax_rates):
        service = InvoiceService(db)
        service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        second = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        next_year = service.create_invoice(family.id, items(tax_rates), date(2026, 1, 5), date(2026, 2, 5))

        assert second.invoice_number == "INV-2025-0002"
        assert next_year.invoice_number == "INV-2026-0001"

    def test_rejects_bad_input(self, db, family, tax_rates):
        service = InvoiceService(db)
        with pytest.raises(HTTPException):
            service.create_invoice(family.id, [], ISSUED, DUE)
        with pytest.raises(HTTPException):
            service.create_invoice(family.id, items(tax_rates), DUE, ISSUED)
        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(999, items(tax_rates), ISSUED, DUE)
        assert exc_info.value.status_code == 404

    def test_unknown_tax_rate(self, db, family):
        line = {"item_type": "fee", "description": "Testing fee", "quantity": 1, "unit_price": 4000, "tax_rate_ids": [42]}

        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db).create_invoice(family.id, [line], ISSUED, DUE)
        assert exc_info.value.status_code == 400

    def test_partial_then_full_payment(self, db, family, tax_rates):
        service = InvoiceService(db)
        invoice = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)

        partial = service.record_invoice_payment(invoice.id, 10000, "cash", date(2025, 10, 5))
        assert partial.status == "partially_paid"
        assert partial.amount_due == 7640

        with pytest.raises(HTTPException):
            service.record_invoice_payment(invoice.id, 8000, "cash", date(2025, 10, 6))

        paid = service.record_invoice_payment(invoice.id, 7640, "card", date(2025, 10, 7), reference_number="R-7")
        assert paid.status == "paid"
        assert paid.amount_due == 0
        assert paid.paid_at is not None
        assert len(paid.payments) == 2

    def test_line_items_only_change_on_drafts(self, db, family, tax_rates):
        service = InvoiceService(db)
        invoice = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)

        updated = service.update_invoice(invoice.id, {"line_items": items(tax_rates)[:1], "notes": "Membership only"})
        assert updated.total_amount == 12600
        assert updated.notes == "Membership only"

        service.update_invoice_status(invoice.id, "sent")
        with pytest.raises(HTTPException):
            service.update_invoice(invoice.id, {"line_items": items(tax_rates)})

    def test_delete_draft_and_cancel_sent(self, db, family, tax_rates):
        service = InvoiceService(db)
        draft = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        sent = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        service.update_invoice_status(sent.id, "sent")

        assert service.delete_invoice(draft.id) is None
        cancelled = service.delete_invoice(sent.id)

        assert db.query(Invoice).filter(Invoice.id == draft.id).first() is None
        assert cancelled.status == "cancelled"

    def test_invoice_with_payments_cannot_be_deleted(self, db, family, tax_rates):
        service = InvoiceService(db)
        invoice = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        service.record_invoice_payment(invoice.id, 1000, "cash", date(2025, 10, 2))

        with pytest.raises(HTTPException):
            service.delete_invoice(invoice.id)

    def test_stats_ignore_cancelled(self, db, family, tax_rates):
        service = InvoiceService(db)
        kept = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        dropped = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)
        service.update_invoice_status(dropped.id, "cancelled")
        service.record_invoice_payment(kept.id, 7640, "cash", date(2025, 10, 2))

        stats = service.get_invoice_stats()

        assert stats["total_invoices"] == 1
        assert stats["total_amount"] == 17640
        assert stats["paid_amount"] == 7640
        assert stats["outstanding_amount"] == 10000
        # due 2025-10-31 has passed
        assert stats["overdue_count"] == 1

    def test_send_invoice_emails_family(self, db, family, tax_rates, outbox):
        service = InvoiceService(db)
        invoice = service.create_invoice(family.id, items(tax_rates), ISSUED, DUE)

        sent = asyncio.run(service.send_invoice(invoice.id))

        assert sent.status == "sent"
        assert sent.sent_at is not None
        assert outbox[0]["to"] == "tanaka@example.com"
        assert outbox[0]["subject"].startswith("Invoice INV-2025-0001")
        history = db.query(InvoiceStatusHistory).filter(InvoiceStatusHistory.invoice_id == invoice.id).all()
        assert [h.new_status for h in history] == ["draft", "sent"]
