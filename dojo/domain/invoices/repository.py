"""Invoice repository"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models_invoice import Invoice, InvoiceLineItem


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def get(db: Session, invoice_id: int) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .options(
                joinedload(Invoice.line_items).joinedload(InvoiceLineItem.taxes),
                joinedload(Invoice.payments),
                joinedload(Invoice.status_history),
            )
            .filter(Invoice.id == invoice_id)
            .first()
        )

    @staticmethod
    def get_by_number(db: Session, invoice_number: str) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()

    @staticmethod
    def list_invoices(db: Session, status: Optional[str] = None, family_id: Optional[int] = None) -> list[Invoice]:
        query = db.query(Invoice)
        if status:
            query = query.filter(Invoice.status == status)
        if family_id is not None:
            query = query.filter(Invoice.family_id == family_id)
        return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()

    @staticmethod
    def numbers_for_year(db: Session, year: int) -> list[str]:
        rows = db.query(Invoice.invoice_number).filter(Invoice.invoice_number.like(f"INV-{year}-%")).all()
        return [row[0] for row in rows]

    @staticmethod
    def non_cancelled(db: Session) -> list[Invoice]:
        return db.query(Invoice).filter(Invoice.status != "cancelled").all()
