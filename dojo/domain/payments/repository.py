"""Payment repository - Database operations for payments and tax rates"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Student
from ...models_payment import Order, Payment, TaxRate


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def get(db: Session, payment_id: int) -> Optional[Payment]:
        return (
            db.query(Payment)
            .options(joinedload(Payment.students), joinedload(Payment.taxes))
            .filter(Payment.id == payment_id)
            .first()
        )

    @staticmethod
    def get_by_intent_id(db: Session, intent_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.payment_intent_id == intent_id).first()

    @staticmethod
    def list_payments(
        db: Session,
        family_id: Optional[int] = None,
        status: Optional[str] = None,
        payment_type: Optional[str] = None,
    ) -> list[Payment]:
        query = db.query(Payment).options(joinedload(Payment.students), joinedload(Payment.taxes))
        if family_id is not None:
            query = query.filter(Payment.family_id == family_id)
        if status:
            query = query.filter(Payment.status == status)
        if payment_type:
            query = query.filter(Payment.type == payment_type)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    @staticmethod
    def stale_pending_with_intent(db: Session, older_than: datetime) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(
                Payment.status == "pending",
                Payment.payment_intent_id.isnot(None),
                Payment.created_at < older_than,
            )
            .order_by(Payment.created_at)
            .all()
        )

    @staticmethod
    def succeeded_between(db: Session, start: datetime, end: datetime) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(
                Payment.status == "succeeded",
                Payment.payment_date >= start,
                Payment.payment_date < end,
            )
            .all()
        )

    @staticmethod
    def family_students(db: Session, family_id: int, student_ids: list[int]) -> list[Student]:
        if not student_ids:
            return []
        return db.query(Student).filter(Student.family_id == family_id, Student.id.in_(student_ids)).all()

    @staticmethod
    def get_order(db: Session, order_id: int) -> Optional[Order]:
        return db.query(Order).filter(Order.id == order_id).first()

    @staticmethod
    def list_tax_rates(db: Session) -> list[TaxRate]:
        return db.query(TaxRate).order_by(TaxRate.name).all()

    @staticmethod
    def get_tax_rate(db: Session, tax_rate_id: int) -> Optional[TaxRate]:
        return db.query(TaxRate).filter(TaxRate.id == tax_rate_id).first()

    @staticmethod
    def get_tax_rate_by_name(db: Session, name: str) -> Optional[TaxRate]:
        return db.query(TaxRate).filter(TaxRate.name == name).first()
