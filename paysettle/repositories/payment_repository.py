"""Payment repository for data access."""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.models.payment import Payment, PaymentStatus


class PaymentRepository:
    """Repository for Payment model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, payment_id: UUID, for_update: bool = False) -> Payment | None:
        """Get a payment by ID, optionally locking the row."""
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_order_id(self, order_id: UUID) -> list[Payment]:
        """Get all payments (charges and refund records) for an order."""
        return (
            self.db.query(Payment)
            .filter(Payment.order_id == order_id)
            .order_by(Payment.created_at.asc())
            .all()
        )

    def get_by_pg_transaction_id(self, pg_transaction_id: str) -> Payment | None:
        """Get a payment by gateway transaction ID."""
        return (
            self.db.query(Payment)
            .filter(Payment.pg_transaction_id == pg_transaction_id)
            .first()
        )

    def get_captured_between(
        self,
        start: datetime,
        end: datetime,
        after_id: UUID | None = None,
        limit: int = 1000,
    ) -> list[Payment]:
        """Get one page of CAPTURED payments with ``start <= captured_at < end``.

        Keyset pagination on ``id`` keeps pages stable while settlements are
        written between pages.
        """
        query = self.db.query(Payment).filter(
            Payment.status == PaymentStatus.CAPTURED.value,
            Payment.captured_at >= start,
            Payment.captured_at < end,
        )
        if after_id is not None:
            query = query.filter(Payment.id > after_id)
        return query.order_by(Payment.id.asc()).limit(limit).all()

    def add(self, payment: Payment) -> Payment:
        """Stage a payment in the current transaction."""
        self.db.add(payment)
        self.db.flush()
        return payment
