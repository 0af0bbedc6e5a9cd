"""Settlement repository for data access."""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from paysettle.models.settlement import Settlement, SettlementStatus


class SettlementRepository:
    """Repository for Settlement model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, settlement_id: UUID, for_update: bool = False) -> Settlement | None:
        """Get a settlement by ID, optionally locking the row."""
        query = self.db.query(Settlement).filter(Settlement.id == settlement_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_ids(self, settlement_ids: Iterable[UUID]) -> list[Settlement]:
        """Get settlements by a list of IDs."""
        ids = list(settlement_ids)
        if not ids:
            return []
        return self.db.query(Settlement).filter(Settlement.id.in_(ids)).all()

    def get_by_payment_id(self, payment_id: UUID, for_update: bool = False) -> Settlement | None:
        """Get the settlement derived from a payment."""
        query = self.db.query(Settlement).filter(Settlement.payment_id == payment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_settled_payment_ids(self, payment_ids: Iterable[UUID]) -> set[UUID]:
        """Return the subset of ``payment_ids`` that already have a settlement."""
        ids = list(payment_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(Settlement.payment_id)
            .filter(Settlement.payment_id.in_(ids))
            .all()
        )
        return {row.payment_id for row in rows}

    def get_by_date_and_statuses(
        self,
        settlement_date: date,
        statuses: Iterable[SettlementStatus],
        after_id: UUID | None = None,
        limit: int = 1000,
    ) -> list[Settlement]:
        """Get one page of settlements for a date in any of ``statuses``, by id."""
        query = self.db.query(Settlement).filter(
            Settlement.settlement_date == settlement_date,
            Settlement.status.in_([s.value for s in statuses]),
        )
        if after_id is not None:
            query = query.filter(Settlement.id > after_id)
        return query.order_by(Settlement.id.asc()).limit(limit).all()

    def get_by_status(self, status: SettlementStatus) -> list[Settlement]:
        """Get all settlements in a status, oldest first."""
        return (
            self.db.query(Settlement)
            .filter(Settlement.status == status.value)
            .order_by(Settlement.created_at.asc())
            .all()
        )

    def get_page(
        self,
        after_id: UUID | None = None,
        limit: int = 100,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Settlement]:
        """Get one page of settlements by id, optionally within a date range."""
        query = self.db.query(Settlement)
        if start_date is not None:
            query = query.filter(Settlement.settlement_date >= start_date)
        if end_date is not None:
            query = query.filter(Settlement.settlement_date <= end_date)
        if after_id is not None:
            query = query.filter(Settlement.id > after_id)
        return query.order_by(Settlement.id.asc()).limit(limit).all()

    def count(self) -> int:
        """Count all settlements."""
        return self.db.query(func.count(Settlement.id)).scalar() or 0

    def add(self, settlement: Settlement) -> Settlement:
        """Stage a settlement in the current transaction."""
        self.db.add(settlement)
        self.db.flush()
        return settlement
