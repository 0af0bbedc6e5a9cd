"""Settlement adjustment repository for data access."""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.models.settlement_adjustment import AdjustmentStatus, SettlementAdjustment


class SettlementAdjustmentRepository:
    """Repository for SettlementAdjustment model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_settlement_id(self, settlement_id: UUID) -> list[SettlementAdjustment]:
        """Get every adjustment for a settlement, oldest first."""
        return (
            self.db.query(SettlementAdjustment)
            .filter(SettlementAdjustment.settlement_id == settlement_id)
            .order_by(SettlementAdjustment.created_at.asc())
            .all()
        )

    def get_pending_by_date(
        self,
        adjustment_date: date,
        after_id: UUID | None = None,
        limit: int = 1000,
    ) -> list[SettlementAdjustment]:
        """Get one page of PENDING adjustments for a date, by id."""
        query = self.db.query(SettlementAdjustment).filter(
            SettlementAdjustment.adjustment_date == adjustment_date,
            SettlementAdjustment.status == AdjustmentStatus.PENDING.value,
        )
        if after_id is not None:
            query = query.filter(SettlementAdjustment.id > after_id)
        return query.order_by(SettlementAdjustment.id.asc()).limit(limit).all()

    def add(self, adjustment: SettlementAdjustment) -> SettlementAdjustment:
        """Stage an adjustment in the current transaction."""
        self.db.add(adjustment)
        self.db.flush()
        return adjustment
