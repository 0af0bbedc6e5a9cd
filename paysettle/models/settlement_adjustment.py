"""SettlementAdjustment model - a refund-driven correction to a settlement."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Numeric, String

from paysettle.core.database import Base
from paysettle.models.shared import UUIDType, generate_uuid, to_money, utc_now


class AdjustmentStatus(str, Enum):
    """Adjustment status enum."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"


class SettlementAdjustment(Base):
    """SettlementAdjustment model.

    One row per partial refund against a settled payment. ``amount`` is
    negative (money taken back from the merchant).
    """

    __tablename__ = "settlement_adjustments"
    __table_args__ = (
        Index("ix_settlement_adjustments_date_status", "adjustment_date", "status"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    settlement_id = Column(
        UUIDType, ForeignKey("settlements.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    refund_payment_id = Column(
        UUIDType, ForeignKey("payments.id", ondelete="RESTRICT"), nullable=False
    )
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=AdjustmentStatus.PENDING.value)
    adjustment_date = Column(Date, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @classmethod
    def for_refund(
        cls,
        settlement_id: UUID,
        refund_payment_id: UUID,
        refund_amount: Decimal,
        adjustment_date: date,
    ) -> "SettlementAdjustment":
        now = utc_now()
        return cls(
            id=generate_uuid(),
            settlement_id=settlement_id,
            refund_payment_id=refund_payment_id,
            amount=-to_money(refund_amount),
            status=AdjustmentStatus.PENDING.value,
            adjustment_date=adjustment_date,
            created_at=now,
            updated_at=now,
        )

    def confirm(self, now: datetime) -> bool:
        if self.status == AdjustmentStatus.CONFIRMED.value:
            return False
        self.status = AdjustmentStatus.CONFIRMED.value  # type: ignore[assignment]
        self.confirmed_at = now  # type: ignore[assignment]
        self.updated_at = now  # type: ignore[assignment]
        return True
