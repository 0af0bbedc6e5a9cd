"""Settlement model: what is owed to the merchant for one captured payment."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Numeric, String, Text

from paysettle.core.database import Base
from paysettle.core.exceptions import IllegalStateTransition, InvariantViolation
from paysettle.models.shared import MONEY_QUANTUM, UUIDType, generate_uuid, to_money, utc_now

COMMISSION_RATE = Decimal("0.03")


class SettlementStatus(str, Enum):
    """Settlement status enum."""

    PENDING = "PENDING"
    WAITING_APPROVAL = "WAITING_APPROVAL"
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


CONFIRMABLE_STATUSES = frozenset({SettlementStatus.PENDING, SettlementStatus.WAITING_APPROVAL})
CANCELABLE_STATUSES = frozenset(
    {
        SettlementStatus.PENDING,
        SettlementStatus.WAITING_APPROVAL,
        SettlementStatus.APPROVED,
        SettlementStatus.REJECTED,
    }
)


def calculate_commission(payment_amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(commission, net_amount)`` for a payment amount.

    Commission is 3% rounded half-up to two decimals; the net amount is the
    exact remainder.
    """
    amount = to_money(payment_amount)
    commission = (amount * COMMISSION_RATE).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
    return commission, amount - commission


class Settlement(Base):
    """Settlement model - derived once per captured payment, retained for audit."""

    __tablename__ = "settlements"
    __table_args__ = (
        Index("ix_settlements_settlement_date_status", "settlement_date", "status"),
        Index("ix_settlements_order_id", "order_id"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    payment_id = Column(
        UUIDType,
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    order_id = Column(UUIDType, nullable=False)
    payment_amount = Column(Numeric(12, 2), nullable=False)
    commission = Column(Numeric(12, 2), nullable=False)
    net_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=SettlementStatus.PENDING.value)
    settlement_date = Column(Date, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Approval workflow
    approved_by = Column(UUIDType, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(UUIDType, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @classmethod
    def create_from_payment(
        cls,
        payment_id: UUID,
        order_id: UUID,
        payment_amount: Decimal,
        settlement_date: date,
    ) -> "Settlement":
        """Build a PENDING settlement, computing commission and net amount once."""
        if payment_id is None:
            raise InvariantViolation("Payment ID is required")
        if settlement_date is None:
            raise InvariantViolation("Settlement date is required")
        amount = to_money(payment_amount)
        if amount <= 0:
            raise InvariantViolation("Settlement amount must be greater than zero")

        commission, net_amount = calculate_commission(amount)
        now = utc_now()
        return cls(
            id=generate_uuid(),
            payment_id=payment_id,
            order_id=order_id,
            payment_amount=amount,
            commission=commission,
            net_amount=net_amount,
            status=SettlementStatus.PENDING.value,
            settlement_date=settlement_date,
            created_at=now,
            updated_at=now,
        )

    def _set_status(self, status: SettlementStatus) -> None:
        self.status = status.value  # type: ignore[assignment]
        self.updated_at = utc_now()  # type: ignore[assignment]

    def request_approval(self) -> None:
        """PENDING -> WAITING_APPROVAL."""
        if self.status != SettlementStatus.PENDING.value:
            raise IllegalStateTransition("settlement", "request approval for", str(self.status))
        self._set_status(SettlementStatus.WAITING_APPROVAL)

    def confirm(self) -> bool:
        """PENDING/WAITING_APPROVAL -> CONFIRMED.

        Returns False without touching the record when it is already CONFIRMED.
        """
        if self.status == SettlementStatus.CONFIRMED.value:
            return False
        if SettlementStatus(self.status) not in CONFIRMABLE_STATUSES:
            raise IllegalStateTransition("settlement", "confirm", str(self.status))
        self._set_status(SettlementStatus.CONFIRMED)
        self.confirmed_at = self.updated_at
        return True

    def approve(self, admin_user_id: UUID) -> None:
        """WAITING_APPROVAL -> APPROVED."""
        if self.status != SettlementStatus.WAITING_APPROVAL.value:
            raise IllegalStateTransition("settlement", "approve", str(self.status))
        self._set_status(SettlementStatus.APPROVED)
        self.approved_by = admin_user_id  # type: ignore[assignment]
        self.approved_at = self.updated_at

    def reject(self, admin_user_id: UUID, reason: str | None) -> None:
        """WAITING_APPROVAL -> REJECTED."""
        if self.status != SettlementStatus.WAITING_APPROVAL.value:
            raise IllegalStateTransition("settlement", "reject", str(self.status))
        self._set_status(SettlementStatus.REJECTED)
        self.rejected_by = admin_user_id  # type: ignore[assignment]
        self.rejected_at = self.updated_at
        self.rejection_reason = reason  # type: ignore[assignment]

    def cancel(self) -> bool:
        """Cancel any settlement that has not been confirmed.

        CONFIRMED settlements may already be paid out, so cancelling one is an
        invariant violation that needs manual intervention. Cancelling an
        already CANCELED settlement is a no-op and returns False.
        """
        if self.status == SettlementStatus.CANCELED.value:
            return False
        if self.status == SettlementStatus.CONFIRMED.value:
            raise InvariantViolation(
                f"Settlement {self.id} is CONFIRMED and cannot be canceled; "
                "manual intervention required"
            )
        if SettlementStatus(self.status) not in CANCELABLE_STATUSES:
            raise IllegalStateTransition("settlement", "cancel", str(self.status))
        self._set_status(SettlementStatus.CANCELED)
        return True

    def apply_partial_refund(self, refund_amount: Decimal) -> None:
        """Reduce payment and net amounts by a partial refund; commission is kept."""
        if self.status == SettlementStatus.CANCELED.value:
            raise InvariantViolation(f"Settlement {self.id} is CANCELED and cannot be adjusted")
        refund_amount = to_money(refund_amount)
        if refund_amount <= 0 or refund_amount >= to_money(self.payment_amount):
            raise InvariantViolation(
                f"Partial refund {refund_amount} must be between 0 and {self.payment_amount}"
            )
        self.payment_amount = to_money(self.payment_amount) - refund_amount  # type: ignore[assignment]
        self.net_amount = to_money(self.net_amount) - refund_amount  # type: ignore[assignment]
        self.updated_at = utc_now()  # type: ignore[assignment]

    @property
    def is_confirmed(self) -> bool:
        return self.status == SettlementStatus.CONFIRMED.value

    @property
    def is_pending(self) -> bool:
        return SettlementStatus(self.status) in CONFIRMABLE_STATUSES
