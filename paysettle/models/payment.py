"""Payment model and its lifecycle."""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, Text

from paysettle.core.database import Base
from paysettle.core.exceptions import IllegalStateTransition, InvariantViolation
from paysettle.models.order import Order
from paysettle.models.shared import UUIDType, generate_uuid, to_money, utc_now

REFUND_TRANSACTION_PREFIX = "REFUND-"


class PaymentStatus(str, Enum):
    """Payment status enum."""

    READY = "READY"
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


# action -> (allowed source states, target state)
PAYMENT_TRANSITIONS: dict[str, tuple[frozenset[PaymentStatus], PaymentStatus]] = {
    "authorize": (frozenset({PaymentStatus.READY}), PaymentStatus.AUTHORIZED),
    "capture": (frozenset({PaymentStatus.AUTHORIZED}), PaymentStatus.CAPTURED),
    "refund": (frozenset({PaymentStatus.CAPTURED}), PaymentStatus.REFUNDED),
    "cancel": (
        frozenset({PaymentStatus.AUTHORIZED, PaymentStatus.FAILED}),
        PaymentStatus.CANCELED,
    ),
    "fail": (
        frozenset({PaymentStatus.READY, PaymentStatus.AUTHORIZED}),
        PaymentStatus.FAILED,
    ),
}


class Payment(Base):
    """Payment model - a card charge against an order.

    A partial refund is recorded as an extra row with a negative amount and
    status REFUNDED, pointing at the same order.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_order_id", "order_id"),
        Index("ix_payments_status_captured_at", "status", "captured_at"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    order_id = Column(UUIDType, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    refunded_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status = Column(String(20), nullable=False, default=PaymentStatus.READY.value)
    payment_method = Column(String(50), nullable=True)
    pg_transaction_id = Column(String(255), nullable=True, index=True)
    failure_reason = Column(Text, nullable=True)
    captured_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @classmethod
    def create(cls, order_id: UUID, amount: Decimal, payment_method: str | None) -> "Payment":
        """Build a new READY payment for an order."""
        amount = to_money(amount)
        if amount <= 0:
            raise InvariantViolation("Payment amount must be greater than zero")
        now = utc_now()
        return cls(
            id=generate_uuid(),
            order_id=order_id,
            amount=amount,
            refunded_amount=Decimal("0.00"),
            status=PaymentStatus.READY.value,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def create_refund_record(cls, original: "Payment", refund_amount: Decimal) -> "Payment":
        """Build the negative-amount REFUNDED row that records a partial refund."""
        now = utc_now()
        return cls(
            id=generate_uuid(),
            order_id=original.order_id,
            amount=-to_money(refund_amount),
            refunded_amount=Decimal("0.00"),
            status=PaymentStatus.REFUNDED.value,
            payment_method=original.payment_method,
            pg_transaction_id=f"{REFUND_TRANSACTION_PREFIX}{original.pg_transaction_id}",
            created_at=now,
            updated_at=now,
        )

    def check_transition(self, action: str) -> PaymentStatus:
        """Return the target state for ``action`` or raise if it is not allowed."""
        sources, target = PAYMENT_TRANSITIONS[action]
        if PaymentStatus(self.status) not in sources:
            raise IllegalStateTransition("payment", action, str(self.status))
        return target

    def _apply(self, target: PaymentStatus) -> None:
        self.status = target.value  # type: ignore[assignment]
        self.updated_at = utc_now()  # type: ignore[assignment]

    def authorize(self, pg_transaction_id: str) -> None:
        """READY -> AUTHORIZED; the gateway transaction id is mandatory."""
        target = self.check_transition("authorize")
        if not pg_transaction_id:
            raise InvariantViolation("A gateway transaction id is required to authorize")
        self.pg_transaction_id = pg_transaction_id  # type: ignore[assignment]
        self._apply(target)

    def capture(self, order: Order) -> None:
        """AUTHORIZED -> CAPTURED and the order CREATED -> PAID."""
        target = self.check_transition("capture")
        order.check_transition("complete")
        self._apply(target)
        self.captured_at = self.updated_at
        order.complete()

    def refund(self, order: Order) -> None:
        """CAPTURED -> REFUNDED for the full amount and the order PAID -> REFUNDED."""
        target = self.check_transition("refund")
        order.check_transition("refund")
        self._apply(target)
        self.refunded_amount = self.amount
        order.refund()

    def cancel(self) -> None:
        """AUTHORIZED/FAILED -> CANCELED."""
        self._apply(self.check_transition("cancel"))

    def fail(self, reason: str | None = None) -> None:
        """READY/AUTHORIZED -> FAILED when the gateway declines."""
        target = self.check_transition("fail")
        self.failure_reason = reason  # type: ignore[assignment]
        self._apply(target)

    @property
    def is_refund_record(self) -> bool:
        return Decimal(str(self.amount)) < 0

    @property
    def refundable_amount(self) -> Decimal:
        return to_money(self.amount) - to_money(self.refunded_amount)

    def add_refunded_amount(self, refund_amount: Decimal) -> None:
        """Record a partial refund, keeping 0 <= refunded_amount <= amount."""
        refund_amount = to_money(refund_amount)
        if refund_amount <= 0:
            raise InvariantViolation("Refund amount must be positive")
        if refund_amount > self.refundable_amount:
            raise InvariantViolation(
                f"Refund amount {refund_amount} exceeds refundable amount {self.refundable_amount}"
            )
        self.refunded_amount = to_money(self.refunded_amount) + refund_amount  # type: ignore[assignment]
        self.updated_at = utc_now()  # type: ignore[assignment]
