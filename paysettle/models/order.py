"""Order model and its lifecycle."""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Column, DateTime, Index, Numeric, String

from paysettle.core.database import Base
from paysettle.core.exceptions import IllegalStateTransition, InvariantViolation
from paysettle.models.shared import UUIDType, generate_uuid, to_money, utc_now


class OrderStatus(str, Enum):
    """Order status enum."""

    CREATED = "CREATED"
    PAID = "PAID"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


# action -> (allowed source states, target state)
ORDER_TRANSITIONS: dict[str, tuple[frozenset[OrderStatus], OrderStatus]] = {
    "complete": (frozenset({OrderStatus.CREATED}), OrderStatus.PAID),
    "cancel": (frozenset({OrderStatus.CREATED}), OrderStatus.CANCELED),
    "refund": (frozenset({OrderStatus.PAID}), OrderStatus.REFUNDED),
}


class Order(Base):
    """Order model - one per purchase intent, never physically deleted."""

    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_user_id", "user_id"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(UUIDType, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.CREATED.value)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @classmethod
    def create(cls, user_id: UUID, amount: Decimal) -> "Order":
        """Build a new CREATED order after validating the amount."""
        amount = to_money(amount)
        if amount <= 0:
            raise InvariantViolation("Order amount must be greater than zero")
        now = utc_now()
        return cls(
            id=generate_uuid(),
            user_id=user_id,
            amount=amount,
            status=OrderStatus.CREATED.value,
            created_at=now,
            updated_at=now,
        )

    def check_transition(self, action: str) -> OrderStatus:
        """Return the target state for ``action`` or raise if it is not allowed."""
        sources, target = ORDER_TRANSITIONS[action]
        if OrderStatus(self.status) not in sources:
            raise IllegalStateTransition("order", action, str(self.status))
        return target

    def _transition(self, action: str) -> None:
        target = self.check_transition(action)
        self.status = target.value  # type: ignore[assignment]
        self.updated_at = utc_now()  # type: ignore[assignment]

    def complete(self) -> None:
        """CREATED -> PAID, triggered by payment capture."""
        self._transition("complete")

    def cancel(self) -> None:
        """CREATED -> CANCELED."""
        self._transition("cancel")

    def refund(self) -> None:
        """PAID -> REFUNDED, triggered by a full refund."""
        self._transition("refund")

    @property
    def is_cancelable(self) -> bool:
        return self.status == OrderStatus.CREATED.value

    @property
    def is_refundable(self) -> bool:
        return self.status == OrderStatus.PAID.value
