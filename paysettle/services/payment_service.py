"""Order and payment lifecycle service.

Drives the payment-creation flow that feeds settlements: an order is
created, a payment is authorized with the gateway's transaction id, then
confirmed with the gateway and captured.
"""

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.core.exceptions import NotFoundError
from paysettle.models.order import Order
from paysettle.models.payment import Payment
from paysettle.repositories.order_repository import OrderRepository
from paysettle.repositories.payment_repository import PaymentRepository
from paysettle.services.payment_gateway import PaymentGatewayBase, get_payment_gateway

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for order creation and payment authorization/capture."""

    def __init__(self, db: Session, gateway: PaymentGatewayBase | None = None):
        self.db = db
        self.order_repo = OrderRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.gateway = gateway if gateway is not None else get_payment_gateway()

    def _get_order(self, order_id: UUID, for_update: bool = True) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=for_update)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def _get_payment(self, payment_id: UUID, for_update: bool = True) -> Payment:
        payment = self.payment_repo.get_by_id(payment_id, for_update=for_update)
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    def create_order(self, user_id: UUID, amount: Decimal) -> Order:
        """Create a CREATED order."""
        try:
            order = self.order_repo.add(Order.create(user_id, amount))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Order created: order_id=%s, amount=%s", order.id, order.amount)
        return order

    def cancel_order(self, order_id: UUID) -> Order:
        """Cancel an order that has not been paid."""
        try:
            order = self._get_order(order_id)
            order.cancel()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Order canceled: order_id=%s", order_id)
        return order

    def create_payment(self, order_id: UUID, payment_method: str | None = None) -> Payment:
        """Create a READY payment for the full order amount."""
        try:
            order = self._get_order(order_id)
            order.check_transition("complete")
            payment = self.payment_repo.add(
                Payment.create(order.id, order.amount, payment_method)  # type: ignore[arg-type]
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Payment created: payment_id=%s, order_id=%s", payment.id, order_id)
        return payment

    def authorize_payment(self, payment_id: UUID, pg_transaction_id: str) -> Payment:
        """READY -> AUTHORIZED with the gateway's transaction id."""
        try:
            payment = self._get_payment(payment_id)
            payment.authorize(pg_transaction_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Payment authorized: payment_id=%s, pg_transaction_id=%s", payment_id, pg_transaction_id
        )
        return payment

    def capture_payment(self, payment_id: UUID) -> Payment:
        """Confirm an AUTHORIZED payment with the gateway and capture it.

        Preconditions are checked on an unlocked read; the rows are locked and
        re-checked only after the gateway answers, so no lock is held across
        the gateway call. A gateway decline marks the payment FAILED and
        commits that. A gateway call failure raises ``ExternalCallFailure``
        and persists nothing.
        """
        try:
            payment = self._get_payment(payment_id, for_update=False)
            order = self._get_order(payment.order_id, for_update=False)  # type: ignore[arg-type]
            payment.check_transition("capture")
            order.check_transition("complete")
            pg_transaction_id = str(payment.pg_transaction_id)
            order_id: UUID = order.id  # type: ignore[assignment]
            amount = Decimal(str(payment.amount))
        finally:
            # Close the read transaction before talking to the gateway.
            self.db.rollback()

        confirmation = self.gateway.confirm(
            pg_transaction_id=pg_transaction_id,
            order_id=order_id,
            amount=amount,
        )

        try:
            payment = self._get_payment(payment_id)
            order = self._get_order(payment.order_id)  # type: ignore[arg-type]
            if not confirmation.approved:
                payment.fail(confirmation.failure_reason)
                self.db.commit()
                logger.warning(
                    "Payment declined by gateway: payment_id=%s, reason=%s",
                    payment_id,
                    confirmation.failure_reason,
                )
                return payment

            payment.capture(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Payment captured: payment_id=%s, order_id=%s, amount=%s",
            payment_id,
            payment.order_id,
            payment.amount,
        )
        return payment
