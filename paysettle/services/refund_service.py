"""Refund service reconciling payments, orders and settlements.

Three scenarios, each committed as a single unit of work:

1. Full refund: payment and order REFUNDED, settlement CANCELED.
2. Partial refund: a negative REFUNDED payment row is recorded, the order
   stays PAID and the settlement amounts are reduced.
3. Failed-payment refund: an authorized or failed charge is CANCELED before
   it was ever captured.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.core.exceptions import InvariantViolation, NotFoundError
from paysettle.models.order import Order, OrderStatus
from paysettle.models.payment import Payment
from paysettle.models.settlement_adjustment import SettlementAdjustment
from paysettle.models.settlement_index_queue import IndexOperation
from paysettle.models.shared import to_money, utc_now
from paysettle.repositories.order_repository import OrderRepository
from paysettle.repositories.payment_repository import PaymentRepository
from paysettle.repositories.settlement_adjustment_repository import (
    SettlementAdjustmentRepository,
)
from paysettle.repositories.settlement_repository import SettlementRepository
from paysettle.services.search_index import SettlementSearchIndexBase
from paysettle.services.settlement_index_queue_service import SettlementIndexQueueService

logger = logging.getLogger(__name__)


class RefundService:
    """Service for processing refunds against captured or authorized payments."""

    def __init__(self, db: Session, search_index: SettlementSearchIndexBase | None = None):
        self.db = db
        self.payment_repo = PaymentRepository(db)
        self.order_repo = OrderRepository(db)
        self.settlement_repo = SettlementRepository(db)
        self.adjustment_repo = SettlementAdjustmentRepository(db)
        self.index_queue = SettlementIndexQueueService(db, search_index=search_index)

    def _load_payment(self, payment_id: UUID) -> Payment:
        payment = self.payment_repo.get_by_id(payment_id, for_update=True)
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    def _load_order(self, order_id: UUID) -> Order:
        order = self.order_repo.get_by_id(order_id, for_update=True)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def process_full_refund(self, payment_id: UUID) -> Payment:
        """Refund a CAPTURED payment in full.

        Raises:
            NotFoundError: If the payment or its order does not exist.
            IllegalStateTransition: If the payment is not CAPTURED or the order not PAID.
            InvariantViolation: If the settlement is already CONFIRMED.
        """
        logger.info("Processing full refund: payment_id=%s", payment_id)
        try:
            payment = self._load_payment(payment_id)
            self._full_refund(payment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Full refund completed: payment_id=%s, amount=%s", payment_id, payment.amount)
        return payment

    def _full_refund(self, payment: Payment) -> None:
        order = self._load_order(payment.order_id)  # type: ignore[arg-type]
        payment.refund(order)

        settlement = self.settlement_repo.get_by_payment_id(payment.id, for_update=True)  # type: ignore[arg-type]
        if settlement is None:
            return
        if settlement.cancel():
            logger.info("Settlement canceled: settlement_id=%s", settlement.id)
        self.index_queue.enqueue(settlement.id, IndexOperation.UPDATE)  # type: ignore[arg-type]

    def process_partial_refund(self, payment_id: UUID, refund_amount: Decimal) -> Payment:
        """Refund part of a CAPTURED payment.

        Refunding exactly the remaining refundable amount is a full refund and
        returns the original payment. Otherwise returns the new negative
        refund record.

        Raises:
            NotFoundError: If the payment or its order does not exist.
            IllegalStateTransition: If the payment is not CAPTURED.
            InvariantViolation: If the amount is not in ``(0, refundable_amount]``
                or the settlement cannot absorb it.
        """
        logger.info(
            "Processing partial refund: payment_id=%s, refund_amount=%s", payment_id, refund_amount
        )
        refund_amount = to_money(refund_amount)
        try:
            payment = self._load_payment(payment_id)
            payment.check_transition("refund")

            if refund_amount <= 0:
                raise InvariantViolation("Refund amount must be positive")
            if refund_amount > payment.refundable_amount:
                raise InvariantViolation(
                    f"Refund amount {refund_amount} exceeds refundable amount "
                    f"{payment.refundable_amount}"
                )

            if refund_amount == payment.refundable_amount:
                logger.info(
                    "Partial refund covers the remaining amount, processing as full refund: "
                    "payment_id=%s",
                    payment_id,
                )
                self._full_refund(payment)
                self.db.commit()
                return payment

            refund_record = self._partial_refund(payment, refund_amount)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Partial refund completed: payment_id=%s, refund_payment_id=%s, refund_amount=%s",
            payment_id,
            refund_record.id,
            refund_amount,
        )
        return refund_record

    def _partial_refund(self, payment: Payment, refund_amount: Decimal) -> Payment:
        order = self._load_order(payment.order_id)  # type: ignore[arg-type]
        if order.status != OrderStatus.PAID.value:
            raise InvariantViolation(
                f"Order {order.id} must be PAID for a partial refund, found {order.status}"
            )

        payment.add_refunded_amount(refund_amount)
        refund_record = self.payment_repo.add(Payment.create_refund_record(payment, refund_amount))

        settlement = self.settlement_repo.get_by_payment_id(payment.id, for_update=True)  # type: ignore[arg-type]
        if settlement is not None:
            settlement.apply_partial_refund(refund_amount)
            self.adjustment_repo.add(
                SettlementAdjustment.for_refund(
                    settlement_id=settlement.id,  # type: ignore[arg-type]
                    refund_payment_id=refund_record.id,  # type: ignore[arg-type]
                    refund_amount=refund_amount,
                    adjustment_date=self._today(),
                )
            )
            logger.info(
                "Settlement adjusted: settlement_id=%s, payment_amount=%s, net_amount=%s",
                settlement.id,
                settlement.payment_amount,
                settlement.net_amount,
            )
            self.index_queue.enqueue(settlement.id, IndexOperation.UPDATE)  # type: ignore[arg-type]

        return refund_record

    def _today(self) -> date:
        return utc_now().date()

    def process_failed_payment_refund(self, payment_id: UUID) -> Payment:
        """Cancel an AUTHORIZED or FAILED payment that was never captured.

        Raises:
            NotFoundError: If the payment or its order does not exist.
            IllegalStateTransition: If the payment is not AUTHORIZED or FAILED.
        """
        logger.info("Processing failed-payment refund: payment_id=%s", payment_id)
        try:
            payment = self._load_payment(payment_id)
            payment.cancel()

            order = self._load_order(payment.order_id)  # type: ignore[arg-type]
            if order.status != OrderStatus.CREATED.value:
                logger.warning(
                    "Order is not CREATED during authorization cancel: order_id=%s, status=%s",
                    order.id,
                    order.status,
                )

            settlement = self.settlement_repo.get_by_payment_id(payment.id)  # type: ignore[arg-type]
            if settlement is not None:
                logger.error(
                    "Settlement exists for un-captured payment: settlement_id=%s, payment_id=%s",
                    settlement.id,
                    payment_id,
                )
                self.index_queue.enqueue(settlement.id, IndexOperation.UPDATE)  # type: ignore[arg-type]

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Failed-payment refund completed: payment_id=%s", payment_id)
        return payment
