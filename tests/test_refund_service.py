"""Tests for RefundService: full, partial and failed-payment refunds."""

import uuid
from decimal import Decimal

import pytest

from paysettle.core.exceptions import IllegalStateTransition, InvariantViolation, NotFoundError
from paysettle.models.order import Order, OrderStatus
from paysettle.models.payment import Payment, PaymentStatus
from paysettle.models.settlement import Settlement, SettlementStatus
from paysettle.models.settlement_adjustment import AdjustmentStatus
from paysettle.models.settlement_index_queue import IndexOperation
from paysettle.repositories.payment_repository import PaymentRepository
from paysettle.repositories.settlement_adjustment_repository import (
    SettlementAdjustmentRepository,
)
from paysettle.repositories.settlement_index_queue_repository import (
    SettlementIndexQueueRepository,
)
from paysettle.services.refund_service import RefundService
from tests.conftest import DEFAULT_USER_ID, make_captured_payment, make_settlement


@pytest.fixture
def captured(db_session):
    return make_captured_payment(db_session)


@pytest.fixture
def settled(db_session, captured):
    order, payment = captured
    return order, payment, make_settlement(db_session, payment)


def _authorized_payment(db) -> Payment:
    order = Order.create(DEFAULT_USER_ID, Decimal("5000"))
    db.add(order)
    db.flush()
    payment = Payment.create(order.id, order.amount, "CARD")
    payment.authorize("pg-auth-1")
    db.add(payment)
    db.commit()
    return payment


class TestFullRefund:
    def test_refunds_payment_order_and_cancels_settlement(self, db_session, settled, search_index):
        order, payment, settlement = settled
        service = RefundService(db_session, search_index=search_index)

        result = service.process_full_refund(payment.id)

        assert result.status == PaymentStatus.REFUNDED.value
        assert result.refunded_amount == Decimal("10000.00")
        db_session.refresh(order)
        db_session.refresh(settlement)
        assert order.status == OrderStatus.REFUNDED.value
        assert settlement.status == SettlementStatus.CANCELED.value

        items = SettlementIndexQueueRepository(db_session).get_by_settlement_id(settlement.id)
        assert [i.operation for i in items] == [IndexOperation.UPDATE.value]

    def test_without_settlement(self, db_session, captured):
        order, payment = captured
        result = RefundService(db_session).process_full_refund(payment.id)
        assert result.status == PaymentStatus.REFUNDED.value

    def test_confirmed_settlement_blocks_refund(self, db_session, settled):
        order, payment, settlement = settled
        settlement.confirm()
        db_session.commit()

        with pytest.raises(InvariantViolation):
            RefundService(db_session).process_full_refund(payment.id)

        db_session.refresh(payment)
        db_session.refresh(order)
        db_session.refresh(settlement)
        assert payment.status == PaymentStatus.CAPTURED.value
        assert order.status == OrderStatus.PAID.value
        assert settlement.status == SettlementStatus.CONFIRMED.value

    def test_not_captured_is_illegal(self, db_session):
        payment = _authorized_payment(db_session)
        with pytest.raises(IllegalStateTransition):
            RefundService(db_session).process_full_refund(payment.id)

    def test_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            RefundService(db_session).process_full_refund(uuid.uuid4())

    def test_no_queue_items_when_search_disabled(self, db_session, settled):
        _, payment, settlement = settled
        RefundService(db_session).process_full_refund(payment.id)
        assert SettlementIndexQueueRepository(db_session).get_by_settlement_id(settlement.id) == []


class TestPartialRefund:
    def test_records_refund_and_adjusts_settlement(self, db_session, settled, search_index):
        order, payment, settlement = settled
        service = RefundService(db_session, search_index=search_index)

        record = service.process_partial_refund(payment.id, Decimal("3000"))

        assert record.id != payment.id
        assert record.amount == Decimal("-3000.00")
        assert record.status == PaymentStatus.REFUNDED.value
        assert record.order_id == order.id

        db_session.refresh(payment)
        db_session.refresh(order)
        db_session.refresh(settlement)
        assert payment.status == PaymentStatus.CAPTURED.value
        assert payment.refunded_amount == Decimal("3000.00")
        assert order.status == OrderStatus.PAID.value
        assert settlement.payment_amount == Decimal("7000.00")
        assert settlement.commission == Decimal("300.00")
        assert settlement.net_amount == Decimal("6700.00")

        adjustments = SettlementAdjustmentRepository(db_session).get_by_settlement_id(settlement.id)
        assert len(adjustments) == 1
        assert adjustments[0].amount == Decimal("-3000.00")
        assert adjustments[0].status == AdjustmentStatus.PENDING.value
        assert adjustments[0].refund_payment_id == record.id

        items = SettlementIndexQueueRepository(db_session).get_by_settlement_id(settlement.id)
        assert [i.operation for i in items] == [IndexOperation.UPDATE.value]

    def test_two_partial_refunds_accumulate(self, db_session, settled):
        order, payment, settlement = settled
        service = RefundService(db_session)
        service.process_partial_refund(payment.id, Decimal("1000"))
        service.process_partial_refund(payment.id, Decimal("2000"))

        db_session.refresh(payment)
        assert payment.refunded_amount == Decimal("3000.00")
        refunds = [p for p in PaymentRepository(db_session).get_by_order_id(order.id) if p.is_refund_record]
        assert sorted(p.amount for p in refunds) == [Decimal("-2000.00"), Decimal("-1000.00")]

    def test_remaining_amount_becomes_full_refund(self, db_session, settled):
        order, payment, settlement = settled

        result = RefundService(db_session).process_partial_refund(payment.id, Decimal("10000"))

        assert result.id == payment.id
        assert result.status == PaymentStatus.REFUNDED.value
        db_session.refresh(settlement)
        assert settlement.status == SettlementStatus.CANCELED.value
        assert SettlementAdjustmentRepository(db_session).get_by_settlement_id(settlement.id) == []

    def test_amount_over_refundable_is_rejected(self, db_session, settled):
        _, payment, settlement = settled
        with pytest.raises(InvariantViolation):
            RefundService(db_session).process_partial_refund(payment.id, Decimal("10000.01"))

        db_session.refresh(payment)
        assert payment.refunded_amount == Decimal("0.00")

    def test_zero_amount_is_rejected(self, db_session, captured):
        _, payment = captured
        with pytest.raises(InvariantViolation):
            RefundService(db_session).process_partial_refund(payment.id, Decimal("0"))

    def test_not_captured_is_illegal(self, db_session):
        payment = _authorized_payment(db_session)
        with pytest.raises(IllegalStateTransition):
            RefundService(db_session).process_partial_refund(payment.id, Decimal("100"))


class TestFailedPaymentRefund:
    def test_cancels_authorized_payment(self, db_session):
        payment = _authorized_payment(db_session)
        result = RefundService(db_session).process_failed_payment_refund(payment.id)
        assert result.status == PaymentStatus.CANCELED.value

        order = db_session.query(Order).filter(Order.id == payment.order_id).one()
        assert order.status == OrderStatus.CREATED.value

    def test_cancels_failed_payment(self, db_session):
        payment = _authorized_payment(db_session)
        payment.fail("declined")
        db_session.commit()

        result = RefundService(db_session).process_failed_payment_refund(payment.id)
        assert result.status == PaymentStatus.CANCELED.value

    def test_captured_payment_is_illegal(self, db_session, captured):
        _, payment = captured
        with pytest.raises(IllegalStateTransition):
            RefundService(db_session).process_failed_payment_refund(payment.id)

    def test_unexpected_settlement_is_reindexed(self, db_session, search_index):
        payment = _authorized_payment(db_session)
        settlement = Settlement.create_from_payment(
            payment.id, payment.order_id, payment.amount, payment.created_at.date()
        )
        db_session.add(settlement)
        db_session.commit()

        RefundService(db_session, search_index=search_index).process_failed_payment_refund(payment.id)

        items = SettlementIndexQueueRepository(db_session).get_by_settlement_id(settlement.id)
        assert len(items) == 1
