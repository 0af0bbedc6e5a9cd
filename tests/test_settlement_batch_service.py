"""Tests for the daily settlement creation and confirmation batches."""

from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import patch

from paysettle.models.payment import PaymentStatus
from paysettle.models.settlement import Settlement, SettlementStatus
from paysettle.models.settlement_adjustment import AdjustmentStatus, SettlementAdjustment
from paysettle.models.settlement_index_queue import IndexOperation, IndexQueueStatus
from paysettle.repositories.settlement_index_queue_repository import (
    SettlementIndexQueueRepository,
)
from paysettle.services.refund_service import RefundService
from paysettle.services.settlement_batch_service import SettlementBatchService, day_bounds
from tests.conftest import RecordingSearchIndex, make_captured_payment, make_settlement

TARGET = date(2026, 10, 1)
IN_DAY = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


def _settlements(db) -> list[Settlement]:
    return db.query(Settlement).all()


class TestDayBounds:
    def test_half_open_utc_day(self):
        start, end = day_bounds(TARGET)
        assert start == datetime(2026, 10, 1, tzinfo=UTC)
        assert end == datetime(2026, 10, 2, tzinfo=UTC)


class TestCreateDailySettlements:
    def test_creates_one_settlement_per_captured_payment(self, db_session):
        for amount in ("10000", "10001", "10003"):
            make_captured_payment(db_session, amount=amount, captured_at=IN_DAY)

        result = SettlementBatchService(db_session).create_daily_settlements(TARGET)

        assert result.total_payments == 3
        assert result.created_count == 3
        assert result.skipped_count == 0
        settlements = _settlements(db_session)
        assert {s.commission for s in settlements} == {
            Decimal("300.00"),
            Decimal("300.03"),
            Decimal("300.09"),
        }
        assert all(s.status == SettlementStatus.PENDING.value for s in settlements)
        assert all(s.settlement_date == TARGET for s in settlements)

    def test_rerun_is_idempotent(self, db_session):
        make_captured_payment(db_session, captured_at=IN_DAY)
        service = SettlementBatchService(db_session)

        service.create_daily_settlements(TARGET)
        second = service.create_daily_settlements(TARGET)

        assert second.total_payments == 1
        assert second.created_count == 0
        assert second.skipped_count == 1

    def test_settles_amount_left_after_partial_refund(self, db_session):
        _, payment = make_captured_payment(db_session, amount="10000.00", captured_at=IN_DAY)
        RefundService(db_session).process_partial_refund(payment.id, Decimal("3000.00"))

        result = SettlementBatchService(db_session).create_daily_settlements(TARGET)

        assert result.created_count == 1
        [settlement] = _settlements(db_session)
        assert settlement.payment_id == payment.id
        assert settlement.payment_amount == Decimal("7000.00")
        assert settlement.commission == Decimal("210.00")
        assert settlement.net_amount == Decimal("6790.00")
        assert len(_settlements(db_session)) == 1

    def test_ignores_other_days_and_statuses(self, db_session):
        make_captured_payment(db_session, captured_at=datetime(2026, 10, 2, 0, 0, tzinfo=UTC))
        make_captured_payment(db_session, captured_at=datetime(2026, 9, 30, 23, 59, tzinfo=UTC))
        _, refunded = make_captured_payment(db_session, captured_at=IN_DAY)
        refunded.status = PaymentStatus.REFUNDED.value
        db_session.commit()

        result = SettlementBatchService(db_session).create_daily_settlements(TARGET)

        assert result.total_payments == 0
        assert _settlements(db_session) == []

    def test_pages_through_chunks(self, db_session):
        for _ in range(5):
            make_captured_payment(db_session, captured_at=IN_DAY)

        service = SettlementBatchService(db_session, chunk_size=2)
        with patch.object(service.db, "commit", wraps=service.db.commit) as commit:
            result = service.create_daily_settlements(TARGET)

        assert result.created_count == 5
        assert commit.call_count == 3
        assert len(_settlements(db_session)) == 5

    def test_item_failure_does_not_abort_chunk(self, db_session):
        for _ in range(3):
            make_captured_payment(db_session, captured_at=IN_DAY)

        original = Settlement.create_from_payment
        calls = {"n": 0}

        def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise ValueError("bad payment")
            return original(*args, **kwargs)

        with patch.object(Settlement, "create_from_payment", side_effect=flaky):
            result = SettlementBatchService(db_session).create_daily_settlements(TARGET)

        assert result.created_count == 2
        assert result.failed_count == 1
        assert len(_settlements(db_session)) == 2

    def test_indexes_created_settlements(self, db_session):
        make_captured_payment(db_session, captured_at=IN_DAY)
        index = RecordingSearchIndex()

        SettlementBatchService(db_session, search_index=index).create_daily_settlements(TARGET)

        settlement = _settlements(db_session)[0]
        items = SettlementIndexQueueRepository(db_session).get_by_settlement_id(settlement.id)
        assert [i.operation for i in items] == [IndexOperation.INDEX.value]
        assert items[0].status == IndexQueueStatus.SUCCESS.value
        assert str(settlement.id) in index.documents

    def test_index_failure_leaves_queue_items_pending(self, db_session):
        make_captured_payment(db_session, captured_at=IN_DAY)
        index = RecordingSearchIndex(fail=True)

        result = SettlementBatchService(db_session, search_index=index).create_daily_settlements(TARGET)

        assert result.created_count == 1
        settlement = _settlements(db_session)[0]
        items = SettlementIndexQueueRepository(db_session).get_by_settlement_id(settlement.id)
        assert items[0].status == IndexQueueStatus.PENDING.value


class TestConfirmDailySettlements:
    def test_confirms_pending_and_waiting(self, db_session):
        _, p1 = make_captured_payment(db_session)
        _, p2 = make_captured_payment(db_session)
        _, p3 = make_captured_payment(db_session)
        s1 = make_settlement(db_session, p1, TARGET)
        s2 = make_settlement(db_session, p2, TARGET)
        s2.request_approval()
        s3 = make_settlement(db_session, p3, date(2026, 10, 2))
        db_session.commit()

        result = SettlementBatchService(db_session).confirm_daily_settlements(TARGET)

        assert result.total_settlements == 2
        assert result.confirmed_count == 2
        for settlement in (s1, s2, s3):
            db_session.refresh(settlement)
        assert s1.status == SettlementStatus.CONFIRMED.value
        assert s1.confirmed_at is not None
        assert s2.status == SettlementStatus.CONFIRMED.value
        assert s3.status == SettlementStatus.PENDING.value

    def test_rerun_confirms_nothing(self, db_session):
        _, payment = make_captured_payment(db_session)
        make_settlement(db_session, payment, TARGET)
        service = SettlementBatchService(db_session)

        service.confirm_daily_settlements(TARGET)
        second = service.confirm_daily_settlements(TARGET)

        assert second.total_settlements == 0
        assert second.confirmed_count == 0

    def test_canceled_settlements_are_not_selected(self, db_session):
        _, payment = make_captured_payment(db_session)
        settlement = make_settlement(db_session, payment, TARGET)
        settlement.cancel()
        db_session.commit()

        result = SettlementBatchService(db_session).confirm_daily_settlements(TARGET)

        assert result.total_settlements == 0

    def test_result_to_dict(self, db_session):
        result = SettlementBatchService(db_session).confirm_daily_settlements(TARGET)
        assert result.to_dict() == {
            "settlement_date": "2026-10-01",
            "total_settlements": 0,
            "confirmed_count": 0,
            "failed_count": 0,
        }


class TestConfirmDailyAdjustments:
    def test_confirms_pending_adjustments_for_date(self, db_session):
        _, payment = make_captured_payment(db_session)
        settlement = make_settlement(db_session, payment, TARGET)
        due = SettlementAdjustment.for_refund(settlement.id, payment.id, Decimal("100"), TARGET)
        later = SettlementAdjustment.for_refund(
            settlement.id, payment.id, Decimal("50"), date(2026, 10, 2)
        )
        db_session.add_all([due, later])
        db_session.commit()

        result = SettlementBatchService(db_session).confirm_daily_adjustments(TARGET)

        assert result.total_adjustments == 1
        assert result.confirmed_count == 1
        db_session.refresh(due)
        db_session.refresh(later)
        assert due.status == AdjustmentStatus.CONFIRMED.value
        assert later.status == AdjustmentStatus.PENDING.value
