"""Daily settlement batch: creation from captured payments and confirmation.

Both phases page through their input by id in fixed-size chunks and commit
once per chunk. A crash mid-run leaves the committed chunks in place; the
existing-settlement guard makes re-running the same date safe.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.core.config import settings
from paysettle.core.metrics import BatchMetrics, BatchPhase
from paysettle.models.settlement import CONFIRMABLE_STATUSES, Settlement
from paysettle.models.settlement_index_queue import IndexOperation
from paysettle.models.shared import utc_now
from paysettle.repositories.payment_repository import PaymentRepository
from paysettle.repositories.settlement_adjustment_repository import (
    SettlementAdjustmentRepository,
)
from paysettle.repositories.settlement_repository import SettlementRepository
from paysettle.services.search_index import SettlementSearchIndexBase
from paysettle.services.settlement_index_queue_service import SettlementIndexQueueService

logger = logging.getLogger(__name__)


@dataclass
class SettlementCreationResult:
    """Counts reported by a settlement creation run."""

    target_date: date
    total_payments: int = 0
    created_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["target_date"] = self.target_date.isoformat()
        return data


@dataclass
class SettlementConfirmationResult:
    """Counts reported by a settlement confirmation run."""

    settlement_date: date
    total_settlements: int = 0
    confirmed_count: int = 0
    failed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["settlement_date"] = self.settlement_date.isoformat()
        return data


@dataclass
class AdjustmentConfirmationResult:
    """Counts reported by an adjustment confirmation run."""

    adjustment_date: date
    total_adjustments: int = 0
    confirmed_count: int = 0
    failed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["adjustment_date"] = self.adjustment_date.isoformat()
        return data


def day_bounds(target_date: date) -> tuple[datetime, datetime]:
    """Return the half-open UTC interval ``[target_date 00:00, target_date+1 00:00)``."""
    start = datetime.combine(target_date, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


class SettlementBatchService:
    """Service for the daily settlement creation and confirmation batches."""

    def __init__(
        self,
        db: Session,
        search_index: SettlementSearchIndexBase | None = None,
        chunk_size: int | None = None,
    ):
        self.db = db
        self.payment_repo = PaymentRepository(db)
        self.settlement_repo = SettlementRepository(db)
        self.adjustment_repo = SettlementAdjustmentRepository(db)
        self.index_queue = SettlementIndexQueueService(db, search_index=search_index)
        self.chunk_size = chunk_size or settings.SETTLEMENT_CHUNK_SIZE

    def create_daily_settlements(self, target_date: date) -> SettlementCreationResult:
        """Create one PENDING settlement per CAPTURED payment captured on ``target_date``.

        The settlement covers what the payment still holds after any partial
        refund. Payments that already have a settlement are skipped. A payment
        that fails to map or save is rolled back to its savepoint, counted and
        logged; the rest of the chunk carries on.
        """
        with BatchMetrics.track(BatchPhase.CREATION):
            result = self._create_daily_settlements(target_date)
        BatchMetrics.record_created(result.created_count, result.total_payments)
        return result

    def confirm_daily_settlements(self, settlement_date: date) -> SettlementConfirmationResult:
        """Confirm PENDING and WAITING_APPROVAL settlements dated ``settlement_date``.

        Already CONFIRMED settlements are not selected, so re-running is a no-op.
        """
        with BatchMetrics.track(BatchPhase.CONFIRMATION):
            result = self._confirm_daily_settlements(settlement_date)
        BatchMetrics.record_confirmed(result.confirmed_count, result.total_settlements)
        return result

    def confirm_daily_adjustments(self, adjustment_date: date) -> AdjustmentConfirmationResult:
        """Confirm PENDING refund adjustments dated ``adjustment_date``."""
        with BatchMetrics.track(BatchPhase.ADJUSTMENT):
            result = self._confirm_daily_adjustments(adjustment_date)
        BatchMetrics.record_adjustments_confirmed(result.confirmed_count, result.total_adjustments)
        return result

    def _create_daily_settlements(self, target_date: date) -> SettlementCreationResult:
        start, end = day_bounds(target_date)
        result = SettlementCreationResult(target_date=target_date)
        logger.info("Settlement creation started: target_date=%s", target_date)

        after_id: UUID | None = None
        while True:
            payments = self.payment_repo.get_captured_between(
                start, end, after_id=after_id, limit=self.chunk_size
            )
            if not payments:
                break
            after_id = payments[-1].id  # type: ignore[assignment]
            result.total_payments += len(payments)

            already_settled = self.settlement_repo.get_settled_payment_ids(p.id for p in payments)
            created_ids: list[UUID] = []

            for payment in payments:
                if payment.id in already_settled:
                    logger.debug("Settlement already exists: payment_id=%s", payment.id)
                    result.skipped_count += 1
                    continue
                try:
                    with self.db.begin_nested():
                        settlement = Settlement.create_from_payment(
                            payment_id=payment.id,  # type: ignore[arg-type]
                            order_id=payment.order_id,  # type: ignore[arg-type]
                            payment_amount=payment.refundable_amount,
                            settlement_date=target_date,
                        )
                        self.settlement_repo.add(settlement)
                except Exception as exc:
                    result.failed_count += 1
                    logger.error(
                        "Failed to create settlement: payment_id=%s, error=%s", payment.id, exc
                    )
                    continue
                created_ids.append(settlement.id)  # type: ignore[arg-type]

            queue_items = self.index_queue.enqueue_many(created_ids, IndexOperation.INDEX)
            queue_item_ids = [item.id for item in queue_items]
            self.db.commit()
            result.created_count += len(created_ids)
            logger.info(
                "Settlement chunk committed: target_date=%s, created=%d, chunk_size=%d",
                target_date,
                len(created_ids),
                len(payments),
            )
            self._flush_index(queue_item_ids)

            if len(payments) < self.chunk_size:
                break

        logger.info(
            "Settlement creation finished: target_date=%s, total=%d, created=%d, skipped=%d, failed=%d",
            target_date,
            result.total_payments,
            result.created_count,
            result.skipped_count,
            result.failed_count,
        )
        return result

    def _confirm_daily_settlements(self, settlement_date: date) -> SettlementConfirmationResult:
        result = SettlementConfirmationResult(settlement_date=settlement_date)
        logger.info("Settlement confirmation started: settlement_date=%s", settlement_date)

        after_id: UUID | None = None
        while True:
            settlements = self.settlement_repo.get_by_date_and_statuses(
                settlement_date, CONFIRMABLE_STATUSES, after_id=after_id, limit=self.chunk_size
            )
            if not settlements:
                break
            after_id = settlements[-1].id  # type: ignore[assignment]
            result.total_settlements += len(settlements)

            confirmed_ids: list[UUID] = []
            for settlement in settlements:
                try:
                    with self.db.begin_nested():
                        changed = settlement.confirm()
                except Exception as exc:
                    result.failed_count += 1
                    logger.error(
                        "Failed to confirm settlement: settlement_id=%s, error=%s",
                        settlement.id,
                        exc,
                    )
                    continue
                if changed:
                    confirmed_ids.append(settlement.id)  # type: ignore[arg-type]

            queue_items = self.index_queue.enqueue_many(confirmed_ids, IndexOperation.UPDATE)
            queue_item_ids = [item.id for item in queue_items]
            self.db.commit()
            result.confirmed_count += len(confirmed_ids)
            self._flush_index(queue_item_ids)

            if len(settlements) < self.chunk_size:
                break

        logger.info(
            "Settlement confirmation finished: settlement_date=%s, total=%d, confirmed=%d, failed=%d",
            settlement_date,
            result.total_settlements,
            result.confirmed_count,
            result.failed_count,
        )
        return result

    def _confirm_daily_adjustments(self, adjustment_date: date) -> AdjustmentConfirmationResult:
        result = AdjustmentConfirmationResult(adjustment_date=adjustment_date)
        logger.info("Adjustment confirmation started: adjustment_date=%s", adjustment_date)

        after_id: UUID | None = None
        while True:
            adjustments = self.adjustment_repo.get_pending_by_date(
                adjustment_date, after_id=after_id, limit=self.chunk_size
            )
            if not adjustments:
                break
            after_id = adjustments[-1].id  # type: ignore[assignment]
            result.total_adjustments += len(adjustments)

            now = utc_now()
            for adjustment in adjustments:
                try:
                    with self.db.begin_nested():
                        if adjustment.confirm(now):
                            result.confirmed_count += 1
                except Exception as exc:
                    result.failed_count += 1
                    logger.error(
                        "Failed to confirm adjustment: adjustment_id=%s, error=%s",
                        adjustment.id,
                        exc,
                    )
            self.db.commit()

            if len(adjustments) < self.chunk_size:
                break

        logger.info(
            "Adjustment confirmation finished: adjustment_date=%s, total=%d, confirmed=%d",
            adjustment_date,
            result.total_adjustments,
            result.confirmed_count,
        )
        return result

    def _flush_index(self, queue_item_ids: list[UUID]) -> None:
        """Push freshly committed index items in bulk; the queue covers any failure."""
        if not queue_item_ids:
            return
        try:
            self.index_queue.flush_bulk(queue_item_ids)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Bulk indexing after commit failed; %d items left to the queue",
                len(queue_item_ids),
            )
