"""Durable retry queue that propagates settlement changes to the search index.

Mutating services stage queue items in their own transaction (``enqueue``);
the worker drains them with ``process_queue`` and re-arms due failures with
``retry_failed_items``. An index failure only ever changes the queue item,
never the settlement it describes.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.core.config import settings
from paysettle.core.exceptions import InvariantViolation, NotFoundError
from paysettle.models.settlement import Settlement
from paysettle.models.settlement_index_queue import (
    IndexOperation,
    IndexQueueStatus,
    SettlementIndexQueue,
)
from paysettle.models.shared import utc_now
from paysettle.repositories.order_repository import OrderRepository
from paysettle.repositories.payment_repository import PaymentRepository
from paysettle.repositories.settlement_index_queue_repository import (
    SettlementIndexQueueRepository,
)
from paysettle.repositories.settlement_repository import SettlementRepository
from paysettle.services.search_index import (
    SettlementSearchIndexBase,
    build_settlement_document,
    get_settlement_index,
)

logger = logging.getLogger(__name__)


class SettlementIndexQueueService:
    """Service for the settlement index retry queue."""

    def __init__(self, db: Session, search_index: SettlementSearchIndexBase | None = None):
        self.db = db
        self.queue_repo = SettlementIndexQueueRepository(db)
        self.settlement_repo = SettlementRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.order_repo = OrderRepository(db)
        self.search_index = search_index if search_index is not None else get_settlement_index()

    @property
    def search_enabled(self) -> bool:
        return self.search_index.search_enabled

    def enqueue(
        self, settlement_id: UUID, operation: IndexOperation
    ) -> SettlementIndexQueue | None:
        """Stage a queue item in the caller's transaction.

        Returns None without writing anything when search is disabled. The
        caller commits.
        """
        if not self.search_enabled:
            return None
        item = self.queue_repo.create(
            settlement_id=settlement_id,
            operation=operation,
            max_retries=settings.INDEX_QUEUE_MAX_RETRIES,
        )
        logger.info(
            "Enqueued settlement index operation: settlement_id=%s, operation=%s",
            settlement_id,
            operation.value,
        )
        return item

    def enqueue_many(
        self, settlement_ids: Iterable[UUID], operation: IndexOperation
    ) -> list[SettlementIndexQueue]:
        """Stage one queue item per settlement in the caller's transaction."""
        if not self.search_enabled:
            return []
        items: list[SettlementIndexQueue] = []
        for settlement_id in settlement_ids:
            items.append(
                self.queue_repo.create(
                    settlement_id=settlement_id,
                    operation=operation,
                    max_retries=settings.INDEX_QUEUE_MAX_RETRIES,
                )
            )
        if items:
            logger.info(
                "Enqueued %d settlement index operations: operation=%s",
                len(items),
                operation.value,
            )
        return items

    def build_document(self, settlement: Settlement) -> dict[str, Any]:
        """Load the payment, order and refund rows behind a settlement and build its document."""
        payment = self.payment_repo.get_by_id(settlement.payment_id)  # type: ignore[arg-type]
        order = self.order_repo.get_by_id(settlement.order_id)  # type: ignore[arg-type]
        refunds = [
            p
            for p in self.payment_repo.get_by_order_id(settlement.order_id)  # type: ignore[arg-type]
            if p.is_refund_record
        ]
        return build_settlement_document(settlement, payment, order, refunds)

    def _apply(self, item: SettlementIndexQueue) -> None:
        operation = IndexOperation(item.operation)
        if operation == IndexOperation.DELETE:
            self.search_index.delete(item.settlement_id)  # type: ignore[arg-type]
            return

        settlement = self.settlement_repo.get_by_id(item.settlement_id)  # type: ignore[arg-type]
        if settlement is None:
            raise NotFoundError("Settlement", item.settlement_id)
        self.search_index.upsert(self.build_document(settlement))

    def process_item(self, item: SettlementIndexQueue, now: datetime | None = None) -> bool:
        """Run one queue item to SUCCESS or FAILED; returns True on success."""
        now = now or utc_now()
        item_id = item.id
        item.mark_processing(now)
        self.db.commit()

        try:
            if item.operation not in {op.value for op in IndexOperation}:
                raise InvariantViolation(f"Unknown index operation: {item.operation}")
            self._apply(item)
        except Exception as exc:
            self.db.rollback()
            logger.error(
                "Failed to process index queue item: id=%s, settlement_id=%s, operation=%s, error=%s",
                item_id,
                item.settlement_id,
                item.operation,
                exc,
            )
            if not item.mark_failed(str(exc) or exc.__class__.__name__, now):
                logger.error(
                    "Max retries reached for index queue item: id=%s, settlement_id=%s",
                    item_id,
                    item.settlement_id,
                )
            self.db.commit()
            return False

        item.mark_success(utc_now())
        self.db.commit()
        logger.debug(
            "Processed index queue item: id=%s, settlement_id=%s, operation=%s",
            item_id,
            item.settlement_id,
            item.operation,
        )
        return True

    def process_queue(self, now: datetime | None = None) -> dict[str, int]:
        """Process due PENDING items in FIFO order, one bounded batch per call."""
        now = now or utc_now()
        items = self.queue_repo.get_ready_pending(now, limit=settings.INDEX_QUEUE_BATCH_SIZE)
        if not items:
            return {"processed": 0, "succeeded": 0, "failed": 0}

        logger.info("Processing %d pending index queue items", len(items))
        succeeded = 0
        failed = 0
        for item in items:
            if self.process_item(item, now):
                succeeded += 1
            else:
                failed += 1

        return {"processed": len(items), "succeeded": succeeded, "failed": failed}

    def retry_failed_items(self, now: datetime | None = None) -> dict[str, int]:
        """Return due FAILED items and stale PROCESSING items to PENDING.

        The main loop picks them up on its next pass.
        """
        now = now or utc_now()
        stale_cutoff = now - timedelta(minutes=settings.INDEX_QUEUE_STALE_PROCESSING_MINUTES)

        stale = self.queue_repo.get_stale_processing(
            stale_cutoff, limit=settings.INDEX_QUEUE_BATCH_SIZE
        )
        for item in stale:
            logger.warning(
                "Recovering stale processing index queue item: id=%s, settlement_id=%s",
                item.id,
                item.settlement_id,
            )
            item.reset_to_pending(now)

        failed = self.queue_repo.get_retryable_failed(now, limit=settings.INDEX_QUEUE_BATCH_SIZE)
        for item in failed:
            item.reset_to_pending(now)

        self.db.commit()
        if failed or stale:
            logger.info(
                "Re-queued %d failed and %d stale index queue items", len(failed), len(stale)
            )
        return {"requeued": len(failed), "recovered": len(stale)}

    def cleanup_old_success_items(self, now: datetime | None = None) -> int:
        """Delete SUCCESS items processed more than the retention window ago."""
        now = now or utc_now()
        cutoff = now - timedelta(days=settings.INDEX_QUEUE_RETENTION_DAYS)
        deleted = self.queue_repo.delete_success_before(cutoff)
        self.db.commit()
        if deleted:
            logger.info("Cleaned up %d old success index queue items", deleted)
        return deleted

    def flush_bulk(self, item_ids: Iterable[UUID]) -> int:
        """Best-effort bulk upsert of freshly committed INDEX/UPDATE items.

        Items that make it into the index are marked SUCCESS; anything else is
        left PENDING for the regular queue. Never raises on index errors.
        Returns the number of items indexed.
        """
        if not self.search_enabled:
            return 0

        items = [
            item
            for item in self.queue_repo.get_by_ids(item_ids)
            if item.status == IndexQueueStatus.PENDING.value
            and item.operation != IndexOperation.DELETE.value
        ]
        if not items:
            return 0

        settlements = {
            s.id: s for s in self.settlement_repo.get_by_ids({item.settlement_id for item in items})
        }
        indexed = 0
        bulk_size = settings.INDEX_BULK_SIZE
        for start in range(0, len(items), bulk_size):
            batch = [item for item in items[start : start + bulk_size] if item.settlement_id in settlements]
            if not batch:
                continue
            try:
                documents = [self.build_document(settlements[item.settlement_id]) for item in batch]
                self.search_index.bulk_upsert(documents)
            except Exception as exc:
                self.db.rollback()
                logger.warning(
                    "Bulk index of %d settlements failed, leaving them to the queue: %s",
                    len(batch),
                    exc,
                )
                continue

            now = utc_now()
            for item in batch:
                item.mark_success(now)
            self.db.commit()
            indexed += len(batch)

        logger.info("Bulk indexed %d of %d queued settlements", indexed, len(items))
        return indexed

    def get_stats(self) -> dict[str, int]:
        """Queue item counts by status, plus the total."""
        counts = self.queue_repo.count_by_status()
        stats = {status.lower(): count for status, count in counts.items()}
        stats["total"] = sum(counts.values())
        return stats

    def list_failed(self, skip: int = 0, limit: int = 100) -> list[SettlementIndexQueue]:
        """Items that exhausted their retries and need operator attention."""
        return self.queue_repo.get_exhausted(skip=skip, limit=limit)
