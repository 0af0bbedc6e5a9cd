"""Settlement index queue repository for data access."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from paysettle.models.settlement_index_queue import (
    DEFAULT_MAX_RETRIES,
    IndexOperation,
    IndexQueueStatus,
    SettlementIndexQueue,
)
from paysettle.models.shared import utc_now


class SettlementIndexQueueRepository:
    """Repository for SettlementIndexQueue model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        settlement_id: UUID,
        operation: IndexOperation,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> SettlementIndexQueue:
        """Stage a new PENDING queue item in the current transaction."""
        now = utc_now()
        item = SettlementIndexQueue(
            settlement_id=settlement_id,
            operation=operation.value,
            retry_count=0,
            max_retries=max_retries,
            status=IndexQueueStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(item)
        self.db.flush()
        return item

    def get_by_id(self, item_id: UUID) -> SettlementIndexQueue | None:
        """Get a queue item by ID."""
        return (
            self.db.query(SettlementIndexQueue)
            .filter(SettlementIndexQueue.id == item_id)
            .first()
        )

    def get_by_ids(self, item_ids: Iterable[UUID]) -> list[SettlementIndexQueue]:
        """Get queue items by a list of IDs."""
        ids = list(item_ids)
        if not ids:
            return []
        return (
            self.db.query(SettlementIndexQueue)
            .filter(SettlementIndexQueue.id.in_(ids))
            .all()
        )

    def get_by_settlement_id(self, settlement_id: UUID) -> list[SettlementIndexQueue]:
        """Get every queue item for a settlement, oldest first."""
        return (
            self.db.query(SettlementIndexQueue)
            .filter(SettlementIndexQueue.settlement_id == settlement_id)
            .order_by(SettlementIndexQueue.created_at.asc())
            .all()
        )

    def get_ready_pending(self, now: datetime, limit: int = 100) -> list[SettlementIndexQueue]:
        """Get PENDING items that are due, FIFO by creation time."""
        return (
            self.db.query(SettlementIndexQueue)
            .filter(
                SettlementIndexQueue.status == IndexQueueStatus.PENDING.value,
                or_(
                    SettlementIndexQueue.next_retry_at.is_(None),
                    SettlementIndexQueue.next_retry_at <= now,
                ),
            )
            .order_by(SettlementIndexQueue.created_at.asc())
            .limit(limit)
            .all()
        )

    def get_retryable_failed(self, now: datetime, limit: int = 100) -> list[SettlementIndexQueue]:
        """Get FAILED items whose scheduled retry is due.

        Items that exhausted their retries have no ``next_retry_at`` and are
        never returned.
        """
        return (
            self.db.query(SettlementIndexQueue)
            .filter(
                SettlementIndexQueue.status == IndexQueueStatus.FAILED.value,
                SettlementIndexQueue.next_retry_at.isnot(None),
                SettlementIndexQueue.next_retry_at <= now,
                SettlementIndexQueue.retry_count <= SettlementIndexQueue.max_retries,
            )
            .order_by(SettlementIndexQueue.created_at.asc())
            .limit(limit)
            .all()
        )

    def get_stale_processing(self, cutoff: datetime, limit: int = 100) -> list[SettlementIndexQueue]:
        """Get PROCESSING items last touched before ``cutoff``."""
        return (
            self.db.query(SettlementIndexQueue)
            .filter(
                SettlementIndexQueue.status == IndexQueueStatus.PROCESSING.value,
                SettlementIndexQueue.updated_at < cutoff,
            )
            .order_by(SettlementIndexQueue.created_at.asc())
            .limit(limit)
            .all()
        )

    def get_exhausted(self, skip: int = 0, limit: int = 100) -> list[SettlementIndexQueue]:
        """Get FAILED items with no retry left, for operator attention."""
        return (
            self.db.query(SettlementIndexQueue)
            .filter(
                SettlementIndexQueue.status == IndexQueueStatus.FAILED.value,
                SettlementIndexQueue.next_retry_at.is_(None),
            )
            .order_by(SettlementIndexQueue.created_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def delete_success_before(self, cutoff: datetime) -> int:
        """Delete SUCCESS items processed before ``cutoff``; returns the row count."""
        return (
            self.db.query(SettlementIndexQueue)
            .filter(
                SettlementIndexQueue.status == IndexQueueStatus.SUCCESS.value,
                SettlementIndexQueue.processed_at.isnot(None),
                SettlementIndexQueue.processed_at < cutoff,
            )
            .delete(synchronize_session=False)
        )

    def count_by_status(self) -> dict[str, int]:
        """Count queue items grouped by status."""
        rows = (
            self.db.query(SettlementIndexQueue.status, func.count(SettlementIndexQueue.id))
            .group_by(SettlementIndexQueue.status)
            .all()
        )
        counts = {status.value: 0 for status in IndexQueueStatus}
        for status, count in rows:
            counts[str(status)] = int(count)
        return counts
