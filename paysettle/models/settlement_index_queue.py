"""SettlementIndexQueue model - durable outbox of pending search index operations."""

from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from paysettle.core.database import Base
from paysettle.models.shared import UUIDType, generate_uuid, utc_now

BACKOFF_BASE_MINUTES = 5
DEFAULT_MAX_RETRIES = 3
ERROR_MESSAGE_LIMIT = 1000


class IndexOperation(str, Enum):
    """Index operation enum."""

    INDEX = "INDEX"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class IndexQueueStatus(str, Enum):
    """Index queue item status enum."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def backoff_delay(retry_count: int) -> timedelta:
    """Delay before retry number ``retry_count``: 5, 25, 125 minutes for 1, 2, 3."""
    return timedelta(minutes=BACKOFF_BASE_MINUTES**retry_count)


class SettlementIndexQueue(Base):
    """Queue item propagating one settlement change to the search index."""

    __tablename__ = "settlement_index_queue"
    __table_args__ = (
        Index("ix_settlement_index_queue_status_next_retry_at", "status", "next_retry_at"),
        Index("ix_settlement_index_queue_settlement_id", "settlement_id"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    settlement_id = Column(UUIDType, nullable=False)
    operation = Column(String(20), nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=DEFAULT_MAX_RETRIES)
    status = Column(String(20), nullable=False, default=IndexQueueStatus.PENDING.value)
    error_message = Column(Text, nullable=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def can_retry(self) -> bool:
        return int(self.retry_count) < int(self.max_retries)

    def mark_processing(self, now: datetime) -> None:
        self.status = IndexQueueStatus.PROCESSING.value  # type: ignore[assignment]
        self.updated_at = now  # type: ignore[assignment]

    def mark_success(self, now: datetime) -> None:
        self.status = IndexQueueStatus.SUCCESS.value  # type: ignore[assignment]
        self.error_message = None  # type: ignore[assignment]
        self.next_retry_at = None  # type: ignore[assignment]
        self.processed_at = now  # type: ignore[assignment]
        self.updated_at = now  # type: ignore[assignment]

    def mark_failed(self, error_message: str, now: datetime) -> bool:
        """Record a failed attempt and schedule the next retry if any remain.

        Returns True when a retry was scheduled. Exhausted items stay FAILED
        with no ``next_retry_at`` so the recovery loop never picks them up.
        """
        self.status = IndexQueueStatus.FAILED.value  # type: ignore[assignment]
        self.error_message = error_message[:ERROR_MESSAGE_LIMIT]  # type: ignore[assignment]
        self.updated_at = now  # type: ignore[assignment]
        if not self.can_retry:
            self.next_retry_at = None  # type: ignore[assignment]
            return False
        self.retry_count = int(self.retry_count) + 1  # type: ignore[assignment]
        self.next_retry_at = now + backoff_delay(int(self.retry_count))  # type: ignore[assignment]
        return True

    def reset_to_pending(self, now: datetime) -> None:
        self.status = IndexQueueStatus.PENDING.value  # type: ignore[assignment]
        self.updated_at = now  # type: ignore[assignment]
