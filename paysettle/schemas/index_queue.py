"""Settlement index queue schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class IndexQueueItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    settlement_id: UUID
    operation: str
    retry_count: int
    max_retries: int
    status: str
    error_message: str | None = None
    next_retry_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None


class IndexQueueStatsResponse(BaseModel):
    """Queue item counts by status."""

    pending: int = 0
    processing: int = 0
    success: int = 0
    failed: int = 0
    total: int = 0
