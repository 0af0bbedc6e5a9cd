"""Settlement index queue inspection endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from paysettle.core.database import get_db
from paysettle.models.settlement_index_queue import SettlementIndexQueue
from paysettle.schemas.index_queue import IndexQueueItemResponse, IndexQueueStatsResponse
from paysettle.services.settlement_index_queue_service import SettlementIndexQueueService

router = APIRouter()


@router.get(
    "/stats",
    response_model=IndexQueueStatsResponse,
    summary="Index queue statistics",
)
async def get_index_queue_stats(db: Session = Depends(get_db)) -> IndexQueueStatsResponse:
    """Count queue items by status."""
    stats = SettlementIndexQueueService(db).get_stats()
    return IndexQueueStatsResponse(**stats)


@router.get(
    "/failed",
    response_model=list[IndexQueueItemResponse],
    summary="List exhausted index queue items",
)
async def list_failed_index_items(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[SettlementIndexQueue]:
    """List items that used up their retries and need operator attention."""
    return SettlementIndexQueueService(db).list_failed(skip=skip, limit=limit)
