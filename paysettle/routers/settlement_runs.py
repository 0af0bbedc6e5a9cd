"""Manual settlement batch runs, executed by the worker."""

from fastapi import APIRouter

from paysettle.schemas.settlement import SettlementRunRequest, SettlementRunResponse
from paysettle.tasks import (
    enqueue_confirm_settlements,
    enqueue_create_settlements,
    enqueue_reindex_settlements,
)

router = APIRouter()


@router.post(
    "/create",
    response_model=SettlementRunResponse,
    status_code=202,
    summary="Enqueue settlement creation",
    description="Create settlements for the payments captured on a date.",
)
async def run_settlement_creation(data: SettlementRunRequest) -> SettlementRunResponse:
    job = await enqueue_create_settlements(data.settlement_date)
    return SettlementRunResponse(job_id=job.job_id)


@router.post(
    "/confirm",
    response_model=SettlementRunResponse,
    status_code=202,
    summary="Enqueue settlement confirmation",
    description="Confirm the pending settlements of a date.",
)
async def run_settlement_confirmation(data: SettlementRunRequest) -> SettlementRunResponse:
    job = await enqueue_confirm_settlements(data.settlement_date)
    return SettlementRunResponse(job_id=job.job_id)


@router.post(
    "/reindex",
    response_model=SettlementRunResponse,
    status_code=202,
    summary="Enqueue search reindex",
    description="Rebuild the settlement search index from the settlements table.",
)
async def run_settlement_reindex() -> SettlementRunResponse:
    job = await enqueue_reindex_settlements()
    return SettlementRunResponse(job_id=job.job_id)
