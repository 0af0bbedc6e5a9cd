"""Settlement schedule admin API endpoints.

Edits are stored here; the worker applies them when it reloads its schedules.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from paysettle.core.database import get_db
from paysettle.models.settlement_schedule_config import SettlementScheduleConfig
from paysettle.repositories.schedule_config_repository import ScheduleConfigRepository
from paysettle.schemas.schedule_config import (
    ScheduleConfigResponse,
    ScheduleConfigUpdate,
    ScheduleReloadResponse,
)
from paysettle.tasks import enqueue_reload_schedules

logger = logging.getLogger(__name__)

router = APIRouter()


async def _request_reload(config_key: str | None = None) -> str | None:
    """Enqueue a reload job; an unreachable broker leaves the periodic reload to catch up."""
    try:
        job = await enqueue_reload_schedules(config_key)
    except Exception:
        logger.exception("Failed to enqueue schedule reload for %s", config_key or "all")
        return None
    return str(job.job_id) if job is not None else None


@router.get(
    "/",
    response_model=list[ScheduleConfigResponse],
    summary="List schedule configs",
)
async def list_schedules(db: Session = Depends(get_db)) -> list[SettlementScheduleConfig]:
    """List every schedule config."""
    return ScheduleConfigRepository(db).get_all()


@router.get(
    "/{config_key}",
    response_model=ScheduleConfigResponse,
    summary="Get schedule config",
    responses={404: {"description": "Schedule config not found"}},
)
async def get_schedule(config_key: str, db: Session = Depends(get_db)) -> SettlementScheduleConfig:
    """Get one schedule config by key."""
    config = ScheduleConfigRepository(db).get_by_key(config_key)
    if not config:
        raise HTTPException(status_code=404, detail="Schedule config not found")
    return config


@router.put(
    "/{config_id}",
    response_model=ScheduleConfigResponse,
    summary="Update schedule config",
    responses={
        404: {"description": "Schedule config not found"},
        422: {"description": "Invalid cron expression"},
    },
)
async def update_schedule(
    config_id: UUID,
    data: ScheduleConfigUpdate,
    db: Session = Depends(get_db),
) -> SettlementScheduleConfig:
    """Update a schedule config and ask the worker to reload it."""
    config = ScheduleConfigRepository(db).update(config_id, data)
    if not config:
        raise HTTPException(status_code=404, detail="Schedule config not found")
    await _request_reload(str(config.config_key))
    return config


@router.patch(
    "/{config_id}/toggle",
    response_model=ScheduleConfigResponse,
    summary="Enable or disable schedule",
    responses={404: {"description": "Schedule config not found"}},
)
async def toggle_schedule(config_id: UUID, db: Session = Depends(get_db)) -> SettlementScheduleConfig:
    """Flip a schedule config's enabled flag and ask the worker to reload it."""
    config = ScheduleConfigRepository(db).toggle(config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Schedule config not found")
    logger.info("Schedule %s enabled=%s", config.config_key, config.enabled)
    await _request_reload(str(config.config_key))
    return config


@router.post(
    "/reload",
    response_model=ScheduleReloadResponse,
    summary="Reload all schedules",
)
async def reload_all_schedules() -> ScheduleReloadResponse:
    """Ask the worker to re-read every schedule config."""
    job_id = await _request_reload()
    return ScheduleReloadResponse(status="queued" if job_id else "deferred", job_id=job_id)


@router.post(
    "/{config_key}/reload",
    response_model=ScheduleReloadResponse,
    summary="Reload one schedule",
    responses={404: {"description": "Schedule config not found"}},
)
async def reload_schedule(config_key: str, db: Session = Depends(get_db)) -> ScheduleReloadResponse:
    """Ask the worker to re-read one schedule config."""
    if not ScheduleConfigRepository(db).get_by_key(config_key):
        raise HTTPException(status_code=404, detail="Schedule config not found")
    job_id = await _request_reload(config_key)
    return ScheduleReloadResponse(
        status="queued" if job_id else "deferred", config_key=config_key, job_id=job_id
    )
