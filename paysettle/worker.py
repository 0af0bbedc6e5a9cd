import logging
from datetime import date, timedelta
from typing import Any

from arq import cron
from prometheus_client import start_http_server

from paysettle.core.config import settings
from paysettle.core.database import SessionLocal
from paysettle.models.shared import utc_now
from paysettle.services.dynamic_scheduler import DynamicScheduler
from paysettle.services.scheduled_jobs import run_scheduled_job
from paysettle.services.settlement_batch_service import SettlementBatchService
from paysettle.services.settlement_index_queue_service import SettlementIndexQueueService
from paysettle.services.settlement_reindex_service import SettlementReindexService
from paysettle.tasks import redis_settings

logger = logging.getLogger(__name__)


def _parse_date(value: str | None) -> date:
    if value:
        return date.fromisoformat(value)
    return utc_now().date() - timedelta(days=1)


async def process_index_queue_task(ctx: dict[str, Any]) -> int:
    """Background task: push due index queue items to the search backend.

    Runs every minute.
    """
    db = SessionLocal()
    try:
        service = SettlementIndexQueueService(db)
        if not service.search_enabled:
            return 0
        result = service.process_queue()
        if result["processed"] > 0:
            logger.info(
                "Processed %d index queue items (%d failed)",
                result["processed"],
                result["failed"],
            )
        return result["processed"]
    finally:
        db.close()


async def retry_failed_index_items_task(ctx: dict[str, Any]) -> int:
    """Background task: re-queue failed index items whose backoff has elapsed.

    Runs every 5 minutes. Also recovers items stuck in PROCESSING.
    """
    db = SessionLocal()
    try:
        service = SettlementIndexQueueService(db)
        if not service.search_enabled:
            return 0
        result = service.retry_failed_items()
        return result["requeued"] + result["recovered"]
    finally:
        db.close()


async def cleanup_index_queue_task(ctx: dict[str, Any]) -> int:
    """Background task: purge old SUCCESS index queue items.

    Runs daily at 04:00.
    """
    db = SessionLocal()
    try:
        service = SettlementIndexQueueService(db)
        return service.cleanup_old_success_items()
    finally:
        db.close()


async def reindex_settlements_task(ctx: dict[str, Any]) -> int:
    """Background task: rebuild the settlement search index from scratch.

    Runs weekly on Sunday at 04:00.
    """
    db = SessionLocal()
    try:
        service = SettlementReindexService(db)
        result = service.reindex_all()
        return int(result["indexed"])
    finally:
        db.close()


async def create_daily_settlements_task(ctx: dict[str, Any], target_date: str | None = None) -> int:
    """Background task: create settlements for a date (yesterday by default)."""
    db = SessionLocal()
    try:
        service = SettlementBatchService(db)
        result = service.create_daily_settlements(_parse_date(target_date))
        return result.created_count
    finally:
        db.close()


async def confirm_daily_settlements_task(
    ctx: dict[str, Any], settlement_date: str | None = None
) -> int:
    """Background task: confirm settlements for a date (yesterday by default)."""
    db = SessionLocal()
    try:
        service = SettlementBatchService(db)
        result = service.confirm_daily_settlements(_parse_date(settlement_date))
        return result.confirmed_count
    finally:
        db.close()


async def reload_schedules_task(ctx: dict[str, Any], config_key: str | None = None) -> int:
    """Background task: re-read schedule configs into the running scheduler.

    Runs every ``SCHEDULE_RELOAD_MINUTES`` and on demand after a config edit.
    Returns the number of installed schedules.
    """
    scheduler: DynamicScheduler | None = ctx.get("scheduler")
    if scheduler is None:
        logger.warning("Dynamic scheduler is not running; skipping schedule reload")
        return 0
    if config_key:
        installed = await scheduler.reload_one(config_key)
        return 1 if installed else 0
    return await scheduler.reload_all()


async def startup(ctx: dict[str, Any]) -> None:
    if settings.METRICS_PORT:
        start_http_server(settings.METRICS_PORT)
        logger.info("Serving worker metrics on port %d", settings.METRICS_PORT)
    scheduler = DynamicScheduler(job_runner=run_scheduled_job)
    await scheduler.start()
    ctx["scheduler"] = scheduler


async def shutdown(ctx: dict[str, Any]) -> None:
    scheduler: DynamicScheduler | None = ctx.pop("scheduler", None)
    if scheduler is not None:
        await scheduler.stop()


class WorkerSettings:
    functions = [
        process_index_queue_task,
        retry_failed_index_items_task,
        cleanup_index_queue_task,
        reindex_settlements_task,
        create_daily_settlements_task,
        confirm_daily_settlements_task,
        reload_schedules_task,
    ]
    cron_jobs = [
        cron(process_index_queue_task, second={0}),  # every minute
        cron(
            retry_failed_index_items_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
        cron(cleanup_index_queue_task, hour=4, minute=0),  # daily at 04:00
        cron(reindex_settlements_task, weekday=6, hour=4, minute=0),  # Sunday 04:00
        cron(
            reload_schedules_task,
            minute=set(range(0, 60, settings.SCHEDULE_RELOAD_MINUTES)),
        ),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = redis_settings
