from datetime import date
from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from paysettle.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_reload_schedules(config_key: str | None = None) -> Job:
    """Ask the worker to re-read one schedule config, or all of them."""
    return await enqueue_task("reload_schedules_task", config_key)


async def enqueue_create_settlements(target_date: date) -> Job:
    """Enqueue a manual settlement creation run for a date."""
    return await enqueue_task("create_daily_settlements_task", target_date.isoformat())


async def enqueue_confirm_settlements(settlement_date: date) -> Job:
    """Enqueue a manual settlement confirmation run for a date."""
    return await enqueue_task("confirm_daily_settlements_task", settlement_date.isoformat())


async def enqueue_reindex_settlements() -> Job:
    """Enqueue a full rebuild of the settlement search index."""
    return await enqueue_task("reindex_settlements_task")
