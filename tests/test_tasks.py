"""Tests for enqueueing worker jobs."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from paysettle.tasks import (
    enqueue_confirm_settlements,
    enqueue_create_settlements,
    enqueue_reindex_settlements,
    enqueue_reload_schedules,
    enqueue_task,
    get_redis_pool,
)


def _pool(job=None):
    pool = MagicMock()
    pool.enqueue_job = AsyncMock(return_value=job or MagicMock(job_id="job-1"))
    pool.close = AsyncMock()
    return pool


class TestTasks:
    @pytest.mark.asyncio
    async def test_get_redis_pool(self):
        mock_pool = MagicMock()
        with patch("paysettle.tasks.create_pool", new_callable=AsyncMock) as mock_create:
            mock_create.return_value = mock_pool
            assert await get_redis_pool() == mock_pool
            mock_create.assert_called_once()

    @pytest.mark.asyncio
    async def test_enqueue_task_closes_pool_on_error(self):
        pool = _pool()
        pool.enqueue_job = AsyncMock(side_effect=Exception("Redis error"))

        with patch("paysettle.tasks.get_redis_pool", new_callable=AsyncMock, return_value=pool):
            with pytest.raises(Exception, match="Redis error"):
                await enqueue_task("failing_task")

        pool.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_enqueue_reload_schedules(self):
        pool = _pool()
        with patch("paysettle.tasks.get_redis_pool", new_callable=AsyncMock, return_value=pool):
            job = await enqueue_reload_schedules("SETTLEMENT_CREATE")

        assert job.job_id == "job-1"
        pool.enqueue_job.assert_called_once_with("reload_schedules_task", "SETTLEMENT_CREATE")

    @pytest.mark.asyncio
    async def test_enqueue_settlement_runs(self):
        pool = _pool()
        with patch("paysettle.tasks.get_redis_pool", new_callable=AsyncMock, return_value=pool):
            await enqueue_create_settlements(date(2026, 10, 1))
            await enqueue_confirm_settlements(date(2026, 10, 1))
            await enqueue_reindex_settlements()

        calls = [c.args for c in pool.enqueue_job.call_args_list]
        assert calls == [
            ("create_daily_settlements_task", "2026-10-01"),
            ("confirm_daily_settlements_task", "2026-10-01"),
            ("reindex_settlements_task",),
        ]
