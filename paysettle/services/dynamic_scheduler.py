"""Cron scheduler driven by rows in ``settlement_schedule_config``.

Each enabled config gets one asyncio task that sleeps until the next fire
time of its cron expression and hands the run to a bounded thread pool.
Configs can be re-read at any time; re-applying a key swaps its handle in
the registry and cancels the previous one under the same lock.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from arq.cron import next_cron

from paysettle.core import database
from paysettle.core.config import settings
from paysettle.models.settlement_schedule_config import SettlementScheduleConfig
from paysettle.repositories.schedule_config_repository import ScheduleConfigRepository

logger = logging.getLogger(__name__)

MONTH_NAMES = {
    name: index
    for index, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"],
        start=1,
    )
}
# Cron numbering: 0 and 7 are Sunday.
WEEKDAY_NAMES = {
    name: index for index, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])
}
MAX_DAYS_IN_MONTH = {1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}


def _parse_value(token: str, names: dict[str, int]) -> int:
    upper = token.upper()
    if upper in names:
        return names[upper]
    if not token.isdigit():
        raise ValueError(f"Invalid cron value: {token!r}")
    return int(token)


def _parse_field(
    expr: str, low: int, high: int, names: dict[str, int] | None = None
) -> set[int] | None:
    """Parse one cron field into the set of matching values; None means any."""
    names = names or {}
    if expr in ("*", "?"):
        return None

    values: set[int] = set()
    for part in expr.split(","):
        if not part:
            raise ValueError(f"Empty list item in cron field {expr!r}")
        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            if not step_text.isdigit() or int(step_text) == 0:
                raise ValueError(f"Invalid cron step in {expr!r}")
            step = int(step_text)

        if part in ("*", "?"):
            start, end = low, high
        elif "-" in part:
            start_text, end_text = part.split("-", 1)
            start, end = _parse_value(start_text, names), _parse_value(end_text, names)
        else:
            start = _parse_value(part, names)
            end = high if step > 1 else start

        if start < low or end > high or start > end:
            raise ValueError(f"Cron field {expr!r} out of range {low}-{high}")
        values.update(range(start, end + 1, step))

    return values


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression.

    Accepts five fields (minute hour day month weekday) or six with a leading
    seconds field. Day-of-month and day-of-week must both match when both
    are restricted.
    """

    expression: str
    second: set[int] | None
    minute: set[int] | None
    hour: set[int] | None
    day: set[int] | None
    month: set[int] | None
    weekday: set[int] | None

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        fields = expression.split()
        if len(fields) == 5:
            fields = ["0", *fields]
        if len(fields) != 6:
            raise ValueError(
                f"Cron expression must have 5 or 6 fields, got {len(fields)}: {expression!r}"
            )

        second = _parse_field(fields[0], 0, 59)
        minute = _parse_field(fields[1], 0, 59)
        hour = _parse_field(fields[2], 0, 23)
        day = _parse_field(fields[3], 1, 31)
        month = _parse_field(fields[4], 1, 12, MONTH_NAMES)
        cron_weekday = _parse_field(fields[5], 0, 7, WEEKDAY_NAMES)

        # Python weekday(): Monday is 0, Sunday is 6.
        weekday = None
        if cron_weekday is not None:
            weekday = {(d - 1) % 7 for d in cron_weekday}
            if len(weekday) == 7:
                weekday = None

        if day is not None:
            months = month or set(MAX_DAYS_IN_MONTH)
            if min(day) > max(MAX_DAYS_IN_MONTH[m] for m in months):
                raise ValueError(f"Cron expression can never fire: {expression!r}")

        return cls(
            expression=expression.strip(),
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            weekday=weekday,
        )

    def next_fire(self, after: datetime) -> datetime:
        """First fire time strictly after ``after``, in ``after``'s timezone."""
        return next_cron(
            after,
            month=self.month,
            day=self.day,
            weekday=self.weekday,
            hour=self.hour,
            minute=self.minute,
            second=self.second,
            microsecond=0,
        )


@dataclass(frozen=True)
class ScheduleSpec:
    """Detached snapshot of a schedule config row."""

    config_key: str
    cron_expression: str
    enabled: bool
    merchant_id: str | None = None

    @classmethod
    def from_config(cls, config: SettlementScheduleConfig) -> ScheduleSpec:
        return cls(
            config_key=str(config.config_key),
            cron_expression=str(config.cron_expression),
            enabled=bool(config.enabled),
            merchant_id=str(config.merchant_id) if config.merchant_id is not None else None,
        )


@dataclass
class ScheduledHandle:
    """A live schedule: the asyncio task firing one config key."""

    spec: ScheduleSpec
    schedule: CronSchedule
    task: asyncio.Task[None] | None = None
    next_run_at: datetime | None = None
    installed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def config_key(self) -> str:
        return self.spec.config_key

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


class ScheduleRegistry:
    """Mapping of config key to its live handle, guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, ScheduledHandle] = {}

    def swap(self, config_key: str, handle: ScheduledHandle) -> ScheduledHandle | None:
        """Install ``handle`` for ``config_key`` and cancel whatever it replaces."""
        with self._lock:
            previous = self._handles.get(config_key)
            self._handles[config_key] = handle
            if previous is not None and previous is not handle:
                previous.cancel()
        return previous

    def remove(self, config_key: str) -> ScheduledHandle | None:
        """Drop and cancel the handle for ``config_key``, if any."""
        with self._lock:
            handle = self._handles.pop(config_key, None)
            if handle is not None:
                handle.cancel()
        return handle

    def get(self, config_key: str) -> ScheduledHandle | None:
        with self._lock:
            return self._handles.get(config_key)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._handles)

    def clear(self) -> None:
        with self._lock:
            for handle in self._handles.values():
                handle.cancel()
            self._handles.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, config_key: object) -> bool:
        with self._lock:
            return config_key in self._handles


def build_job_params(spec: ScheduleSpec, run_at: datetime) -> dict[str, Any]:
    """Parameters handed to one scheduled run; ``run_id`` is unique per run."""
    return {
        "config_key": spec.config_key,
        "merchant_id": spec.merchant_id,
        "run_at": run_at.isoformat(),
        "run_id": f"{spec.config_key}-{run_at:%Y%m%dT%H%M%S}-{uuid.uuid4().hex[:8]}",
    }


JobRunner = Callable[[dict[str, Any]], Any]


class DynamicScheduler:
    """Installs, re-installs and cancels cron schedules from stored configs."""

    def __init__(
        self,
        job_runner: JobRunner,
        registry: ScheduleRegistry | None = None,
        max_workers: int | None = None,
        timezone: str | None = None,
        session_factory: Callable[[], Any] | None = None,
    ):
        self.job_runner = job_runner
        self.registry = registry if registry is not None else ScheduleRegistry()
        self.max_workers = max_workers or settings.SCHEDULER_MAX_WORKERS
        self.tz = ZoneInfo(timezone or settings.SCHEDULER_TIMEZONE)
        self._session_factory = session_factory
        self._executor: ThreadPoolExecutor | None = None
        self._reload_lock = asyncio.Lock()

    def _open_session(self) -> Any:
        if self._session_factory is not None:
            return self._session_factory()
        return database.SessionLocal()

    def _load_specs(self, config_key: str | None = None) -> list[ScheduleSpec]:
        db = self._open_session()
        try:
            repo = ScheduleConfigRepository(db)
            if config_key is None:
                return [ScheduleSpec.from_config(c) for c in repo.get_all()]
            config = repo.get_by_key(config_key)
            return [ScheduleSpec.from_config(config)] if config else []
        finally:
            db.close()

    @property
    def running(self) -> bool:
        return self._executor is not None

    async def start(self) -> int:
        """Create the worker pool and install every enabled schedule."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="settlement-scheduler"
            )
        installed = await self.reload_all()
        logger.info("Dynamic scheduler started with %d schedules", installed)
        return installed

    async def stop(self) -> None:
        """Cancel every schedule and release the worker pool."""
        self.registry.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        logger.info("Dynamic scheduler stopped")

    async def reload_all(self) -> int:
        """Re-read every config; returns the number of installed schedules."""
        async with self._reload_lock:
            specs = self._load_specs()
            seen: set[str] = set()
            for spec in specs:
                seen.add(spec.config_key)
                self.apply(spec)

            for config_key in self.registry.keys():
                if config_key not in seen:
                    self.registry.remove(config_key)
                    logger.info("Schedule removed, config no longer exists: %s", config_key)

            installed = len(self.registry)
            logger.info("Reloaded schedules: %d configs, %d installed", len(specs), installed)
            return installed

    async def reload_one(self, config_key: str) -> bool:
        """Re-read one config; returns True if a schedule is installed afterwards."""
        async with self._reload_lock:
            specs = self._load_specs(config_key)
            if not specs:
                if self.registry.remove(config_key) is not None:
                    logger.info("Schedule removed, config no longer exists: %s", config_key)
                return False
            return self.apply(specs[0]) is not None

    def apply(self, spec: ScheduleSpec) -> ScheduledHandle | None:
        """Install or cancel the schedule for one config.

        Must be called from the event loop that runs the schedules.
        """
        if not spec.enabled:
            if self.registry.remove(spec.config_key) is not None:
                logger.info("Schedule disabled: %s", spec.config_key)
            return None

        try:
            schedule = CronSchedule.parse(spec.cron_expression)
        except ValueError as exc:
            self.registry.remove(spec.config_key)
            logger.error(
                "Invalid cron expression for %s (%r): %s",
                spec.config_key,
                spec.cron_expression,
                exc,
            )
            return None

        handle = ScheduledHandle(spec=spec, schedule=schedule)
        handle.next_run_at = schedule.next_fire(datetime.now(self.tz))
        handle.task = asyncio.get_running_loop().create_task(
            self._run_schedule(handle), name=f"schedule:{spec.config_key}"
        )
        self.registry.swap(spec.config_key, handle)
        logger.info(
            "Schedule installed: %s cron=%r next_run_at=%s",
            spec.config_key,
            spec.cron_expression,
            handle.next_run_at.isoformat(),
        )
        return handle

    async def _run_schedule(self, handle: ScheduledHandle) -> None:
        while True:
            run_at = handle.next_run_at or handle.schedule.next_fire(datetime.now(self.tz))
            delay = (run_at - datetime.now(self.tz)).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            await self._fire(handle.spec, run_at)
            handle.next_run_at = handle.schedule.next_fire(max(run_at, datetime.now(self.tz)))

    async def _fire(self, spec: ScheduleSpec, run_at: datetime) -> None:
        if self._executor is None:
            logger.warning("Scheduler is stopped, skipping run of %s", spec.config_key)
            return
        params = build_job_params(spec, run_at)
        logger.info("Scheduled job fired: %s run_id=%s", spec.config_key, params["run_id"])
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._execute, params)
        # The job keeps running in its thread if the schedule is cancelled meanwhile.
        await asyncio.shield(future)

    def _execute(self, params: dict[str, Any]) -> None:
        try:
            self.job_runner(params)
        except Exception:
            logger.exception(
                "Scheduled job failed: %s run_id=%s", params["config_key"], params["run_id"]
            )
