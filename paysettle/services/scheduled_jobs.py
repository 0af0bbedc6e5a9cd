"""Jobs the dynamic scheduler can fire, keyed by schedule config key."""

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from paysettle.core import database
from paysettle.models.settlement_schedule_config import ScheduleJobKey
from paysettle.models.shared import utc_now
from paysettle.services.settlement_batch_service import SettlementBatchService

logger = logging.getLogger(__name__)


def _settlement_create(service: SettlementBatchService, target_date: date) -> dict[str, Any]:
    return service.create_daily_settlements(target_date).to_dict()


def _settlement_confirm(service: SettlementBatchService, target_date: date) -> dict[str, Any]:
    return service.confirm_daily_settlements(target_date).to_dict()


def _adjustment_confirm(service: SettlementBatchService, target_date: date) -> dict[str, Any]:
    return service.confirm_daily_adjustments(target_date).to_dict()


JOB_HANDLERS: dict[str, Callable[[SettlementBatchService, date], dict[str, Any]]] = {
    ScheduleJobKey.SETTLEMENT_CREATE.value: _settlement_create,
    ScheduleJobKey.SETTLEMENT_CONFIRM.value: _settlement_confirm,
    ScheduleJobKey.ADJUSTMENT_CONFIRM.value: _adjustment_confirm,
}


def previous_business_date(params: dict[str, Any]) -> date:
    """The UTC day before the run: every daily job works on yesterday's records.

    Capture windows are UTC days, so the run time is converted to UTC first;
    the previous UTC day is always complete whatever zone the cron runs in.
    """
    run_at = params.get("run_at")
    reference = datetime.fromisoformat(run_at) if run_at else utc_now()
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=UTC)
    return reference.astimezone(UTC).date() - timedelta(days=1)


def run_scheduled_job(params: dict[str, Any]) -> dict[str, Any] | None:
    """Resolve ``params["config_key"]`` to a batch job and run it on a fresh session.

    Unknown keys are logged and ignored. Runs on a scheduler worker thread.
    """
    config_key = params.get("config_key")
    handler = JOB_HANDLERS.get(str(config_key))
    if handler is None:
        logger.warning("No job registered for schedule key %s", config_key)
        return None

    target_date = previous_business_date(params)
    logger.info(
        "Running scheduled job %s for %s: run_id=%s, merchant_id=%s",
        config_key,
        target_date,
        params.get("run_id"),
        params.get("merchant_id"),
    )

    db = database.SessionLocal()
    try:
        result = handler(SettlementBatchService(db), target_date)
    finally:
        db.close()

    logger.info("Scheduled job %s finished: %s", config_key, result)
    return result
