"""Tests for the jobs fired by the dynamic scheduler."""

from datetime import UTC, date, datetime
from unittest.mock import MagicMock, patch

from paysettle.models.settlement import Settlement
from paysettle.services.scheduled_jobs import (
    JOB_HANDLERS,
    previous_business_date,
    run_scheduled_job,
)
from tests.conftest import make_captured_payment


def _params(config_key: str, run_at: str = "2026-10-02T01:00:00+00:00") -> dict:
    return {
        "config_key": config_key,
        "merchant_id": None,
        "run_at": run_at,
        "run_id": f"{config_key}-test",
    }


class TestPreviousBusinessDate:
    def test_day_before_run(self):
        assert previous_business_date(_params("X")) == date(2026, 10, 1)

    def test_month_boundary(self):
        assert previous_business_date(_params("X", "2026-11-01T00:30:00+00:00")) == date(2026, 10, 31)

    def test_run_time_in_other_zone_uses_utc_day(self):
        # 2026-10-03 01:00 in Seoul is 2026-10-02 16:00 UTC.
        assert previous_business_date(_params("X", "2026-10-03T01:00:00+09:00")) == date(2026, 10, 1)

    def test_naive_run_time_is_utc(self):
        assert previous_business_date(_params("X", "2026-10-02T23:30:00")) == date(2026, 10, 1)


class TestRunScheduledJob:
    def test_known_keys(self):
        assert set(JOB_HANDLERS) == {"SETTLEMENT_CREATE", "SETTLEMENT_CONFIRM", "ADJUSTMENT_CONFIRM"}

    def test_unknown_key_is_ignored(self):
        assert run_scheduled_job(_params("SOMETHING_ELSE")) is None

    def test_settlement_create_runs_for_yesterday(self, db_session):
        make_captured_payment(db_session, captured_at=datetime(2026, 10, 1, 12, 0, tzinfo=UTC))

        result = run_scheduled_job(_params("SETTLEMENT_CREATE"))

        assert result["target_date"] == "2026-10-01"
        assert result["created_count"] == 1
        assert db_session.query(Settlement).count() == 1

    def test_dispatches_confirm_jobs(self):
        service = MagicMock()
        service.confirm_daily_settlements.return_value.to_dict.return_value = {"confirmed_count": 2}
        service.confirm_daily_adjustments.return_value.to_dict.return_value = {"confirmed_count": 1}

        with patch("paysettle.services.scheduled_jobs.SettlementBatchService", return_value=service):
            assert run_scheduled_job(_params("SETTLEMENT_CONFIRM")) == {"confirmed_count": 2}
            assert run_scheduled_job(_params("ADJUSTMENT_CONFIRM")) == {"confirmed_count": 1}

        service.confirm_daily_settlements.assert_called_once_with(date(2026, 10, 1))
        service.confirm_daily_adjustments.assert_called_once_with(date(2026, 10, 1))

    def test_settlement_create_in_other_zone_covers_late_utc_captures(self, db_session):
        make_captured_payment(db_session, captured_at=datetime(2026, 10, 1, 18, 0, tzinfo=UTC))

        result = run_scheduled_job(_params("SETTLEMENT_CREATE", "2026-10-03T01:00:00+09:00"))

        assert result["target_date"] == "2026-10-01"
        assert result["created_count"] == 1
        assert db_session.query(Settlement).count() == 1
