"""Tests for the HTTP API."""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from paysettle.main import app
from paysettle.models.settlement_index_queue import IndexOperation
from paysettle.models.shared import utc_now
from paysettle.models.user import UserRole
from paysettle.repositories.schedule_config_repository import ScheduleConfigRepository
from paysettle.repositories.settlement_index_queue_repository import (
    SettlementIndexQueueRepository,
)
from paysettle.repositories.user_repository import UserRepository
from paysettle.services.settlement_batch_service import SettlementBatchService
from tests.conftest import make_captured_payment, make_settlement


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def settled(db_session):
    order, payment = make_captured_payment(db_session)
    return order, payment, make_settlement(db_session, payment)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


class TestRefundsAPI:
    def test_full_refund(self, client, settled):
        _, payment, _ = settled
        response = client.post(f"/v1/refunds/full/{payment.id}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REFUNDED"
        assert Decimal(data["refunded_amount"]) == Decimal("10000.00")

    def test_full_refund_twice_conflicts(self, client, settled):
        _, payment, _ = settled
        client.post(f"/v1/refunds/full/{payment.id}")
        response = client.post(f"/v1/refunds/full/{payment.id}")
        assert response.status_code == 409

    def test_full_refund_confirmed_settlement(self, client, db_session, settled):
        _, payment, settlement = settled
        settlement.confirm()
        db_session.commit()
        response = client.post(f"/v1/refunds/full/{payment.id}")
        assert response.status_code == 400
        assert "CONFIRMED" in response.json()["detail"]

    def test_full_refund_unknown_payment(self, client):
        response = client.post(f"/v1/refunds/full/{uuid.uuid4()}")
        assert response.status_code == 404

    def test_partial_refund(self, client, settled):
        _, payment, _ = settled
        response = client.post(
            f"/v1/refunds/partial/{payment.id}", json={"refund_amount": "3000.00"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["id"] != str(payment.id)
        assert Decimal(data["amount"]) == Decimal("-3000.00")

    def test_partial_refund_too_large(self, client, settled):
        _, payment, _ = settled
        response = client.post(
            f"/v1/refunds/partial/{payment.id}", json={"refund_amount": "20000.00"}
        )
        assert response.status_code == 400

    def test_partial_refund_validation(self, client, settled):
        _, payment, _ = settled
        response = client.post(f"/v1/refunds/partial/{payment.id}", json={"refund_amount": "-1"})
        assert response.status_code == 422

    def test_failed_payment_refund_on_captured(self, client, settled):
        _, payment, _ = settled
        response = client.post(f"/v1/refunds/failed/{payment.id}")
        assert response.status_code == 409


class TestSettlementsAPI:
    def test_approval_flow(self, client, db_session, settled):
        _, _, settlement = settled
        admin = UserRepository(db_session).create("admin@example.com", UserRole.ADMIN)

        response = client.post(f"/v1/settlements/{settlement.id}/request-approval")
        assert response.status_code == 200
        assert response.json()["status"] == "WAITING_APPROVAL"

        waiting = client.get("/v1/settlements/waiting-approval").json()
        assert [s["id"] for s in waiting] == [str(settlement.id)]

        response = client.post(
            f"/v1/settlements/{settlement.id}/approve", json={"admin_user_id": str(admin.id)}
        )
        assert response.status_code == 200
        assert response.json()["approved_by"] == str(admin.id)

    def test_reject(self, client, db_session, settled):
        _, _, settlement = settled
        admin = UserRepository(db_session).create("admin@example.com", UserRole.ADMIN)
        client.post(f"/v1/settlements/{settlement.id}/request-approval")

        response = client.post(
            f"/v1/settlements/{settlement.id}/reject",
            json={"admin_user_id": str(admin.id), "reason": "duplicate"},
        )
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "duplicate"

    def test_non_admin_forbidden(self, client, db_session, settled):
        _, _, settlement = settled
        user = UserRepository(db_session).create("user@example.com")
        client.post(f"/v1/settlements/{settlement.id}/request-approval")

        response = client.post(
            f"/v1/settlements/{settlement.id}/approve", json={"admin_user_id": str(user.id)}
        )
        assert response.status_code == 403

    def test_approve_pending_conflicts(self, client, db_session, settled):
        _, _, settlement = settled
        admin = UserRepository(db_session).create("admin@example.com", UserRole.ADMIN)
        response = client.post(
            f"/v1/settlements/{settlement.id}/approve", json={"admin_user_id": str(admin.id)}
        )
        assert response.status_code == 409

    def test_unknown_settlement(self, client):
        response = client.post(f"/v1/settlements/{uuid.uuid4()}/request-approval")
        assert response.status_code == 404


class TestSchedulesAPI:
    @pytest.fixture
    def config(self, db_session):
        return ScheduleConfigRepository(db_session).create("SETTLEMENT_CREATE", "0 0 1 * * *")

    @pytest.fixture
    def enqueue(self):
        with patch(
            "paysettle.routers.schedules.enqueue_reload_schedules",
            new_callable=AsyncMock,
            return_value=MagicMock(job_id="job-9"),
        ) as mock_enqueue:
            yield mock_enqueue

    def test_list_and_get(self, client, config):
        assert [c["config_key"] for c in client.get("/v1/admin/schedules/").json()] == [
            "SETTLEMENT_CREATE"
        ]
        response = client.get("/v1/admin/schedules/SETTLEMENT_CREATE")
        assert response.status_code == 200
        assert response.json()["cron_expression"] == "0 0 1 * * *"
        assert client.get("/v1/admin/schedules/UNKNOWN").status_code == 404

    def test_update_enqueues_reload(self, client, config, enqueue):
        response = client.put(
            f"/v1/admin/schedules/{config.id}", json={"cron_expression": "0 30 1 * * *"}
        )
        assert response.status_code == 200
        assert response.json()["cron_expression"] == "0 30 1 * * *"
        enqueue.assert_awaited_once_with("SETTLEMENT_CREATE")

    def test_update_rejects_invalid_cron(self, client, config, enqueue):
        response = client.put(f"/v1/admin/schedules/{config.id}", json={"cron_expression": "0 0 30 2 *"})
        assert response.status_code == 422
        enqueue.assert_not_awaited()

    def test_update_unknown(self, client, enqueue):
        response = client.put(f"/v1/admin/schedules/{uuid.uuid4()}", json={"enabled": False})
        assert response.status_code == 404

    def test_toggle(self, client, config, enqueue):
        response = client.patch(f"/v1/admin/schedules/{config.id}/toggle")
        assert response.status_code == 200
        assert response.json()["enabled"] is False
        enqueue.assert_awaited_once_with("SETTLEMENT_CREATE")

    def test_reload_all(self, client, enqueue):
        response = client.post("/v1/admin/schedules/reload")
        assert response.json() == {"status": "queued", "config_key": None, "job_id": "job-9"}
        enqueue.assert_awaited_once_with(None)

    def test_reload_one(self, client, config, enqueue):
        response = client.post("/v1/admin/schedules/SETTLEMENT_CREATE/reload")
        assert response.json()["config_key"] == "SETTLEMENT_CREATE"
        assert client.post("/v1/admin/schedules/UNKNOWN/reload").status_code == 404

    def test_edit_survives_unreachable_broker(self, client, config):
        with patch(
            "paysettle.routers.schedules.enqueue_reload_schedules",
            new_callable=AsyncMock,
            side_effect=ConnectionError("redis down"),
        ):
            response = client.patch(f"/v1/admin/schedules/{config.id}/toggle")
            assert response.status_code == 200
            reload_response = client.post("/v1/admin/schedules/reload")

        assert reload_response.json()["status"] == "deferred"


class TestSettlementRunsAPI:
    def test_enqueue_creation(self, client):
        with patch(
            "paysettle.routers.settlement_runs.enqueue_create_settlements",
            new_callable=AsyncMock,
            return_value=MagicMock(job_id="job-create"),
        ) as mock_enqueue:
            response = client.post(
                "/v1/admin/settlement-runs/create", json={"settlement_date": "2026-10-01"}
            )

        assert response.status_code == 202
        assert response.json() == {"job_id": "job-create"}
        mock_enqueue.assert_awaited_once_with(date(2026, 10, 1))

    def test_enqueue_confirmation(self, client):
        with patch(
            "paysettle.routers.settlement_runs.enqueue_confirm_settlements",
            new_callable=AsyncMock,
            return_value=MagicMock(job_id="job-confirm"),
        ) as mock_enqueue:
            response = client.post(
                "/v1/admin/settlement-runs/confirm", json={"settlement_date": "2026-10-01"}
            )

        assert response.status_code == 202
        assert response.json() == {"job_id": "job-confirm"}
        mock_enqueue.assert_awaited_once_with(date(2026, 10, 1))

    def test_enqueue_reindex(self, client):
        with patch(
            "paysettle.routers.settlement_runs.enqueue_reindex_settlements",
            new_callable=AsyncMock,
            return_value=MagicMock(job_id="job-reindex"),
        ) as mock_enqueue:
            response = client.post("/v1/admin/settlement-runs/reindex")

        assert response.status_code == 202
        assert response.json() == {"job_id": "job-reindex"}
        mock_enqueue.assert_awaited_once_with()

    def test_date_is_required(self, client):
        response = client.post("/v1/admin/settlement-runs/create", json={})
        assert response.status_code == 422


def test_metrics_endpoint(client, db_session):
    make_captured_payment(db_session)
    SettlementBatchService(db_session).create_daily_settlements(date(2026, 10, 1))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "settlement_batch_created_total" in response.text


class TestIndexQueueAPI:
    def test_stats_and_failed(self, client, db_session, settled):
        _, _, settlement = settled
        repo = SettlementIndexQueueRepository(db_session)
        item = repo.create(settlement.id, IndexOperation.UPDATE, max_retries=0)
        db_session.commit()
        item.mark_failed("search down", utc_now())
        db_session.commit()

        stats = client.get("/v1/admin/index-queue/stats").json()
        assert stats == {"pending": 0, "processing": 0, "success": 0, "failed": 1, "total": 1}

        failed = client.get("/v1/admin/index-queue/failed").json()
        assert [f["id"] for f in failed] == [str(item.id)]
        assert failed[0]["error_message"] == "search down"
