"""Settlement search index clients.

The search backend is an Elasticsearch-compatible REST API spoken over httpx.
When search is disabled the no-op client is used, so callers never branch on
the flag themselves beyond reading ``search_enabled``.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx

from paysettle.core.config import settings
from paysettle.core.exceptions import IndexSyncFailure
from paysettle.models.order import Order
from paysettle.models.payment import Payment
from paysettle.models.settlement import Settlement
from paysettle.models.shared import as_utc, utc_now

logger = logging.getLogger(__name__)


def _iso(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()  # type: ignore[union-attr]
    return value.isoformat()


def _money(value: Any) -> str | None:
    if value is None:
        return None
    return str(Decimal(str(value)))


def build_settlement_document(
    settlement: Settlement,
    payment: Payment | None = None,
    order: Order | None = None,
    refunds: Sequence[Payment] = (),
) -> dict[str, Any]:
    """Join a settlement with its payment, order and refund records into one document.

    ``refunds`` are the negative-amount REFUNDED payment rows of the order.
    """
    latest_refund = max(refunds, key=lambda r: as_utc(r.created_at)) if refunds else None  # type: ignore[arg-type, return-value]
    return {
        "id": str(settlement.id),
        "settlement_id": str(settlement.id),
        "settlement_status": settlement.status,
        "settlement_amount": _money(settlement.payment_amount),
        "commission": _money(settlement.commission),
        "net_amount": _money(settlement.net_amount),
        "settlement_date": _iso(settlement.settlement_date),
        "settlement_confirmed_at": _iso(settlement.confirmed_at),
        "order_id": str(settlement.order_id),
        "user_id": str(order.user_id) if order is not None else None,
        "order_status": order.status if order is not None else None,
        "order_amount": _money(order.amount) if order is not None else None,
        "order_created_at": _iso(order.created_at) if order is not None else None,
        "payment_id": str(settlement.payment_id),
        "payment_status": payment.status if payment is not None else None,
        "payment_amount": _money(payment.amount) if payment is not None else None,
        "refunded_amount": _money(payment.refunded_amount) if payment is not None else None,
        "payment_method": payment.payment_method if payment is not None else None,
        "pg_transaction_id": payment.pg_transaction_id if payment is not None else None,
        "payment_captured_at": _iso(payment.captured_at) if payment is not None else None,
        "has_refund": bool(refunds),
        "refund_count": len(refunds),
        "latest_refund_status": latest_refund.status if latest_refund is not None else None,
        "latest_refund_completed_at": (
            _iso(latest_refund.created_at) if latest_refund is not None else None
        ),
        "indexed_at": _iso(utc_now()),
    }


class SettlementSearchIndexBase(ABC):
    """Abstract search index port for settlement documents."""

    @property
    @abstractmethod
    def search_enabled(self) -> bool:
        """Whether index propagation is active in this deployment."""
        pass  # pragma: no cover

    @abstractmethod
    def upsert(self, document: dict[str, Any]) -> None:
        """Create or replace one document."""
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, settlement_id: UUID) -> None:
        """Remove one document; a missing document is not an error."""
        pass  # pragma: no cover

    @abstractmethod
    def bulk_upsert(self, documents: Sequence[dict[str, Any]]) -> None:
        """Create or replace many documents in one request."""
        pass  # pragma: no cover

    @abstractmethod
    def delete_all(self) -> None:
        """Remove every document from the index."""
        pass  # pragma: no cover


class DisabledSettlementIndex(SettlementSearchIndexBase):
    """No-op index used when search is turned off."""

    @property
    def search_enabled(self) -> bool:
        return False

    def upsert(self, document: dict[str, Any]) -> None:
        return None

    def delete(self, settlement_id: UUID) -> None:
        return None

    def bulk_upsert(self, documents: Sequence[dict[str, Any]]) -> None:
        return None

    def delete_all(self) -> None:
        return None


class ElasticsearchSettlementIndex(SettlementSearchIndexBase):
    """Settlement index backed by an Elasticsearch-compatible REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        index_name: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.base_url = (base_url or settings.SEARCH_URL).rstrip("/")
        self.index_name = index_name or settings.SEARCH_INDEX_NAME
        self.timeout = timeout if timeout is not None else settings.SEARCH_TIMEOUT_SECONDS
        self._client = client

    @property
    def search_enabled(self) -> bool:
        return True

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        url = f"{self.base_url}/{self.index_name}{path}"
        try:
            if self._client is not None:
                resp = self._client.request(
                    method, url, json=json_body, content=content, headers=headers
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.request(
                        method, url, json=json_body, content=content, headers=headers
                    )
        except httpx.HTTPError as exc:
            raise IndexSyncFailure(f"{method} {path} failed: {exc}") from exc

        if allow_not_found and resp.status_code == 404:
            return resp
        if not 200 <= resp.status_code < 300:
            body = resp.text[:500] if resp.text else ""
            raise IndexSyncFailure(f"{method} {path} returned {resp.status_code}: {body}")
        return resp

    def upsert(self, document: dict[str, Any]) -> None:
        self._request("PUT", f"/_doc/{document['id']}", json_body=document)
        logger.debug("Indexed settlement document %s", document["id"])

    def delete(self, settlement_id: UUID) -> None:
        self._request("DELETE", f"/_doc/{settlement_id}", allow_not_found=True)
        logger.debug("Deleted settlement document %s", settlement_id)

    def bulk_upsert(self, documents: Sequence[dict[str, Any]]) -> None:
        if not documents:
            return
        lines: list[str] = []
        for document in documents:
            lines.append(json.dumps({"index": {"_index": self.index_name, "_id": document["id"]}}))
            lines.append(json.dumps(document, default=str))
        payload = ("\n".join(lines) + "\n").encode("utf-8")

        resp = self._request(
            "POST",
            "/_bulk",
            content=payload,
            headers={"Content-Type": "application/x-ndjson"},
        )
        result = resp.json()
        if result.get("errors"):
            failed_ids = _failed_bulk_ids(result.get("items", []))
            raise IndexSyncFailure(
                f"Bulk upsert rejected {len(failed_ids)} of {len(documents)} documents: "
                f"{', '.join(failed_ids[:10])}"
            )
        logger.debug("Bulk indexed %d settlement documents", len(documents))

    def delete_all(self) -> None:
        self._request(
            "POST",
            "/_delete_by_query",
            json_body={"query": {"match_all": {}}},
            allow_not_found=True,
        )
        logger.info("Cleared settlement index %s", self.index_name)


def _failed_bulk_ids(items: Iterable[dict[str, Any]]) -> list[str]:
    failed: list[str] = []
    for item in items:
        action = item.get("index") or item.get("create") or item.get("update") or {}
        if action.get("error"):
            failed.append(str(action.get("_id")))
    return failed


def get_settlement_index() -> SettlementSearchIndexBase:
    """Build the index client for this deployment from settings."""
    if settings.SEARCH_ENABLED:
        return ElasticsearchSettlementIndex()
    return DisabledSettlementIndex()
