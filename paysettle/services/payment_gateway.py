"""Payment gateway abstraction layer.

The gateway confirms an authorized charge before it is captured. Supports a
manual gateway (always approves) and Toss Payments.
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import httpx

from paysettle.core.config import settings
from paysettle.core.exceptions import ExternalCallFailure

logger = logging.getLogger(__name__)


class GatewayConfirmationStatus(str, Enum):
    """Outcome of a gateway confirmation."""

    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


@dataclass
class GatewayConfirmation:
    """Result of confirming a charge with the gateway."""

    status: GatewayConfirmationStatus
    failure_reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def approved(self) -> bool:
        return self.status == GatewayConfirmationStatus.APPROVED


class PaymentGatewayBase(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_name(self) -> str:
        """Return the gateway name."""
        pass  # pragma: no cover

    @abstractmethod
    def confirm(
        self,
        pg_transaction_id: str,
        order_id: UUID,
        amount: Decimal,
    ) -> GatewayConfirmation:
        """Confirm a charge.

        Raises:
            ExternalCallFailure: If the gateway could not be reached or failed
                on its side. Nothing may be persisted by the caller.
        """
        pass  # pragma: no cover


class ManualGateway(PaymentGatewayBase):
    """Gateway for payments confirmed out of band; approves every charge."""

    @property
    def gateway_name(self) -> str:
        return "manual"

    def confirm(
        self,
        pg_transaction_id: str,
        order_id: UUID,
        amount: Decimal,
    ) -> GatewayConfirmation:
        return GatewayConfirmation(
            status=GatewayConfirmationStatus.APPROVED,
            raw={"paymentKey": pg_transaction_id, "orderId": str(order_id)},
        )


class TossPaymentsGateway(PaymentGatewayBase):
    """Toss Payments confirmation API.

    4xx responses are explicit declines; 5xx responses and transport errors
    are call failures.
    """

    CONFIRM_PATH = "/v1/payments/confirm"

    def __init__(
        self,
        api_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.api_url = (api_url or settings.TOSS_API_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.TOSS_SECRET_KEY
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS
        self._client = client

    @property
    def gateway_name(self) -> str:
        return "toss"

    def _auth_header(self) -> str:
        encoded = base64.b64encode(f"{self.secret_key}:".encode()).decode("ascii")
        return f"Basic {encoded}"

    def confirm(
        self,
        pg_transaction_id: str,
        order_id: UUID,
        amount: Decimal,
    ) -> GatewayConfirmation:
        body = {
            "paymentKey": pg_transaction_id,
            "orderId": str(order_id),
            "amount": str(amount),
        }
        headers = {
            "Authorization": self._auth_header(),
            "Content-Type": "application/json",
        }
        url = f"{self.api_url}{self.CONFIRM_PATH}"

        try:
            if self._client is not None:
                resp = self._client.post(url, json=body, headers=headers)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Toss confirm call failed for %s: %s", pg_transaction_id, exc)
            raise ExternalCallFailure(f"Payment gateway call failed: {exc}") from exc

        logger.info("Toss confirm response for %s: status=%s", pg_transaction_id, resp.status_code)

        if 200 <= resp.status_code < 300:
            return GatewayConfirmation(
                status=GatewayConfirmationStatus.APPROVED,
                raw=_json_or_empty(resp),
            )
        if 400 <= resp.status_code < 500:
            raw = _json_or_empty(resp)
            reason = f"{raw.get('code', resp.status_code)} - {raw.get('message', resp.text[:500])}"
            logger.warning("Toss declined %s: %s", pg_transaction_id, reason)
            return GatewayConfirmation(
                status=GatewayConfirmationStatus.DECLINED,
                failure_reason=reason,
                raw=raw,
            )
        raise ExternalCallFailure(
            f"Payment gateway returned {resp.status_code}: {resp.text[:500]}"
        )


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_payment_gateway(name: str | None = None) -> PaymentGatewayBase:
    """Factory function to get the configured payment gateway."""
    gateways: dict[str, type[PaymentGatewayBase]] = {
        "manual": ManualGateway,
        "toss": TossPaymentsGateway,
    }

    gateway_name = name or settings.PAYMENT_GATEWAY
    gateway_class = gateways.get(gateway_name)
    if not gateway_class:
        raise ValueError(f"Unsupported payment gateway: {gateway_name}")

    return gateway_class()
