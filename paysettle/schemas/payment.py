"""Payment and refund schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PartialRefundRequest(BaseModel):
    refund_amount: Decimal = Field(gt=0, decimal_places=2)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    amount: Decimal
    refunded_amount: Decimal
    status: str
    payment_method: str | None = None
    pg_transaction_id: str | None = None
    failure_reason: str | None = None
    captured_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
