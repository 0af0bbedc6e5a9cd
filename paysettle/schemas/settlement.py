"""Settlement schemas."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SettlementApproveRequest(BaseModel):
    admin_user_id: UUID


class SettlementRejectRequest(BaseModel):
    admin_user_id: UUID
    reason: str | None = Field(default=None, max_length=1000)


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    order_id: UUID
    payment_amount: Decimal
    commission: Decimal
    net_amount: Decimal
    status: str
    settlement_date: date
    confirmed_at: datetime | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejected_by: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class SettlementRunRequest(BaseModel):
    """Manual batch run for one settlement date."""

    settlement_date: date


class SettlementRunResponse(BaseModel):
    job_id: str
