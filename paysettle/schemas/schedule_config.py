"""Settlement schedule config schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScheduleConfigUpdate(BaseModel):
    cron_expression: str | None = Field(default=None, max_length=100)
    enabled: bool | None = None
    description: str | None = Field(default=None, max_length=500)
    merchant_id: UUID | None = None

    @field_validator("cron_expression")
    @classmethod
    def validate_cron_expression(cls, v: str | None) -> str | None:
        if v is None:
            return v
        # Imported lazily: the scheduler module pulls in arq.
        from paysettle.services.dynamic_scheduler import CronSchedule

        CronSchedule.parse(v)
        return v.strip()


class ScheduleConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    config_key: str
    cron_expression: str
    enabled: bool
    description: str | None = None
    merchant_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ScheduleReloadResponse(BaseModel):
    """Response for an operator-triggered schedule reload."""

    status: str
    config_key: str | None = None
    job_id: str | None = None
