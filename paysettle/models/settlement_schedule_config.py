"""SettlementScheduleConfig model - cron configuration read by the dynamic scheduler."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, String

from paysettle.core.database import Base
from paysettle.models.shared import UUIDType, generate_uuid, utc_now


class ScheduleJobKey(str, Enum):
    """Known schedule config keys."""

    SETTLEMENT_CREATE = "SETTLEMENT_CREATE"
    SETTLEMENT_CONFIRM = "SETTLEMENT_CONFIRM"
    ADJUSTMENT_CONFIRM = "ADJUSTMENT_CONFIRM"


class SettlementScheduleConfig(Base):
    """SettlementScheduleConfig model.

    ``merchant_id`` is NULL for a global schedule.
    """

    __tablename__ = "settlement_schedule_config"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    config_key = Column(String(100), nullable=False, unique=True)
    cron_expression = Column(String(100), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    description = Column(String(500), nullable=True)
    merchant_id = Column(UUIDType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
