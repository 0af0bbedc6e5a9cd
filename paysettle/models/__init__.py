from paysettle.models.order import Order, OrderStatus
from paysettle.models.payment import Payment, PaymentStatus
from paysettle.models.settlement import Settlement, SettlementStatus, calculate_commission
from paysettle.models.settlement_adjustment import AdjustmentStatus, SettlementAdjustment
from paysettle.models.settlement_index_queue import (
    IndexOperation,
    IndexQueueStatus,
    SettlementIndexQueue,
)
from paysettle.models.settlement_schedule_config import ScheduleJobKey, SettlementScheduleConfig
from paysettle.models.user import User, UserRole

__all__ = [
    "AdjustmentStatus",
    "IndexOperation",
    "IndexQueueStatus",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "ScheduleJobKey",
    "Settlement",
    "SettlementAdjustment",
    "SettlementIndexQueue",
    "SettlementScheduleConfig",
    "SettlementStatus",
    "User",
    "UserRole",
    "calculate_commission",
]
