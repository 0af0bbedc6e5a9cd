from paysettle.repositories.order_repository import OrderRepository
from paysettle.repositories.payment_repository import PaymentRepository
from paysettle.repositories.schedule_config_repository import ScheduleConfigRepository
from paysettle.repositories.settlement_adjustment_repository import SettlementAdjustmentRepository
from paysettle.repositories.settlement_index_queue_repository import (
    SettlementIndexQueueRepository,
)
from paysettle.repositories.settlement_repository import SettlementRepository
from paysettle.repositories.user_repository import UserRepository

__all__ = [
    "OrderRepository",
    "PaymentRepository",
    "ScheduleConfigRepository",
    "SettlementAdjustmentRepository",
    "SettlementIndexQueueRepository",
    "SettlementRepository",
    "UserRepository",
]
