from paysettle.schemas.index_queue import IndexQueueItemResponse, IndexQueueStatsResponse
from paysettle.schemas.payment import PartialRefundRequest, PaymentResponse
from paysettle.schemas.schedule_config import (
    ScheduleConfigResponse,
    ScheduleConfigUpdate,
    ScheduleReloadResponse,
)
from paysettle.schemas.settlement import (
    SettlementApproveRequest,
    SettlementRejectRequest,
    SettlementResponse,
)

__all__ = [
    "IndexQueueItemResponse",
    "IndexQueueStatsResponse",
    "PartialRefundRequest",
    "PaymentResponse",
    "ScheduleConfigResponse",
    "ScheduleConfigUpdate",
    "ScheduleReloadResponse",
    "SettlementApproveRequest",
    "SettlementRejectRequest",
    "SettlementResponse",
]
