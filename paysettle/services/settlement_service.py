"""Settlement approval workflow."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.core.exceptions import NotFoundError, PermissionDenied
from paysettle.models.settlement import Settlement, SettlementStatus
from paysettle.models.settlement_index_queue import IndexOperation
from paysettle.models.user import User, UserRole
from paysettle.repositories.settlement_repository import SettlementRepository
from paysettle.repositories.user_repository import UserRepository
from paysettle.services.search_index import SettlementSearchIndexBase
from paysettle.services.settlement_index_queue_service import SettlementIndexQueueService

logger = logging.getLogger(__name__)


class SettlementService:
    """Service for moving settlements through the approval lifecycle."""

    def __init__(self, db: Session, search_index: SettlementSearchIndexBase | None = None):
        self.db = db
        self.settlement_repo = SettlementRepository(db)
        self.user_repo = UserRepository(db)
        self.index_queue = SettlementIndexQueueService(db, search_index=search_index)

    def _get_settlement(self, settlement_id: UUID) -> Settlement:
        settlement = self.settlement_repo.get_by_id(settlement_id, for_update=True)
        if not settlement:
            raise NotFoundError("Settlement", settlement_id)
        return settlement

    def _require_admin(self, user_id: UUID) -> User:
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        if user.role != UserRole.ADMIN.value:
            raise PermissionDenied(f"User {user_id} is not allowed to approve settlements")
        return user

    def get_waiting_approval(self) -> list[Settlement]:
        """Settlements waiting for an admin decision, oldest first."""
        return self.settlement_repo.get_by_status(SettlementStatus.WAITING_APPROVAL)

    def request_approval(self, settlement_id: UUID) -> Settlement:
        """PENDING -> WAITING_APPROVAL."""
        try:
            settlement = self._get_settlement(settlement_id)
            settlement.request_approval()
            self.index_queue.enqueue(settlement.id, IndexOperation.UPDATE)  # type: ignore[arg-type]
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Settlement approval requested: settlement_id=%s", settlement_id)
        return settlement

    def approve_settlement(self, settlement_id: UUID, admin_user_id: UUID) -> Settlement:
        """WAITING_APPROVAL -> APPROVED by an admin."""
        try:
            self._require_admin(admin_user_id)
            settlement = self._get_settlement(settlement_id)
            settlement.approve(admin_user_id)
            self.index_queue.enqueue(settlement.id, IndexOperation.UPDATE)  # type: ignore[arg-type]
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Settlement approved: settlement_id=%s, admin=%s", settlement_id, admin_user_id)
        return settlement

    def reject_settlement(
        self, settlement_id: UUID, admin_user_id: UUID, reason: str | None = None
    ) -> Settlement:
        """WAITING_APPROVAL -> REJECTED by an admin."""
        try:
            self._require_admin(admin_user_id)
            settlement = self._get_settlement(settlement_id)
            settlement.reject(admin_user_id, reason)
            self.index_queue.enqueue(settlement.id, IndexOperation.UPDATE)  # type: ignore[arg-type]
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Settlement rejected: settlement_id=%s, admin=%s, reason=%s",
            settlement_id,
            admin_user_id,
            reason,
        )
        return settlement
