"""Full and ranged rebuilds of the settlement search index."""

import logging
import threading
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from paysettle.core.config import settings
from paysettle.repositories.settlement_repository import SettlementRepository
from paysettle.services.search_index import SettlementSearchIndexBase
from paysettle.services.settlement_index_queue_service import SettlementIndexQueueService

logger = logging.getLogger(__name__)

REINDEX_PAGE_SIZE = 100

_reindex_lock = threading.Lock()


class ReindexInProgress(RuntimeError):
    """Raised when a reindex is requested while another one is running."""


class SettlementReindexService:
    """Service rebuilding search documents straight from the settlements table."""

    def __init__(self, db: Session, search_index: SettlementSearchIndexBase | None = None):
        self.db = db
        self.settlement_repo = SettlementRepository(db)
        self.index_queue = SettlementIndexQueueService(db, search_index=search_index)
        self.search_index = self.index_queue.search_index

    def reindex_all(self) -> dict[str, Any]:
        """Clear the index and upsert every settlement, one page at a time."""
        return self._run(clear_first=True)

    def reindex_by_date_range(self, start_date: date, end_date: date) -> dict[str, Any]:
        """Upsert settlements whose settlement date is within ``[start_date, end_date]``."""
        if start_date > end_date:
            raise ValueError("start_date must not be after end_date")
        return self._run(clear_first=False, start_date=start_date, end_date=end_date)

    def _run(
        self,
        clear_first: bool,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, Any]:
        if not self.search_index.search_enabled:
            logger.info("Search is disabled, skipping reindex")
            return {"status": "skipped", "indexed": 0, "failed": 0}

        if not _reindex_lock.acquire(blocking=False):
            raise ReindexInProgress("A settlement reindex is already running")

        try:
            logger.info(
                "Settlement reindex started: start_date=%s, end_date=%s", start_date, end_date
            )
            if clear_first:
                self.search_index.delete_all()

            indexed = 0
            failed = 0
            page_size = min(REINDEX_PAGE_SIZE, settings.INDEX_BULK_SIZE)
            after_id: UUID | None = None
            while True:
                page = self.settlement_repo.get_page(
                    after_id=after_id,
                    limit=page_size,
                    start_date=start_date,
                    end_date=end_date,
                )
                if not page:
                    break
                after_id = page[-1].id  # type: ignore[assignment]

                try:
                    documents = [self.index_queue.build_document(s) for s in page]
                    self.search_index.bulk_upsert(documents)
                    indexed += len(documents)
                except Exception as exc:
                    failed += len(page)
                    logger.error("Reindex page failed (%d settlements): %s", len(page), exc)

                if len(page) < page_size:
                    break

            logger.info("Settlement reindex finished: indexed=%d, failed=%d", indexed, failed)
            return {"status": "completed", "indexed": indexed, "failed": failed}
        finally:
            _reindex_lock.release()
