"""
Sync logger used by the executor and the batch loop.

Writes sync attempts to the database and events to the monthly event log.
Both writes are best effort: a failure is reported and never reaches the
sync loop.
"""
import logging
from typing import Optional

from product_sync.constants.sync import LogLevel
from product_sync.core.event_log import EventLogger
from product_sync.repositories.sync_log_repository import SyncLogRepository
from product_sync.schemas.sync_schemas import SyncLogEntry

logger = logging.getLogger(__name__)

_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class SyncLogger:

    def __init__(self, repository: Optional[SyncLogRepository], events: Optional[EventLogger]):
        self.repository = repository
        self.events = events

    def append(self, entry: SyncLogEntry) -> None:
        if self.repository is None:
            return
        try:
            self.repository.add(entry)
        except Exception as e:
            logger.warning(f"Could not write sync log for product {entry.product_id}: {e}")
            try:
                self.repository.db.rollback()
            except Exception:
                logger.debug("Rollback after failed sync log write also failed")

    def append_event(self, message: str, level: str = LogLevel.INFO) -> None:
        logger.log(_LEVELS.get(level, logging.INFO), message)
        if self.events is None:
            return
        try:
            self.events.log(message, level)
        except OSError as e:
            logger.warning(f"Could not write event log: {e}")
