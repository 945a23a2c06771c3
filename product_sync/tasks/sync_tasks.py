"""
Celery tasks for product price synchronization.

Each task runs one invocation of the batch loop (or one product) and
returns the resulting status as a plain dict.
"""
import logging
from typing import Any, Dict

from celery import Task

from product_sync.celery_app import celery_app
from product_sync.core.config import settings
from product_sync.db.session import SessionLocal
from product_sync.factories.sync_factory import SyncFactory
from product_sync.repositories.sync_log_repository import SyncLogRepository
from product_sync.constants.sync import SyncTrigger

logger = logging.getLogger(__name__)

# Delay before a manual run re-queues itself for its next slice
FOLLOW_UP_COUNTDOWN = 2


class DatabaseTask(Task):
    """Base task with database session management."""
    _db = None

    @property
    def db(self):
        if self._db is None:
            self._db = SessionLocal()
        return self._db

    def after_return(self, *args, **kwargs):
        if self._db is not None:
            self._db.close()
            self._db = None


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="product_sync.tasks.sync_tasks.run_cron_invocation"
)
def run_cron_invocation(self) -> Dict[str, Any]:
    """
    Cron tick: continue the current run, or start one when the schedule is due.
    Runs every 5 minutes (configured in celery_app.py beat_schedule).
    """
    status = SyncFactory(self.db).scheduled_runner().run_cron_invocation()
    logger.info(f"Cron invocation: {status.message or status.model_dump()}")
    return status.model_dump()


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="product_sync.tasks.sync_tasks.run_manual_invocation"
)
def run_manual_invocation(self, follow_up: bool = True) -> Dict[str, Any]:
    """
    Start or continue a manual run.

    Args:
        follow_up: queue the next invocation while slices remain

    Returns:
        Dict with the batch status
    """
    status = SyncFactory(self.db).coordinator().run_one_invocation(SyncTrigger.MANUAL)
    if follow_up and status.needs_next_batch:
        run_manual_invocation.apply_async(
            kwargs={"follow_up": True},
            countdown=FOLLOW_UP_COUNTDOWN
        )
    return status.model_dump()


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="product_sync.tasks.sync_tasks.sync_single_product",
    max_retries=0
)
def sync_single_product(self, product_id: int) -> Dict[str, Any]:
    """
    Sync one product outside of any batch run.

    Args:
        product_id: Product ID

    Returns:
        Dict with success flag and message
    """
    result = SyncFactory(self.db).executor().sync(product_id)
    logger.info(f"Single sync of product {product_id}: {result.message}")
    return {"product_id": product_id, **result.model_dump()}


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="product_sync.tasks.sync_tasks.cleanup_sync_logs"
)
def cleanup_sync_logs(self) -> Dict[str, Any]:
    """
    Delete sync log rows past the retention window.
    Runs daily (configured in celery_app.py beat_schedule).
    """
    deleted = SyncLogRepository(self.db).purge_older_than(settings.sync_log_retention_days)
    logger.info(f"Removed {deleted} sync log rows older than {settings.sync_log_retention_days} days")
    return {"deleted": deleted}
