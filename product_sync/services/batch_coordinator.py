"""
Resumable batch sync.

A full run over the catalog is spread across many short invocations. Each
invocation takes the run lock, processes at most one slice of the queue and
stores its progress, so that the next invocation (cron tick or admin poll)
picks up where it stopped:

    IDLE -> QUEUEING -> RUNNING -> CONTINUING | FINISHED | ABORTED

The queue, cursor and counters live in the state store; nothing is kept in
memory between invocations.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from celery.exceptions import SoftTimeLimitExceeded
from pydantic import ValidationError

from product_sync.constants.sync import BatchPhase, LogLevel, StateKeys, SyncTrigger
from product_sync.core.alerts import AlertManager, send_batch_completion_alert
from product_sync.core.clock import utcnow
from product_sync.core.config import SyncConfig
from product_sync.schemas.sync_schemas import BatchState, BatchStatus, EligibilityFilter
from product_sync.services.lock_manager import LockManager
from product_sync.services.product_store import ProductStore, queue_order
from product_sync.services.state_store import StateStore
from product_sync.services.sync_executor import SyncExecutor
from product_sync.services.sync_logger import SyncLogger

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """
    Drive one invocation of the batch loop at a time.

    Args:
        store: product store used to build the queue
        executor: per-product sync
        state: cross-invocation state store
        config: sync options
        sync_logger: event log writer, optional
        alert_manager: receives a summary when a run finishes with failures
        clock: unix time, used for the time budget and the lock
        now: current datetime, used for the skip-recent window
        sleep: pause between items
    """

    def __init__(
        self,
        store: ProductStore,
        executor: SyncExecutor,
        state: StateStore,
        config: SyncConfig,
        sync_logger: Optional[SyncLogger] = None,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], float] = time.time,
        now: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.executor = executor
        self.state = state
        self.config = config
        self.sync_logger = sync_logger
        self.alert_manager = alert_manager
        self.clock = clock
        self.now = now
        self.sleep = sleep
        self.phase = BatchPhase.IDLE

    # ==================== Public API ====================

    def run_one_invocation(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> BatchStatus:
        """
        Process the next slice of the current run, starting a run if none exists.

        Returns:
            BatchStatus: progress snapshot after this invocation
        """
        trigger = SyncTrigger(trigger)
        started = self.clock()
        lock = self._lock(trigger)

        if not lock.try_acquire(self._lock_ttl(trigger)):
            snapshot = self.get_status()
            snapshot.already_running = True
            snapshot.message = "A sync is already running"
            logger.info(f"Sync invocation ({trigger.value}) skipped: lock held")
            return snapshot

        try:
            batch = self._load_state()
            if batch is None:
                self.phase = BatchPhase.QUEUEING
                batch = self._build_queue(trigger)
                if batch.total == 0:
                    return self._finish(batch, message="No products to sync")
            else:
                self.phase = BatchPhase.CONTINUING
            return self._run_slice(batch, lock, trigger, started)
        finally:
            lock.release()

    def get_status(self) -> BatchStatus:
        raw = self.state.get(StateKeys.BATCH_STATUS)
        if raw:
            try:
                return BatchStatus.model_validate_json(raw)
            except ValidationError:
                logger.warning("Corrupt batch status snapshot, ignoring")
        return BatchStatus()

    def has_active_run(self) -> bool:
        return self._load_state() is not None

    def request_abort(self) -> BatchStatus:
        """Ask the running batch to stop before its next item."""
        self.state.set(StateKeys.ABORT_FLAG, "1", self.config.state_ttl_seconds)
        self._event("Sync abort requested", LogLevel.INFO)
        status = self.get_status()
        status.message = "Abort requested"
        return status

    def clear_lock(self) -> None:
        """Force release the lock and forget any run in progress."""
        LockManager(self.state, self.config.manual_lock_staleness_seconds).force_release()
        for key in (StateKeys.BATCH_STATE, StateKeys.BATCH_STATUS, StateKeys.ABORT_FLAG):
            self.state.delete(key)
        self.phase = BatchPhase.IDLE
        self._event("Sync lock and batch state cleared", LogLevel.INFO)

    # ==================== Queue ====================

    def _build_queue(self, trigger: SyncTrigger) -> BatchState:
        # A leftover abort request must not kill a fresh run
        self.state.delete(StateKeys.ABORT_FLAG)

        skip_hours = None
        if self.config.skip_recent_sync and trigger != SyncTrigger.MANUAL:
            skip_hours = self.config.skip_recent_hours
        products = self.store.query_eligible(
            EligibilityFilter(skip_recent_hours=skip_hours, now=self.now())
        )
        queue = [product.id for product in queue_order(products)]

        batch = BatchState(
            queue=queue,
            batch_size=self.config.batch_size,
            total=len(queue),
            trigger=trigger.value,
            started_at=self.now(),
        )
        self._save_state(batch)
        self._event(f"Sync run started ({trigger.value}): {batch.total} products queued", LogLevel.INFO)
        return batch

    # ==================== Loop ====================

    def _run_slice(self, batch: BatchState, lock: LockManager, trigger: SyncTrigger, started: float) -> BatchStatus:
        self.phase = BatchPhase.RUNNING
        slice_start = batch.cursor * batch.batch_size
        slice_end = min(slice_start + batch.batch_size, batch.total)
        index = slice_start + batch.position
        processed = 0

        while index < slice_end:
            # Always make progress: the budget is only checked after one item
            if processed and self.clock() - started >= self.config.time_budget_seconds:
                logger.info(f"Time budget reached after {processed} items, resuming next invocation")
                self._save_state(batch)
                return self._save_status(batch, needs_next_batch=True, message="Time budget reached")

            if self._abort_requested():
                return self._abort(batch)

            product_id = batch.queue[index]
            batch.current_label = self._label(product_id)
            self._save_status(batch)

            try:
                synced = self._sync_item(product_id)
            except SoftTimeLimitExceeded:
                # The interrupted item is retried by the next invocation
                logger.warning(f"Worker time limit hit while syncing product {product_id}, resuming next invocation")
                self._rollback()
                self._save_state(batch)
                return self._save_status(batch, needs_next_batch=True, message="Time limit reached")

            if synced:
                batch.completed += 1
            else:
                batch.failed += 1
            batch.position += 1
            index += 1
            processed += 1

            self._save_state(batch)
            self._save_status(batch)
            lock.refresh(self._lock_ttl(trigger))

            if index < slice_end and self.config.throttle_seconds > 0:
                self.sleep(self.config.throttle_seconds)

        if slice_end < batch.total:
            if self._abort_requested():
                return self._abort(batch)
            self.phase = BatchPhase.CONTINUING
            batch.cursor += 1
            batch.position = 0
            self._save_state(batch)
            return self._save_status(
                batch,
                needs_next_batch=True,
                message=f"Processed {batch.completed + batch.failed} of {batch.total}",
            )

        return self._finish(batch)

    def _sync_item(self, product_id: int) -> bool:
        try:
            result = self.executor.sync(product_id)
        except SoftTimeLimitExceeded:
            raise
        except Exception as e:
            logger.error(f"Unexpected error syncing product {product_id}: {e}", exc_info=True)
            self._rollback()
            self._event(f"Unexpected error syncing product {product_id}: {e}", LogLevel.ERROR)
            return False
        return result.success

    def _rollback(self) -> None:
        # A failed write leaves the shared session unusable for the next item
        try:
            self.store.rollback()
        except Exception as e:
            logger.warning(f"Rollback after a failed item also failed: {e}")

    def _label(self, product_id: int) -> str:
        try:
            product = self.store.get(product_id)
        except Exception as e:
            logger.warning(f"Could not load product {product_id} for its label: {e}")
            self._rollback()
            product = None
        return product.label if product else f"Product #{product_id}"

    # ==================== Terminal states ====================

    def _finish(self, batch: BatchState, message: str = "") -> BatchStatus:
        self.phase = BatchPhase.FINISHED
        self._clear_run()
        summary = message or f"Sync finished: {batch.completed} succeeded, {batch.failed} failed"
        self._event(summary, LogLevel.SUCCESS)
        if self.alert_manager is not None:
            try:
                send_batch_completion_alert(
                    self.alert_manager, batch.total, batch.completed, batch.failed, batch.trigger
                )
            except Exception as e:
                logger.warning(f"Could not send completion alert: {e}")
        batch.finished = True
        return self._save_status(batch, running=False, message=summary)

    def _abort(self, batch: BatchState) -> BatchStatus:
        self.phase = BatchPhase.ABORTED
        self._clear_run()
        batch.aborted = True
        self._event(
            f"Sync aborted after {batch.completed + batch.failed} of {batch.total} products",
            LogLevel.INFO,
        )
        return self._save_status(batch, running=False, message="Sync aborted")

    def _clear_run(self) -> None:
        self.state.delete(StateKeys.BATCH_STATE)
        self.state.delete(StateKeys.ABORT_FLAG)

    # ==================== Persistence ====================

    def _lock(self, trigger: SyncTrigger) -> LockManager:
        return LockManager(self.state, self._lock_ttl(trigger), clock=self.clock)

    def _lock_ttl(self, trigger: SyncTrigger) -> int:
        if trigger == SyncTrigger.CRON:
            return self.config.cron_lock_staleness_seconds
        return self.config.manual_lock_staleness_seconds

    def _abort_requested(self) -> bool:
        return bool(self.state.get(StateKeys.ABORT_FLAG))

    def _load_state(self) -> Optional[BatchState]:
        raw = self.state.get(StateKeys.BATCH_STATE)
        if not raw:
            return None
        try:
            return BatchState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Corrupt batch state, starting a new run")
            self.state.delete(StateKeys.BATCH_STATE)
            return None

    def _save_state(self, batch: BatchState) -> None:
        self.state.set(StateKeys.BATCH_STATE, batch.model_dump_json(), self.config.state_ttl_seconds)

    def _save_status(
        self,
        batch: BatchState,
        running: bool = True,
        needs_next_batch: bool = False,
        message: str = "",
    ) -> BatchStatus:
        status = BatchStatus(
            running=running,
            completed=batch.completed,
            total=batch.total,
            failed=batch.failed,
            current_product=batch.current_label,
            finished=batch.finished,
            aborted=batch.aborted,
            needs_next_batch=needs_next_batch,
            message=message,
        )
        self.state.set(StateKeys.BATCH_STATUS, status.model_dump_json(), self.config.state_ttl_seconds)
        return status

    def _event(self, message: str, level: str) -> None:
        if self.sync_logger is not None:
            self.sync_logger.append_event(message, level)
        else:
            logger.info(message)
