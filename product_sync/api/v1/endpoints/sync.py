"""
Product price sync endpoints.

Single product sync, batch run control (run, status, abort, clear lock),
admin listings and event log files, plus the secret-key cron trigger.
"""
import hmac
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from product_sync.api.deps import get_sync_factory
from product_sync.constants.sync import SyncTrigger
from product_sync.factories.sync_factory import SyncFactory
from product_sync.repositories.sync_log_repository import SyncLogRepository
from product_sync.schemas.sync_schemas import (
    BatchStatus,
    EventLogFile,
    ProductSyncStatusResponse,
    SingleSyncResponse,
    SyncLogResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Product Sync"])
cron_router = APIRouter(tags=["Cron"])


@router.post("/products/{product_id}", response_model=SingleSyncResponse)
def sync_product(product_id: int, factory: SyncFactory = Depends(get_sync_factory)):
    """Sync one product now and return the outcome."""
    store = factory.product_store()
    if store.get(product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")

    result = factory.executor(store).sync(product_id)
    return SingleSyncResponse(product_id=product_id, success=result.success, message=result.message)


@router.post("/run", response_model=BatchStatus)
def run_batch(factory: SyncFactory = Depends(get_sync_factory)):
    """
    Start a manual run or process its next slice.

    The caller keeps calling while ``needs_next_batch`` is true.
    """
    status = factory.coordinator().run_one_invocation(SyncTrigger.AJAX)
    if status.already_running:
        raise HTTPException(status_code=409, detail="A sync is already running")
    return status


@router.post("/run/background")
def run_batch_in_background():
    """Queue a manual run on the Celery workers; it follows up on its own."""
    from product_sync.tasks.sync_tasks import run_manual_invocation

    task = run_manual_invocation.delay()
    return {"task_id": task.id, "status": "queued"}


@router.get("/status", response_model=BatchStatus)
def get_status(factory: SyncFactory = Depends(get_sync_factory)):
    return factory.coordinator().get_status()


@router.post("/abort", response_model=BatchStatus)
def abort_batch(factory: SyncFactory = Depends(get_sync_factory)):
    return factory.coordinator().request_abort()


@router.post("/clear-lock")
def clear_lock(factory: SyncFactory = Depends(get_sync_factory)):
    """Force release the run lock and drop any run in progress."""
    factory.coordinator().clear_lock()
    return {"success": True, "message": "Sync lock cleared"}


@router.get("/products", response_model=List[ProductSyncStatusResponse])
def list_products(factory: SyncFactory = Depends(get_sync_factory)):
    """Every product with a source URL, with its sync status."""
    return [
        ProductSyncStatusResponse(
            id=product.id,
            name=product.name,
            source_url=product.source_url,
            sync_enabled=product.sync_enabled,
            visibility=product.visibility,
            error_count=product.error_count,
            last_status=product.last_status,
            last_sync_time=product.last_sync_time,
            regular_price=product.regular_price,
            sale_price=product.sale_price,
        )
        for product in factory.product_store().list_with_urls()
    ]


@router.get("/logs", response_model=List[SyncLogResponse])
def recent_logs(
    limit: int = Query(50, ge=1, le=500),
    product_id: int = Query(None, description="Only this product"),
    factory: SyncFactory = Depends(get_sync_factory)
):
    repository = SyncLogRepository(factory.db)
    if product_id is not None:
        rows = repository.get_for_product(product_id, limit)
    else:
        rows = repository.get_recent(limit)
    return [repository.to_response(row) for row in rows]


@router.get("/logs/stats")
def log_stats(factory: SyncFactory = Depends(get_sync_factory)):
    """Sync attempts by status."""
    return SyncLogRepository(factory.db).get_status_counts()


@router.get("/event-logs", response_model=List[EventLogFile])
def list_event_logs(factory: SyncFactory = Depends(get_sync_factory)):
    return factory.event_logger().list_files()


@router.get("/event-logs/{name}", response_class=PlainTextResponse)
def read_event_log(name: str, factory: SyncFactory = Depends(get_sync_factory)):
    content = factory.event_logger().read_file(name)
    if content is None:
        raise HTTPException(status_code=404, detail="Log file not found")
    return content


@router.delete("/event-logs/{name}")
def clear_event_log(name: str, factory: SyncFactory = Depends(get_sync_factory)):
    if not factory.event_logger().clear_file(name):
        raise HTTPException(status_code=404, detail="Log file not found")
    return {"success": True, "message": f"Log file {name} cleared"}


@cron_router.get("/cron", response_model=BatchStatus)
def cron_trigger(key: str = Query(""), factory: SyncFactory = Depends(get_sync_factory)):
    """
    Cron entry point for a system crontab.

    Requires the configured secret key; an unset key disables the endpoint.
    """
    secret = factory.settings.cron_secret_key
    if not secret or not hmac.compare_digest(key.encode(), secret.encode()):
        logger.warning("Cron trigger called with an invalid key")
        raise HTTPException(status_code=403, detail="Invalid cron key")
    return factory.scheduled_runner().run_cron_invocation()
