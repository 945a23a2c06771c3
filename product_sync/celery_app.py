"""
Celery application configuration for the product price sync service.
"""
from celery import Celery
from product_sync.constants.sync import INVOCATION_HARD_TIME_LIMIT, INVOCATION_SOFT_TIME_LIMIT
from product_sync.core.config import settings

# Create Celery instance
celery_app = Celery(
    "product_price_sync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "product_sync.tasks.sync_tasks",
    ]
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # Timezone
    timezone=settings.celery_timezone,
    enable_utc=True,

    # Task execution; one invocation stays well under the cron period
    task_track_started=True,
    task_time_limit=INVOCATION_HARD_TIME_LIMIT,
    task_soft_time_limit=INVOCATION_SOFT_TIME_LIMIT,

    # Scraping is I/O bound and already throttled per item
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=7200,

    task_routes={
        'product_sync.tasks.sync_tasks.run_cron_invocation': {
            'queue': 'scheduler_queue',
        },
        'product_sync.tasks.sync_tasks.cleanup_sync_logs': {
            'queue': 'scheduler_queue',
        },
        'product_sync.tasks.sync_tasks.*': {
            'queue': 'sync_queue',
        },
    },

    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    'product-sync-cron-every-5-minutes': {
        'task': 'product_sync.tasks.sync_tasks.run_cron_invocation',
        'schedule': 300.0,  # 5 minutes in seconds
    },
    'cleanup-sync-logs-daily': {
        'task': 'product_sync.tasks.sync_tasks.cleanup_sync_logs',
        'schedule': 86400.0,
    },
}

if __name__ == '__main__':
    celery_app.start()
