"""Constants for sync operations."""

from enum import Enum


class SyncStatus:
    """Human readable status strings stored on the product."""
    SUCCESS = "Success: Prices updated"
    RESTORED = "Success: Restored & Prices updated"
    ERROR_PREFIX = "Error: "
    HIDDEN_PREFIX = "Failed: "


class LogStatus:
    """Status values of a sync log row."""
    SUCCESS = "success"
    ERROR = "error"


class LogLevel:
    """Event log levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class Visibility(str, Enum):
    """Catalog visibility of a product."""
    VISIBLE = "visible"
    HIDDEN = "hidden"


class SyncTrigger(str, Enum):
    """Who started an invocation."""
    MANUAL = "manual"
    AJAX = "ajax"
    CRON = "cron"


class NotificationKind(str, Enum):
    """Kind of admin message sent after a sync attempt."""
    FAILURE = "failure"
    HIDDEN = "hidden"
    RESTORED = "restored"


class BatchPhase:
    """Batch coordinator states."""
    IDLE = "idle"
    QUEUEING = "queueing"
    RUNNING = "running"
    CONTINUING = "continuing"
    FINISHED = "finished"
    ABORTED = "aborted"


class ScheduleFrequency:
    """Full-run schedule frequencies."""
    OFF = "off"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ProductMeta:
    """Meta keys kept on each product by the sync engine."""
    ENABLE_SYNC = "_sync_enabled"
    SOURCE_URL = "_sync_url"
    ADD_TAX = "_sync_add_tax"
    ADD_MARGIN = "_sync_add_margin"
    MARGIN_PERCENT = "_sync_margin_percent"
    ERROR_COUNT = "_sync_error_count"
    LAST_STATUS = "_sync_last_status"
    LAST_SYNC_TIME = "_sync_last_sync_time"
    ERROR_SINCE = "_sync_error_since"
    EXTERNAL_REGULAR_PRICE = "_sync_external_regular_price"
    EXTERNAL_SALE_PRICE = "_sync_external_sale_price"
    REGULAR_PRICE_INC_TAX = "_sync_external_regular_price_inc_tax"
    SALE_PRICE_INC_TAX = "_sync_external_sale_price_inc_tax"

    # Core catalog price fields, not meta in the WordPress sense
    REGULAR_PRICE = "regular_price"
    SALE_PRICE = "sale_price"


class StateKeys:
    """Keys of the cross-invocation state kept in the state store."""
    LOCK = "product_sync:lock"
    BATCH_STATE = "product_sync:batch:state"
    BATCH_STATUS = "product_sync:batch:status"
    ABORT_FLAG = "product_sync:batch:abort"
    NEXT_SCHEDULED_RUN = "product_sync:schedule:next_run"


YES = "yes"
NO = "no"

TAX_RATE = 0.1
MIN_MARGIN_PERCENT = 1.0
PRICE_CEILING = 1_000_000
MAX_REDIRECTS = 5

# Celery limits for one invocation; the time budget stays below the soft one
INVOCATION_SOFT_TIME_LIMIT = 4 * 60 + 30
INVOCATION_HARD_TIME_LIMIT = 5 * 60
