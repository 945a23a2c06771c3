"""
Schemas for product price synchronization
"""
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field

from product_sync.constants.sync import Visibility


class Product(BaseModel):
    """Product as seen by the sync engine"""
    id: int
    name: str = ""
    sync_enabled: bool = False
    source_url: str = ""
    add_tax: bool = False
    add_margin: bool = False
    margin_percent: float = Field(default=1.0, ge=1.0)
    visibility: Visibility = Visibility.VISIBLE
    error_count: int = Field(default=0, ge=0)
    last_status: str = ""
    last_sync_time: Optional[datetime] = None
    error_since: Optional[datetime] = None
    regular_price: float = 0.0
    sale_price: float = 0.0

    @property
    def label(self) -> str:
        return self.name or f"Product #{self.id}"


class ExtractedPrices(BaseModel):
    """Prices scraped from one page; regular_price == 0 means nothing found"""
    regular_price: float = 0.0
    sale_price: float = 0.0

    @property
    def found(self) -> bool:
        return self.regular_price > 0


class SyncResult(BaseModel):
    """Outcome of syncing one product"""
    success: bool
    message: str
    # False for configuration errors that never reach the fetcher
    counted: bool = True


class EligibilityFilter(BaseModel):
    """Filters used to build the batch queue"""
    skip_recent_hours: Optional[int] = None
    now: Optional[datetime] = None


class BatchState(BaseModel):
    """Queue and cursor persisted between invocations"""
    queue: List[int] = Field(default_factory=list)
    cursor: int = 0
    position: int = 0
    batch_size: int = 5
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_label: str = ""
    finished: bool = False
    aborted: bool = False
    trigger: str = "manual"
    started_at: Optional[datetime] = None


class BatchStatus(BaseModel):
    """Progress snapshot returned to callers and polled by the admin"""
    running: bool = False
    completed: int = 0
    total: int = 0
    failed: int = 0
    current_product: str = ""
    finished: bool = False
    aborted: bool = False
    needs_next_batch: bool = False
    already_running: bool = False
    message: str = ""


class SyncLogEntry(BaseModel):
    """One row of the sync activity log"""
    product_id: int
    time: datetime
    status: str
    message: str = ""
    old_price: Optional[float] = None
    new_price: Optional[float] = None
    old_sale_price: Optional[float] = None
    new_sale_price: Optional[float] = None

    class Config:
        from_attributes = True


class SyncLogResponse(SyncLogEntry):
    """Sync log row as exposed by the API"""
    id: int


class ProductSyncStatusResponse(BaseModel):
    """Admin listing row"""
    id: int
    name: str
    source_url: str
    sync_enabled: bool
    visibility: Visibility
    error_count: int
    last_status: str
    last_sync_time: Optional[datetime] = None
    regular_price: float
    sale_price: float


class SingleSyncResponse(BaseModel):
    """Response for a single product sync"""
    product_id: int
    success: bool
    message: str


class EventLogFile(BaseModel):
    """Event log file description"""
    name: str
    size: int
    modified: datetime
