"""
Shared fixtures: in-memory database, fake Redis state store, and fake
collaborators for the fetcher, notifier and clocks.
"""
from datetime import datetime
from typing import Dict, List, Tuple

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from product_sync.constants.sync import YES, ProductMeta
from product_sync.core.config import SyncConfig
from product_sync.core.event_log import EventLogger
from product_sync.db.base import Base
from product_sync.models import sync_models  # noqa: F401
from product_sync.repositories.product_repository import SqlProductStore
from product_sync.repositories.sync_log_repository import SyncLogRepository
from product_sync.services.fetcher import FetchResult
from product_sync.services.state_store import RedisStateStore
from product_sync.services.sync_executor import SyncExecutor
from product_sync.services.sync_logger import SyncLogger
from product_sync.services.url_guard import UrlGuard

NOW = datetime(2026, 3, 10, 12, 0, 0)
PUBLIC_IP = "93.184.216.34"


def price_page(regular: str, sale: str = "") -> str:
    sale_html = f'<span class="sale-price">{sale}</span>' if sale else ""
    return f'<html><body><div class="product"><span class="price">{regular}</span>{sale_html}</div></body></html>'


class FakeFetcher:
    """Returns canned pages by URL and records every call."""

    def __init__(self, pages: Dict[str, FetchResult] = None):
        self.pages = pages or {}
        self.calls: List[Tuple[str, int, str]] = []

    def add_page(self, url: str, html: str):
        self.pages[url] = FetchResult(success=True, status_code=200, body=html)

    def add_failure(self, url: str, error: str = "Timeout after 30 seconds"):
        self.pages[url] = FetchResult(success=False, error=error)

    def fetch(self, url, timeout_seconds, user_agent):
        self.calls.append((url, timeout_seconds, user_agent))
        return self.pages.get(url, FetchResult(success=False, status_code=404, error="HTTP error: 404"))


class FakeNotifier:
    def __init__(self):
        self.sent: List[Tuple[str, str, str]] = []

    def send(self, to_address, subject, body):
        self.sent.append((to_address, subject, body))


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def db() -> Session:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def state(redis_client) -> RedisStateStore:
    return RedisStateStore(redis_client)


@pytest.fixture
def store(db) -> SqlProductStore:
    return SqlProductStore(db)


@pytest.fixture
def make_product(store):
    """Create a sync-enabled product; keyword args override meta values."""

    def _make(name="Widget", url="https://shop.example.com/widget", status="publish", **meta):
        values = {
            ProductMeta.ENABLE_SYNC: YES,
            ProductMeta.SOURCE_URL: url,
        }
        values.update({getattr(ProductMeta, key.upper()): value for key, value in meta.items()})
        return store.create(name, meta=values, status=status)

    return _make


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def url_guard() -> UrlGuard:
    return UrlGuard(resolver=lambda host: [PUBLIC_IP])


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(admin_email="admin@example.com", throttle_seconds=0, site_name="Test Shop")


@pytest.fixture
def event_logger(tmp_path) -> EventLogger:
    return EventLogger(str(tmp_path / "logs"), detailed_logging=True, clock=lambda: NOW)


@pytest.fixture
def sync_logger(db, event_logger) -> SyncLogger:
    return SyncLogger(SyncLogRepository(db), event_logger)


@pytest.fixture
def executor(store, fetcher, sync_config, sync_logger, notifier, url_guard) -> SyncExecutor:
    return SyncExecutor(
        store=store,
        fetcher=fetcher,
        config=sync_config,
        sync_logger=sync_logger,
        notifier=notifier,
        url_guard=url_guard,
        clock=lambda: NOW,
    )
