"""Factory functions wiring the sync engine from settings."""

from sqlalchemy.orm import Session

from product_sync.core.alerts import AlertManager
from product_sync.core.config import Settings, settings as default_settings
from product_sync.core.event_log import EventLogger
from product_sync.repositories.product_repository import SqlProductStore
from product_sync.repositories.sync_log_repository import SyncLogRepository
from product_sync.services.batch_coordinator import BatchCoordinator
from product_sync.services.fetcher import Fetcher, RequestsFetcher
from product_sync.services.product_store import ProductStore
from product_sync.services.scheduler import ScheduledRunner
from product_sync.services.state_store import RedisStateStore, StateStore
from product_sync.services.sync_executor import SyncExecutor
from product_sync.services.sync_logger import SyncLogger
from product_sync.services.url_guard import UrlGuard
from product_sync.services.woocommerce.client import WooCommerceClientFactory
from product_sync.services.woocommerce.product_store import WooCommerceProductStore


class SyncFactory:
    """
    Build sync components for one database session.

    Args:
        db: SQLAlchemy database session
        settings: Service settings (module settings by default)
        state: State store override, Redis from settings otherwise
        fetcher: Page fetcher override, requests based otherwise
        url_guard: SSRF guard override
    """

    def __init__(
        self,
        db: Session,
        settings: Settings = None,
        state: StateStore = None,
        fetcher: Fetcher = None,
        url_guard: UrlGuard = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.config = self.settings.sync_config()
        self._state = state
        self.fetcher = fetcher
        self.url_guard = url_guard

    @property
    def state(self) -> StateStore:
        if self._state is None:
            self._state = RedisStateStore.from_url(self.settings.redis_url)
        return self._state

    def product_store(self) -> ProductStore:
        if self.settings.product_store_backend == "woocommerce":
            return WooCommerceProductStore(WooCommerceClientFactory.from_settings())
        return SqlProductStore(self.db)

    def event_logger(self) -> EventLogger:
        return EventLogger(self.settings.log_dir, detailed_logging=self.config.detailed_logging)

    def sync_logger(self) -> SyncLogger:
        return SyncLogger(SyncLogRepository(self.db), self.event_logger())

    def alert_manager(self) -> AlertManager:
        return AlertManager(self.settings)

    def executor(self, store: ProductStore = None) -> SyncExecutor:
        url_guard = self.url_guard or UrlGuard()
        return SyncExecutor(
            store=store or self.product_store(),
            fetcher=self.fetcher or RequestsFetcher(
                insecure_fallback=self.settings.fetch_insecure_fallback,
                url_guard=url_guard,
            ),
            config=self.config,
            sync_logger=self.sync_logger(),
            notifier=self.alert_manager(),
            url_guard=url_guard,
        )

    def coordinator(self) -> BatchCoordinator:
        store = self.product_store()
        return BatchCoordinator(
            store=store,
            executor=self.executor(store),
            state=self.state,
            config=self.config,
            sync_logger=self.sync_logger(),
            alert_manager=self.alert_manager(),
        )

    def scheduled_runner(self) -> ScheduledRunner:
        return ScheduledRunner(
            self.coordinator(),
            self.state,
            self.settings.schedule_frequency,
            self.settings.schedule_time,
        )
