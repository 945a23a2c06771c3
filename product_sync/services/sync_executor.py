"""
Single product sync.

Fetches the product's source page, extracts its prices, applies the tax
and margin adjustments and writes the result back to the product store.
Failures drive the error counter and the hide/restore lifecycle.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from product_sync.constants.sync import (
    MIN_MARGIN_PERCENT,
    TAX_RATE,
    LogLevel,
    LogStatus,
    NotificationKind,
    ProductMeta,
    SyncStatus,
    Visibility,
)
from product_sync.core.clock import utcnow
from product_sync.core.config import SyncConfig
from product_sync.schemas.sync_schemas import ExtractedPrices, Product, SyncLogEntry, SyncResult
from product_sync.services.error_policy import ErrorPolicy
from product_sync.services.fetcher import Fetcher
from product_sync.services.price_parser import PriceParser
from product_sync.services.product_store import ProductStore, format_meta_time
from product_sync.services.sync_logger import SyncLogger
from product_sync.services.sync_notifications import Notifier, notify
from product_sync.services.url_guard import UnsafeUrlError, UrlGuard, is_valid_url

logger = logging.getLogger(__name__)


def apply_tax(price: float, add_tax: bool) -> float:
    return round(price * (1 + TAX_RATE), 2) if add_tax else price


def apply_margin(price: float, add_margin: bool, margin_percent: float) -> float:
    if not add_margin:
        return price
    margin = max(MIN_MARGIN_PERCENT, margin_percent)
    return round(price * (1 + margin / 100), 2)


class SyncExecutor:
    """
    Sync one product at a time.

    Args:
        store: product store
        fetcher: page fetcher
        config: sync options
        sync_logger: sync log and event log writer
        notifier: admin message sender, optional
        parser: price parser
        url_guard: SSRF guard
        clock: returns the current time
    """

    def __init__(
        self,
        store: ProductStore,
        fetcher: Fetcher,
        config: SyncConfig,
        sync_logger: SyncLogger,
        notifier: Optional[Notifier] = None,
        parser: Optional[PriceParser] = None,
        url_guard: Optional[UrlGuard] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.fetcher = fetcher
        self.config = config
        self.sync_logger = sync_logger
        self.notifier = notifier
        self.parser = parser or PriceParser()
        self.url_guard = url_guard or UrlGuard()
        self.clock = clock

    def sync(self, product_id: int) -> SyncResult:
        product = self.store.get(product_id)
        if product is None:
            return self._not_counted(product_id, "Product not found")
        if not product.sync_enabled:
            return self._not_counted(product_id, "Sync not enabled for this product", product)
        if not product.source_url:
            return self._not_counted(product_id, "No URL specified", product)
        if not is_valid_url(product.source_url):
            return self._not_counted(product_id, f"Invalid URL: {product.source_url}", product)
        try:
            self.url_guard.check(product.source_url)
        except UnsafeUrlError as e:
            return self._not_counted(product_id, f"Blocked URL: {e}", product)

        self.sync_logger.append_event(
            f"Starting price extraction for product ID: {product_id}, URL: {product.source_url}",
            LogLevel.INFO,
        )

        result = self.fetcher.fetch(
            product.source_url,
            self.config.fetch_timeout_seconds,
            self.config.user_agent,
        )
        if not result.success:
            return self._fail(product, result.error or "Failed to fetch content from URL")

        self.sync_logger.append_event(
            f"Content fetched for product ID: {product_id}, length: {len(result.body)}",
            LogLevel.DEBUG,
        )
        prices = self.parser.parse(result.body)
        if not prices.found:
            return self._fail(product, "No valid regular price found")

        return self._succeed(product, prices)

    def _not_counted(self, product_id: int, message: str, product: Optional[Product] = None) -> SyncResult:
        """Configuration problems: logged and shown as the last status, never counted against the product."""
        if product is not None:
            self.store.set_meta(product_id, ProductMeta.LAST_STATUS, f"{SyncStatus.ERROR_PREFIX}{message}")
        self.sync_logger.append(SyncLogEntry(
            product_id=product_id,
            time=self.clock(),
            status=LogStatus.ERROR,
            message=message,
        ))
        self.sync_logger.append_event(f"Product {product_id} skipped: {message}", LogLevel.ERROR)
        return SyncResult(success=False, message=message, counted=False)

    def _fail(self, product: Product, message: str) -> SyncResult:
        decision = ErrorPolicy.apply(product.error_count, self.config.max_errors)

        self.store.set_meta(product.id, ProductMeta.ERROR_COUNT, decision.new_error_count)
        if decision.should_hide:
            self.store.set_meta(product.id, ProductMeta.LAST_STATUS, f"{SyncStatus.HIDDEN_PREFIX}{message}")
            if product.error_since is None:
                self.store.set_meta(product.id, ProductMeta.ERROR_SINCE, format_meta_time(self.clock()))
            if product.visibility != Visibility.HIDDEN:
                self.store.set_visibility(product.id, Visibility.HIDDEN)
        else:
            self.store.set_meta(product.id, ProductMeta.LAST_STATUS, f"{SyncStatus.ERROR_PREFIX}{message}")

        self.sync_logger.append(SyncLogEntry(
            product_id=product.id,
            time=self.clock(),
            status=LogStatus.ERROR,
            message=message,
        ))
        self.sync_logger.append_event(
            f"Error extracting prices for product {product.id}: {message} "
            f"(errors: {decision.new_error_count}/{self.config.max_errors})"
            + (". Product hidden." if decision.should_hide else ""),
            LogLevel.ERROR,
        )
        notify(
            self.notifier,
            self.config.admin_email,
            decision.notification,
            product,
            self.config.site_name,
            error=message,
            error_count=decision.new_error_count,
            max_errors=self.config.max_errors,
        )
        return SyncResult(success=False, message=message)

    def _succeed(self, product: Product, prices: ExtractedPrices) -> SyncResult:
        old_regular = self.store.get_meta(product.id, ProductMeta.REGULAR_PRICE_INC_TAX)
        old_sale = self.store.get_meta(product.id, ProductMeta.SALE_PRICE_INC_TAX)

        regular_inc_tax = apply_tax(prices.regular_price, product.add_tax)
        sale_inc_tax = apply_tax(prices.sale_price, product.add_tax)
        final_regular = apply_margin(regular_inc_tax, product.add_margin, product.margin_percent)
        final_sale = apply_margin(sale_inc_tax, product.add_margin, product.margin_percent)

        self.store.set_meta(product.id, ProductMeta.EXTERNAL_REGULAR_PRICE, prices.regular_price)
        self.store.set_meta(product.id, ProductMeta.EXTERNAL_SALE_PRICE, prices.sale_price)
        self.store.set_meta(product.id, ProductMeta.REGULAR_PRICE_INC_TAX, regular_inc_tax)
        self.store.set_meta(product.id, ProductMeta.SALE_PRICE_INC_TAX, sale_inc_tax)
        self.store.set_meta(product.id, ProductMeta.REGULAR_PRICE, final_regular)
        self.store.set_meta(product.id, ProductMeta.SALE_PRICE, final_sale if final_sale > 0 else "")

        self.store.set_meta(product.id, ProductMeta.LAST_SYNC_TIME, format_meta_time(self.clock()))
        self.store.set_meta(product.id, ProductMeta.ERROR_COUNT, ErrorPolicy.reset())

        restored = product.visibility == Visibility.HIDDEN and product.error_since is not None
        if product.error_since is not None:
            self.store.delete_meta(product.id, ProductMeta.ERROR_SINCE)
        if restored:
            self.store.set_visibility(product.id, Visibility.VISIBLE)
            status = SyncStatus.RESTORED
        else:
            status = SyncStatus.SUCCESS
        self.store.set_meta(product.id, ProductMeta.LAST_STATUS, status)

        self.sync_logger.append(SyncLogEntry(
            product_id=product.id,
            time=self.clock(),
            status=LogStatus.SUCCESS,
            message=status,
            old_price=_as_price(old_regular),
            new_price=final_regular,
            old_sale_price=_as_price(old_sale),
            new_sale_price=final_sale,
        ))
        self.sync_logger.append_event(
            f"Updated product {product.id}: Regular: {final_regular}, Sale: {final_sale}"
            + (" (restored)" if restored else ""),
            LogLevel.SUCCESS,
        )
        if restored:
            notify(
                self.notifier,
                self.config.admin_email,
                NotificationKind.RESTORED,
                product,
                self.config.site_name,
            )
        return SyncResult(success=True, message=status)


def _as_price(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
