"""
Single product sync tests.

Verifies:
1. Configuration errors are logged but never counted against the product
2. Fetch and parse failures drive the error counter and hide the product
3. A success resets the counter and restores a hidden product
4. Tax and margin adjustments are applied to the stored prices
"""
from unittest.mock import MagicMock

import pytest

from product_sync.constants.sync import (
    NO,
    YES,
    LogStatus,
    NotificationKind,
    ProductMeta,
    SyncStatus,
    Visibility,
)
from product_sync.models.sync_models import SyncLog
from product_sync.services.fetcher import RequestsFetcher
from product_sync.services.product_store import format_meta_time
from product_sync.services.sync_executor import SyncExecutor, apply_margin, apply_tax
from product_sync.services.sync_notifications import SUBJECTS
from tests.conftest import NOW, price_page


def _logs(db, product_id):
    return db.query(SyncLog).filter(SyncLog.product_id == product_id).all()


# ==================== Configuration errors ====================

def test_unknown_product_is_not_counted(executor, fetcher, db):
    result = executor.sync(999)

    assert not result.success
    assert not result.counted
    assert result.message == "Product not found"
    assert fetcher.calls == []
    assert len(_logs(db, 999)) == 1


def test_sync_disabled_is_not_counted(executor, make_product, store, fetcher):
    product = make_product(enable_sync=NO)

    result = executor.sync(product.id)

    assert not result.success
    assert not result.counted
    assert fetcher.calls == []
    refreshed = store.get(product.id)
    assert refreshed.error_count == 0
    assert refreshed.last_status == f"{SyncStatus.ERROR_PREFIX}Sync not enabled for this product"


def test_configuration_error_replaces_stale_success_status(executor, make_product, store):
    product = make_product(url="not a url", last_status=SyncStatus.SUCCESS)

    executor.sync(product.id)

    assert store.get(product.id).last_status == f"{SyncStatus.ERROR_PREFIX}Invalid URL: not a url"


@pytest.mark.parametrize("url", ["not a url", "ftp://example.com/x", "//example.com/x"])
def test_invalid_url_is_not_counted(executor, make_product, store, fetcher, url):
    product = make_product(url=url)

    result = executor.sync(product.id)

    assert not result.counted
    assert "Invalid URL" in result.message
    assert fetcher.calls == []
    assert store.get(product.id).error_count == 0


def test_loopback_url_rejected_before_fetch(executor, make_product, store, fetcher, notifier, db):
    """Test: http://127.0.0.1/x is rejected without any fetch and without counting"""
    product = make_product(url="http://127.0.0.1/x")

    result = executor.sync(product.id)

    assert not result.success
    assert not result.counted
    assert "Blocked URL" in result.message
    assert fetcher.calls == []
    assert notifier.sent == []
    refreshed = store.get(product.id)
    assert refreshed.error_count == 0
    assert refreshed.visibility == Visibility.VISIBLE
    logs = _logs(db, product.id)
    assert len(logs) == 1
    assert logs[0].status == LogStatus.ERROR


def test_redirect_to_internal_host_saves_nothing(store, make_product, sync_config, sync_logger, url_guard):
    """Test: a public URL redirecting to 127.0.0.1 fails the fetch and keeps the old prices"""
    product = make_product(url="http://shop.example.com/p")
    redirect = MagicMock(status_code=302, headers={"Location": "http://127.0.0.1:8080/admin"})
    internal = MagicMock(status_code=200, headers={}, text='<span class="price">$777.00</span>')
    session = MagicMock()
    session.get.side_effect = [redirect, internal]
    executor = SyncExecutor(
        store=store,
        fetcher=RequestsFetcher(session=session, url_guard=url_guard),
        config=sync_config,
        sync_logger=sync_logger,
        url_guard=url_guard,
        clock=lambda: NOW,
    )

    result = executor.sync(product.id)

    assert not result.success
    assert result.counted
    assert "Blocked redirect" in result.message
    assert session.get.call_count == 1
    assert store.get(product.id).regular_price == 0
    assert store.get_meta(product.id, ProductMeta.EXTERNAL_REGULAR_PRICE) is None


def test_repeated_configuration_errors_never_hide(executor, make_product, store):
    product = make_product(url="http://localhost/admin")

    for _ in range(5):
        executor.sync(product.id)

    assert store.get(product.id).visibility == Visibility.VISIBLE


# ==================== Counted failures ====================

def test_fetch_timeout_hides_product_with_default_threshold(executor, make_product, store, fetcher, notifier):
    """Test: max_errors=1, a fetch timeout hides the product and notifies once"""
    product = make_product()
    fetcher.add_failure(product.source_url, "Timeout after 30 seconds")

    result = executor.sync(product.id)

    assert not result.success
    assert result.counted
    refreshed = store.get(product.id)
    assert refreshed.error_count == 1
    assert refreshed.visibility == Visibility.HIDDEN
    assert refreshed.error_since == NOW
    assert refreshed.last_status.startswith(SyncStatus.HIDDEN_PREFIX)
    assert len(notifier.sent) == 1
    to_address, subject, body = notifier.sent[0]
    assert to_address == "admin@example.com"
    assert subject == f"[Test Shop] {SUBJECTS[NotificationKind.HIDDEN]}"
    assert "Timeout after 30 seconds" in body
    # Only one fetch; nothing is retried automatically
    assert len(fetcher.calls) == 1


def test_failure_below_threshold_keeps_product_visible(executor, make_product, store, fetcher, notifier):
    executor.config = executor.config.model_copy(update={"max_errors": 3})
    product = make_product()
    fetcher.add_failure(product.source_url)

    executor.sync(product.id)
    executor.sync(product.id)

    refreshed = store.get(product.id)
    assert refreshed.error_count == 2
    assert refreshed.visibility == Visibility.VISIBLE
    assert refreshed.error_since is None
    assert refreshed.last_status.startswith(SyncStatus.ERROR_PREFIX)
    assert [subject for _, subject, _ in notifier.sent] == [
        f"[Test Shop] {SUBJECTS[NotificationKind.FAILURE]}",
    ] * 2

    executor.sync(product.id)
    refreshed = store.get(product.id)
    assert refreshed.error_count == 3
    assert refreshed.visibility == Visibility.HIDDEN
    assert notifier.sent[-1][1] == f"[Test Shop] {SUBJECTS[NotificationKind.HIDDEN]}"


def test_error_since_is_kept_on_further_failures(executor, make_product, store, fetcher):
    earlier = NOW.replace(day=1)
    product = make_product(error_count=1, error_since=format_meta_time(earlier))
    store.set_visibility(product.id, Visibility.HIDDEN)
    fetcher.add_failure(product.source_url)

    executor.sync(product.id)

    refreshed = store.get(product.id)
    assert refreshed.error_count == 2
    assert refreshed.error_since == earlier


def test_page_without_price_is_a_counted_failure(executor, make_product, store, fetcher):
    product = make_product()
    fetcher.add_page(product.source_url, "<html><body>Contact us for pricing</body></html>")

    result = executor.sync(product.id)

    assert not result.success
    assert result.message == "No valid regular price found"
    assert store.get(product.id).error_count == 1


def test_fetch_uses_clamped_timeout_and_browser_agent(executor, make_product, fetcher):
    product = make_product()
    fetcher.add_page(product.source_url, price_page("$10.00"))

    executor.sync(product.id)

    url, timeout, user_agent = fetcher.calls[0]
    assert url == product.source_url
    assert timeout == 30
    assert user_agent.startswith("Mozilla/5.0")


# ==================== Success ====================

def test_success_updates_prices_and_status(executor, make_product, store, fetcher, notifier, db):
    product = make_product()
    fetcher.add_page(product.source_url, price_page("$100.00", "$80.00"))

    result = executor.sync(product.id)

    assert result.success
    refreshed = store.get(product.id)
    assert refreshed.regular_price == pytest.approx(100.0)
    assert refreshed.sale_price == pytest.approx(80.0)
    assert refreshed.last_status == SyncStatus.SUCCESS
    assert refreshed.last_sync_time == NOW
    assert refreshed.error_count == 0
    assert float(store.get_meta(product.id, ProductMeta.EXTERNAL_REGULAR_PRICE)) == pytest.approx(100.0)
    # Steady-state success sends nothing
    assert notifier.sent == []
    logs = _logs(db, product.id)
    assert len(logs) == 1
    assert logs[0].status == LogStatus.SUCCESS
    assert logs[0].new_price == pytest.approx(100.0)
    assert logs[0].new_sale_price == pytest.approx(80.0)


def test_success_resets_error_count(executor, make_product, store, fetcher):
    product = make_product(error_count=4)
    fetcher.add_page(product.source_url, price_page("$12.00"))

    executor.sync(product.id)

    assert store.get(product.id).error_count == 0


def test_tax_is_added_to_both_prices(executor, make_product, store, fetcher, db):
    product = make_product(add_tax=YES)
    fetcher.add_page(product.source_url, price_page("$100.00", "$50.00"))

    executor.sync(product.id)

    refreshed = store.get(product.id)
    assert refreshed.regular_price == pytest.approx(110.0)
    assert refreshed.sale_price == pytest.approx(55.0)
    assert float(store.get_meta(product.id, ProductMeta.REGULAR_PRICE_INC_TAX)) == pytest.approx(110.0)
    assert float(store.get_meta(product.id, ProductMeta.EXTERNAL_REGULAR_PRICE)) == pytest.approx(100.0)


def test_margin_applied_on_top_of_tax(executor, make_product, store, fetcher):
    product = make_product(add_tax=YES, add_margin=YES, margin_percent="20")
    fetcher.add_page(product.source_url, price_page("$100.00"))

    executor.sync(product.id)

    refreshed = store.get(product.id)
    assert refreshed.regular_price == pytest.approx(132.0)
    assert refreshed.sale_price == 0


def test_no_sale_price_clears_existing_sale(executor, make_product, store, fetcher, db):
    product = make_product()
    store.set_meta(product.id, ProductMeta.SALE_PRICE, 5.0)
    fetcher.add_page(product.source_url, price_page("$20.00"))

    executor.sync(product.id)

    assert store.get(product.id).sale_price == 0
    assert store.get_meta(product.id, ProductMeta.SALE_PRICE) is None


def test_hidden_product_restored_on_success(executor, make_product, store, fetcher, notifier):
    """Test: a hidden product whose URL works again is restored and the admin is told"""
    product = make_product(error_count=1, error_since=format_meta_time(NOW.replace(day=1)))
    store.set_visibility(product.id, Visibility.HIDDEN)
    fetcher.add_page(product.source_url, price_page("$45.00"))

    result = executor.sync(product.id)

    assert result.success
    assert result.message == SyncStatus.RESTORED
    refreshed = store.get(product.id)
    assert refreshed.error_count == 0
    assert refreshed.visibility == Visibility.VISIBLE
    assert refreshed.error_since is None
    assert refreshed.last_status == "Success: Restored & Prices updated"
    assert len(notifier.sent) == 1
    assert notifier.sent[0][1] == f"[Test Shop] {SUBJECTS[NotificationKind.RESTORED]}"


def test_hidden_without_error_record_is_not_restored(executor, make_product, store, fetcher, notifier):
    product = make_product()
    store.set_visibility(product.id, Visibility.HIDDEN)
    fetcher.add_page(product.source_url, price_page("$45.00"))

    result = executor.sync(product.id)

    assert result.message == SyncStatus.SUCCESS
    assert store.get(product.id).visibility == Visibility.HIDDEN
    assert notifier.sent == []


def test_notifier_failure_does_not_break_sync(executor, make_product, store, fetcher):
    class BrokenNotifier:
        def send(self, to_address, subject, body):
            raise ConnectionError("smtp down")

    executor.notifier = BrokenNotifier()
    product = make_product()
    fetcher.add_failure(product.source_url)

    result = executor.sync(product.id)

    assert not result.success
    assert store.get(product.id).visibility == Visibility.HIDDEN


@pytest.mark.parametrize("price,add_tax,expected", [
    (100.0, False, 100.0),
    (100.0, True, 110.0),
    (19.99, True, 21.99),
])
def test_apply_tax(price, add_tax, expected):
    assert apply_tax(price, add_tax) == pytest.approx(expected)


def test_apply_margin_has_one_percent_minimum():
    assert apply_margin(100.0, True, 0.2) == pytest.approx(101.0)
    assert apply_margin(100.0, False, 50) == pytest.approx(100.0)
