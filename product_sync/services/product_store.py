"""
Product store interface and helpers shared by its implementations.

The sync engine only sees products through this interface. Sync settings
and state are kept as string meta values next to the product, the same way
WooCommerce keeps them in ``meta_data``.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from product_sync.constants.sync import YES, ProductMeta, Visibility
from product_sync.core.clock import utcnow
from product_sync.schemas.sync_schemas import EligibilityFilter, Product


class ProductNotFoundError(LookupError):
    """Raised by a store when a product id does not exist"""


class ProductStore(Protocol):
    """Opaque key/value product storage used by the sync engine."""

    def get(self, product_id: int) -> Optional[Product]:
        ...

    def get_meta(self, product_id: int, key: str) -> Any:
        ...

    def set_meta(self, product_id: int, key: str, value: Any) -> None:
        ...

    def delete_meta(self, product_id: int, key: str) -> None:
        ...

    def query_eligible(self, filters: EligibilityFilter) -> List[Product]:
        ...

    def set_visibility(self, product_id: int, visibility: Visibility) -> None:
        ...

    def list_with_urls(self) -> List[Product]:
        ...

    def rollback(self) -> None:
        """Discard pending writes after a failed operation."""
        ...


def format_meta_time(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat()


def parse_meta_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def build_product(
    product_id: int,
    name: str,
    visibility: str,
    regular_price: Any,
    sale_price: Any,
    meta: Dict[str, Any],
) -> Product:
    """Assemble a Product from core fields plus its sync meta values."""
    hidden = visibility == Visibility.HIDDEN.value
    return Product(
        id=product_id,
        name=name or "",
        sync_enabled=meta.get(ProductMeta.ENABLE_SYNC) == YES,
        source_url=(meta.get(ProductMeta.SOURCE_URL) or "").strip(),
        add_tax=meta.get(ProductMeta.ADD_TAX) == YES,
        add_margin=meta.get(ProductMeta.ADD_MARGIN) == YES,
        margin_percent=max(1.0, _as_float(meta.get(ProductMeta.MARGIN_PERCENT), 1.0)),
        visibility=Visibility.HIDDEN if hidden else Visibility.VISIBLE,
        error_count=max(0, _as_int(meta.get(ProductMeta.ERROR_COUNT))),
        last_status=meta.get(ProductMeta.LAST_STATUS) or "",
        last_sync_time=parse_meta_time(meta.get(ProductMeta.LAST_SYNC_TIME)),
        error_since=parse_meta_time(meta.get(ProductMeta.ERROR_SINCE)),
        regular_price=_as_float(regular_price),
        sale_price=_as_float(sale_price),
    )


def is_eligible(product: Product, filters: EligibilityFilter) -> bool:
    """Sync enabled, has a URL, and not synced inside the skip window."""
    if not product.sync_enabled or not product.source_url:
        return False
    if filters.skip_recent_hours and product.last_sync_time is not None:
        now = filters.now or utcnow()
        if product.last_sync_time >= now - timedelta(hours=filters.skip_recent_hours):
            return False
    return True


def queue_order(products: List[Product]) -> List[Product]:
    """Never-synced first, then oldest sync first."""
    return sorted(
        products,
        key=lambda p: (
            p.last_sync_time is not None,
            p.last_sync_time or datetime.min,
            p.id,
        ),
    )
