"""
Product store backed by the WooCommerce REST API.

Sync settings and state are read from and written to the product's
``meta_data``; prices and visibility use the core product fields.
"""
import logging
from typing import Any, Dict, Iterator, List, Optional

from woocommerce import API

from product_sync.constants.sync import ProductMeta, Visibility
from product_sync.schemas.sync_schemas import EligibilityFilter, Product
from product_sync.services.product_store import ProductNotFoundError, build_product, is_eligible
from product_sync.services.woocommerce.client import WooCommerceError, wc_get, wc_put

__logger__ = logging.getLogger(__name__)

PER_PAGE = 100
PRICE_KEYS = (ProductMeta.REGULAR_PRICE, ProductMeta.SALE_PRICE)


def _meta_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    return {item.get("key"): item.get("value") for item in data.get("meta_data", [])}


def _format_price(value: Any) -> str:
    if value in (None, ""):
        return ""
    return f"{float(value):.2f}"


class WooCommerceProductStore:
    """
    Product store talking to a WooCommerce shop.

    Args:
        wcapi: configured ``woocommerce.API`` client
    """

    def __init__(self, wcapi: API):
        self.wcapi = wcapi

    def _fetch(self, product_id: int) -> Optional[Dict[str, Any]]:
        try:
            return wc_get(f"products/{product_id}", wcapi=self.wcapi)
        except WooCommerceError as e:
            if e.status_code == 404:
                return None
            raise

    def _require(self, product_id: int) -> Dict[str, Any]:
        data = self._fetch(product_id)
        if data is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return data

    def _to_product(self, data: Dict[str, Any]) -> Product:
        visibility = data.get("catalog_visibility")
        return build_product(
            data["id"],
            data.get("name", ""),
            Visibility.HIDDEN.value if visibility == Visibility.HIDDEN.value else Visibility.VISIBLE.value,
            data.get("regular_price") or 0,
            data.get("sale_price") or 0,
            _meta_dict(data),
        )

    def _iter_products(self, status: str) -> Iterator[Dict[str, Any]]:
        page = 1
        while True:
            batch = wc_get(
                "products",
                params={"status": status, "per_page": PER_PAGE, "page": page},
                wcapi=self.wcapi
            )
            yield from batch
            if len(batch) < PER_PAGE:
                break
            page += 1

    def get(self, product_id: int) -> Optional[Product]:
        data = self._fetch(product_id)
        return self._to_product(data) if data else None

    def get_meta(self, product_id: int, key: str) -> Any:
        data = self._require(product_id)
        if key in PRICE_KEYS:
            return data.get(key)
        return _meta_dict(data).get(key)

    def set_meta(self, product_id: int, key: str, value: Any) -> None:
        if key in PRICE_KEYS:
            payload = {key: _format_price(value)}
        else:
            payload = {"meta_data": [{"key": key, "value": "" if value is None else str(value)}]}
        wc_put(f"products/{product_id}", payload, wcapi=self.wcapi)

    def delete_meta(self, product_id: int, key: str) -> None:
        # The REST API has no meta delete; an empty value reads back as unset
        self.set_meta(product_id, key, "")

    def set_visibility(self, product_id: int, visibility: Visibility) -> None:
        wc_put(
            f"products/{product_id}",
            {"catalog_visibility": Visibility(visibility).value},
            wcapi=self.wcapi
        )
        __logger__.info(f"WooCommerce product {product_id} visibility set to {Visibility(visibility).value}")

    def query_eligible(self, filters: EligibilityFilter) -> List[Product]:
        products = [self._to_product(data) for data in self._iter_products("publish")]
        return [p for p in products if is_eligible(p, filters)]

    def list_with_urls(self) -> List[Product]:
        products = [self._to_product(data) for data in self._iter_products("any")]
        return [p for p in products if p.source_url]

    def rollback(self) -> None:
        # Every REST write is applied immediately
        pass
