"""WooCommerce API client utilities."""

import logging
from typing import Any, Dict, Optional

from woocommerce import API

from product_sync.core.config import settings

__logger__ = logging.getLogger(__name__)


class WooCommerceError(Exception):
    """Non-2xx response from the WooCommerce REST API"""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"WooCommerce API error ({status_code}): {message}")
        self.status_code = status_code


class WooCommerceClientFactory:
    """Factory class for creating WooCommerce API clients."""

    @staticmethod
    def from_credentials(
        url: str,
        consumer_key: str,
        consumer_secret: str
    ) -> API:
        """
        Create a WooCommerce API client from individual credentials.

        Args:
            url: WooCommerce store URL
            consumer_key: WooCommerce consumer key
            consumer_secret: WooCommerce consumer secret

        Returns:
            API: Configured WooCommerce API client
        """
        return API(
            url=url,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            wp_api=True,
            version=settings.wc_api_version,
            timeout=settings.wc_request_timeout,
            verify_ssl=settings.wc_verify_ssl
        )

    @staticmethod
    def from_settings() -> API:
        return WooCommerceClientFactory.from_credentials(
            url=settings.wc_base_url,
            consumer_key=settings.wc_consumer_key,
            consumer_secret=settings.wc_consumer_secret
        )


def wc_get(path: str, params: Optional[Dict[str, Any]] = None, wcapi: API = None) -> Any:
    """Execute GET request to WooCommerce API."""
    r = wcapi.get(path, params=params) if params else wcapi.get(path)
    if not r.ok:
        __logger__.error(f"WooCommerce GET error on {path}: {r.status_code} - {r.text}")
        raise WooCommerceError(r.status_code, r.text)
    return r.json()


def wc_put(path: str, data: Optional[Dict[str, Any]] = None, wcapi: API = None) -> Any:
    """Execute PUT request to WooCommerce API."""
    r = wcapi.put(path, data or {})
    if not r.ok:
        __logger__.error(f"WooCommerce PUT error on {path}: {r.status_code} - {r.text}")
        raise WooCommerceError(r.status_code, r.text)
    return r.json()
