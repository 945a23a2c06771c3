"""Fetch product pages over HTTP."""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urljoin

import requests
import urllib3

from product_sync.constants.sync import MAX_REDIRECTS
from product_sync.services.url_guard import UnsafeUrlError, UrlGuard, is_valid_url

logger = logging.getLogger(__name__)

REDIRECT_CODES = (301, 302, 303, 307, 308)


@dataclass
class FetchResult:
    """Result of fetching one page."""

    success: bool
    status_code: int = 0
    body: str = ""
    error: Optional[str] = None


class Fetcher(Protocol):
    """Anything able to fetch the raw content of a URL."""

    def fetch(self, url: str, timeout_seconds: int, user_agent: str) -> FetchResult:
        ...


class RequestsFetcher:
    """
    Fetcher backed by a ``requests.Session``.

    SSL is verified and redirects are followed by hand, at most
    ``MAX_REDIRECTS`` of them, each target going through the URL guard.
    When ``insecure_fallback`` is on, an SSL failure is retried once
    without certificate checks.
    """

    def __init__(
        self,
        session: requests.Session = None,
        insecure_fallback: bool = False,
        url_guard: UrlGuard = None,
    ):
        self.session = session or requests.Session()
        self.insecure_fallback = insecure_fallback
        self.url_guard = url_guard or UrlGuard()

    def _headers(self, user_agent: str) -> dict:
        return {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    def _redirect_target(self, url: str, response) -> str:
        location = response.headers.get("Location")
        if not location:
            raise UnsafeUrlError(f"Redirect from {url} without a Location header")
        target = urljoin(url, location)
        if not is_valid_url(target):
            raise UnsafeUrlError(f"Redirect to unsupported URL: {target}")
        self.url_guard.check(target)
        return target

    def _get(self, url: str, timeout_seconds: int, user_agent: str, verify: bool) -> FetchResult:
        for _ in range(MAX_REDIRECTS + 1):
            response = self.session.get(
                url,
                headers=self._headers(user_agent),
                timeout=timeout_seconds,
                allow_redirects=False,
                verify=verify,
            )
            if response.status_code not in REDIRECT_CODES:
                break
            response.close()
            try:
                url = self._redirect_target(url, response)
            except UnsafeUrlError as e:
                logger.warning(f"Blocked redirect: {e}")
                return FetchResult(success=False, status_code=response.status_code, error=f"Blocked redirect: {e}")
        else:
            return FetchResult(success=False, error=f"More than {MAX_REDIRECTS} redirects")

        if not 200 <= response.status_code < 300:
            return FetchResult(
                success=False,
                status_code=response.status_code,
                error=f"HTTP error: {response.status_code}",
            )
        if not response.text:
            return FetchResult(
                success=False,
                status_code=response.status_code,
                error="Empty response from URL",
            )
        return FetchResult(success=True, status_code=response.status_code, body=response.text)

    def fetch(self, url: str, timeout_seconds: int, user_agent: str) -> FetchResult:
        try:
            return self._get(url, timeout_seconds, user_agent, verify=True)
        except requests.exceptions.SSLError as e:
            if not self.insecure_fallback:
                return FetchResult(success=False, error=f"SSL error: {e}")
            logger.warning(f"SSL verification failed for {url}, retrying without verification")
            try:
                urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
                return self._get(url, timeout_seconds, user_agent, verify=False)
            except requests.exceptions.RequestException as retry_error:
                return FetchResult(success=False, error=f"Failed to fetch URL: {retry_error}")
        except requests.exceptions.Timeout:
            return FetchResult(success=False, error=f"Timeout after {timeout_seconds} seconds")
        except requests.exceptions.RequestException as e:
            return FetchResult(success=False, error=f"Failed to fetch URL: {e}")
