"""HTTP fetcher tests with a mocked requests session."""
from unittest.mock import MagicMock

import pytest
import requests

from product_sync.constants.sync import MAX_REDIRECTS
from product_sync.services.fetcher import RequestsFetcher
from product_sync.services.url_guard import UrlGuard
from tests.conftest import PUBLIC_IP


def _response(status_code=200, text="<html>$1.00</html>", location=None):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.headers = {"Location": location} if location else {}
    return response


def _fetcher(session, **kwargs):
    return RequestsFetcher(session=session, url_guard=UrlGuard(resolver=lambda host: [PUBLIC_IP]), **kwargs)


def test_success_passes_timeout_and_agent():
    session = MagicMock()
    session.get.return_value = _response()
    fetcher = _fetcher(session)

    result = fetcher.fetch("https://shop.example.com/p", 15, "Mozilla/5.0 Test")

    assert result.success
    assert result.body == "<html>$1.00</html>"
    kwargs = session.get.call_args.kwargs
    assert kwargs["timeout"] == 15
    assert kwargs["headers"]["User-Agent"] == "Mozilla/5.0 Test"
    assert kwargs["verify"] is True
    assert kwargs["allow_redirects"] is False


def test_non_2xx_is_failure():
    session = MagicMock()
    session.get.return_value = _response(503, "busy")

    result = _fetcher(session).fetch("https://shop.example.com/p", 30, "ua")

    assert not result.success
    assert result.status_code == 503
    assert "503" in result.error


def test_empty_body_is_failure():
    session = MagicMock()
    session.get.return_value = _response(200, "")

    result = _fetcher(session).fetch("https://shop.example.com/p", 30, "ua")

    assert not result.success
    assert result.error == "Empty response from URL"


def test_timeout_is_failure():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.Timeout()

    result = _fetcher(session).fetch("https://shop.example.com/p", 30, "ua")

    assert not result.success
    assert result.error == "Timeout after 30 seconds"


def test_ssl_error_without_fallback():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.SSLError("bad cert")

    result = _fetcher(session).fetch("https://shop.example.com/p", 30, "ua")

    assert not result.success
    assert session.get.call_count == 1


def test_ssl_error_with_insecure_fallback():
    session = MagicMock()
    session.get.side_effect = [requests.exceptions.SSLError("bad cert"), _response()]

    result = _fetcher(session, insecure_fallback=True).fetch("https://shop.example.com/p", 30, "ua")

    assert result.success
    assert session.get.call_args.kwargs["verify"] is False


def test_redirect_to_public_host_is_followed():
    session = MagicMock()
    session.get.side_effect = [
        _response(301, "", location="/product/1?ref=moved"),
        _response(200, "<html>$2.00</html>"),
    ]

    result = _fetcher(session).fetch("https://shop.example.com/p", 30, "ua")

    assert result.success
    assert result.body == "<html>$2.00</html>"
    assert session.get.call_args.args[0] == "https://shop.example.com/product/1?ref=moved"


@pytest.mark.parametrize("location", [
    "http://127.0.0.1:8080/admin",
    "http://localhost/admin",
    "http://169.254.169.254/latest/meta-data",
    "file:///etc/passwd",
])
def test_redirect_to_internal_target_is_blocked(location):
    """Test: a public page answering 302 -> internal address is never fetched"""
    session = MagicMock()
    session.get.side_effect = [
        _response(302, "", location=location),
        _response(200, '<span class="price">$777.00</span>'),
    ]

    result = _fetcher(session).fetch("http://shop.example.com/p", 30, "ua")

    assert not result.success
    assert result.error.startswith("Blocked redirect")
    assert session.get.call_count == 1


def test_redirect_host_resolving_to_private_address_is_blocked():
    session = MagicMock()
    session.get.side_effect = [
        _response(302, "", location="http://internal.example.com/"),
        _response(200, "<html>$1.00</html>"),
    ]
    guard = UrlGuard(resolver=lambda host: ["10.0.0.7"] if host == "internal.example.com" else [PUBLIC_IP])

    result = RequestsFetcher(session=session, url_guard=guard).fetch("http://shop.example.com/p", 30, "ua")

    assert not result.success
    assert session.get.call_count == 1


def test_redirect_limit():
    session = MagicMock()
    session.get.side_effect = [
        _response(302, "", location=f"https://shop.example.com/hop/{i}") for i in range(MAX_REDIRECTS + 1)
    ]

    result = _fetcher(session).fetch("https://shop.example.com/p", 30, "ua")

    assert not result.success
    assert result.error == f"More than {MAX_REDIRECTS} redirects"
    assert session.get.call_count == MAX_REDIRECTS + 1
