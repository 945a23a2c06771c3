"""SSRF guard tests."""
import socket

import pytest

from product_sync.services.url_guard import UnsafeUrlError, UrlGuard, is_valid_url


@pytest.mark.parametrize("url,valid", [
    ("https://shop.example.com/product/1", True),
    ("http://shop.example.com", True),
    ("ftp://shop.example.com/file", False),
    ("shop.example.com/product", False),
    ("", False),
    (None, False),
    ("https://", False),
])
def test_is_valid_url(url, valid):
    assert is_valid_url(url) is valid


@pytest.mark.parametrize("url", [
    "http://localhost/x",
    "http://127.0.0.1/x",
    "http://0.0.0.0:8080/",
    "http://[::1]/x",
    "http://10.0.0.5/admin",
    "http://192.168.1.1/",
    "http://169.254.169.254/latest/meta-data",
])
def test_internal_literals_rejected(url):
    guard = UrlGuard(resolver=lambda host: pytest.fail("must not resolve"))
    with pytest.raises(UnsafeUrlError):
        guard.check(url)


@pytest.mark.parametrize("address", ["10.1.2.3", "172.16.0.9", "127.0.0.2", "fd00::1", "224.0.0.1"])
def test_host_resolving_to_private_range_rejected(address):
    guard = UrlGuard(resolver=lambda host: ["93.184.216.34", address])
    with pytest.raises(UnsafeUrlError):
        guard.check("https://sneaky.example.com/")


def test_public_host_allowed():
    UrlGuard(resolver=lambda host: ["93.184.216.34"]).check("https://shop.example.com/p")


def test_unresolvable_host_is_left_to_the_fetch():
    def resolver(host):
        raise socket.gaierror("Name or service not known")

    UrlGuard(resolver=resolver).check("https://no-such-host.invalid/p")
