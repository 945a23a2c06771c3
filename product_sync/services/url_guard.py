"""
Guard against fetching internal resources (SSRF).

A source URL must be an absolute http(s) URL whose host is not a loopback
literal and does not resolve to a private or reserved address.
"""
import ipaddress
import logging
import socket
from typing import Callable, List
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1", "[::1]"}


class UnsafeUrlError(ValueError):
    """URL points to a host the service must never fetch"""


def _default_resolver(host: str) -> List[str]:
    infos = socket.getaddrinfo(host, None)
    return [info[4][0] for info in infos]


def is_valid_url(url: str) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def _is_blocked_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%")[0])
    except ValueError:
        return False
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


class UrlGuard:
    """
    Validate source URLs before any request is made.

    Args:
        resolver: callable returning the IP addresses of a host name.
            Defaults to ``socket.getaddrinfo``.
    """

    def __init__(self, resolver: Callable[[str], List[str]] = None):
        self.resolver = resolver or _default_resolver

    def check(self, url: str) -> None:
        """
        Raise UnsafeUrlError when the URL targets a loopback or private host.

        A host that cannot be resolved is allowed through; the fetch then
        fails on its own and is counted as a normal fetch error.
        """
        host = (urlparse(url.strip()).hostname or "").lower()
        if host in LOOPBACK_HOSTS or _is_blocked_address(host):
            raise UnsafeUrlError(f"Access to internal host '{host}' is not allowed")

        try:
            addresses = self.resolver(host)
        except (socket.gaierror, UnicodeError, OSError) as e:
            logger.debug(f"Could not resolve {host}: {e}")
            return

        for address in addresses:
            if _is_blocked_address(address):
                raise UnsafeUrlError(
                    f"Host '{host}' resolves to a private or reserved address ({address})"
                )
