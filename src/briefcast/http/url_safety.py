"""Outbound URL policy: block private, loopback and internal destinations."""

from __future__ import annotations

import ipaddress
import logging
import socket
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

Resolver = Callable[..., list[tuple[Any, ...]]]

BLOCKED_HOSTNAMES = frozenset({"localhost", "0.0.0.0", "::", "::1"})  # noqa: S104
BLOCKED_SUFFIXES = (
    ".local",
    ".localhost",
    ".internal",
    ".localdomain",
    ".home.arpa",
    ".corp",
    ".lan",
)

_DNS_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="briefcast-dns")


def is_blocked_address(address: str) -> bool:
    """True when ``address`` is not a routable public IP."""

    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def is_safe_url(
    url: str,
    *,
    resolver: Resolver = socket.getaddrinfo,
    dns_timeout_seconds: float | None = None,
) -> bool:
    """Check that ``url`` is http(s) and never resolves to an internal host.

    DNS failures are allowed through; the fetch itself will then fail. A lookup
    that outlives ``dns_timeout_seconds`` is refused.
    """

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return False
    if parts.scheme not in {"http", "https"} or not hostname:
        return False

    host = hostname.strip("[]").rstrip(".").lower()
    if host in BLOCKED_HOSTNAMES or host.endswith(BLOCKED_SUFFIXES):
        return False
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return not is_blocked_address(host)

    try:
        infos = resolve_host(host, resolver=resolver, timeout_seconds=dns_timeout_seconds)
    except (socket.gaierror, UnicodeError):
        return True
    except TimeoutError:
        logger.warning("Refusing %s: DNS lookup for %s timed out", url, host)
        return False
    for info in infos:
        sockaddr = info[4]
        if sockaddr and is_blocked_address(str(sockaddr[0])):
            logger.warning("Blocked URL %s: %s resolves to %s", url, host, sockaddr[0])
            return False
    return True


def resolve_host(
    host: str,
    *,
    resolver: Resolver = socket.getaddrinfo,
    timeout_seconds: float | None = None,
) -> list[tuple[Any, ...]]:
    """Resolve ``host``; with a timeout the lookup runs on a pool thread.

    ``getaddrinfo`` cannot be interrupted, so a timed-out lookup is abandoned
    and finishes in the background.
    """

    if timeout_seconds is None:
        return resolver(host, None)
    future = _DNS_POOL.submit(resolver, host, None)
    return future.result(timeout=timeout_seconds)
