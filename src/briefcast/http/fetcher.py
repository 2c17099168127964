"""SSRF-safe HTTP page fetcher with manual redirects and a byte ceiling."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass

import httpx

from briefcast.config import FetchSettings
from briefcast.http.html_extractor import (
    PageContent,
    extract_page,
    extract_plain_text,
    fallback_page,
)
from briefcast.http.url_safety import Resolver, is_safe_url

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"text/html", "application/xhtml+xml", "text/plain"})
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


@dataclass(slots=True)
class FetchedBody:
    """Raw response body after redirects, possibly truncated."""

    url: str
    status_code: int
    content_type: str
    text: str
    truncated: bool


class SafeFetcher:
    """Fetch pages while refusing to reach private or internal hosts.

    Every hop of a redirect chain is validated before it is requested, and
    the response body is streamed up to ``max_bytes``.
    """

    def __init__(
        self,
        *,
        settings: FetchSettings | None = None,
        resolver: Resolver = socket.getaddrinfo,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or FetchSettings()
        self._resolver = resolver
        self._client = httpx.Client(
            timeout=httpx.Timeout(self.settings.timeout_seconds),
            headers={
                "User-Agent": self.settings.user_agent,
                "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.5",
            },
            follow_redirects=False,
            transport=transport,
        )

    def fetch_and_extract(self, url: str) -> PageContent:
        """Fetch ``url`` and extract its page content; never raises for fetch errors."""

        if not is_safe_url(
            url,
            resolver=self._resolver,
            dns_timeout_seconds=self.settings.timeout_seconds,
        ):
            logger.warning("Refusing to fetch unsafe URL %s", url)
            return fallback_page(url)
        try:
            fetched = self.fetch(url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning("Fetch failed for %s: %s", url, exc)
            return fallback_page(url)
        if fetched is None:
            return fallback_page(url)

        if fetched.truncated:
            logger.info("Response from %s truncated at %d bytes", url, self.settings.max_bytes)
        if fetched.content_type == "text/plain":
            return extract_plain_text(
                fetched.text,
                url=fetched.url,
                max_words=self.settings.max_words,
            )
        return extract_page(fetched.text, url=fetched.url, max_words=self.settings.max_words)

    def fetch(self, url: str) -> FetchedBody | None:
        """Follow safe redirects and read an allowed body; ``None`` when refused."""

        current = url
        for _ in range(self.settings.max_redirects + 1):
            request = self._client.build_request("GET", current)
            response = self._client.send(request, stream=True)
            try:
                if response.status_code in REDIRECT_STATUSES:
                    location = response.headers.get("location")
                    if not location:
                        logger.warning("Redirect without Location from %s", current)
                        return None
                    target = str(response.url.join(location))
                    if not is_safe_url(
                        target,
                        resolver=self._resolver,
                        dns_timeout_seconds=self.settings.timeout_seconds,
                    ):
                        logger.warning("Refusing unsafe redirect %s -> %s", current, target)
                        return None
                    current = target
                    continue

                if not response.is_success:
                    logger.warning("HTTP %d fetching %s", response.status_code, current)
                    return None

                content_type = _media_type(response.headers.get("content-type", ""))
                if content_type not in ALLOWED_CONTENT_TYPES:
                    logger.warning("Skipping %s: unsupported content type %r", current, content_type)
                    return None

                raw, truncated = self._read_limited(response)
                return FetchedBody(
                    url=current,
                    status_code=response.status_code,
                    content_type=content_type,
                    text=_decode(raw, response.encoding),
                    truncated=truncated,
                )
            finally:
                response.close()

        logger.warning("Too many redirects fetching %s", url)
        return None

    def _read_limited(self, response: httpx.Response) -> tuple[bytes, bool]:
        limit = self.settings.max_bytes
        buffer = bytearray()
        for chunk in response.iter_bytes():
            remaining = limit - len(buffer)
            if len(chunk) >= remaining:
                buffer.extend(chunk[:remaining])
                return bytes(buffer), len(chunk) > remaining
            buffer.extend(chunk)
        return bytes(buffer), False

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SafeFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _media_type(header: str) -> str:
    return header.split(";", 1)[0].strip().lower()


def _decode(raw: bytes, encoding: str | None) -> str:
    try:
        return raw.decode(encoding or "utf-8")
    except (LookupError, UnicodeDecodeError):
        return raw.decode("utf-8", errors="replace")
