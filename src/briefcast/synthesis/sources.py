"""Drop segment sources whose URLs are missing, unsafe or dead."""

from __future__ import annotations

import logging
import socket
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol

import httpx

from briefcast.http.url_safety import Resolver, is_safe_url
from briefcast.synthesis.document import DocumentSegment
from briefcast.synthesis.llm import WebCitation

logger = logging.getLogger(__name__)

DEAD_STATUSES = frozenset({404, 410, 451})
PROBE_BATCH_SIZE = 5
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class UrlProbe(Protocol):
    """Reachability check for a single URL."""

    def is_reachable(self, url: str) -> bool:
        """Return ``False`` only when the URL is known dead or unreachable."""


class HttpUrlProbe:
    """HEAD first, GET when HEAD looks dead or fails; redirects are not followed."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 8.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": BROWSER_USER_AGENT},
            follow_redirects=False,
            transport=transport,
        )

    def is_reachable(self, url: str) -> bool:
        try:
            head = self._client.head(url)
            if head.status_code not in DEAD_STATUSES:
                return True
        except httpx.HTTPError as exc:
            logger.debug("HEAD %s failed: %s", url, exc)
        try:
            with self._client.stream("GET", url) as response:
                return response.status_code not in DEAD_STATUSES
        except httpx.HTTPError as exc:
            logger.debug("GET %s failed: %s", url, exc)
            return False

    def close(self) -> None:
        self._client.close()


@dataclass(slots=True)
class SourceValidationReport:
    kept: int = 0
    no_url: int = 0
    unsafe: int = 0
    unreachable: int = 0
    enriched: int = 0
    verified: int = 0


class SourceValidator:
    """Keep signal and web search URLs as-is; others must be safe and, with a probe, reachable."""

    def __init__(
        self,
        *,
        probe: UrlProbe | None = None,
        resolver: Resolver = socket.getaddrinfo,
        batch_size: int = PROBE_BATCH_SIZE,
        dns_timeout_seconds: float | None = None,
    ) -> None:
        self.probe = probe
        self.resolver = resolver
        self.batch_size = max(1, batch_size)
        self.dns_timeout_seconds = dns_timeout_seconds

    def validate(
        self,
        segments: Sequence[DocumentSegment],
        *,
        signal_urls: Iterable[str],
        citations: Sequence[WebCitation] = (),
    ) -> SourceValidationReport:
        """Filter ``segment.sources`` in place and report what was dropped.

        Sources without a URL borrow one from a web search citation whose title
        matches the source name. Citation URLs were fetched by the search tool
        and are kept without checking.
        """

        report = SourceValidationReport()
        report.enriched = _fill_urls_from_citations(segments, citations)
        signal_trusted = {url.lower() for url in signal_urls if url}
        verified = {citation.url.lower() for citation in citations if citation.url}
        trusted = signal_trusted | verified

        pending: dict[str, str] = {}
        for segment in segments:
            for source in segment.sources:
                url = source.url.strip()
                if url and url.lower() not in trusted:
                    pending.setdefault(url.lower(), url)

        verdicts: dict[str, bool] = {}
        unsafe: set[str] = set()
        to_probe: dict[str, str] = {}
        for key, url in pending.items():
            if not is_safe_url(
                url,
                resolver=self.resolver,
                dns_timeout_seconds=self.dns_timeout_seconds,
            ):
                logger.info("Blocked unsafe source URL %s", url)
                verdicts[key] = False
                unsafe.add(key)
            elif self.probe is None:
                verdicts[key] = True
            else:
                to_probe[key] = url
        verdicts.update(self._probe_all(to_probe))

        for segment in segments:
            kept = []
            for source in segment.sources:
                key = source.url.strip().lower()
                if not key:
                    logger.info("Dropped source without URL: %s", source.name)
                    report.no_url += 1
                elif key in trusted or verdicts.get(key, False):
                    kept.append(source)
                    if key in verified and key not in signal_trusted:
                        report.verified += 1
                elif key in unsafe:
                    report.unsafe += 1
                else:
                    logger.info("Stripped unreachable source: %s", source.url)
                    report.unreachable += 1
            segment.sources = kept
            report.kept += len(kept)
        return report

    def _probe_all(self, urls: dict[str, str]) -> dict[str, bool]:
        """Probe in batches, keyed by lowercased URL."""

        if not urls or self.probe is None:
            return {}
        probe = self.probe
        items = list(urls.items())
        verdicts: dict[str, bool] = {}
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for start in range(0, len(items), self.batch_size):
                batch = items[start : start + self.batch_size]
                futures = {key: (url, executor.submit(probe.is_reachable, url)) for key, url in batch}
                for key, (url, future) in futures.items():
                    try:
                        verdicts[key] = bool(future.result())
                    except Exception as exc:  # noqa: BLE001
                        logger.warning("Validation error for %s: %s", url, exc)
                        verdicts[key] = False
        return verdicts


def _fill_urls_from_citations(
    segments: Sequence[DocumentSegment],
    citations: Sequence[WebCitation],
) -> int:
    by_title = {citation.title.lower(): citation.url for citation in citations if citation.title}
    enriched = 0
    for segment in segments:
        for source in segment.sources:
            if source.url.strip():
                continue
            url = by_title.get(source.name.lower())
            if url:
                source.url = url
                enriched += 1
    if enriched:
        logger.info("Filled %d source URL(s) from web search citations", enriched)
    return enriched
