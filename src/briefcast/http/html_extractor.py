"""HTML to title/source/body extraction using lxml and trafilatura."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

import lxml.html
import trafilatura
from lxml import etree

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORDS = 4_000

NOISE_TAGS = (
    "script",
    "style",
    "noscript",
    "nav",
    "footer",
    "header",
    "aside",
    "form",
    "iframe",
)
NOISE_CLASSES = ("ad", "ads", "advert", "advertisement", "sidebar", "promo", "cookie-banner")

_NOISE_XPATH = " | ".join(
    [f"//{tag}" for tag in NOISE_TAGS]
    + [
        f"//*[contains(concat(' ', normalize-space(@class), ' '), ' {name} ')]"
        for name in NOISE_CLASSES
    ],
)
_SLUG_SEPARATORS = re.compile(r"[-_]+")


@dataclass(slots=True)
class PageContent:
    """Best-effort content of a fetched page; every field may be missing."""

    title: str | None = None
    source: str | None = None
    body_text: str | None = None


def source_label(url: str) -> str | None:
    """Hostname without ``www.`` prefix."""

    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return hostname.removeprefix("www.")


def title_from_url(url: str) -> str | None:
    """Readable title from the last non-empty path segment."""

    try:
        path = urlsplit(url).path
    except ValueError:
        return None
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return None
    stem = PurePosixPath(unquote(segments[-1])).stem
    words = _SLUG_SEPARATORS.sub(" ", stem).split()
    if not words:
        return None
    return " ".join(words).title()


def fallback_page(url: str) -> PageContent:
    """Metadata derivable from the URL alone."""

    return PageContent(title=title_from_url(url), source=source_label(url), body_text=None)


def truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    if max_words > 0 and len(words) > max_words:
        words = words[:max_words]
    return " ".join(words)


def extract_main_text(html: str, *, url: str | None = None) -> str | None:
    """Main-content text via trafilatura, precision first then recall."""

    if not html or not html.strip():
        return None
    try:
        text = trafilatura.extract(
            html,
            url=url,
            include_tables=True,
            include_links=False,
            favor_precision=True,
            deduplicate=True,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura.extract failed for %s: %s", url or "<unknown>", exc)
        text = None

    if not text:
        try:
            text = trafilatura.extract(html, url=url, include_tables=True, favor_recall=True)
        except Exception as exc:  # noqa: BLE001
            logger.warning("trafilatura fallback failed for %s: %s", url or "<unknown>", exc)
            return None
    return text or None


def extract_page(html: str, *, url: str, max_words: int = DEFAULT_MAX_WORDS) -> PageContent:
    """Extract title, source label and readable body text from an HTML page.

    Title prefers ``og:title`` over ``<title>``; source prefers
    ``og:site_name`` over the hostname. Body text comes from ``<article>``,
    then trafilatura, then ``<main>``/``<body>``, truncated to ``max_words``.
    """

    fallback = fallback_page(url)
    if not html or not html.strip():
        return fallback
    try:
        document = lxml.html.fromstring(
            html.encode("utf-8"),
            parser=lxml.html.HTMLParser(encoding="utf-8"),
        )
    except (etree.ParserError, ValueError) as exc:
        logger.warning("Could not parse HTML from %s: %s", url, exc)
        return fallback

    title = _first_text(document, "//meta[@property='og:title']/@content") or _first_text(
        document,
        "//title/text()",
    )
    source = _first_text(document, "//meta[@property='og:site_name']/@content")

    for element in document.xpath(_NOISE_XPATH):
        if element.getparent() is not None:
            element.drop_tree()

    body = _element_text(document, "//article")
    if not body:
        body = extract_main_text(lxml.html.tostring(document, encoding="unicode"), url=url)
    if not body:
        body = _element_text(document, "//main") or _element_text(document, "//body")

    return PageContent(
        title=title or fallback.title,
        source=source or fallback.source,
        body_text=truncate_words(body, max_words) if body else None,
    )


def extract_plain_text(text: str, *, url: str, max_words: int = DEFAULT_MAX_WORDS) -> PageContent:
    fallback = fallback_page(url)
    body = truncate_words(text, max_words)
    return PageContent(title=fallback.title, source=fallback.source, body_text=body or None)


def _first_text(document: lxml.html.HtmlElement, xpath: str) -> str | None:
    for value in document.xpath(xpath):
        normalized = " ".join(str(value).split())
        if normalized:
            return normalized
    return None


def _element_text(document: lxml.html.HtmlElement, xpath: str) -> str | None:
    for element in document.xpath(xpath):
        normalized = " ".join(element.text_content().split())
        if normalized:
            return normalized
    return None
