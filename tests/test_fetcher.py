from __future__ import annotations

import threading

import allure
import httpx

from briefcast.config import FetchSettings
from briefcast.http.fetcher import SafeFetcher

from conftest import public_resolver

pytestmark = [
    allure.epic("Signal Capture"),
    allure.feature("Safe Page Fetcher"),
]

_ARTICLE_HTML = """
<html>
  <head>
    <title>Fallback Title</title>
    <meta property="og:title" content="Chip Export Rules Tighten">
    <meta property="og:site_name" content="The Example Times">
  </head>
  <body>
    <nav>Home | World | Tech</nav>
    <article><p>Regulators announced new export rules for advanced chips.</p></article>
    <footer>Copyright</footer>
  </body>
</html>
"""


def _fetcher(handler, **settings) -> SafeFetcher:
    return SafeFetcher(
        settings=FetchSettings(**settings),
        resolver=public_resolver,
        transport=httpx.MockTransport(handler),
    )


def test_fetch_and_extract_reads_og_metadata_and_article_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/html; charset=utf-8"},
            text=_ARTICLE_HTML,
        )

    with _fetcher(handler) as fetcher:
        page = fetcher.fetch_and_extract("https://example.com/news/chip-rules")

    assert page.title == "Chip Export Rules Tighten"
    assert page.source == "The Example Times"
    assert page.body_text == "Regulators announced new export rules for advanced chips."


def test_fetch_follows_safe_redirects() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.path == "/short":
            return httpx.Response(301, headers={"location": "/final-story"})
        return httpx.Response(200, headers={"content-type": "text/plain"}, text="plain body")

    with _fetcher(handler) as fetcher:
        fetched = fetcher.fetch("https://example.com/short")

    assert fetched is not None
    assert fetched.url == "https://example.com/final-story"
    assert fetched.text == "plain body"
    assert seen == ["https://example.com/short", "https://example.com/final-story"]


def test_redirect_to_internal_host_is_refused_before_request() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/"})

    with _fetcher(handler) as fetcher:
        page = fetcher.fetch_and_extract("https://example.com/innocent-looking-link")

    assert seen == ["https://example.com/innocent-looking-link"]
    assert page.title == "Innocent Looking Link"
    assert page.source == "example.com"
    assert page.body_text is None


def test_unsafe_url_is_never_requested() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("must not be requested")

    with _fetcher(handler) as fetcher:
        page = fetcher.fetch_and_extract("http://localhost:8080/admin")

    assert page.body_text is None
    assert page.source == "localhost"


def test_too_many_redirects_returns_fallback() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"location": "/loop"})

    with _fetcher(handler, max_redirects=2) as fetcher:
        assert fetcher.fetch("https://example.com/loop") is None


def test_body_is_capped_at_max_bytes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/plain"}, content=b"a" * 5000)

    with _fetcher(handler, max_bytes=1000) as fetcher:
        fetched = fetcher.fetch("https://example.com/huge.txt")

    assert fetched is not None
    assert len(fetched.text) == 1000
    assert fetched.truncated is True


def test_unsupported_content_type_and_http_errors_yield_fallback() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(".pdf"):
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")
        return httpx.Response(404, text="missing")

    with _fetcher(handler) as fetcher:
        pdf = fetcher.fetch_and_extract("https://example.com/report.pdf")
        missing = fetcher.fetch_and_extract("https://example.com/gone")

    assert pdf.title == "Report"
    assert pdf.body_text is None
    assert missing.title == "Gone"
    assert missing.body_text is None


def test_transport_errors_are_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with _fetcher(handler) as fetcher:
        page = fetcher.fetch_and_extract("https://example.com/slow-page")

    assert page.title == "Slow Page"
    assert page.body_text is None


def test_hanging_dns_lookup_returns_fallback_within_the_fetch_timeout() -> None:
    release = threading.Event()

    def hanging_resolver(host, *_args, **_kwargs):
        release.wait(10)
        return [(2, 1, 6, "", ("93.184.216.34", 0))]

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("must not be requested")

    fetcher = SafeFetcher(
        settings=FetchSettings(timeout_seconds=0.1),
        resolver=hanging_resolver,
        transport=httpx.MockTransport(handler),
    )
    try:
        page = fetcher.fetch_and_extract("https://slow-dns.example.com/story-title")
    finally:
        release.set()
        fetcher.close()

    assert page.body_text is None
    assert page.title == "Story Title"
