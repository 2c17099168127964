from __future__ import annotations

import threading

import allure
import httpx

from briefcast.models import SourceRef
from briefcast.synthesis.document import DocumentSegment
from briefcast.synthesis.llm import WebCitation
from briefcast.synthesis.sources import HttpUrlProbe, SourceValidator

from conftest import public_resolver

pytestmark = [
    allure.epic("Synthesis"),
    allure.feature("Source Validation"),
]


class _Probe:
    def __init__(self, dead: set[str]) -> None:
        self.dead = dead
        self.probed: list[str] = []

    def is_reachable(self, url: str) -> bool:
        self.probed.append(url)
        return url not in self.dead


def _segment(*urls: str) -> DocumentSegment:
    return DocumentSegment(
        topic="T",
        content="C",
        sources=[SourceRef(name=f"S{index}", url=url) for index, url in enumerate(urls)],
    )


def test_signal_urls_are_trusted_without_probing() -> None:
    probe = _Probe(dead={"https://Example.com/Story"})
    segment = _segment("https://Example.com/Story")

    report = SourceValidator(probe=probe, resolver=public_resolver).validate(
        [segment],
        signal_urls=["https://example.com/story"],
    )

    assert report.kept == 1
    assert probe.probed == []


def test_dead_unsafe_and_missing_urls_are_removed() -> None:
    probe = _Probe(dead={"https://dead.example.com/404"})
    first = _segment("https://live.example.com/A", "https://dead.example.com/404", "")
    second = _segment("http://10.0.0.1/admin", "https://live.example.com/a")

    report = SourceValidator(probe=probe, resolver=public_resolver, batch_size=2).validate(
        [first, second],
        signal_urls=[],
    )

    assert [source.url for source in first.sources] == ["https://live.example.com/A"]
    assert [source.url for source in second.sources] == ["https://live.example.com/a"]
    assert (report.kept, report.unreachable, report.unsafe, report.no_url) == (2, 1, 1, 1)
    assert sorted(probe.probed) == ["https://dead.example.com/404", "https://live.example.com/A"]


def test_probe_errors_count_as_unreachable() -> None:
    class _Exploding:
        def is_reachable(self, url: str) -> bool:
            raise RuntimeError("network down")

    segment = _segment("https://example.com/x")

    report = SourceValidator(probe=_Exploding(), resolver=public_resolver).validate(
        [segment],
        signal_urls=[],
    )

    assert segment.sources == []
    assert report.unreachable == 1


def test_without_probe_only_safety_is_checked() -> None:
    segment = _segment("https://example.com/x", "http://localhost/x")

    report = SourceValidator(resolver=public_resolver).validate([segment], signal_urls=[])

    assert [source.url for source in segment.sources] == ["https://example.com/x"]
    assert report.unsafe == 1


def test_web_search_citations_are_kept_without_checking() -> None:
    probe = _Probe(dead={"https://cited.example.com/page"})
    segment = _segment("https://Cited.example.com/page", "https://other.example.com/x")

    report = SourceValidator(probe=probe, resolver=public_resolver).validate(
        [segment],
        signal_urls=[],
        citations=[WebCitation(url="https://cited.example.com/page", title="Cited")],
    )

    assert report.kept == 2
    assert report.verified == 1
    assert probe.probed == ["https://other.example.com/x"]


def test_missing_urls_are_filled_from_matching_citation_titles() -> None:
    segment = DocumentSegment(
        topic="T",
        content="C",
        sources=[
            SourceRef(name="Reuters", url=""),
            SourceRef(name="Unknown Outlet", url=""),
        ],
    )

    report = SourceValidator(resolver=public_resolver).validate(
        [segment],
        signal_urls=[],
        citations=[WebCitation(url="https://reuters.example.com/story", title="REUTERS")],
    )

    assert [(source.name, source.url) for source in segment.sources] == [
        ("Reuters", "https://reuters.example.com/story"),
    ]
    assert (report.enriched, report.verified, report.no_url) == (1, 1, 1)


def test_slow_dns_for_a_source_url_counts_as_unsafe() -> None:
    release = threading.Event()

    def hanging_resolver(host, *_args, **_kwargs):
        release.wait(10)
        return public_resolver(host)

    segment = _segment("https://slow-dns.example.com/x")
    try:
        report = SourceValidator(resolver=hanging_resolver, dns_timeout_seconds=0.1).validate(
            [segment],
            signal_urls=[],
        )
    finally:
        release.set()

    assert segment.sources == []
    assert report.unsafe == 1


def test_http_probe_falls_back_to_get_when_head_is_rejected() -> None:
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.url.path == "/gone":
            return httpx.Response(410)
        if request.method == "HEAD":
            return httpx.Response(404)
        return httpx.Response(200, text="ok")

    probe = HttpUrlProbe(transport=httpx.MockTransport(handler))

    assert probe.is_reachable("https://example.com/head-blocked") is True
    assert probe.is_reachable("https://example.com/gone") is False
    assert methods == ["HEAD", "GET", "HEAD", "GET"]
    probe.close()
