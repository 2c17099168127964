from __future__ import annotations

import allure
import pytest

from briefcast.capture.tagging import TopicTagger, build_tagging_context, normalize_topics
from briefcast.errors import SynthesisParseError
from briefcast.synthesis.llm import Completion

from conftest import FakeTextGenerator

pytestmark = [
    allure.epic("Signal Capture"),
    allure.feature("Topic Tagging"),
]


def test_classify_parses_fenced_json() -> None:
    generator = FakeTextGenerator(
        Completion(
            text='```json\n{"topics": ["AI", "EU"], "summary": " New rules. ", "importance": "HIGH"}\n```',
            stop_reason="end_turn",
        ),
    )

    result = TopicTagger(generator=generator, model="small").classify("context")

    assert result.topics == ["AI", "EU"]
    assert result.summary == "New rules."
    assert result.importance == "high"
    [request] = generator.requests
    assert request.model == "small"
    assert request.max_tokens == 300


def test_classify_defaults_unknown_importance() -> None:
    generator = FakeTextGenerator(
        Completion(text='{"topics": "not a list", "importance": "urgent"}', stop_reason="end_turn"),
    )

    result = TopicTagger(generator=generator, model="small").classify("context")

    assert result.topics == []
    assert result.importance == "medium"


def test_classify_raises_on_unparseable_output() -> None:
    generator = FakeTextGenerator(Completion(text="sorry", stop_reason="end_turn"))

    with pytest.raises(SynthesisParseError):
        TopicTagger(generator=generator, model="small").classify("context")


def test_normalize_topics_caps_and_dedupes() -> None:
    raw = ["AI", "ai", "  Climate   policy ", 5, "x" * 80, "a", "b", "c"]

    topics = normalize_topics(raw)

    assert topics == ["AI", "Climate policy", "x" * 60, "a", "b"]


def test_tagging_context_prefers_fetched_metadata() -> None:
    context = build_tagging_context(
        title="Title",
        source="Example",
        content="z" * 900,
        raw_content="https://example.com",
    )
    assert context == "Title\nExample\n" + "z" * 500

    fallback = build_tagging_context(title=None, source=None, content=None, raw_content="raw text")
    assert fallback == "raw text"
