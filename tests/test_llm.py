from __future__ import annotations

from types import SimpleNamespace

import allure
import anthropic
import httpx
import pytest

from briefcast.synthesis.llm import (
    AnthropicTextGenerator,
    CompletionRequest,
    WebCitation,
    harvest_citations,
)

pytestmark = [
    allure.epic("Synthesis"),
    allure.feature("Text Generation"),
]


class _FakeMessages:
    def __init__(self, responses: list[object]) -> None:
        self.responses = responses
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class _FakeClient:
    def __init__(self, *responses: object) -> None:
        self.messages = _FakeMessages(list(responses))

    def close(self) -> None:
        return None


def _text(text: str, citations: list | None = None) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text, citations=citations)


def _search_results(*pages: tuple[str, str]) -> SimpleNamespace:
    return SimpleNamespace(
        type="web_search_tool_result",
        content=[
            SimpleNamespace(type="web_search_result", url=url, title=title) for url, title in pages
        ],
    )


def _response(
    *content: SimpleNamespace,
    stop_reason: str = "end_turn",
    tokens: tuple[int, int] = (100, 50),
    searches: int = 0,
) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(content),
        stop_reason=stop_reason,
        model="big-model",
        usage=SimpleNamespace(
            input_tokens=tokens[0],
            output_tokens=tokens[1],
            server_tool_use=SimpleNamespace(web_search_requests=searches),
        ),
    )


def _bad_request(message: str) -> anthropic.BadRequestError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(400, request=request)
    return anthropic.BadRequestError(message, response=response, body=None)


def _request(*, web_search: bool = True, max_continuations: int = 3) -> CompletionRequest:
    return CompletionRequest(
        model="big-model",
        system="system",
        prompt="prompt",
        max_tokens=1000,
        web_search=web_search,
        max_continuations=max_continuations,
    )


def test_paused_turn_is_continued_with_the_content_so_far() -> None:
    searching = SimpleNamespace(type="server_tool_use", name="web_search", input={"query": "q"})
    results = _search_results(("https://news.example.com/a", "A"))
    client = _FakeClient(
        _response(searching, results, stop_reason="pause_turn", tokens=(100, 20), searches=1),
        _response(_text('{"title": "T"}'), tokens=(300, 80), searches=2),
    )

    completion = AnthropicTextGenerator(client=client).complete(_request())

    first, second = client.messages.calls
    assert first["tools"] == [{"type": "web_search_20250305", "name": "web_search", "max_uses": 10}]
    assert first["messages"] == [{"role": "user", "content": "prompt"}]
    assert second["messages"] == [
        {"role": "user", "content": "prompt"},
        {"role": "assistant", "content": [searching, results]},
    ]
    assert completion.text == '{"title": "T"}'
    assert (completion.input_tokens, completion.output_tokens) == (400, 100)
    assert completion.web_searches == 3
    assert completion.continuations == 1
    assert completion.stop_reason == "end_turn"
    assert completion.citations == [WebCitation(url="https://news.example.com/a", title="A")]


def test_continuations_stop_at_the_limit_with_partial_output() -> None:
    client = _FakeClient(_response(_text("part "), stop_reason="pause_turn"))

    completion = AnthropicTextGenerator(client=client).complete(_request(max_continuations=3))

    assert len(client.messages.calls) == 4
    assert completion.continuations == 3
    assert completion.stop_reason == "pause_turn"
    assert completion.text == "part " * 4
    assert not completion.truncated


def test_rejected_web_search_is_retried_without_the_tool() -> None:
    client = _FakeClient(
        _bad_request("tools.0: web_search is not enabled for this organization"),
        _response(_text("plain answer")),
    )

    completion = AnthropicTextGenerator(client=client).complete(_request())

    first, second = client.messages.calls
    assert "tools" in first
    assert "tools" not in second
    assert completion.text == "plain answer"
    assert completion.web_search_fallback is True
    assert completion.citations == []


def test_other_bad_requests_propagate() -> None:
    client = _FakeClient(_bad_request("max_tokens: too large"))

    with pytest.raises(anthropic.BadRequestError):
        AnthropicTextGenerator(client=client).complete(_request())

    assert len(client.messages.calls) == 1


def test_requests_without_web_search_send_no_tools() -> None:
    client = _FakeClient(_response(_text("hello"), stop_reason="max_tokens"))

    completion = AnthropicTextGenerator(client=client).complete(_request(web_search=False))

    [call] = client.messages.calls
    assert "tools" not in call
    assert completion.truncated


def test_citations_are_collected_from_results_and_text_without_duplicates() -> None:
    content = [
        _search_results(
            ("https://a.example.com/1", "First"),
            ("https://b.example.com/2", "Second"),
        ),
        SimpleNamespace(
            type="web_search_tool_result",
            content=SimpleNamespace(error_code="max_uses_exceeded"),
        ),
        _text(
            "cited",
            citations=[
                SimpleNamespace(
                    type="web_search_result_location",
                    url="https://A.example.com/1",
                    title="First again",
                    cited_text="dup",
                ),
                SimpleNamespace(
                    type="web_search_result_location",
                    url="https://c.example.com/3",
                    title="Third",
                    cited_text="quoted",
                ),
            ],
        ),
    ]

    citations = harvest_citations(content)

    assert citations == [
        WebCitation(url="https://a.example.com/1", title="First"),
        WebCitation(url="https://b.example.com/2", title="Second"),
        WebCitation(url="https://c.example.com/3", title="Third", cited_text="quoted"),
    ]
