"""Text generation client over the Anthropic Messages API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic

logger = logging.getLogger(__name__)

STOP_REASON_MAX_TOKENS = "max_tokens"
STOP_REASON_PAUSE_TURN = "pause_turn"
WEB_SEARCH_TOOL_TYPE = "web_search_20250305"
WEB_SEARCH_TOOL_NAME = "web_search"


@dataclass(slots=True)
class CompletionRequest:
    """One system + user prompt exchange, optionally with server-side web search."""

    model: str
    system: str
    prompt: str
    max_tokens: int
    web_search: bool = False
    web_search_max_uses: int = 10
    max_continuations: int = 3


@dataclass(slots=True)
class WebCitation:
    """A page the model read or cited through the web search tool."""

    url: str
    title: str = ""
    cited_text: str = ""


@dataclass(slots=True)
class Completion:
    """Concatenated text blocks and usage of one model response."""

    text: str
    stop_reason: str | None
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    citations: list[WebCitation] = field(default_factory=list)
    web_searches: int = 0
    continuations: int = 0
    web_search_fallback: bool = False

    @property
    def truncated(self) -> bool:
        return self.stop_reason == STOP_REASON_MAX_TOKENS


class TextGenerator(Protocol):
    """Interface implemented by text generation backends."""

    def complete(self, request: CompletionRequest) -> Completion:
        """Run one completion request."""


class AnthropicTextGenerator:
    """Anthropic SDK client; retries are left to the caller.

    With ``web_search`` enabled the request carries the server web search tool.
    A response that stops with ``pause_turn`` is continued by sending the
    content gathered so far back as the assistant turn, up to
    ``max_continuations`` times. When the API rejects the tool (HTTP 400
    mentioning ``web_search``) the request is repeated once without it.
    """

    def __init__(
        self,
        *,
        api_key: str = "",
        timeout_seconds: float = 240.0,
        client: Any | None = None,
    ) -> None:
        self._client = client or anthropic.Anthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    def complete(self, request: CompletionRequest) -> Completion:
        if not request.web_search:
            return self._run(request, tools=None)
        tools = [
            {
                "type": WEB_SEARCH_TOOL_TYPE,
                "name": WEB_SEARCH_TOOL_NAME,
                "max_uses": request.web_search_max_uses,
            },
        ]
        try:
            return self._run(request, tools=tools)
        except anthropic.BadRequestError as exc:
            if WEB_SEARCH_TOOL_NAME not in str(exc):
                raise
            logger.warning("Web search rejected by the API (%s); retrying without it", exc)
            completion = self._run(request, tools=None)
            completion.web_search_fallback = True
            return completion

    def _run(self, request: CompletionRequest, *, tools: list[dict[str, Any]] | None) -> Completion:
        user_turn = {"role": "user", "content": request.prompt}
        content: list[Any] = []
        input_tokens = 0
        output_tokens = 0
        web_searches = 0
        continuations = 0
        messages: list[dict[str, Any]] = [user_turn]

        while True:
            kwargs: dict[str, Any] = {
                "model": request.model,
                "max_tokens": request.max_tokens,
                "system": request.system,
                "messages": messages,
            }
            if tools:
                kwargs["tools"] = tools
            response = self._client.messages.create(**kwargs)
            content.extend(response.content)
            input_tokens += response.usage.input_tokens
            output_tokens += response.usage.output_tokens
            web_searches += _web_search_requests(response.usage)

            if response.stop_reason != STOP_REASON_PAUSE_TURN:
                break
            if continuations >= request.max_continuations:
                logger.warning(
                    "Response still paused after %d continuation(s); using partial output",
                    continuations,
                )
                break
            continuations += 1
            logger.info("Continuing paused turn (%d/%d)", continuations, request.max_continuations)
            messages = [
                user_turn,
                {"role": "assistant", "content": [_block_param(block) for block in content]},
            ]

        text = "".join(block.text for block in content if block.type == "text")
        citations = harvest_citations(content)
        logger.debug(
            "Model %s returned %d chars (stop_reason=%s, searches=%d, citations=%d)",
            response.model,
            len(text),
            response.stop_reason,
            web_searches,
            len(citations),
        )
        return Completion(
            text=text,
            stop_reason=response.stop_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=response.model,
            citations=citations,
            web_searches=web_searches,
            continuations=continuations,
        )

    def close(self) -> None:
        self._client.close()


def harvest_citations(content: list[Any]) -> list[WebCitation]:
    """Collect web search results and text citations, deduplicated by URL."""

    citations: list[WebCitation] = []
    seen: set[str] = set()

    def add(url: str | None, title: str | None, cited_text: str | None = None) -> None:
        if not url or url.lower() in seen:
            return
        seen.add(url.lower())
        citations.append(WebCitation(url=url, title=title or "", cited_text=cited_text or ""))

    for block in content:
        if block.type == "web_search_tool_result":
            results = getattr(block, "content", None)
            if not isinstance(results, list):
                continue
            for result in results:
                if getattr(result, "type", None) == "web_search_result":
                    add(result.url, getattr(result, "title", ""))
        elif block.type == "text":
            for citation in getattr(block, "citations", None) or []:
                if getattr(citation, "type", None) == "web_search_result_location":
                    add(
                        citation.url,
                        getattr(citation, "title", ""),
                        getattr(citation, "cited_text", ""),
                    )
    return citations


def _web_search_requests(usage: Any) -> int:
    server_tool_use = getattr(usage, "server_tool_use", None)
    return getattr(server_tool_use, "web_search_requests", 0) or 0


def _block_param(block: Any) -> Any:
    model_dump = getattr(block, "model_dump", None)
    if model_dump is not None:
        return model_dump(exclude_none=True)
    return block
