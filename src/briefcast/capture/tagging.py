"""Topic tagging of enriched signals with a small, fast text model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from briefcast.errors import SynthesisParseError
from briefcast.synthesis.document import load_json_object
from briefcast.synthesis.llm import CompletionRequest, TextGenerator

logger = logging.getLogger(__name__)

MAX_TOPICS = 5
MAX_TOPIC_CHARS = 60
CONTEXT_PREVIEW_CHARS = 500
IMPORTANCE_LEVELS = ("high", "medium", "low")

ENRICHMENT_PROMPT = """You are a signal classifier for a personal audio briefing. \
Given raw captured content, extract:
- topics: Array of 2-5 topic tags (e.g., ["AI", "regulation", "EU"])
- summary: One sentence describing what this is about
- importance: "high" | "medium" | "low" based on likely significance

Return JSON only, no other text."""


@dataclass(slots=True)
class TopicClassification:
    """Tags, one-line summary and importance of a captured signal."""

    topics: list[str] = field(default_factory=list)
    summary: str = ""
    importance: str = "medium"


def build_tagging_context(
    *,
    title: str | None,
    source: str | None,
    content: str | None,
    raw_content: str,
) -> str:
    """Title, source and a content preview, or the raw capture when nothing was fetched."""

    parts = [part for part in (title, source) if part]
    preview = (content or "")[:CONTEXT_PREVIEW_CHARS]
    if preview:
        parts.append(preview)
    if not parts:
        parts.append(raw_content[:CONTEXT_PREVIEW_CHARS])
    return "\n".join(parts)


def normalize_topics(raw: object) -> list[str]:
    if not isinstance(raw, list):
        return []
    topics: list[str] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, str):
            continue
        topic = " ".join(item.split())[:MAX_TOPIC_CHARS]
        if not topic or topic.lower() in seen:
            continue
        seen.add(topic.lower())
        topics.append(topic)
        if len(topics) == MAX_TOPICS:
            break
    return topics


class TopicTagger:
    """Classify signal context into topic tags via the text generator."""

    def __init__(self, *, generator: TextGenerator, model: str, max_tokens: int = 300) -> None:
        self.generator = generator
        self.model = model
        self.max_tokens = max_tokens

    def classify(self, context: str) -> TopicClassification:
        completion = self.generator.complete(
            CompletionRequest(
                model=self.model,
                system=ENRICHMENT_PROMPT,
                prompt=context,
                max_tokens=self.max_tokens,
            ),
        )
        payload, error = load_json_object(completion.text)
        if payload is None:
            raise SynthesisParseError(f"Topic classification unparseable: {error}")

        importance = str(payload.get("importance", "medium")).strip().lower()
        if importance not in IMPORTANCE_LEVELS:
            importance = "medium"
        summary = payload.get("summary")
        return TopicClassification(
            topics=normalize_topics(payload.get("topics")),
            summary=summary.strip() if isinstance(summary, str) else "",
            importance=importance,
        )
