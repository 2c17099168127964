"""Extract, repair and validate the episode document from model output."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from briefcast.errors import SynthesisError, SynthesisParseError, SynthesisValidationError
from briefcast.models import SourceRef

logger = logging.getLogger(__name__)

DEFAULT_MAX_SEGMENTS = 8

RepairStrategy = Callable[[str], str]

_CITE_TAG = re.compile(r"</?cite\b[^>]*>", re.IGNORECASE)
_LEADING_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?")
_TRAILING_FENCE = re.compile(r"\n?\s*```\s*$")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


@dataclass(slots=True)
class DocumentSegment:
    topic: str
    content: str
    sources: list[SourceRef] = field(default_factory=list)


@dataclass(slots=True)
class EpisodeDocument:
    """Structured episode returned by the text model."""

    title: str
    segments: list[DocumentSegment]
    intro: str = ""
    summary: str = ""
    connections: str = ""
    outro: str = ""


def strip_cite_tags(text: str) -> str:
    """Drop inline ``<cite ...>`` wrappers, keeping their inner text."""

    return _CITE_TAG.sub("", text)


def strip_code_fences(text: str) -> str:
    stripped = text.strip()
    stripped = _LEADING_FENCE.sub("", stripped)
    return _TRAILING_FENCE.sub("", stripped)


def iter_json_objects(text: str) -> Iterator[str]:
    """Yield balanced top-level ``{...}`` blocks in order, string-aware.

    A balanced block is followed by the next block after it; a ``{`` that never
    closes is skipped so a later object can still be found.
    """

    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end is None:
            start = text.find("{", start + 1)
            continue
        yield text[start : end + 1]
        start = text.find("{", end + 1)


def find_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` block, string-aware."""

    return next(iter_json_objects(text), None)


def _matching_brace(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def escape_control_characters(raw: str) -> str:
    """Escape raw newlines/tabs inside JSON strings; drop other control chars there."""

    result: list[str] = []
    in_string = False
    escaped = False
    for char in raw:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif ord(char) < 0x20:  # noqa: PLR2004
                result.append(_CONTROL_ESCAPES.get(char, ""))
                continue
        elif char == '"':
            in_string = True
        result.append(char)
    return "".join(result)


DEFAULT_REPAIRS: tuple[RepairStrategy, ...] = (escape_control_characters,)


def load_json_object(
    text: str,
    *,
    repairs: Sequence[RepairStrategy] = DEFAULT_REPAIRS,
) -> tuple[dict[str, Any] | None, str | None]:
    """Parse the first JSON object in ``text``, applying repairs on failure.

    Brace blocks that do not parse (prose such as ``{as requested}``) are
    skipped in favour of the next top-level block.
    """

    cleaned = strip_cite_tags(strip_code_fences(text))
    error: str | None = None
    for candidate in iter_json_objects(cleaned):
        payload, candidate_error = _load_candidate(candidate, repairs)
        if payload is not None:
            return payload, None
        error = error or candidate_error
    return None, error or "no JSON object found in model output"


def _load_candidate(
    candidate: str,
    repairs: Sequence[RepairStrategy],
) -> tuple[dict[str, Any] | None, str | None]:
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as first_error:
        logger.warning("JSON parse failed (%s); attempting repair", first_error)
        repaired = candidate
        for repair in repairs:
            repaired = repair(repaired)
        try:
            payload = json.loads(repaired)
        except json.JSONDecodeError as repair_error:
            return None, f"could not parse model output as JSON: {repair_error}"
        logger.info("JSON repair succeeded")

    if not isinstance(payload, dict):
        return None, "model output JSON is not an object"
    return payload, None


def parse_or_repair(
    text: str,
    *,
    max_segments: int = DEFAULT_MAX_SEGMENTS,
    repairs: Sequence[RepairStrategy] = DEFAULT_REPAIRS,
) -> tuple[EpisodeDocument | None, SynthesisError | None]:
    """Turn raw model text into an :class:`EpisodeDocument` or an error."""

    payload, error = load_json_object(text, repairs=repairs)
    if payload is None:
        return None, SynthesisParseError(error or "could not parse model output")
    try:
        return episode_from_payload(payload, max_segments=max_segments), None
    except SynthesisValidationError as exc:
        return None, exc


def episode_from_payload(payload: dict[str, Any], *, max_segments: int) -> EpisodeDocument:
    title = _text(payload.get("title"))
    raw_segments = payload.get("segments")
    if not title or not isinstance(raw_segments, list) or not raw_segments:
        raise SynthesisValidationError("Model response missing required fields (title, segments)")

    segments = [
        segment
        for segment in (_segment_from_payload(item) for item in raw_segments)
        if segment is not None
    ]
    if not segments:
        raise SynthesisValidationError("Model response has no usable segments")
    if len(segments) > max_segments:
        logger.warning("Model returned %d segments, capping to %d", len(segments), max_segments)
        segments = segments[:max_segments]

    return EpisodeDocument(
        title=title,
        segments=segments,
        intro=_text(payload.get("intro")),
        summary=_text(payload.get("summary")),
        connections=_text(payload.get("connections")),
        outro=_text(payload.get("outro")),
    )


def _segment_from_payload(item: object) -> DocumentSegment | None:
    if not isinstance(item, dict):
        return None
    content = _text(item.get("content"))
    if not content:
        return None
    raw_sources = item.get("sources")
    sources: list[SourceRef] = []
    if isinstance(raw_sources, list):
        for source in raw_sources:
            if not isinstance(source, dict):
                continue
            name = _text(source.get("name"))
            if not name:
                continue
            sources.append(
                SourceRef(
                    name=name,
                    url=_text(source.get("url")),
                    attribution=_text(source.get("attribution")),
                ),
            )
    return DocumentSegment(topic=_text(item.get("topic")) or "Untitled", content=content, sources=sources)


def _text(value: object) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""
