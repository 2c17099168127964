"""Split narration scripts into speech-service-sized chunks."""

from __future__ import annotations

import re
from collections.abc import Iterable

DEFAULT_MAX_CHARS = 4_500

_SENTENCE = re.compile(r"[^.!?]*[.!?]+\s*")


def split_sentences(paragraph: str) -> list[str]:
    """Sentences with their trailing whitespace; unterminated tail kept as-is."""

    sentences = [match.group(0) for match in _SENTENCE.finditer(paragraph)]
    consumed = sum(len(sentence) for sentence in sentences)
    if consumed < len(paragraph):
        sentences.append(paragraph[consumed:])
    return sentences


def hard_split(text: str, max_chars: int) -> list[str]:
    return [text[start : start + max_chars] for start in range(0, len(text), max_chars)]


def _pack(pieces: Iterable[str], max_chars: int, separator: str) -> list[str]:
    """Greedily join pieces while the joined chunk stays within ``max_chars``."""

    chunks: list[str] = []
    current = ""
    for piece in pieces:
        if not current:
            current = piece
        elif len(current) + len(separator) + len(piece) <= max_chars:
            current = f"{current}{separator}{piece}"
        else:
            chunks.append(current)
            current = piece
    if current:
        chunks.append(current)
    return chunks


def _split_long_paragraph(paragraph: str, max_chars: int) -> list[str]:
    pieces: list[str] = []
    for sentence in split_sentences(paragraph):
        if len(sentence) > max_chars:
            pieces.extend(hard_split(sentence, max_chars))
        else:
            pieces.append(sentence)
    return [chunk.strip() for chunk in _pack(pieces, max_chars, "") if chunk.strip()]


def chunk_script(script: str, max_chars: int = DEFAULT_MAX_CHARS) -> list[str]:
    """Paragraphs first, then sentences, then a hard split; no chunk exceeds ``max_chars``."""

    if max_chars <= 0:
        raise ValueError("max_chars must be a positive integer")

    pieces: list[str] = []
    for raw in script.split("\n\n"):
        paragraph = raw.strip()
        if not paragraph:
            continue
        if len(paragraph) <= max_chars:
            pieces.append(paragraph)
        else:
            pieces.extend(_split_long_paragraph(paragraph, max_chars))
    return _pack(pieces, max_chars, "\n\n")
