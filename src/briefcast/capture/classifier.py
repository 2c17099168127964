"""Classify raw captured text and extract embedded URLs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from briefcast.models import InputType

URL_PATTERN = re.compile(r"https?://[^\s<>\"'{}|\\^`\[\]]+", re.IGNORECASE)
TRAILING_PUNCTUATION = ".,;:!?)]}'\""

FORWARD_MARKERS = ("---------- Forwarded message", "Begin forwarded message")
_FROM_HEADER = re.compile(r"^\s*>?\s*From:", re.MULTILINE)
_SUBJECT_HEADER = re.compile(r"^\s*>?\s*Subject:", re.MULTILINE)


@dataclass(slots=True)
class Classification:
    """Detected input kind and the URLs found in the text."""

    input_type: InputType
    urls: list[str] = field(default_factory=list)


def extract_urls(text: str) -> list[str]:
    """Unique http(s) URLs in order of appearance, trailing punctuation removed."""

    seen: set[str] = set()
    urls: list[str] = []
    for match in URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(TRAILING_PUNCTUATION)
        if not url.split("://", 1)[1] or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


def is_forwarded_email(text: str) -> bool:
    if any(marker in text for marker in FORWARD_MARKERS):
        return True
    return bool(_FROM_HEADER.search(text) and _SUBJECT_HEADER.search(text))


def classify_input(raw_content: str) -> Classification:
    """Forwarded email wins over links; links win over plain topics."""

    if is_forwarded_email(raw_content):
        return Classification(input_type=InputType.FORWARDED_EMAIL)
    urls = extract_urls(raw_content)
    if urls:
        return Classification(input_type=InputType.LINK, urls=urls)
    return Classification(input_type=InputType.TOPIC)
