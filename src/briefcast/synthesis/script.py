"""Assemble spoken scripts from an episode document."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from briefcast.synthesis.document import EpisodeDocument

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"
MAX_EPILOGUE_SOURCES = 3

_DASH = re.compile(r"\s*[—–]\s*")
_DOUBLE_COMMA = re.compile(r",\s*,")


def build_main_script(document: EpisodeDocument) -> str:
    """Intro, segment contents, connections and outro separated by blank lines."""

    parts = [document.intro] if document.intro else []
    parts.extend(segment.content for segment in document.segments)
    if document.connections:
        parts.append(document.connections)
    if document.outro:
        parts.append(document.outro)
    return "\n\n".join(parts)


def format_episode_date(now: datetime, timezone: str | None) -> str:
    """``Monday, October 19, 2026`` in the listener's timezone."""

    try:
        zone = ZoneInfo(timezone or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC", timezone)
        zone = ZoneInfo("UTC")
    local = now.astimezone(zone)
    return f"{local:%A}, {local:%B} {local.day}, {local.year}"


def join_names(names: list[str]) -> str:
    if len(names) == 1:
        return names[0]
    if len(names) == 2:  # noqa: PLR2004
        return f"{names[0]} and {names[1]}"
    return f"{', '.join(names[:-1])}, and {names[-1]}"


def build_epilogue(
    document: EpisodeDocument,
    *,
    timezone: str | None = None,
    now: datetime | None = None,
) -> str:
    """Fixed-format closing attribution with up to three unique source names."""

    date = format_episode_date(now or datetime.now(tz=UTC), timezone)
    names: list[str] = []
    for segment in document.segments:
        for source in segment.sources:
            name = source.name.strip()
            if name and name not in names:
                names.append(name)

    epilogue = (
        f"This episode was created for you on {date}. Briefcast analyzed the signals you "
        "captured and conducted independent research across multiple perspectives."
    )
    if names:
        epilogue += (
            " Sources referenced in this briefing include reporting from "
            f"{join_names(names[:MAX_EPILOGUE_SOURCES])}."
        )
    return epilogue + " You can explore the complete list of sources on your episode page."


def sanitize_for_tts(script: str) -> str:
    """Replace em/en dashes with a comma pause the speech engine reads naturally."""

    return _DOUBLE_COMMA.sub(",", _DASH.sub(", ", script))
