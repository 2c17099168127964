"""Domain models for signals, episodes and segments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class InputType(str, Enum):
    """Kind of captured input."""

    LINK = "LINK"
    TOPIC = "TOPIC"
    VOICE_NOTE = "VOICE_NOTE"
    FORWARDED_EMAIL = "FORWARDED_EMAIL"


class Channel(str, Enum):
    """Capture channel a signal arrived through."""

    SMS = "SMS"
    EMAIL = "EMAIL"
    EXTENSION = "EXTENSION"
    SHARE = "SHARE"
    API = "API"
    CLI = "CLI"


class SignalStatus(str, Enum):
    """Signal lifecycle states."""

    QUEUED = "QUEUED"
    ENRICHED = "ENRICHED"
    USED = "USED"
    FAILED = "FAILED"


CLAIMABLE_SIGNAL_STATUSES = (SignalStatus.QUEUED, SignalStatus.ENRICHED)


class EpisodeStatus(str, Enum):
    """Episode lifecycle states."""

    GENERATING = "GENERATING"
    SYNTHESIZING = "SYNTHESIZING"
    READY = "READY"
    FAILED = "FAILED"


class EpisodeLength(str, Enum):
    """Target length tier for the narration script."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class BriefingStyle(str, Enum):
    """How much analysis the narration carries."""

    ESSENTIAL = "essential"
    STANDARD = "standard"
    STRATEGIC = "strategic"


class ResearchDepth(str, Enum):
    """How far the model should research beyond the captured context."""

    AUTO = "auto"
    LIGHT = "light"
    DEEP = "deep"


@dataclass(slots=True)
class UserProfile:
    """Owner preferences that shape prompts and narration."""

    user_id: str
    display_name: str
    name_pronunciation: str | None = None
    voice_key: str | None = None
    episode_length: EpisodeLength | None = None
    timezone: str | None = None
    briefing_style: BriefingStyle | None = None
    research_depth: ResearchDepth | None = None


@dataclass(slots=True)
class SignalDraft:
    """Signal fields known at capture time."""

    input_type: InputType
    channel: Channel
    raw_content: str
    url: str | None = None


@dataclass(slots=True)
class SignalView:
    """Readable signal view for services and CLI."""

    signal_id: str
    user_id: str
    input_type: InputType
    channel: Channel
    raw_content: str
    url: str | None
    title: str | None
    source: str | None
    fetched_content: str | None
    topics: list[str]
    status: SignalStatus
    episode_id: str | None
    created_at: datetime
    processed_at: datetime | None


@dataclass(slots=True)
class SourceRef:
    """One attributed source of a segment."""

    name: str
    url: str
    attribution: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "url": self.url, "attribution": self.attribution}


@dataclass(slots=True)
class SegmentWrite:
    """Segment payload persisted with an episode script."""

    topic: str
    content: str
    sources: list[SourceRef] = field(default_factory=list)


@dataclass(slots=True)
class SegmentView:
    """Persisted segment."""

    segment_id: int
    episode_id: str
    order_index: int
    topic: str
    content: str
    sources: list[SourceRef]


@dataclass(slots=True)
class EpisodeView:
    """Readable episode view."""

    episode_id: str
    user_id: str
    title: str
    script: str
    summary: str | None
    period_start: datetime
    period_end: datetime
    signal_count: int
    topics_covered: list[str]
    voice_key: str | None
    audio_url: str | None
    audio_duration: int | None
    status: EpisodeStatus
    error: str | None
    created_at: datetime
    generated_at: datetime | None
    generation_meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class EpisodeClaim:
    """Result of atomically claiming signals for a new episode."""

    episode: EpisodeView
    signals: list[SignalView]


@dataclass(slots=True)
class ScriptWrite:
    """Episode script fields written once synthesis succeeded."""

    title: str
    script: str
    summary: str | None
    topics_covered: list[str]
    segments: list[SegmentWrite]


@dataclass(slots=True)
class EpisodeFinalize:
    """Audio fields written when an episode becomes ready."""

    audio_url: str
    audio_duration: int
    voice_key: str
    generation_meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PriorEpisode:
    """Summary of an earlier ready episode for continuity callbacks."""

    title: str
    summary: str | None
    topics_covered: list[str]
    generated_at: datetime | None


@dataclass(slots=True)
class TopicHistory:
    """Raw topic usage history used to build a topic profile."""

    used_signal_topics: list[tuple[list[str], datetime]]
    episode_topics: list[tuple[list[str], datetime | None]]
