"""CLI controllers for signal, episode, user and database commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from briefcast.audio.tts import VOICES
from briefcast.config import Settings
from briefcast.errors import NoSignalsError
from briefcast.models import (
    BriefingStyle,
    Channel,
    EpisodeLength,
    EpisodeStatus,
    EpisodeView,
    InputType,
    ResearchDepth,
    SignalStatus,
    SignalView,
)
from briefcast.runtime import build_capture_runtime, build_generation_runtime, open_repository
from briefcast.storage.repository import BriefcastRepository

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_CHARS = 70


@dataclass(slots=True)
class SignalAddCommand:
    """CLI inputs for signal capture."""

    db_path: Path | None
    text: str
    channel: str
    user_id: str | None
    voice_note: bool
    enrich: bool


@dataclass(slots=True)
class SignalEnrichCommand:
    """CLI inputs for re-running enrichment on one signal."""

    db_path: Path | None
    signal_id: str


@dataclass(slots=True)
class SignalListCommand:
    """CLI inputs for signal listing."""

    db_path: Path | None
    user_id: str | None
    status: str | None
    limit: int


@dataclass(slots=True)
class EpisodeGenerateCommand:
    """CLI inputs for episode generation."""

    db_path: Path | None
    user_id: str | None
    signal_ids: tuple[str, ...]
    days_back: int | None
    scheduled: bool


@dataclass(slots=True)
class EpisodeListCommand:
    """CLI inputs for episode listing."""

    db_path: Path | None
    user_id: str | None
    status: str | None
    limit: int


@dataclass(slots=True)
class EpisodeShowCommand:
    """CLI inputs for episode inspection."""

    db_path: Path | None
    episode_id: str
    show_script: bool


@dataclass(slots=True)
class EpisodeDeleteCommand:
    """CLI inputs for episode deletion."""

    db_path: Path | None
    episode_id: str


@dataclass(slots=True)
class UserSetCommand:
    """CLI inputs for user preference updates."""

    db_path: Path | None
    user_id: str | None
    name: str | None
    pronunciation: str | None
    voice: str | None
    length: str | None
    timezone: str | None
    briefing_style: str | None = None
    research_depth: str | None = None


@dataclass(slots=True)
class DbUpgradeCommand:
    """CLI inputs for schema migration."""

    db_path: Path | None


class SignalCliController:
    """Coordinates signal capture commands."""

    def add(self, command: SignalAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        runtime = build_capture_runtime(settings, background=command.enrich)
        try:
            runtime.repository.ensure_user(user_id=user_id, display_name=user_id)
            signals = runtime.service.create_signal(
                command.text,
                Channel(command.channel),
                user_id,
                input_type=InputType.VOICE_NOTE if command.voice_note else None,
            )
            if runtime.queue is not None:
                runtime.queue.drain()
            refreshed = [
                runtime.repository.get_signal(signal.signal_id) or signal for signal in signals
            ]
        finally:
            runtime.close()

        lines = [f"Captured {len(refreshed)} signal(s) for user {user_id}"]
        lines.extend(_format_signal(signal) for signal in refreshed)
        return lines

    def enrich(self, command: SignalEnrichCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        runtime = build_capture_runtime(settings, background=False)
        try:
            if runtime.repository.get_signal(command.signal_id) is None:
                raise ValueError(f"Signal not found: {command.signal_id}")
            runtime.service.enrich_signal(command.signal_id)
            signal = runtime.repository.get_signal(command.signal_id)
        finally:
            runtime.close()
        assert signal is not None
        lines = [_format_signal(signal)]
        if signal.title:
            lines.append(f"  title: {signal.title}")
        if signal.source:
            lines.append(f"  source: {signal.source}")
        if signal.topics:
            lines.append(f"  topics: {', '.join(signal.topics)}")
        return lines

    def list_signals(self, command: SignalListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        status = SignalStatus(command.status.upper()) if command.status else None
        with _repository(settings) as repository:
            signals = repository.list_signals(user_id=user_id, status=status, limit=command.limit)
        if not signals:
            return ["No signals found."]
        return [f"Signals for {user_id}: {len(signals)}"] + [
            _format_signal(signal) for signal in signals
        ]


class EpisodeCliController:
    """Coordinates episode generation and inspection commands."""

    def generate(self, command: EpisodeGenerateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        since = (
            datetime.now(tz=UTC) - timedelta(days=command.days_back)
            if command.days_back is not None and not command.signal_ids
            else None
        )
        runtime = build_generation_runtime(settings)
        try:
            try:
                episode_id = runtime.episodes.generate_episode(
                    user_id,
                    signal_ids=list(command.signal_ids) or None,
                    since=since,
                    manual=not command.scheduled,
                )
            except NoSignalsError as exc:
                return [exc.user_message]
            episode = runtime.repository.get_episode(episode_id)
        finally:
            runtime.close()

        assert episode is not None
        return [
            f"Episode ready: {episode.episode_id}",
            f"  title: {episode.title}",
            f"  signals: {episode.signal_count} duration: {_format_duration(episode.audio_duration)}",
            f"  audio: {episode.audio_url}",
        ]

    def list_episodes(self, command: EpisodeListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        status = EpisodeStatus(command.status.upper()) if command.status else None
        with _repository(settings) as repository:
            episodes = repository.list_episodes(
                user_id=user_id,
                status=status,
                limit=command.limit,
            )
        if not episodes:
            return ["No episodes found."]
        return [f"Episodes for {user_id}: {len(episodes)}"] + [
            _format_episode(episode) for episode in episodes
        ]

    def show(self, command: EpisodeShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            episode = repository.get_episode(command.episode_id)
            if episode is None:
                raise ValueError(f"Episode not found: {command.episode_id}")
            segments = repository.list_segments(command.episode_id)
            signals = repository.list_episode_signals(command.episode_id)

        lines = [
            _format_episode(episode),
            f"  created_at={episode.created_at.isoformat()} "
            f"period={episode.period_start.date().isoformat()}"
            f"..{episode.period_end.date().isoformat()}",
        ]
        if episode.summary:
            lines.append(f"  summary: {episode.summary}")
        if episode.audio_url:
            lines.append(f"  audio: {episode.audio_url}")
        if episode.error:
            lines.append(f"  error: {episode.error}")
        if episode.topics_covered:
            lines.append(f"  topics: {', '.join(episode.topics_covered)}")
        for segment in segments:
            lines.append(f"  [{segment.order_index + 1}] {segment.topic}")
            for source in segment.sources:
                lines.append(f"      - {source.name}: {source.url}")
        if signals:
            lines.append(f"  signals ({len(signals)}):")
            lines.extend(f"    {_format_signal(signal)}" for signal in signals)
        if command.show_script and episode.script:
            lines.append("")
            lines.extend(episode.script.splitlines())
        return lines

    def delete(self, command: EpisodeDeleteCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            deleted = repository.delete_episode(episode_id=command.episode_id)
        if not deleted:
            raise ValueError(f"Episode not found: {command.episode_id}")
        return [f"Deleted episode {command.episode_id}"]


class UserCliController:
    """Coordinates user preference commands."""

    def set_preferences(self, command: UserSetCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        if command.voice is not None and command.voice not in VOICES:
            raise ValueError(
                f"Unknown voice {command.voice!r}. Expected one of: {', '.join(VOICES)}.",
            )
        if command.timezone is not None:
            _validate_timezone(command.timezone)
        style = BriefingStyle(command.briefing_style) if command.briefing_style else None
        depth = ResearchDepth(command.research_depth) if command.research_depth else None
        with _repository(settings) as repository:
            repository.ensure_user(user_id=user_id, display_name=command.name or user_id)
            user = repository.update_user_preferences(
                user_id=user_id,
                display_name=command.name,
                name_pronunciation=command.pronunciation,
                voice_key=command.voice,
                episode_length=EpisodeLength(command.length) if command.length else None,
                timezone=command.timezone,
                briefing_style=style,
                research_depth=depth,
            )
        return [
            f"User {user.user_id}: name={user.display_name} "
            f"pronunciation={user.name_pronunciation or '-'} "
            f"voice={user.voice_key or '-'} "
            f"length={user.episode_length.value if user.episode_length else '-'} "
            f"timezone={user.timezone or '-'} "
            f"style={user.briefing_style.value if user.briefing_style else '-'} "
            f"depth={user.research_depth.value if user.research_depth else '-'}",
        ]


class DatabaseCliController:
    """Coordinates schema commands."""

    def upgrade(self, command: DbUpgradeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings):
            pass
        return [f"Database schema is up to date: {settings.db_path}"]


@contextmanager
def _repository(settings: Settings) -> Iterator[BriefcastRepository]:
    repository = open_repository(settings)
    try:
        yield repository
    finally:
        repository.close()


def _validate_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) <= CONTENT_PREVIEW_CHARS:
        return flat
    return flat[: CONTENT_PREVIEW_CHARS - 3] + "..."


def _format_signal(signal: SignalView) -> str:
    return (
        f"{signal.signal_id} {signal.status.value} {signal.input_type.value} "
        f"channel={signal.channel.value} "
        f"{signal.url or _preview(signal.raw_content)}"
    )


def _format_duration(seconds: int | None) -> str:
    if seconds is None:
        return "-"
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}:{rest:02d}"


def _format_episode(episode: EpisodeView) -> str:
    return (
        f"{episode.episode_id} {episode.status.value} "
        f"signals={episode.signal_count} duration={_format_duration(episode.audio_duration)} "
        f"{episode.title}"
    )
