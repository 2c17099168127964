"""Persistence facade for users, signals, episodes and segments."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from briefcast.errors import NoSignalsError
from briefcast.models import (
    CLAIMABLE_SIGNAL_STATUSES,
    BriefingStyle,
    Channel,
    EpisodeClaim,
    EpisodeFinalize,
    EpisodeLength,
    EpisodeStatus,
    EpisodeView,
    InputType,
    PriorEpisode,
    ResearchDepth,
    ScriptWrite,
    SegmentView,
    SignalDraft,
    SignalStatus,
    SignalView,
    SourceRef,
    TopicHistory,
    UserProfile,
)
from briefcast.storage.alembic_runner import upgrade_head
from briefcast.storage.common import (
    build_sqlite_engine,
    dump_json_list,
    load_json_dict,
    load_json_list,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from briefcast.storage.sqlmodel_models import (
    DEFAULT_USER_ID,
    AppUser,
    Episode,
    Segment,
    Signal,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_EPISODE_TITLE = "Generating..."
_CLAIM_MAX_ROUNDS = 3
_CLAIMABLE_VALUES = [status.value for status in CLAIMABLE_SIGNAL_STATUSES]


class BriefcastRepository:
    """Signal/episode persistence backed by SQLModel + SQLite."""

    def __init__(
        self,
        db_path: Path,
        *,
        user_id: str = DEFAULT_USER_ID,
        user_name: str = "Default User",
        busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_path = db_path
        self.user_id = user_id
        self.user_name = user_name
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations and ensure the default user exists."""

        upgrade_head(self.db_path)
        self.ensure_user(user_id=self.user_id, display_name=self.user_name)

    @contextmanager
    def _write_session(self) -> Iterator[Session]:
        """Session holding the SQLite write lock from its first statement."""

        with Session(self.engine) as session:
            session.connection().exec_driver_sql("BEGIN IMMEDIATE")
            yield session

    # users

    def ensure_user(self, *, user_id: str, display_name: str) -> UserProfile:
        with Session(self.engine) as session:
            row = session.exec(select(AppUser).where(AppUser.user_id == user_id)).one_or_none()
            if row is None:
                row = AppUser(user_id=user_id, display_name=display_name, created_at=utc_now())
                session.add(row)
                session.commit()
                session.refresh(row)
            return _to_user_profile(row)

    def get_user(self, user_id: str) -> UserProfile | None:
        with Session(self.engine) as session:
            row = session.exec(select(AppUser).where(AppUser.user_id == user_id)).one_or_none()
            return _to_user_profile(row) if row is not None else None

    def update_user_preferences(  # noqa: PLR0913
        self,
        *,
        user_id: str,
        display_name: str | None = None,
        name_pronunciation: str | None = None,
        voice_key: str | None = None,
        episode_length: EpisodeLength | None = None,
        timezone: str | None = None,
        briefing_style: BriefingStyle | None = None,
        research_depth: ResearchDepth | None = None,
    ) -> UserProfile:
        """Update only the preferences that were provided."""

        with Session(self.engine) as session:
            row = session.exec(select(AppUser).where(AppUser.user_id == user_id)).one_or_none()
            if row is None:
                raise RuntimeError(f"User not found: {user_id}")
            if display_name is not None:
                row.display_name = display_name
            if name_pronunciation is not None:
                row.name_pronunciation = name_pronunciation
            if voice_key is not None:
                row.voice_key = voice_key
            if episode_length is not None:
                row.episode_length = episode_length.value
            if timezone is not None:
                row.timezone = timezone
            if briefing_style is not None:
                row.briefing_style = briefing_style.value
            if research_depth is not None:
                row.research_depth = research_depth.value
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_user_profile(row)

    # signals

    def create_signals(self, *, user_id: str, drafts: Sequence[SignalDraft]) -> list[SignalView]:
        """Insert captured signals in one transaction, all in ``QUEUED`` state.

        An owner seen for the first time gets a user row in the same transaction.
        """

        now = to_db_datetime(utc_now())
        rows = [
            Signal(
                signal_id=str(uuid4()),
                user_id=user_id,
                input_type=draft.input_type.value,
                channel=draft.channel.value,
                raw_content=draft.raw_content,
                url=draft.url,
                topics_json="[]",
                status=SignalStatus.QUEUED.value,
                created_at=now,
            )
            for draft in drafts
        ]
        with self._write_session() as session:
            owner = session.exec(select(AppUser).where(AppUser.user_id == user_id)).one_or_none()
            if owner is None:
                logger.info("Registering new signal owner %s", user_id)
                session.add(AppUser(user_id=user_id, display_name=user_id, created_at=now))
                session.flush()
            session.add_all(rows)
            session.commit()
            for row in rows:
                session.refresh(row)
            return [_to_signal_view(row) for row in rows]

    def get_signal(self, signal_id: str) -> SignalView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Signal).where(Signal.signal_id == signal_id)).one_or_none()
            return _to_signal_view(row) if row is not None else None

    def list_signals(
        self,
        *,
        user_id: str,
        status: SignalStatus | None = None,
        limit: int = 50,
    ) -> list[SignalView]:
        with Session(self.engine) as session:
            statement = (
                select(Signal)
                .where(Signal.user_id == user_id)
                .order_by(col(Signal.created_at).desc())
                .limit(limit)
            )
            if status is not None:
                statement = statement.where(Signal.status == status.value)
            rows = session.exec(statement).all()
        return [_to_signal_view(row) for row in rows]

    def mark_signal_enriched(
        self,
        *,
        signal_id: str,
        title: str | None,
        source: str | None,
        fetched_content: str | None,
    ) -> bool:
        """Store enrichment results; no-op unless the signal is still ``QUEUED``."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Signal)
                .where(
                    col(Signal.signal_id) == signal_id,
                    col(Signal.status) == SignalStatus.QUEUED.value,
                )
                .values(
                    title=title,
                    source=source,
                    fetched_content=fetched_content,
                    status=SignalStatus.ENRICHED.value,
                    processed_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def mark_signal_failed(self, *, signal_id: str) -> bool:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Signal)
                .where(
                    col(Signal.signal_id) == signal_id,
                    col(Signal.status) == SignalStatus.QUEUED.value,
                )
                .values(status=SignalStatus.FAILED.value, processed_at=now),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def set_signal_topics(self, *, signal_id: str, topics: Sequence[str]) -> None:
        with Session(self.engine) as session:
            session.exec(
                sa_update(Signal)
                .where(col(Signal.signal_id) == signal_id)
                .values(topics_json=dump_json_list(list(topics))),
            )
            session.commit()

    # episodes

    def claim_signals(
        self,
        *,
        user_id: str,
        signal_ids: Sequence[str] | None = None,
        since: datetime | None = None,
    ) -> EpisodeClaim:
        """Atomically lock eligible signals to a new ``GENERATING`` episode.

        Selection, episode insert and the conditional status flip share one
        write transaction, so overlapping concurrent claims serialize and the
        loser sees no eligible signals.
        """

        if not signal_ids and since is None:
            raise ValueError("Either signal_ids or since must be provided.")

        for _ in range(_CLAIM_MAX_ROUNDS):
            claimed = self._try_claim(user_id=user_id, signal_ids=signal_ids, since=since)
            if claimed is not None:
                return claimed
            logger.warning("Signal claim lost a race for user %s; re-selecting", user_id)
        raise RuntimeError(
            "Signal state changed concurrently while claiming; please retry generation.",
        )

    def _try_claim(
        self,
        *,
        user_id: str,
        signal_ids: Sequence[str] | None,
        since: datetime | None,
    ) -> EpisodeClaim | None:
        now = to_db_datetime(utc_now())
        with self._write_session() as session:
            statement = select(Signal).where(
                Signal.user_id == user_id,
                col(Signal.status).in_(_CLAIMABLE_VALUES),
            )
            if signal_ids:
                statement = statement.where(col(Signal.signal_id).in_(list(signal_ids)))
            else:
                assert since is not None
                statement = statement.where(col(Signal.created_at) >= to_db_datetime(since))
            rows = session.exec(statement.order_by(col(Signal.created_at).asc())).all()
            if not rows:
                session.rollback()
                raise NoSignalsError()

            claimed_ids = [row.signal_id for row in rows]
            created = [row.created_at for row in rows]
            episode_id = str(uuid4())
            session.add(
                Episode(
                    episode_id=episode_id,
                    user_id=user_id,
                    title=PLACEHOLDER_EPISODE_TITLE,
                    script="",
                    period_start=min(created),
                    period_end=max(created),
                    signal_count=len(rows),
                    topics_json="[]",
                    status=EpisodeStatus.GENERATING.value,
                    created_at=now,
                    updated_at=now,
                ),
            )
            session.flush()
            result = session.exec(
                sa_update(Signal)
                .where(
                    col(Signal.signal_id).in_(claimed_ids),
                    col(Signal.status).in_(_CLAIMABLE_VALUES),
                )
                .values(status=SignalStatus.USED.value, episode_id=episode_id)
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != len(claimed_ids):
                session.rollback()
                return None
            session.commit()

            episode_row = session.exec(
                select(Episode).where(Episode.episode_id == episode_id),
            ).one()
            signal_rows = session.exec(
                select(Signal)
                .where(col(Signal.signal_id).in_(claimed_ids))
                .order_by(col(Signal.created_at).asc()),
            ).all()
            return EpisodeClaim(
                episode=_to_episode_view(episode_row),
                signals=[_to_signal_view(row) for row in signal_rows],
            )

    def save_script(self, *, episode_id: str, script: ScriptWrite) -> bool:
        """Write all segments and the script in one transaction.

        Moves the episode ``GENERATING -> SYNTHESIZING``; returns ``False`` when
        the episode is no longer generating.
        """

        now = to_db_datetime(utc_now())
        with self._write_session() as session:
            result = session.exec(
                sa_update(Episode)
                .where(
                    col(Episode.episode_id) == episode_id,
                    col(Episode.status) == EpisodeStatus.GENERATING.value,
                )
                .values(
                    title=script.title,
                    script=script.script,
                    summary=script.summary,
                    topics_json=dump_json_list(script.topics_covered),
                    status=EpisodeStatus.SYNTHESIZING.value,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.add_all(
                [
                    Segment(
                        episode_id=episode_id,
                        order_index=index,
                        topic=segment.topic,
                        content=segment.content,
                        sources_json=dump_json_list(
                            [source.to_dict() for source in segment.sources],
                        ),
                    )
                    for index, segment in enumerate(script.segments)
                ],
            )
            session.commit()
            return True

    def finalize_episode(self, *, episode_id: str, payload: EpisodeFinalize) -> bool:
        """Mark a synthesizing episode as ready with its published audio."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Episode)
                .where(
                    col(Episode.episode_id) == episode_id,
                    col(Episode.status) == EpisodeStatus.SYNTHESIZING.value,
                )
                .values(
                    audio_url=payload.audio_url,
                    audio_duration=payload.audio_duration,
                    voice_key=payload.voice_key,
                    generation_meta_json=json.dumps(
                        payload.generation_meta,
                        ensure_ascii=False,
                        sort_keys=True,
                    ),
                    status=EpisodeStatus.READY.value,
                    generated_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def fail_episode(self, *, episode_id: str, error: str) -> int:
        """Mark episode ``FAILED`` and release its signals to ``QUEUED`` atomically.

        Ready episodes are left untouched. Returns the number of released signals.
        """

        now = to_db_datetime(utc_now())
        with self._write_session() as session:
            failed = session.exec(
                sa_update(Episode)
                .where(
                    col(Episode.episode_id) == episode_id,
                    col(Episode.status) != EpisodeStatus.READY.value,
                )
                .values(status=EpisodeStatus.FAILED.value, error=error, updated_at=now),
            )
            if failed.rowcount != 1:
                session.rollback()
                return 0
            released = session.exec(
                sa_update(Signal)
                .where(col(Signal.episode_id) == episode_id)
                .values(status=SignalStatus.QUEUED.value, episode_id=None),
            )
            session.commit()
            return released.rowcount

    def delete_episode(self, *, episode_id: str) -> bool:
        """Delete an episode with its segments; linked signals go back to ``QUEUED``."""

        with self._write_session() as session:
            released = session.exec(
                sa_update(Signal)
                .where(col(Signal.episode_id) == episode_id)
                .values(status=SignalStatus.QUEUED.value, episode_id=None),
            )
            if released.rowcount:
                logger.info(
                    "Requeued %d signal(s) from deleted episode %s",
                    released.rowcount,
                    episode_id,
                )
            session.exec(sa_delete(Segment).where(col(Segment.episode_id) == episode_id))
            result = session.exec(sa_delete(Episode).where(col(Episode.episode_id) == episode_id))
            session.commit()
            return result.rowcount == 1

    def get_episode(self, episode_id: str) -> EpisodeView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Episode).where(Episode.episode_id == episode_id),
            ).one_or_none()
            return _to_episode_view(row) if row is not None else None

    def list_episodes(
        self,
        *,
        user_id: str,
        status: EpisodeStatus | None = None,
        limit: int = 20,
    ) -> list[EpisodeView]:
        with Session(self.engine) as session:
            statement = (
                select(Episode)
                .where(Episode.user_id == user_id)
                .order_by(col(Episode.created_at).desc())
                .limit(limit)
            )
            if status is not None:
                statement = statement.where(Episode.status == status.value)
            rows = session.exec(statement).all()
        return [_to_episode_view(row) for row in rows]

    def list_segments(self, episode_id: str) -> list[SegmentView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Segment)
                .where(Segment.episode_id == episode_id)
                .order_by(col(Segment.order_index).asc()),
            ).all()
        return [_to_segment_view(row) for row in rows]

    def list_episode_signals(self, episode_id: str) -> list[SignalView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Signal)
                .where(Signal.episode_id == episode_id)
                .order_by(col(Signal.created_at).asc()),
            ).all()
        return [_to_signal_view(row) for row in rows]

    def list_prior_episodes(self, *, user_id: str, limit: int) -> list[PriorEpisode]:
        """Most recent ready episodes, newest first."""

        if limit <= 0:
            return []
        with Session(self.engine) as session:
            rows = session.exec(
                select(Episode)
                .where(
                    Episode.user_id == user_id,
                    Episode.status == EpisodeStatus.READY.value,
                )
                .order_by(col(Episode.generated_at).desc())
                .limit(limit),
            ).all()
        return [
            PriorEpisode(
                title=row.title,
                summary=row.summary,
                topics_covered=load_json_list(row.topics_json),
                generated_at=(
                    to_utc_aware_datetime(row.generated_at)
                    if row.generated_at is not None
                    else None
                ),
            )
            for row in rows
        ]

    def load_topic_history(
        self,
        *,
        user_id: str,
        signal_limit: int = 500,
        episode_limit: int = 50,
    ) -> TopicHistory:
        with Session(self.engine) as session:
            signal_rows = session.exec(
                select(Signal)
                .where(
                    Signal.user_id == user_id,
                    Signal.status == SignalStatus.USED.value,
                )
                .order_by(col(Signal.created_at).desc())
                .limit(signal_limit),
            ).all()
            episode_rows = session.exec(
                select(Episode)
                .where(
                    Episode.user_id == user_id,
                    Episode.status == EpisodeStatus.READY.value,
                )
                .order_by(col(Episode.generated_at).desc())
                .limit(episode_limit),
            ).all()
        return TopicHistory(
            used_signal_topics=[
                (load_json_list(row.topics_json), to_utc_aware_datetime(row.created_at))
                for row in signal_rows
            ],
            episode_topics=[
                (
                    load_json_list(row.topics_json),
                    to_utc_aware_datetime(row.generated_at)
                    if row.generated_at is not None
                    else None,
                )
                for row in episode_rows
            ],
        )


def _to_user_profile(row: AppUser) -> UserProfile:
    return UserProfile(
        user_id=row.user_id,
        display_name=row.display_name,
        name_pronunciation=row.name_pronunciation,
        voice_key=row.voice_key,
        episode_length=EpisodeLength(row.episode_length) if row.episode_length else None,
        timezone=row.timezone,
        briefing_style=BriefingStyle(row.briefing_style) if row.briefing_style else None,
        research_depth=ResearchDepth(row.research_depth) if row.research_depth else None,
    )


def _to_signal_view(row: Signal) -> SignalView:
    return SignalView(
        signal_id=row.signal_id,
        user_id=row.user_id,
        input_type=InputType(row.input_type),
        channel=Channel(row.channel),
        raw_content=row.raw_content,
        url=row.url,
        title=row.title,
        source=row.source,
        fetched_content=row.fetched_content,
        topics=[str(topic) for topic in load_json_list(row.topics_json)],
        status=SignalStatus(row.status),
        episode_id=row.episode_id,
        created_at=to_utc_aware_datetime(row.created_at),
        processed_at=(
            to_utc_aware_datetime(row.processed_at) if row.processed_at is not None else None
        ),
    )


def _to_episode_view(row: Episode) -> EpisodeView:
    return EpisodeView(
        episode_id=row.episode_id,
        user_id=row.user_id,
        title=row.title,
        script=row.script,
        summary=row.summary,
        period_start=to_utc_aware_datetime(row.period_start),
        period_end=to_utc_aware_datetime(row.period_end),
        signal_count=row.signal_count,
        topics_covered=[str(topic) for topic in load_json_list(row.topics_json)],
        voice_key=row.voice_key,
        audio_url=row.audio_url,
        audio_duration=row.audio_duration,
        status=EpisodeStatus(row.status),
        error=row.error,
        created_at=to_utc_aware_datetime(row.created_at),
        generated_at=(
            to_utc_aware_datetime(row.generated_at) if row.generated_at is not None else None
        ),
        generation_meta=load_json_dict(row.generation_meta_json),
    )


def _to_segment_view(row: Segment) -> SegmentView:
    sources: list[SourceRef] = []
    for item in load_json_list(row.sources_json):
        if not isinstance(item, dict):
            continue
        sources.append(
            SourceRef(
                name=str(item.get("name", "")),
                url=str(item.get("url", "")),
                attribution=str(item.get("attribution", "")),
            ),
        )
    return SegmentView(
        segment_id=row.segment_id or 0,
        episode_id=row.episode_id,
        order_index=row.order_index,
        topic=row.topic,
        content=row.content,
        sources=sources,
    )
