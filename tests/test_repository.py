from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import allure
import pytest
from sqlalchemy import text

from briefcast.errors import NoSignalsError
from briefcast.models import (
    BriefingStyle,
    Channel,
    EpisodeFinalize,
    EpisodeLength,
    EpisodeStatus,
    InputType,
    ResearchDepth,
    ScriptWrite,
    SegmentWrite,
    SignalDraft,
    SignalStatus,
    SourceRef,
)
from briefcast.storage.repository import PLACEHOLDER_EPISODE_TITLE, BriefcastRepository

pytestmark = [
    allure.epic("Persistence"),
    allure.feature("Signals & Episodes Repository"),
]

USER = "default_user"


def _topics(repository: BriefcastRepository, *texts: str, user_id: str = USER):
    return repository.create_signals(
        user_id=user_id,
        drafts=[
            SignalDraft(input_type=InputType.TOPIC, channel=Channel.API, raw_content=value)
            for value in texts
        ],
    )


def _since() -> datetime:
    return datetime.now(tz=UTC) - timedelta(days=7)


def test_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = BriefcastRepository(tmp_path / "migrations.db")
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
        tables = connection.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"),
        ).scalars().all()

    assert version == "20261019_0002"
    assert {"users", "signals", "episodes", "segments"} <= set(tables)
    assert repository.get_user(USER) is not None
    repository.close()


def test_user_preferences_update_only_given_fields(repository: BriefcastRepository) -> None:
    repository.update_user_preferences(user_id=USER, voice_key="ivy")
    user = repository.update_user_preferences(
        user_id=USER,
        display_name="Sam",
        episode_length=EpisodeLength.SHORT,
    )

    assert user.display_name == "Sam"
    assert user.voice_key == "ivy"
    assert user.episode_length == EpisodeLength.SHORT
    assert user.timezone is None
    assert user.briefing_style is None
    assert user.research_depth is None


def test_briefing_preferences_round_trip(repository: BriefcastRepository) -> None:
    repository.update_user_preferences(
        user_id=USER,
        briefing_style=BriefingStyle.ESSENTIAL,
        research_depth=ResearchDepth.DEEP,
    )

    user = repository.get_user(USER)

    assert user is not None
    assert user.briefing_style == BriefingStyle.ESSENTIAL
    assert user.research_depth == ResearchDepth.DEEP


def test_claim_locks_signals_to_a_generating_episode(repository: BriefcastRepository) -> None:
    created = _topics(repository, "one", "two", "three")

    claim = repository.claim_signals(user_id=USER, since=_since())

    assert claim.episode.status == EpisodeStatus.GENERATING
    assert claim.episode.title == PLACEHOLDER_EPISODE_TITLE
    assert claim.episode.signal_count == 3
    assert {signal.signal_id for signal in claim.signals} == {
        signal.signal_id for signal in created
    }
    assert all(signal.status == SignalStatus.USED for signal in claim.signals)
    assert all(signal.episode_id == claim.episode.episode_id for signal in claim.signals)


def test_claim_without_eligible_signals_raises(repository: BriefcastRepository) -> None:
    with pytest.raises(NoSignalsError):
        repository.claim_signals(user_id=USER, since=_since())

    _topics(repository, "one")
    repository.claim_signals(user_id=USER, since=_since())
    with pytest.raises(NoSignalsError):
        repository.claim_signals(user_id=USER, since=_since())


def test_claim_requires_ids_or_window(repository: BriefcastRepository) -> None:
    with pytest.raises(ValueError, match="signal_ids or since"):
        repository.claim_signals(user_id=USER)


def test_claim_by_ids_ignores_other_users_and_failed_signals(
    repository: BriefcastRepository,
) -> None:
    mine = _topics(repository, "mine", "failed")
    theirs = _topics(repository, "theirs", user_id="someone_else")
    repository.mark_signal_failed(signal_id=mine[1].signal_id)

    claim = repository.claim_signals(
        user_id=USER,
        signal_ids=[signal.signal_id for signal in mine + theirs],
    )

    assert [signal.signal_id for signal in claim.signals] == [mine[0].signal_id]


def test_concurrent_claims_get_disjoint_signals(tmp_path: Path) -> None:
    db_path = tmp_path / "concurrent.db"
    setup = BriefcastRepository(db_path)
    setup.init_schema()
    created = _topics(setup, *[f"topic {index}" for index in range(12)])
    setup.close()

    claims = []
    errors: list[BaseException] = []
    lock = threading.Lock()
    barrier = threading.Barrier(4)

    def worker() -> None:
        repository = BriefcastRepository(db_path, busy_timeout_ms=10_000)
        try:
            barrier.wait(timeout=5)
            claim = repository.claim_signals(user_id=USER, since=_since())
        except NoSignalsError as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                claims.append(claim)
        finally:
            repository.close()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    claimed_ids = [signal.signal_id for claim in claims for signal in claim.signals]
    assert len(claimed_ids) == len(set(claimed_ids))
    assert set(claimed_ids) == {signal.signal_id for signal in created}
    assert len(claims) + len(errors) == 4
    assert len({claim.episode.episode_id for claim in claims}) == len(claims)


def test_script_finalize_lifecycle(repository: BriefcastRepository) -> None:
    _topics(repository, "one")
    episode_id = repository.claim_signals(user_id=USER, since=_since()).episode.episode_id

    saved = repository.save_script(
        episode_id=episode_id,
        script=ScriptWrite(
            title="Real Title",
            script="Full script",
            summary="Summary",
            topics_covered=["Chips", "Rates"],
            segments=[
                SegmentWrite(
                    topic="Chips",
                    content="About chips.",
                    sources=[SourceRef(name="Reuters", url="https://reuters.com/x")],
                ),
                SegmentWrite(topic="Rates", content="About rates."),
            ],
        ),
    )
    assert saved is True
    assert repository.get_episode(episode_id).status == EpisodeStatus.SYNTHESIZING

    finalized = repository.finalize_episode(
        episode_id=episode_id,
        payload=EpisodeFinalize(
            audio_url="https://cdn.example.com/a.mp3",
            audio_duration=321,
            voice_key="jon",
            generation_meta={"tts_chunks": 2},
        ),
    )

    episode = repository.get_episode(episode_id)
    segments = repository.list_segments(episode_id)
    assert finalized is True
    assert episode.status == EpisodeStatus.READY
    assert episode.title == "Real Title"
    assert episode.topics_covered == ["Chips", "Rates"]
    assert episode.generation_meta == {"tts_chunks": 2}
    assert episode.generated_at is not None
    assert [segment.topic for segment in segments] == ["Chips", "Rates"]
    assert segments[0].sources[0].url == "https://reuters.com/x"

    assert repository.save_script(
        episode_id=episode_id,
        script=ScriptWrite(title="x", script="x", summary=None, topics_covered=[], segments=[]),
    ) is False
    assert repository.fail_episode(episode_id=episode_id, error="late failure") == 0
    assert repository.get_episode(episode_id).status == EpisodeStatus.READY


def test_fail_episode_releases_signals(repository: BriefcastRepository) -> None:
    _topics(repository, "one", "two")
    episode_id = repository.claim_signals(user_id=USER, since=_since()).episode.episode_id

    released = repository.fail_episode(episode_id=episode_id, error="TTS failed")

    episode = repository.get_episode(episode_id)
    signals = repository.list_signals(user_id=USER)
    assert released == 2
    assert episode.status == EpisodeStatus.FAILED
    assert episode.error == "TTS failed"
    assert all(signal.status == SignalStatus.QUEUED for signal in signals)
    assert all(signal.episode_id is None for signal in signals)


def test_delete_episode_removes_segments(repository: BriefcastRepository) -> None:
    _topics(repository, "one")
    episode_id = repository.claim_signals(user_id=USER, since=_since()).episode.episode_id
    repository.save_script(
        episode_id=episode_id,
        script=ScriptWrite(
            title="T",
            script="S",
            summary=None,
            topics_covered=[],
            segments=[SegmentWrite(topic="A", content="B")],
        ),
    )

    assert repository.delete_episode(episode_id=episode_id) is True
    assert repository.get_episode(episode_id) is None
    assert repository.list_segments(episode_id) == []
    assert repository.delete_episode(episode_id=episode_id) is False


def test_delete_episode_requeues_signals_for_the_next_claim(
    repository: BriefcastRepository,
) -> None:
    created = _topics(repository, "one", "two")
    first = repository.claim_signals(user_id=USER, since=_since()).episode.episode_id

    assert repository.delete_episode(episode_id=first) is True

    signals = repository.list_signals(user_id=USER)
    assert all(signal.status == SignalStatus.QUEUED for signal in signals)
    assert all(signal.episode_id is None for signal in signals)
    second = repository.claim_signals(
        user_id=USER,
        signal_ids=[signal.signal_id for signal in created],
    )
    assert second.episode.episode_id != first
    assert second.episode.signal_count == 2


def test_create_signals_registers_unknown_owner(repository: BriefcastRepository) -> None:
    assert repository.get_user("new_user") is None

    created = _topics(repository, "fusion", user_id="new_user")

    owner = repository.get_user("new_user")
    assert owner is not None
    assert owner.display_name == "new_user"
    assert [signal.user_id for signal in created] == ["new_user"]
    again = _topics(repository, "fission", user_id="new_user")
    assert len(repository.list_signals(user_id="new_user")) == 2
    assert again[0].status == SignalStatus.QUEUED
