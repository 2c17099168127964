"""Classify current signal topics as familiar, growing or new."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from briefcast.models import TopicHistory

FAMILIAR_MIN_EPISODES = 3
GROWTH_FACTOR = 2.0
MAX_FAMILIAR = 5
MAX_GROWING = 3
MAX_NEW = 5


@dataclass(slots=True)
class FamiliarTopic:
    topic: str
    episode_count: int
    signal_count: int
    last_episode_at: datetime | None


@dataclass(slots=True)
class GrowingTopic:
    topic: str
    previous_week: int
    current_week: int
    change: float


@dataclass(slots=True)
class TopicProfile:
    """Depth-calibration hints derived from the user's topic history."""

    familiar: list[FamiliarTopic] = field(default_factory=list)
    growing: list[GrowingTopic] = field(default_factory=list)
    new: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.familiar or self.growing or self.new)


def topic_key(topic: str) -> str:
    return topic.strip().lower()


def start_of_week(now: datetime) -> datetime:
    """Most recent Sunday 00:00 UTC."""

    now = now.astimezone(UTC)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=(now.weekday() + 1) % 7)


def build_topic_profile(
    current_topics: Iterable[str],
    history: TopicHistory,
    *,
    now: datetime | None = None,
) -> TopicProfile | None:
    """Return ``None`` when there are no current topics, no history or nothing relevant."""

    current_keys = {topic_key(topic) for topic in current_topics if topic.strip()}
    if not current_keys:
        return None
    if not history.used_signal_topics and not history.episode_topics:
        return None

    episode_counts: Counter[str] = Counter()
    last_episode_at: dict[str, datetime | None] = {}
    for topics, generated_at in history.episode_topics:
        for key in {topic_key(topic) for topic in topics}:
            episode_counts[key] += 1
            previous = last_episode_at.setdefault(key, None)
            if generated_at is not None and (previous is None or generated_at > previous):
                last_episode_at[key] = generated_at

    signal_counts: Counter[str] = Counter()
    this_week: Counter[str] = Counter()
    last_week: Counter[str] = Counter()
    week_start = start_of_week(now or datetime.now(tz=UTC))
    last_week_start = week_start - timedelta(days=7)
    for topics, created_at in history.used_signal_topics:
        keys = [topic_key(topic) for topic in topics]
        signal_counts.update(keys)
        if created_at >= week_start:
            this_week.update(keys)
        elif created_at >= last_week_start:
            last_week.update(keys)

    familiar = sorted(
        (
            FamiliarTopic(
                topic=key,
                episode_count=count,
                signal_count=signal_counts.get(key, 0),
                last_episode_at=last_episode_at.get(key),
            )
            for key, count in episode_counts.items()
            if count >= FAMILIAR_MIN_EPISODES and key in current_keys
        ),
        key=lambda item: item.episode_count,
        reverse=True,
    )[:MAX_FAMILIAR]

    growing: list[GrowingTopic] = []
    for key, current in this_week.items():
        previous = last_week.get(key, 0)
        if key in current_keys and previous > 0 and current / previous >= GROWTH_FACTOR:
            growing.append(
                GrowingTopic(
                    topic=key,
                    previous_week=previous,
                    current_week=current,
                    change=round(current / previous, 1),
                ),
            )
    growing.sort(key=lambda item: item.change, reverse=True)

    new_topics = sorted(key for key in current_keys if key not in episode_counts)[:MAX_NEW]

    profile = TopicProfile(familiar=familiar, growing=growing[:MAX_GROWING], new=new_topics)
    return None if profile.is_empty() else profile
