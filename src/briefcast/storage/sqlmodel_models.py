"""SQLModel ORM tables for signals, episodes and segments."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlmodel import Field, SQLModel

DEFAULT_USER_ID = "default_user"


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True, index=True)
    display_name: str = Field(index=True)
    name_pronunciation: str | None = None
    voice_key: str | None = None
    episode_length: str | None = None
    timezone: str | None = None
    briefing_style: str | None = None
    research_depth: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Episode(SQLModel, table=True):
    __tablename__ = "episodes"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_episodes_user_status", "user_id", "status"),)

    episode_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    title: str
    script: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    summary: str | None = Field(default=None, sa_column=Column(Text))
    period_start: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    period_end: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    signal_count: int = 0
    topics_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    voice_key: str | None = None
    audio_url: str | None = None
    audio_duration: int | None = None
    status: str = Field(index=True)
    error: str | None = Field(default=None, sa_column=Column(Text))
    generation_meta_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    generated_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class Signal(SQLModel, table=True):
    __tablename__ = "signals"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_signals_user_status_created", "user_id", "status", "created_at"),
    )

    signal_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    input_type: str
    channel: str
    raw_content: str = Field(sa_column=Column(Text, nullable=False))
    url: str | None = None
    title: str | None = None
    source: str | None = None
    fetched_content: str | None = Field(default=None, sa_column=Column(Text))
    topics_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    episode_id: str | None = Field(
        default=None,
        sa_column=Column(
            String,
            ForeignKey("episodes.episode_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    processed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class Segment(SQLModel, table=True):
    __tablename__ = "segments"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_segments_episode_order", "episode_id", "order_index"),)

    segment_id: int | None = Field(default=None, primary_key=True)
    episode_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("episodes.episode_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    order_index: int
    topic: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    sources_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
