"""SQLModel ORM tables for the relational target."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Text,
)
from sqlmodel import Field, SQLModel

ANALYSIS_STATUSES = ("pending", "in_progress", "completed", "failed")
CONTENT_TYPES = ("article", "headline", "summary", "analysis")


def _in_check(column: str, values: tuple[str, ...], name: str) -> CheckConstraint:
    allowed = ", ".join(f"'{value}'" for value in values)
    return CheckConstraint(f"{column} IN ({allowed})", name=name)


class NewsChannel(SQLModel, table=True):
    __tablename__ = "news_channels"  # type: ignore[bad-override]
    __table_args__ = (
        _in_check("analysis_status", ANALYSIS_STATUSES, "ck_news_channels_analysis_status"),
    )

    id: str = Field(primary_key=True)
    name: str = Field(unique=True, index=True)
    source_db_config: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    analysis_status: str = Field(default="pending", index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ChannelProfile(SQLModel, table=True):
    __tablename__ = "channel_profiles"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    channel_id: str = Field(
        sa_column=Column(
            ForeignKey("news_channels.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            index=True,
        ),
    )
    political_stance: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    language_style: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    confidence_score: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    analysis_date: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class NewsArticle(SQLModel, table=True):
    __tablename__ = "news_articles"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    channel_id: str = Field(
        sa_column=Column(
            ForeignKey("news_channels.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    title: str = Field(sa_column=Column(Text, nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    vector_id: str | None = Field(default=None, index=True)
    analysis_completed: bool = Field(default=False, index=True)
    published_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
    )
    categories: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    topics: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    source_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    migrated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class EventTemplate(SQLModel, table=True):
    __tablename__ = "event_templates"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    channel_id: str = Field(
        sa_column=Column(
            ForeignKey("news_channels.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_category: str = Field(index=True)
    language_template: str = Field(sa_column=Column(Text, nullable=False))
    effectiveness_score: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    usage_count: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class GeneratedContent(SQLModel, table=True):
    __tablename__ = "generated_content"  # type: ignore[bad-override]
    __table_args__ = (
        _in_check("content_type", CONTENT_TYPES, "ck_generated_content_content_type"),
    )

    id: str = Field(primary_key=True)
    channel_id: str = Field(
        sa_column=Column(
            ForeignKey("news_channels.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    topic: str = Field(sa_column=Column(Text, nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    content_type: str = Field(default="article", index=True)
    consistency_scores: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    human_approved: bool = Field(default=False, index=True)
    feedback: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    generation_prompt: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    model_used: str | None = None
    generation_time_ms: int | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class MigrationJobRow(SQLModel, table=True):
    __tablename__ = "migration_jobs"  # type: ignore[bad-override]

    job_id: str = Field(primary_key=True)
    status: str = Field(index=True)
    channel_id: str | None = None
    dry_run: bool = False
    total_records: int = 0
    processed_records: int = 0
    inserted_records: int = 0
    skipped_records: int = 0
    failed_records: int = 0
    started_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    last_processed_id: str | None = None
    errors: list[dict[str, str]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
