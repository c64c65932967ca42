"""Domain models for extraction, transformation, and migration jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class JobStatus(str, Enum):
    """Lifecycle states for migration jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ChannelStatus(str, Enum):
    """Analysis states stored on relational channels."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TransformOutcome(str, Enum):
    """Outcome of transforming one source record."""

    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class DateRange:
    """Inclusive publication date window."""

    start: datetime | None = None
    end: datetime | None = None

    def is_empty(self) -> bool:
        return self.start is None and self.end is None


@dataclass(slots=True)
class SourceRecord:
    """Read-only view of one source document."""

    id: str
    title: str | None
    published_at: datetime | None
    status: int | None = None
    content_text: str | None = None
    text: str | None = None
    body: str | None = None
    summary: str | None = None
    seo_description: str | None = None
    short_title: str | None = None
    slug: str | None = None
    categories: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    hit: int | None = None
    attachments: dict[str, Any] = field(default_factory=dict)
    source_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ValidationResult:
    """Content validation outcome."""

    is_valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass(slots=True)
class NormalizedContent:
    """Cleaned body and summary derived from one source record."""

    raw_text: str
    clean_text: str
    summary: str | None
    is_valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RelationalArticle:
    """Article row ready for the relational store."""

    channel_id: str
    title: str
    content: str
    summary: str | None
    published_at: datetime | None
    categories: list[str]
    topics: list[str]
    source_metadata: dict[str, Any]
    migrated_at: datetime
    analysis_completed: bool = False


@dataclass(slots=True)
class VectorPoint:
    """Vector-index point with payload; vector is filled by the index writer when absent."""

    id: str
    channel_id: str
    title: str
    content: str
    published_at: datetime | None
    categories: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    event_category: str = "general"
    political_score: float | None = None
    source_url: str | None = None
    original_source_id: str | None = None
    vector: list[float] | None = None


@dataclass(slots=True)
class TransformResult(Generic[T]):
    """Result of a single transform; never carries an exception object."""

    outcome: TransformOutcome
    data: T | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == TransformOutcome.OK

    @property
    def skipped(self) -> bool:
        return self.outcome == TransformOutcome.SKIPPED


@dataclass(slots=True)
class RecordError:
    """Per-record failure captured on a migration job."""

    record_id: str
    error: str


@dataclass(slots=True)
class MigrationJob:
    """Orchestration state for one migration run."""

    job_id: str
    status: JobStatus = JobStatus.PENDING
    channel_id: str | None = None
    dry_run: bool = False
    total_records: int = 0
    processed_records: int = 0
    inserted_records: int = 0
    skipped_records: int = 0
    failed_records: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    last_processed_id: str | None = None
    errors: list[RecordError] = field(default_factory=list)


@dataclass(slots=True)
class SearchFilter:
    """Caller-side filter for similarity search."""

    channel_id: str | None = None
    categories: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    date_range: DateRange | None = None
    political_score_min: float | None = None
    political_score_max: float | None = None


@dataclass(slots=True)
class SearchResult:
    """Ranked vector-index hit."""

    id: str
    score: float
    payload: dict[str, Any]


@dataclass(slots=True)
class UpsertReport:
    """Result of one batched vector upsert."""

    stored_ids: list[str] = field(default_factory=list)
    skipped: list[RecordError] = field(default_factory=list)


@dataclass(slots=True)
class CollectionStats:
    """Vector collection statistics."""

    total_points: int
    indexed_points: int
    status: str


@dataclass(slots=True)
class ChannelView:
    """Relational channel row."""

    channel_id: str
    name: str
    analysis_status: str
    source_db_config: dict[str, Any]
    created_at: datetime


@dataclass(slots=True)
class ArticleView:
    """Relational article row."""

    article_id: str
    channel_id: str
    title: str
    content: str
    summary: str | None
    published_at: datetime | None
    analysis_completed: bool
    vector_id: str | None
    categories: list[str]
    topics: list[str]
    source_metadata: dict[str, Any]
    migrated_at: datetime
