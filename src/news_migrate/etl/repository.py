"""SQLModel-backed storage facade for the relational target."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, delete, select

from news_migrate.etl.models import (
    ArticleView,
    ChannelStatus,
    ChannelView,
    JobStatus,
    MigrationJob,
    RecordError,
    RelationalArticle,
)
from news_migrate.etl.storage.alembic_runner import upgrade_head
from news_migrate.etl.storage.common import build_engine, to_utc_aware, utc_now
from news_migrate.etl.storage.sqlmodel_models import MigrationJobRow, NewsArticle, NewsChannel

logger = logging.getLogger(__name__)


class RepositoryError(RuntimeError):
    """Relational write or lookup failed."""


class SqlRepository:
    """Facade that persists channels and articles using SQLModel and Alembic."""

    def __init__(self, database_url: str, *, engine: Engine | None = None) -> None:
        self.database_url = database_url
        self.engine = engine or build_engine(database_url)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.database_url)

    def health_check(self) -> bool:
        try:
            with Session(self.engine) as session:
                session.exec(select(func.count()).select_from(NewsChannel)).one()
        except SQLAlchemyError as exc:
            logger.warning("Relational database health check failed: %s", exc)
            return False
        return True

    def get_channel_by_name(self, name: str) -> ChannelView | None:
        with Session(self.engine) as session:
            row = session.exec(select(NewsChannel).where(NewsChannel.name == name)).one_or_none()
            return _channel_view(row) if row is not None else None

    def get_channel(self, channel_id: str) -> ChannelView | None:
        with Session(self.engine) as session:
            row = session.get(NewsChannel, channel_id)
            return _channel_view(row) if row is not None else None

    def list_channels(self) -> list[ChannelView]:
        with Session(self.engine) as session:
            rows = session.exec(select(NewsChannel).order_by(col(NewsChannel.name))).all()
            return [_channel_view(row) for row in rows]

    def ensure_channel(self, name: str, source_db_config: dict[str, Any]) -> ChannelView:
        """Return the channel named `name`, creating it when absent."""

        existing = self.get_channel_by_name(name)
        if existing is not None:
            return existing

        now = utc_now()
        row = NewsChannel(
            id=str(uuid4()),
            name=name,
            source_db_config=source_db_config,
            analysis_status=ChannelStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                logger.info("Created channel %s (%s)", name, row.id)
                return _channel_view(row)
        except IntegrityError:
            # Another writer created the same name concurrently.
            existing = self.get_channel_by_name(name)
            if existing is None:
                raise
            return existing

    def insert_article(self, article: RelationalArticle) -> str:
        article_id = str(uuid4())
        now = utc_now()
        row = NewsArticle(
            id=article_id,
            channel_id=article.channel_id,
            title=article.title,
            content=article.content,
            summary=article.summary,
            analysis_completed=article.analysis_completed,
            published_at=to_utc_aware(article.published_at),
            categories=list(article.categories),
            topics=list(article.topics),
            source_metadata=article.source_metadata,
            migrated_at=to_utc_aware(article.migrated_at),
            created_at=now,
            updated_at=now,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to insert article {article.title!r}: {exc}") from exc
        return article_id

    def link_vector_ids(self, vector_ids: dict[str, str]) -> int:
        """Attach stored vector ids to article rows; keys are article ids."""

        if not vector_ids:
            return 0
        with Session(self.engine) as session:
            rows = session.exec(
                select(NewsArticle).where(col(NewsArticle.id).in_(list(vector_ids))),
            ).all()
            now = utc_now()
            for row in rows:
                row.vector_id = vector_ids[row.id]
                row.updated_at = now
                session.add(row)
            session.commit()
            return len(rows)

    def list_articles_by_channel(self, channel_id: str, *, limit: int = 100) -> list[ArticleView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(NewsArticle)
                .where(NewsArticle.channel_id == channel_id)
                .order_by(col(NewsArticle.migrated_at), col(NewsArticle.id))
                .limit(max(1, limit)),
            ).all()
            return [_article_view(row) for row in rows]

    def count_articles(self, channel_id: str | None = None) -> int:
        with Session(self.engine) as session:
            statement = select(func.count()).select_from(NewsArticle)
            if channel_id is not None:
                statement = statement.where(NewsArticle.channel_id == channel_id)
            return int(session.exec(statement).one())

    def delete_channel_articles(self, channel_id: str) -> int:
        with Session(self.engine) as session:
            result = session.exec(delete(NewsArticle).where(NewsArticle.channel_id == channel_id))
            session.commit()
            return int(result.rowcount or 0)


class SqlJobStore:
    """Job store persisting migration jobs in the `migration_jobs` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, job: MigrationJob) -> None:
        now = utc_now()
        row = MigrationJobRow(job_id=job.job_id, status=job.status.value, created_at=now, updated_at=now)
        _apply_job(row, job)
        with Session(self.engine) as session:
            session.add(row)
            session.commit()

    def get(self, job_id: str) -> MigrationJob | None:
        with Session(self.engine) as session:
            row = session.get(MigrationJobRow, job_id)
            return _job_from_row(row) if row is not None else None

    def update(self, job: MigrationJob) -> None:
        with Session(self.engine) as session:
            row = session.get(MigrationJobRow, job.job_id)
            if row is None:
                raise RepositoryError(f"Job not found: {job.job_id}")
            _apply_job(row, job)
            row.updated_at = utc_now()
            session.add(row)
            session.commit()

    def list_recent(self, *, limit: int = 10) -> list[MigrationJob]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(MigrationJobRow)
                .order_by(col(MigrationJobRow.created_at).desc(), col(MigrationJobRow.job_id).desc())
                .limit(max(1, limit)),
            ).all()
            return [_job_from_row(row) for row in rows]


def _apply_job(row: MigrationJobRow, job: MigrationJob) -> None:
    row.status = job.status.value
    row.channel_id = job.channel_id
    row.dry_run = job.dry_run
    row.total_records = job.total_records
    row.processed_records = job.processed_records
    row.inserted_records = job.inserted_records
    row.skipped_records = job.skipped_records
    row.failed_records = job.failed_records
    row.started_at = job.started_at
    row.completed_at = job.completed_at
    row.error_message = job.error_message
    row.last_processed_id = job.last_processed_id
    row.errors = [{"record_id": error.record_id, "error": error.error} for error in job.errors]


def _job_from_row(row: MigrationJobRow) -> MigrationJob:
    return MigrationJob(
        job_id=row.job_id,
        status=JobStatus(row.status),
        channel_id=row.channel_id,
        dry_run=row.dry_run,
        total_records=row.total_records,
        processed_records=row.processed_records,
        inserted_records=row.inserted_records,
        skipped_records=row.skipped_records,
        failed_records=row.failed_records,
        started_at=to_utc_aware(row.started_at),
        completed_at=to_utc_aware(row.completed_at),
        error_message=row.error_message,
        last_processed_id=row.last_processed_id,
        errors=[
            RecordError(record_id=str(item.get("record_id", "")), error=str(item.get("error", "")))
            for item in row.errors or []
        ],
    )


def _channel_view(row: NewsChannel) -> ChannelView:
    return ChannelView(
        channel_id=row.id,
        name=row.name,
        analysis_status=row.analysis_status,
        source_db_config=dict(row.source_db_config or {}),
        created_at=to_utc_aware(row.created_at) or utc_now(),
    )


def _article_view(row: NewsArticle) -> ArticleView:
    return ArticleView(
        article_id=row.id,
        channel_id=row.channel_id,
        title=row.title,
        content=row.content,
        summary=row.summary,
        published_at=to_utc_aware(row.published_at),
        analysis_completed=row.analysis_completed,
        vector_id=row.vector_id,
        categories=list(row.categories or []),
        topics=list(row.topics or []),
        source_metadata=dict(row.source_metadata or {}),
        migrated_at=to_utc_aware(row.migrated_at) or utc_now(),
    )
