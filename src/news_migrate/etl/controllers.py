"""Controllers for migration CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

from news_migrate.config import Settings
from news_migrate.etl.cleaning import get_policy
from news_migrate.etl.jobs import JobRunner
from news_migrate.etl.models import DateRange, JobStatus, MigrationJob, SearchFilter
from news_migrate.etl.pipeline import CANCELLED_MESSAGE, MigrationOptions, MigrationOrchestrator
from news_migrate.etl.repository import SqlJobStore, SqlRepository
from news_migrate.etl.services.transform_service import RecordTransformer
from news_migrate.etl.sources.base import SourceError
from news_migrate.etl.sources.mongo import MongoSourceConfig, MongoSourceReader
from news_migrate.etl.vector.embedder import build_embedder
from news_migrate.etl.vector.index import QdrantVectorIndex, VectorIndexConfig, build_qdrant_client

MAX_PRINTED_ERRORS = 10


@dataclass(slots=True)
class RunMigrationCommand:
    """CLI inputs for the migration run command."""

    database_url: str | None
    connection_string: str | None
    limit: int | None
    batch_size: int | None
    from_cursor: str | None
    start_date: datetime | None
    end_date: datetime | None
    channel_name: str | None
    dry_run: bool
    skip_relational: bool
    skip_vectors: bool


@dataclass(slots=True)
class JobStatusCommand:
    """CLI inputs for job status command."""

    database_url: str | None
    job_id: str | None
    recent: int


@dataclass(slots=True)
class SearchCommand:
    """CLI inputs for similarity search command."""

    query: str
    limit: int
    score_threshold: float
    channel_id: str | None
    categories: tuple[str, ...]
    topics: tuple[str, ...]


@dataclass(slots=True)
class StatsCommand:
    """CLI inputs for stats command."""

    database_url: str | None
    skip_vectors: bool


@dataclass(slots=True)
class DeleteChannelCommand:
    """CLI inputs for channel delete command."""

    database_url: str | None
    channel_name: str
    keep_articles: bool


@dataclass(slots=True)
class CheckCommand:
    """CLI inputs for connectivity check command."""

    database_url: str | None
    connection_string: str | None
    skip_vectors: bool


@dataclass(slots=True)
class CommandResult:
    """Lines to print plus overall success flag."""

    lines: list[str] = field(default_factory=list)
    success: bool = True


class MigrationCliController:
    """Coordinates migration command execution."""

    def run(self, command: RunMigrationCommand) -> CommandResult:
        settings = Settings.from_env(database_url=command.database_url)
        if command.batch_size is not None:
            settings.migration.batch_size = command.batch_size
        if command.limit is not None:
            settings.migration.record_limit = command.limit
        if command.channel_name:
            settings.migration.channel_name = command.channel_name
        if command.skip_relational:
            settings.migration.write_relational = False
        if command.skip_vectors:
            settings.migration.write_vectors = False
        settings.validate_for_run(override_connection_string=command.connection_string)

        connection_string = command.connection_string or settings.source.connection_string
        options = MigrationOptions(
            date_range=_date_range(command.start_date, command.end_date),
            limit=settings.migration.record_limit,
            from_cursor=command.from_cursor,
            dry_run=command.dry_run,
            channel_name=settings.migration.channel_name,
        )

        with _repository(settings) as repository, _mongo_reader(settings, connection_string) as source:
            orchestrator = MigrationOrchestrator(
                source=source,
                transformer=RecordTransformer(
                    policy=get_policy(settings.migration.validation_mode),
                    source_name=source.name,
                ),
                settings=settings.migration,
                repository=repository if settings.migration.write_relational else None,
                vector_index=_vector_index(settings) if settings.migration.write_vectors else None,
                source_db_config={
                    "type": "mongodb",
                    "database": settings.source.database_name,
                    "collection": settings.source.collection_name,
                },
            )
            runner = JobRunner(orchestrator, SqlJobStore(repository.engine))
            job_id = runner.start_job(options)
            runner.wait(job_id)
            job = runner.get_status(job_id)

        if job is None:
            return CommandResult(lines=[f"Migration job {job_id} not found."], success=False)
        return CommandResult(lines=_job_lines(job), success=job.status == JobStatus.COMPLETED)

    def status(self, command: JobStatusCommand) -> CommandResult:
        settings = Settings.from_env(database_url=command.database_url)
        with _repository(settings) as repository:
            store = SqlJobStore(repository.engine)
            if command.job_id is not None:
                job = store.get(command.job_id)
                if job is None:
                    return CommandResult(lines=[f"Migration job {command.job_id} not found."], success=False)
                return CommandResult(lines=_job_lines(job))
            jobs = store.list_recent(limit=command.recent)

        if not jobs:
            return CommandResult(lines=["No migration jobs recorded."])
        return CommandResult(
            lines=[
                f"job_id={job.job_id} status={job.status.value} "
                f"processed={job.processed_records}/{job.total_records} "
                f"inserted={job.inserted_records} skipped={job.skipped_records} "
                f"failed={job.failed_records} cursor={job.last_processed_id or '-'}"
                for job in jobs
            ],
        )

    def search(self, command: SearchCommand) -> CommandResult:
        settings = Settings.from_env()
        settings.validate_for_vectors()
        index = _vector_index(settings)
        index.initialize_collection()
        results = index.search(
            command.query,
            limit=command.limit,
            score_threshold=command.score_threshold,
            search_filter=SearchFilter(
                channel_id=command.channel_id,
                categories=list(command.categories),
                topics=list(command.topics),
            ),
        )
        if not results:
            return CommandResult(lines=["No results."])

        lines = [f"Results: {len(results)}"]
        for result in results:
            payload = result.payload
            lines.append(
                f"  score={result.score:.4f} id={result.id} "
                f"category={payload.get('event_category', '-')} "
                f"title={payload.get('title', '')}",
            )
        return CommandResult(lines=lines)

    def stats(self, command: StatsCommand) -> CommandResult:
        settings = Settings.from_env(database_url=command.database_url)
        lines: list[str] = []
        with _repository(settings) as repository:
            channels = repository.list_channels()
            lines.append(f"Articles: total={repository.count_articles()} channels={len(channels)}")
            for channel in channels:
                lines.append(
                    f"  channel={channel.name} id={channel.channel_id} "
                    f"status={channel.analysis_status} "
                    f"articles={repository.count_articles(channel.channel_id)}",
                )

        if not command.skip_vectors:
            settings.validate_for_vectors()
            index = _vector_index(settings)
            index.initialize_collection()
            stats = index.stats()
            lines.append(
                f"Vectors: collection={index.collection_name} points={stats.total_points} "
                f"indexed={stats.indexed_points} status={stats.status}",
            )
        return CommandResult(lines=lines)

    def delete_channel(self, command: DeleteChannelCommand) -> CommandResult:
        settings = Settings.from_env(database_url=command.database_url)
        settings.validate_for_vectors()
        with _repository(settings) as repository:
            channel = repository.get_channel_by_name(command.channel_name)
            if channel is None:
                return CommandResult(
                    lines=[f"Channel {command.channel_name!r} not found."],
                    success=False,
                )
            index = _vector_index(settings)
            index.initialize_collection()
            index.delete_by_channel(channel.channel_id)
            lines = [f"Deleted vectors for channel {channel.name} ({channel.channel_id})"]
            if not command.keep_articles:
                deleted = repository.delete_channel_articles(channel.channel_id)
                lines.append(f"Deleted articles: {deleted}")
        return CommandResult(lines=lines)

    def check(self, command: CheckCommand) -> CommandResult:
        settings = Settings.from_env(database_url=command.database_url)
        connection_string = command.connection_string or settings.source.connection_string
        checks: list[tuple[str, bool]] = []

        if connection_string:
            source = _mongo_reader(settings, connection_string)
            try:
                source.connect()
                checks.append(("mongodb", source.health_check()))
            except SourceError:
                checks.append(("mongodb", False))
            finally:
                source.disconnect()
        else:
            checks.append(("mongodb", False))

        with _repository(settings) as repository:
            checks.append(("relational", repository.health_check()))

        if not command.skip_vectors:
            settings.validate_for_vectors()
            checks.append(("qdrant", _vector_index(settings).health_check()))

        lines = [f"{name}: {'ok' if healthy else 'unavailable'}" for name, healthy in checks]
        return CommandResult(lines=lines, success=all(healthy for _, healthy in checks))


def _job_lines(job: MigrationJob) -> list[str]:
    lines = [
        f"Migration job {job.job_id}: status={job.status.value} "
        f"total={job.total_records} processed={job.processed_records} "
        f"inserted={job.inserted_records} skipped={job.skipped_records} "
        f"failed={job.failed_records} dry_run={'yes' if job.dry_run else 'no'} "
        f"channel={job.channel_id or '-'} cursor={job.last_processed_id or '-'}",
    ]
    if job.error_message == CANCELLED_MESSAGE and job.last_processed_id:
        lines.append(f"Cancelled; resume with --from-cursor {job.last_processed_id}")
    elif job.error_message:
        lines.append(f"Error: {job.error_message}")
    if job.errors:
        lines.append(f"Record errors (first {min(len(job.errors), MAX_PRINTED_ERRORS)}):")
        lines.extend(
            f"  {error.record_id}: {error.error}" for error in job.errors[:MAX_PRINTED_ERRORS]
        )
    return lines


def _date_range(start: datetime | None, end: datetime | None) -> DateRange | None:
    if start is None and end is None:
        return None
    return DateRange(start=_as_utc(start), end=_as_utc(end))


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@contextmanager
def _repository(settings: Settings) -> Iterator[SqlRepository]:
    repository = SqlRepository(settings.database.url)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


def _mongo_reader(settings: Settings, connection_string: str) -> MongoSourceReader:
    return MongoSourceReader(
        MongoSourceConfig(
            connection_string=connection_string,
            database_name=settings.source.database_name,
            collection_name=settings.source.collection_name,
            status_filter=settings.source.statuses or None,
            server_selection_timeout_ms=settings.source.server_selection_timeout_ms,
            socket_timeout_ms=settings.source.socket_timeout_ms,
            max_pool_size=settings.source.max_pool_size,
        ),
    )


def _vector_index(settings: Settings) -> QdrantVectorIndex:
    return QdrantVectorIndex(
        VectorIndexConfig(
            collection_name=settings.vector.collection_name,
            vector_size=settings.vector.vector_size,
            content_preview_chars=settings.vector.content_preview_chars,
            max_embedding_content_chars=settings.embedding.max_content_chars,
        ),
        client=build_qdrant_client(settings.vector.url, settings.vector.api_key),
        embedder=build_embedder(settings.embedding, dimensions=settings.vector.vector_size),
    )
