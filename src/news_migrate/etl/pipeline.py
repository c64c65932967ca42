"""End-to-end migration pipeline orchestration."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from news_migrate.config import MigrationSettings
from news_migrate.etl.jobs import JobStore
from news_migrate.etl.models import (
    DateRange,
    JobStatus,
    MigrationJob,
    RecordError,
    SourceRecord,
    TransformOutcome,
    VectorPoint,
)
from news_migrate.etl.repository import SqlRepository
from news_migrate.etl.services.transform_service import RecordTransformer
from news_migrate.etl.sources.base import SourceError, SourceReader
from news_migrate.etl.storage.common import utc_now
from news_migrate.etl.vector.index import QdrantVectorIndex

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled"
MAX_RECORDED_ERRORS = 1_000


@dataclass(slots=True)
class MigrationOptions:
    """Per-run options; `limit=0` means no record limit."""

    date_range: DateRange | None = None
    limit: int = 0
    from_cursor: str | None = None
    dry_run: bool = False
    job_id: str | None = None
    channel_name: str | None = None


@dataclass(slots=True)
class _PendingVector:
    record_id: str
    point: VectorPoint
    article_id: str | None = None


@dataclass(slots=True)
class _BatchOutcome:
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[RecordError] = field(default_factory=list)

    def fail(self, record_id: str, error: str) -> None:
        self.failed += 1
        self.errors.append(RecordError(record_id=record_id, error=error))


class MigrationOrchestrator:
    """Drives the batch loop from the source into the configured writers."""

    def __init__(
        self,
        *,
        source: SourceReader,
        transformer: RecordTransformer,
        settings: MigrationSettings,
        repository: SqlRepository | None = None,
        vector_index: QdrantVectorIndex | None = None,
        source_db_config: dict[str, Any] | None = None,
    ) -> None:
        self.source = source
        self.transformer = transformer
        self.settings = settings
        self.repository = repository
        self.vector_index = vector_index
        self.source_db_config = source_db_config or {}

    def run(
        self,
        options: MigrationOptions,
        *,
        store: JobStore | None = None,
        cancel_event: threading.Event | None = None,
    ) -> MigrationJob:
        if not options.dry_run and self.repository is None and self.vector_index is None:
            raise ValueError("At least one writer is required unless running in dry-run mode.")

        job = self._open_job(options, store)
        try:
            channel_id = self._resolve_channel(options)
            if self.vector_index is not None and not options.dry_run:
                self.vector_index.initialize_collection()

            job.channel_id = channel_id
            job.status = JobStatus.RUNNING
            job.started_at = utc_now()
            _persist(store, job)

            total = self.source.count(options.date_range)
            job.total_records = min(total, options.limit) if options.limit > 0 else total
            _persist(store, job)
            logger.info(
                "Migration job %s started: total=%d channel=%s dry_run=%s",
                job.job_id,
                job.total_records,
                channel_id,
                options.dry_run,
            )

            self._drain(job, options, channel_id=channel_id, store=store, cancel_event=cancel_event)
            job.status = JobStatus.COMPLETED
        except SourceError as exc:
            logger.error("Migration job %s failed: %s", job.job_id, exc)
            job.status = JobStatus.FAILED
            job.error_message = str(exc)
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.error_message = str(exc)
            job.completed_at = utc_now()
            _persist(store, job)
            raise

        job.completed_at = utc_now()
        _persist(store, job)
        logger.info(
            "Migration job %s %s: processed=%d inserted=%d skipped=%d failed=%d cursor=%s",
            job.job_id,
            job.status.value,
            job.processed_records,
            job.inserted_records,
            job.skipped_records,
            job.failed_records,
            job.last_processed_id,
        )
        return job

    def _open_job(self, options: MigrationOptions, store: JobStore | None) -> MigrationJob:
        job_id = options.job_id or str(uuid4())
        existing = store.get(job_id) if store is not None else None
        if existing is not None:
            existing.dry_run = options.dry_run
            return existing

        job = MigrationJob(job_id=job_id, status=JobStatus.PENDING, dry_run=options.dry_run)
        if store is not None:
            store.create(job)
        return job

    def _resolve_channel(self, options: MigrationOptions) -> str:
        name = options.channel_name or self.settings.channel_name
        if self.repository is None:
            return name
        if options.dry_run:
            existing = self.repository.get_channel_by_name(name)
            return existing.channel_id if existing is not None else name
        return self.repository.ensure_channel(name, self.source_db_config).channel_id

    def _drain(
        self,
        job: MigrationJob,
        options: MigrationOptions,
        *,
        channel_id: str,
        store: JobStore | None,
        cancel_event: threading.Event | None,
    ) -> None:
        cursor = options.from_cursor
        remaining = options.limit if options.limit > 0 else None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Migration job %s cancelled at cursor %s", job.job_id, cursor)
                job.error_message = CANCELLED_MESSAGE
                return

            batch_limit = self.settings.batch_size if remaining is None else min(self.settings.batch_size, remaining)
            if batch_limit <= 0:
                return

            records = self.source.fetch_batch(
                batch_limit,
                from_cursor=cursor,
                date_range=options.date_range,
            )
            if not records:
                return

            outcome = self._process_batch(records, channel_id=channel_id, dry_run=options.dry_run)
            cursor = records[-1].id
            _apply_outcome(job, outcome, batch_size=len(records))
            job.last_processed_id = cursor
            _persist(store, job)
            logger.info(
                "Batch done: processed=%d/%d inserted=%d skipped=%d failed=%d cursor=%s",
                job.processed_records,
                job.total_records,
                job.inserted_records,
                job.skipped_records,
                job.failed_records,
                cursor,
            )

            if remaining is not None:
                remaining -= len(records)
            self._pause(cancel_event)

    def _process_batch(
        self,
        records: list[SourceRecord],
        *,
        channel_id: str,
        dry_run: bool,
    ) -> _BatchOutcome:
        outcome = _BatchOutcome()
        pending: list[_PendingVector] = []

        for record in records:
            article_id = None
            if self.repository is not None:
                relational = self.transformer.to_relational_article(record, channel_id)
                if relational.outcome == TransformOutcome.SKIPPED:
                    outcome.skipped += 1
                    continue
                if relational.outcome == TransformOutcome.FAILED or relational.data is None:
                    outcome.fail(record.id, relational.reason or "Transformation error")
                    continue
                if not dry_run:
                    try:
                        article_id = self.repository.insert_article(relational.data)
                    except Exception as exc:  # noqa: BLE001
                        logger.warning("Relational insert failed for %s: %s", record.id, exc)
                        outcome.fail(record.id, f"Relational write error: {exc}")
                        continue

            if self.vector_index is None:
                outcome.inserted += 1
                continue

            vector = self.transformer.to_vector_point(record, channel_id)
            if vector.outcome == TransformOutcome.SKIPPED:
                outcome.skipped += 1
                continue
            if vector.outcome == TransformOutcome.FAILED or vector.data is None:
                outcome.fail(record.id, vector.reason or "Transformation error")
                continue
            pending.append(_PendingVector(record_id=record.id, point=vector.data, article_id=article_id))

        if pending:
            self._write_vectors(pending, outcome, dry_run=dry_run)
        return outcome

    def _write_vectors(
        self,
        pending: list[_PendingVector],
        outcome: _BatchOutcome,
        *,
        dry_run: bool,
    ) -> None:
        if dry_run or self.vector_index is None:
            outcome.inserted += len(pending)
            return

        try:
            report = self.vector_index.upsert_batch([item.point for item in pending])
        except Exception as exc:  # noqa: BLE001
            logger.warning("Vector batch write failed for %d point(s): %s", len(pending), exc)
            for item in pending:
                outcome.fail(item.record_id, f"Vector write error: {exc}")
            return

        stored = set(report.stored_ids)
        skipped = {error.record_id: error.error for error in report.skipped}
        links: dict[str, str] = {}
        for item in pending:
            if item.point.id in stored:
                outcome.inserted += 1
                if item.article_id is not None:
                    links[item.article_id] = item.point.id
                continue
            reason = skipped.get(item.point.original_source_id or item.point.id, "Vector not stored")
            outcome.fail(item.record_id, f"Embedding error: {reason}")

        if links and self.repository is not None:
            try:
                self.repository.link_vector_ids(links)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to link %d vector id(s) to articles: %s", len(links), exc)

    def _pause(self, cancel_event: threading.Event | None) -> None:
        delay = self.settings.batch_delay_seconds
        if delay <= 0:
            return
        if cancel_event is not None:
            cancel_event.wait(delay)
        else:
            time.sleep(delay)


def _apply_outcome(job: MigrationJob, outcome: _BatchOutcome, *, batch_size: int) -> None:
    job.inserted_records += outcome.inserted
    job.skipped_records += outcome.skipped
    job.failed_records += outcome.failed
    job.processed_records += batch_size
    room = MAX_RECORDED_ERRORS - len(job.errors)
    if room > 0:
        job.errors.extend(outcome.errors[:room])


def _persist(store: JobStore | None, job: MigrationJob) -> None:
    if store is not None:
        store.update(job)
