from __future__ import annotations

import allure
import pytest

from news_migrate.config import MigrationSettings
from news_migrate.etl.cleaning import PERMISSIVE_POLICY
from news_migrate.etl.jobs import InMemoryJobStore
from news_migrate.etl.models import (
    DateRange,
    JobStatus,
    MigrationJob,
    SourceRecord,
    TransformOutcome,
    TransformResult,
)
from news_migrate.etl.pipeline import MigrationOptions, MigrationOrchestrator
from news_migrate.etl.repository import RepositoryError, SqlRepository
from news_migrate.etl.services.transform_service import RecordTransformer
from news_migrate.etl.sources.base import SourceFetchError
from news_migrate.etl.vector.index import QdrantVectorIndex

pytestmark = [
    allure.epic("Migration"),
    allure.feature("Batch Orchestration"),
]


class FakeSource:
    name = "fake"

    def __init__(self, records: list[SourceRecord], *, fail_on_call: int | None = None) -> None:
        self.records = sorted(records, key=lambda record: record.id)
        self.fail_on_call = fail_on_call
        self.fetch_calls: list[tuple[int, str | None]] = []

    def count(self, date_range: DateRange | None = None) -> int:  # noqa: ARG002
        return len(self.records)

    def fetch_batch(
        self,
        limit: int,
        from_cursor: str | None = None,
        date_range: DateRange | None = None,  # noqa: ARG002
    ) -> list[SourceRecord]:
        self.fetch_calls.append((limit, from_cursor))
        if self.fail_on_call is not None and len(self.fetch_calls) == self.fail_on_call:
            raise SourceFetchError(message="connection reset by peer", from_cursor=from_cursor)
        eligible = [record for record in self.records if from_cursor is None or record.id > from_cursor]
        return eligible[:limit]


class RecordingJobStore(InMemoryJobStore):
    def __init__(self) -> None:
        super().__init__()
        self.statuses: list[JobStatus] = []

    def create(self, job: MigrationJob) -> None:
        self.statuses.append(job.status)
        super().create(job)

    def update(self, job: MigrationJob) -> None:
        if not self.statuses or self.statuses[-1] != job.status:
            self.statuses.append(job.status)
        super().update(job)


def _orchestrator(
    source: FakeSource,
    settings: MigrationSettings,
    *,
    repository: SqlRepository | None = None,
    vector_index: QdrantVectorIndex | None = None,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        source=source,
        transformer=RecordTransformer(policy=PERMISSIVE_POLICY),
        settings=settings,
        repository=repository,
        vector_index=vector_index,
        source_db_config={"type": "mongodb"},
    )


def _records(make_record, count: int) -> list[SourceRecord]:
    return [make_record(f"{index:06d}") for index in range(1, count + 1)]


def test_run_counts_skipped_records_and_writes_valid_ones(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
) -> None:
    records = _records(make_record, 3)
    records[1] = make_record("000002", content_text="   ")
    store = RecordingJobStore()

    job = _orchestrator(FakeSource(records), migration_settings, repository=repository).run(
        MigrationOptions(),
        store=store,
    )

    assert job.status == JobStatus.COMPLETED
    assert (job.total_records, job.processed_records) == (3, 3)
    assert (job.inserted_records, job.skipped_records, job.failed_records) == (2, 1, 0)
    assert job.last_processed_id == "000003"
    assert job.started_at is not None
    assert job.completed_at is not None
    assert store.statuses == [JobStatus.PENDING, JobStatus.RUNNING, JobStatus.COMPLETED]
    assert store.get(job.job_id) == job

    channel = repository.get_channel_by_name("Test Import")
    assert channel is not None
    assert job.channel_id == channel.channel_id
    titles = sorted(article.title for article in repository.list_articles_by_channel(channel.channel_id))
    assert titles == ["Article 000001", "Article 000003"]


def test_empty_source_completes_with_zero_totals(
    migration_settings: MigrationSettings,
    repository: SqlRepository,
) -> None:
    job = _orchestrator(FakeSource([]), migration_settings, repository=repository).run(MigrationOptions())

    assert job.status == JobStatus.COMPLETED
    assert job.total_records == 0
    assert job.processed_records == 0
    assert job.last_processed_id is None
    assert repository.count_articles() == 0


def test_limit_caps_batches_and_cursor(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
) -> None:
    source = FakeSource(_records(make_record, 5))

    job = _orchestrator(source, migration_settings, repository=repository).run(MigrationOptions(limit=3))

    assert source.fetch_calls == [(2, None), (1, "000002")]
    assert job.total_records == 3
    assert job.processed_records == 3
    assert job.last_processed_id == "000003"
    assert repository.count_articles() == 3


def test_resume_from_cursor_processes_only_later_records(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
) -> None:
    source = FakeSource(_records(make_record, 5))

    job = _orchestrator(source, migration_settings, repository=repository).run(
        MigrationOptions(from_cursor="000003"),
    )

    assert source.fetch_calls[0] == (2, "000003")
    assert job.processed_records == 2
    assert job.last_processed_id == "000005"
    assert repository.count_articles() == 2


def test_fetch_failure_marks_job_failed_and_keeps_progress(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
) -> None:
    source = FakeSource(_records(make_record, 5), fail_on_call=2)
    store = InMemoryJobStore()

    job = _orchestrator(source, migration_settings, repository=repository).run(MigrationOptions(), store=store)

    assert job.status == JobStatus.FAILED
    assert "connection reset by peer" in (job.error_message or "")
    assert job.processed_records == 2
    assert job.last_processed_id == "000002"
    assert store.get(job.job_id).status == JobStatus.FAILED  # type: ignore[union-attr]


def test_dry_run_writes_nothing(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
    vector_index: QdrantVectorIndex,
) -> None:
    job = _orchestrator(
        FakeSource(_records(make_record, 3)),
        migration_settings,
        repository=repository,
        vector_index=vector_index,
    ).run(MigrationOptions(dry_run=True))

    assert job.status == JobStatus.COMPLETED
    assert job.dry_run is True
    assert job.inserted_records == 3
    assert job.channel_id == "Test Import"
    assert repository.list_channels() == []
    assert repository.count_articles() == 0
    assert vector_index.count() == 0


def test_relational_insert_failure_counts_record_as_failed(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original_insert = repository.insert_article

    def _insert(article):
        if article.title == "Article 000002":
            raise RepositoryError("disk full")
        return original_insert(article)

    monkeypatch.setattr(repository, "insert_article", _insert)

    job = _orchestrator(FakeSource(_records(make_record, 3)), migration_settings, repository=repository).run(
        MigrationOptions(),
    )

    assert job.status == JobStatus.COMPLETED
    assert (job.inserted_records, job.failed_records) == (2, 1)
    assert job.errors[0].record_id == "000002"
    assert job.errors[0].error == "Relational write error: disk full"


def test_both_writers_store_vectors_and_link_articles(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
    vector_index: QdrantVectorIndex,
) -> None:
    job = _orchestrator(
        FakeSource(_records(make_record, 3)),
        migration_settings,
        repository=repository,
        vector_index=vector_index,
    ).run(MigrationOptions())

    assert job.inserted_records == 3
    assert vector_index.count(job.channel_id) == 3
    articles = repository.list_articles_by_channel(job.channel_id or "")
    assert len(articles) == 3
    assert all(article.vector_id for article in articles)

    results = vector_index.search("Article 000001", score_threshold=0.0, limit=10)
    stored_ids = {result.id for result in results}
    assert {article.vector_id for article in articles} <= stored_ids


def test_vector_batch_failure_fails_every_point_and_continues(
    make_record,
    migration_settings: MigrationSettings,
    vector_index: QdrantVectorIndex,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = {"count": 0}
    original_upsert = vector_index.upsert_batch

    def _upsert(points):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("qdrant timeout")
        return original_upsert(points)

    monkeypatch.setattr(vector_index, "upsert_batch", _upsert)

    job = _orchestrator(
        FakeSource(_records(make_record, 4)),
        migration_settings,
        vector_index=vector_index,
    ).run(MigrationOptions())

    assert job.status == JobStatus.COMPLETED
    assert job.processed_records == 4
    assert (job.inserted_records, job.failed_records) == (2, 2)
    assert [error.record_id for error in job.errors] == ["000001", "000002"]
    assert all(error.error == "Vector write error: qdrant timeout" for error in job.errors)
    assert vector_index.count() == 2


def test_run_without_writers_requires_dry_run(
    make_record,
    migration_settings: MigrationSettings,
) -> None:
    orchestrator = _orchestrator(FakeSource(_records(make_record, 1)), migration_settings)

    with pytest.raises(ValueError, match="At least one writer"):
        orchestrator.run(MigrationOptions())

    job = orchestrator.run(MigrationOptions(dry_run=True))
    assert job.inserted_records == 1
    assert job.channel_id == "Test Import"


def test_channel_is_reused_across_runs(
    make_record,
    migration_settings: MigrationSettings,
    repository: SqlRepository,
) -> None:
    source = FakeSource(_records(make_record, 2))
    first = _orchestrator(source, migration_settings, repository=repository).run(MigrationOptions())
    second = _orchestrator(source, migration_settings, repository=repository).run(
        MigrationOptions(channel_name="Test Import"),
    )

    assert first.channel_id == second.channel_id
    assert len(repository.list_channels()) == 1
    assert repository.count_articles() == 4


def test_recorded_errors_are_capped(
    make_record,
    repository: SqlRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("news_migrate.etl.pipeline.MAX_RECORDED_ERRORS", 3)
    transformer = RecordTransformer(policy=PERMISSIVE_POLICY)
    monkeypatch.setattr(
        transformer,
        "to_relational_article",
        lambda record, channel_id: TransformResult(  # noqa: ARG005
            outcome=TransformOutcome.FAILED,
            reason="Transformation error: boom",
        ),
    )
    orchestrator = MigrationOrchestrator(
        source=FakeSource(_records(make_record, 5)),
        transformer=transformer,
        settings=MigrationSettings(batch_size=10, batch_delay_seconds=0.0),
        repository=repository,
    )

    job = orchestrator.run(MigrationOptions())

    assert job.failed_records == 5
    assert len(job.errors) == 3
    assert job.errors[0].error == "Transformation error: boom"
