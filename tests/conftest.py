"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from qdrant_client import QdrantClient

from news_migrate.config import MigrationSettings
from news_migrate.etl.models import SourceRecord
from news_migrate.etl.repository import SqlRepository
from news_migrate.etl.vector.embedder import ResilientEmbedder
from news_migrate.etl.vector.index import QdrantVectorIndex, VectorIndexConfig

TEST_VECTOR_SIZE = 64
_ENV_PREFIXES = ("NEWS_MIGRATE_", "MONGODB_", "QDRANT_", "OPENAI_")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)


def _make_record(record_id: str = "000001", **overrides: object) -> SourceRecord:
    values: dict[str, object] = {
        "id": record_id,
        "title": f"Article {record_id}",
        "published_at": datetime(2025, 6, 1, 12, 0, tzinfo=UTC),
        "status": 1,
        "content_text": f"<p>Body of article {record_id} with enough words to pass validation.</p>",
        "slug": f"article-{record_id}",
        "categories": ["cat-1"],
        "topics": ["topic-1"],
    }
    values.update(overrides)
    return SourceRecord(**values)  # type: ignore[arg-type]


@pytest.fixture()
def make_record() -> Callable[..., SourceRecord]:
    """Factory for valid source records; keyword overrides replace fields."""
    return _make_record


@pytest.fixture()
def migration_settings() -> MigrationSettings:
    return MigrationSettings(batch_size=2, batch_delay_seconds=0.0, channel_name="Test Import")


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'migrate.db'}"


@pytest.fixture()
def repository(database_url: str) -> Iterator[SqlRepository]:
    repo = SqlRepository(database_url)
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def vector_index_factory() -> Callable[..., QdrantVectorIndex]:
    """Build an initialized in-memory Qdrant index, optionally with a custom embedder."""

    def _build(embedder: ResilientEmbedder | None = None) -> QdrantVectorIndex:
        index = QdrantVectorIndex(
            VectorIndexConfig(collection_name="test_news", vector_size=TEST_VECTOR_SIZE),
            client=QdrantClient(location=":memory:"),
            embedder=embedder or ResilientEmbedder(dimensions=TEST_VECTOR_SIZE),
        )
        index.initialize_collection()
        return index

    return _build


@pytest.fixture()
def vector_index(vector_index_factory: Callable[..., QdrantVectorIndex]) -> QdrantVectorIndex:
    return vector_index_factory()
