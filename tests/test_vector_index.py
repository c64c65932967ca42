from __future__ import annotations

import uuid
from datetime import UTC, datetime

import allure
import pytest
from qdrant_client import models

from news_migrate.etl.models import DateRange, SearchFilter, VectorPoint
from news_migrate.etl.vector.embedder import HashingEmbedder, ResilientEmbedder, build_embedding_text
from news_migrate.etl.vector.index import (
    VectorDimensionError,
    VectorIndexError,
    build_filter,
)

pytestmark = [
    allure.epic("Vector Index"),
    allure.feature("Collection Writes & Search"),
]


class _BrokenPrimary:
    model_name = "broken-remote"

    def embed(self, texts: list[str]) -> list[list[float]]:  # noqa: ARG002
        raise RuntimeError("remote embedding service is down")


class _SelectiveEmbedder:
    """Batch call fails; single calls fail only for texts mentioning 'poison'."""

    model_name = "selective"

    def __init__(self, dimensions: int) -> None:
        self.dimensions = dimensions
        self._hashing = HashingEmbedder(dimensions=dimensions)

    def embed(self, texts: list[str]) -> list[list[float]]:  # noqa: ARG002
        raise RuntimeError("batch endpoint unavailable")

    def embed_one(self, text: str) -> list[float]:
        if "poison" in text:
            raise RuntimeError("cannot embed this text")
        return self._hashing.embed([text])[0]


def _point(
    index: int,
    *,
    channel_id: str = "channel-a",
    event_category: str = "economy",
    content: str | None = None,
) -> VectorPoint:
    return VectorPoint(
        id=str(uuid.uuid4()),
        channel_id=channel_id,
        title=f"Headline {index}",
        content=content or f"Story number {index} about markets and the lira.",
        published_at=datetime(2025, 6, index, tzinfo=UTC),
        categories=[f"cat-{index % 2}"],
        topics=["topic-1"],
        event_category=event_category,
        source_url=f"/story-{index}",
        original_source_id=f"mongo-{index}",
    )


def test_initialize_collection_is_idempotent(vector_index) -> None:
    assert vector_index.initialize_collection() is False
    assert vector_index.client.collection_exists("test_news")


def test_upsert_stores_all_points_through_fallback_when_remote_is_down(
    vector_index_factory,
) -> None:
    index = vector_index_factory(ResilientEmbedder(dimensions=64, primary=_BrokenPrimary()))
    points = [_point(number) for number in range(1, 6)]

    report = index.upsert_batch(points)

    assert sorted(report.stored_ids) == sorted(point.id for point in points)
    assert report.skipped == []
    assert index.count() == 5
    assert index.stats().total_points == 5


def test_payload_contains_preview_and_omits_missing_optionals(vector_index) -> None:
    point = _point(1, content="z" * 600)
    point.source_url = None

    payload = vector_index.payload(point)

    assert payload["content"] == "z" * 600
    assert payload["content_preview"] == "z" * 500
    assert payload["published_at"] == "2025-06-01T00:00:00+00:00"
    assert payload["original_source_id"] == "mongo-1"
    assert "political_score" not in payload
    assert "source_url" not in payload


def test_upsert_rejects_supplied_vector_of_wrong_size(vector_index) -> None:
    good = _point(1)
    bad = _point(2)
    bad.vector = [0.1] * 10

    with pytest.raises(VectorDimensionError):
        vector_index.upsert_batch([good, bad])
    assert vector_index.count() == 0


def test_upsert_accepts_supplied_vectors_without_embedding(vector_index) -> None:
    point = _point(1)
    point.vector = [1.0] + [0.0] * 63

    report = vector_index.upsert_batch([point])

    assert report.stored_ids == [point.id]


def test_upsert_skips_points_whose_embedding_fails(vector_index_factory) -> None:
    index = vector_index_factory()
    index.embedder = _SelectiveEmbedder(dimensions=64)
    points = [_point(1), _point(2, content="poison pill"), _point(3)]

    report = index.upsert_batch(points)

    assert len(report.stored_ids) == 2
    assert [error.record_id for error in report.skipped] == ["mongo-2"]
    assert index.count() == 2


def test_upsert_wraps_store_failures(vector_index, monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(**kwargs) -> None:  # noqa: ARG001
        raise ConnectionError("qdrant is unreachable")

    monkeypatch.setattr(vector_index.client, "upsert", _fail)

    with pytest.raises(VectorIndexError, match="qdrant is unreachable"):
        vector_index.upsert_batch([_point(1)])


def test_search_ranks_exact_text_first_and_respects_filters(vector_index) -> None:
    points = [_point(1), _point(2, channel_id="channel-b"), _point(3)]
    vector_index.upsert_batch(points)
    query = build_embedding_text(points[0].title, points[0].content)

    results = vector_index.search(query, limit=2, score_threshold=0.0)
    assert len(results) == 2
    assert results[0].id == points[0].id
    assert results[0].score == pytest.approx(1.0, abs=1e-5)
    assert results[0].score >= results[1].score

    strict = vector_index.search(query, score_threshold=0.999)
    assert [result.id for result in strict] == [points[0].id]

    other_channel = vector_index.search(
        query,
        score_threshold=0.0,
        search_filter=SearchFilter(channel_id="channel-b"),
    )
    assert [result.id for result in other_channel] == [points[1].id]


def test_find_by_channel_and_category_scrolls_with_fixed_score(vector_index) -> None:
    vector_index.upsert_batch(
        [
            _point(1, event_category="sports"),
            _point(2, event_category="economy"),
            _point(3, event_category="sports", channel_id="channel-b"),
        ],
    )

    results = vector_index.find_by_channel_and_category("channel-a", "sports")

    assert len(results) == 1
    assert results[0].score == 1.0
    assert results[0].payload["title"] == "Headline 1"


def test_delete_by_channel_removes_only_that_channel(vector_index) -> None:
    vector_index.upsert_batch([_point(1), _point(2), _point(3, channel_id="channel-b")])

    vector_index.delete_by_channel("channel-a")

    assert vector_index.count("channel-a") == 0
    assert vector_index.count("channel-b") == 1


def test_stats_and_health(vector_index) -> None:
    stats = vector_index.stats()
    assert stats.total_points == 0
    assert stats.status == "green"
    assert vector_index.health_check() is True


def test_index_rejects_embedder_with_different_size(vector_index_factory) -> None:
    with pytest.raises(ValueError, match="does not match"):
        vector_index_factory(ResilientEmbedder(dimensions=32))


def test_build_filter_translates_every_constraint() -> None:
    assert build_filter(None) is None
    assert build_filter(SearchFilter()) is None

    query_filter = build_filter(
        SearchFilter(
            channel_id="channel-a",
            categories=["cat-1"],
            topics=["topic-1", "topic-2"],
            date_range=DateRange(start=datetime(2025, 1, 1, tzinfo=UTC)),
            political_score_min=-0.5,
            political_score_max=0.5,
        ),
    )

    assert query_filter is not None
    conditions = query_filter.must
    assert [condition.key for condition in conditions] == [
        "channel_id",
        "categories",
        "topics",
        "published_at",
        "political_score",
    ]
    assert conditions[0].match == models.MatchValue(value="channel-a")
    assert conditions[2].match == models.MatchAny(any=["topic-1", "topic-2"])
    assert isinstance(conditions[3].range, models.DatetimeRange)
    assert conditions[4].range == models.Range(gte=-0.5, lte=0.5)
