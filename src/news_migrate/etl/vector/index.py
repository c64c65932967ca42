"""Qdrant collection lifecycle, batched upsert, and filtered search."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from qdrant_client import QdrantClient, models

from news_migrate.etl.models import (
    CollectionStats,
    RecordError,
    SearchFilter,
    SearchResult,
    UpsertReport,
    VectorPoint,
)
from news_migrate.etl.vector.embedder import ResilientEmbedder, Vector, build_embedding_text

logger = logging.getLogger(__name__)

PAYLOAD_INDEXES: tuple[tuple[str, models.PayloadSchemaType], ...] = (
    ("channel_id", models.PayloadSchemaType.KEYWORD),
    ("categories", models.PayloadSchemaType.KEYWORD),
    ("topics", models.PayloadSchemaType.KEYWORD),
    ("event_category", models.PayloadSchemaType.KEYWORD),
    ("published_at", models.PayloadSchemaType.DATETIME),
)


class VectorIndexError(RuntimeError):
    """Vector store rejected an operation."""


class VectorDimensionError(VectorIndexError):
    """Supplied vector length does not match the collection vector size."""


@dataclass(slots=True)
class VectorIndexConfig:
    """Collection shape and payload settings."""

    collection_name: str = "news_embeddings"
    vector_size: int = 1536
    content_preview_chars: int = 500
    max_embedding_content_chars: int = 1_000


class QdrantVectorIndex:
    """Sole owner of one Qdrant collection."""

    def __init__(
        self,
        config: VectorIndexConfig,
        *,
        client: QdrantClient,
        embedder: ResilientEmbedder,
    ) -> None:
        if embedder.dimensions != config.vector_size:
            raise ValueError(
                f"Embedder size {embedder.dimensions} does not match "
                f"collection vector size {config.vector_size}",
            )
        self.config = config
        self.client = client
        self.embedder = embedder

    @property
    def collection_name(self) -> str:
        return self.config.collection_name

    def initialize_collection(self) -> bool:
        """Create the collection and payload indexes; return False when it already existed."""

        if self.client.collection_exists(self.collection_name):
            logger.info("Collection %s already exists", self.collection_name)
            return False

        logger.info("Creating collection %s", self.collection_name)
        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=models.VectorParams(
                size=self.config.vector_size,
                distance=models.Distance.COSINE,
            ),
            optimizers_config=models.OptimizersConfigDiff(default_segment_number=2),
            replication_factor=1,
        )
        for field_name, schema in PAYLOAD_INDEXES:
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=field_name,
                field_schema=schema,
            )
        logger.info("Collection %s created", self.collection_name)
        return True

    def upsert_batch(self, points: list[VectorPoint]) -> UpsertReport:
        """Embed points lacking vectors and write all of them in one call."""

        report = UpsertReport()
        if not points:
            return report

        for point in points:
            if point.vector is not None and len(point.vector) != self.config.vector_size:
                raise VectorDimensionError(
                    f"Point {point.id} has vector size {len(point.vector)}, "
                    f"collection {self.collection_name} expects {self.config.vector_size}",
                )

        vectors = self._embed_missing(points, report)
        structs = [
            models.PointStruct(id=point.id, vector=vectors[point.id], payload=self.payload(point))
            for point in points
            if point.id in vectors
        ]
        if not structs:
            return report

        try:
            self.client.upsert(collection_name=self.collection_name, points=structs, wait=True)
        except Exception as exc:
            raise VectorIndexError(
                f"Failed to upsert {len(structs)} point(s) into {self.collection_name}: {exc}",
            ) from exc

        report.stored_ids.extend(str(struct.id) for struct in structs)
        logger.info("Stored %d point(s) in %s", len(structs), self.collection_name)
        return report

    def search(
        self,
        query_text: str,
        *,
        limit: int = 10,
        score_threshold: float = 0.7,
        search_filter: SearchFilter | None = None,
    ) -> list[SearchResult]:
        query_vector = self.embedder.embed_one(query_text)
        response = self.client.query_points(
            collection_name=self.collection_name,
            query=query_vector,
            limit=limit,
            score_threshold=score_threshold,
            query_filter=build_filter(search_filter),
            with_payload=True,
        )
        results = [
            SearchResult(id=str(point.id), score=float(point.score), payload=dict(point.payload or {}))
            for point in response.points
            if point.score >= score_threshold
        ]
        results.sort(key=lambda result: result.score, reverse=True)
        return results[:limit]

    def find_by_channel_and_category(
        self,
        channel_id: str,
        category: str,
        limit: int = 5,
    ) -> list[SearchResult]:
        points, _ = self.client.scroll(
            collection_name=self.collection_name,
            scroll_filter=models.Filter(
                must=[
                    _match("channel_id", channel_id),
                    _match("event_category", category),
                ],
            ),
            limit=limit,
            with_payload=True,
        )
        return [
            SearchResult(id=str(point.id), score=1.0, payload=dict(point.payload or {}))
            for point in points
        ]

    def delete_by_channel(self, channel_id: str) -> None:
        self.client.delete(
            collection_name=self.collection_name,
            points_selector=models.FilterSelector(
                filter=models.Filter(must=[_match("channel_id", channel_id)]),
            ),
            wait=True,
        )
        logger.info("Deleted points for channel %s", channel_id)

    def count(self, channel_id: str | None = None) -> int:
        count_filter = None
        if channel_id is not None:
            count_filter = models.Filter(must=[_match("channel_id", channel_id)])
        result = self.client.count(
            collection_name=self.collection_name,
            count_filter=count_filter,
            exact=True,
        )
        return int(result.count)

    def stats(self) -> CollectionStats:
        info = self.client.get_collection(self.collection_name)
        status = info.status
        return CollectionStats(
            total_points=int(info.points_count or 0),
            indexed_points=int(info.indexed_vectors_count or 0),
            status=str(getattr(status, "value", status)),
        )

    def health_check(self) -> bool:
        try:
            self.client.get_collections()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Vector database health check failed: %s", exc)
            return False
        return True

    def payload(self, point: VectorPoint) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "channel_id": point.channel_id,
            "title": point.title,
            "content": point.content,
            "content_preview": point.content[: self.config.content_preview_chars],
            "published_at": point.published_at.isoformat() if point.published_at else None,
            "categories": list(point.categories),
            "topics": list(point.topics),
            "political_score": point.political_score,
            "event_category": point.event_category,
            "source_url": point.source_url,
            "original_source_id": point.original_source_id,
        }
        return {key: value for key, value in payload.items() if value is not None}

    def _embed_missing(self, points: list[VectorPoint], report: UpsertReport) -> dict[str, Vector]:
        vectors = {point.id: point.vector for point in points if point.vector is not None}
        missing = [point for point in points if point.vector is None]
        if not missing:
            return vectors

        texts = [self._embedding_text(point) for point in missing]
        try:
            generated = self.embedder.embed(texts)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Batch embedding failed, retrying point by point: %s", exc)
            generated = [self._embed_single(point, text, report) for point, text in zip(missing, texts, strict=True)]

        for point, vector in zip(missing, generated, strict=True):
            if vector is None:
                continue
            if len(vector) != self.config.vector_size:
                report.skipped.append(
                    RecordError(
                        record_id=point.original_source_id or point.id,
                        error=f"Embedding size {len(vector)} != {self.config.vector_size}",
                    ),
                )
                continue
            vectors[point.id] = vector
        return vectors

    def _embed_single(
        self,
        point: VectorPoint,
        text: str,
        report: UpsertReport,
    ) -> Vector | None:
        try:
            return self.embedder.embed_one(text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Embedding failed for point %s: %s", point.id, exc)
            report.skipped.append(
                RecordError(record_id=point.original_source_id or point.id, error=str(exc)),
            )
            return None

    def _embedding_text(self, point: VectorPoint) -> str:
        return build_embedding_text(
            point.title,
            point.content,
            max_content_chars=self.config.max_embedding_content_chars,
        )


def build_filter(search_filter: SearchFilter | None) -> models.Filter | None:
    """Translate a caller-side filter into a Qdrant filter."""

    if search_filter is None:
        return None

    must: list[models.Condition] = []
    if search_filter.channel_id:
        must.append(_match("channel_id", search_filter.channel_id))
    if search_filter.categories:
        must.append(
            models.FieldCondition(key="categories", match=models.MatchAny(any=search_filter.categories)),
        )
    if search_filter.topics:
        must.append(
            models.FieldCondition(key="topics", match=models.MatchAny(any=search_filter.topics)),
        )
    date_range = search_filter.date_range
    if date_range is not None and not date_range.is_empty():
        must.append(
            models.FieldCondition(
                key="published_at",
                range=models.DatetimeRange(gte=date_range.start, lte=date_range.end),
            ),
        )
    if search_filter.political_score_min is not None or search_filter.political_score_max is not None:
        must.append(
            models.FieldCondition(
                key="political_score",
                range=models.Range(
                    gte=search_filter.political_score_min,
                    lte=search_filter.political_score_max,
                ),
            ),
        )
    if not must:
        return None
    return models.Filter(must=must)


def build_qdrant_client(url: str, api_key: str | None = None) -> QdrantClient:
    """Create a Qdrant client; `:memory:` selects the embedded local mode."""

    if url == ":memory:":
        return QdrantClient(location=":memory:")
    return QdrantClient(url=url, api_key=api_key)


def _match(key: str, value: str) -> models.FieldCondition:
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))
