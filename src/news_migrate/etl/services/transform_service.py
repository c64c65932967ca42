"""Transformation of source records into relational and vector targets."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from news_migrate.etl.categorize import categorize_event
from news_migrate.etl.cleaning import ValidationPolicy, normalize_record
from news_migrate.etl.models import (
    NormalizedContent,
    RelationalArticle,
    SourceRecord,
    TransformOutcome,
    TransformResult,
    VectorPoint,
)

logger = logging.getLogger(__name__)


class RecordTransformer:
    """Maps one source record into either target representation."""

    def __init__(self, *, policy: ValidationPolicy, source_name: str = "mongodb") -> None:
        self.policy = policy
        self.source_name = source_name

    def normalize(self, record: SourceRecord) -> NormalizedContent:
        return normalize_record(record, self.policy)

    def to_relational_article(
        self,
        record: SourceRecord,
        channel_id: str,
    ) -> TransformResult[RelationalArticle]:
        try:
            normalized = self.normalize(record)
            if not normalized.is_valid:
                return _skipped(normalized)

            article = RelationalArticle(
                channel_id=channel_id,
                title=(record.title or "").strip(),
                content=normalized.clean_text,
                summary=normalized.summary,
                published_at=_to_utc(record.published_at),
                categories=list(record.categories),
                topics=list(record.topics),
                source_metadata=self._source_metadata(record, normalized),
                migrated_at=datetime.now(tz=UTC),
            )
            return TransformResult(outcome=TransformOutcome.OK, data=article)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Relational transform failed for %s: %s", record.id, exc)
            return TransformResult(
                outcome=TransformOutcome.FAILED,
                reason=f"Transformation error: {exc}",
            )

    def to_vector_point(
        self,
        record: SourceRecord,
        channel_id: str,
        assigned_id: str | None = None,
    ) -> TransformResult[VectorPoint]:
        try:
            normalized = self.normalize(record)
            if not normalized.is_valid:
                return _skipped(normalized)

            title = (record.title or "").strip()
            point_id, original_id = _resolve_point_id(assigned_id or record.id)
            point = VectorPoint(
                id=point_id,
                channel_id=channel_id,
                title=title,
                content=normalized.clean_text,
                published_at=_to_utc(record.published_at),
                categories=list(record.categories),
                topics=list(record.topics),
                event_category=categorize_event(title, normalized.clean_text),
                source_url=f"/{record.slug}" if record.slug else None,
                original_source_id=original_id,
            )
            return TransformResult(outcome=TransformOutcome.OK, data=point)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Vector transform failed for %s: %s", record.id, exc)
            return TransformResult(
                outcome=TransformOutcome.FAILED,
                reason=f"Transformation error: {exc}",
            )

    def _source_metadata(
        self,
        record: SourceRecord,
        normalized: NormalizedContent,
    ) -> dict[str, Any]:
        raw = record.raw
        return {
            "source": self.source_name,
            "original_id": record.id,
            "integer_id": raw.get("integer_id"),
            "old_id": raw.get("old_id"),
            "slug": record.slug,
            "old_slug": raw.get("old_slug"),
            "short_title": record.short_title,
            "seo_title": raw.get("seo_title"),
            "seo_keywords": raw.get("seo_keywords"),
            "category_ids": list(record.categories),
            "topic_ids": list(record.topics),
            "hit": record.hit,
            "status": record.status,
            "source_id": record.source_id,
            "author_id": _optional_str(raw.get("author_id")),
            "redirect_link": raw.get("redirect_link"),
            "attachments": record.attachments,
            "original_content": normalized.raw_text,
            "event_category": categorize_event(record.title or "", normalized.clean_text),
        }


def _skipped(normalized: NormalizedContent) -> TransformResult[Any]:
    return TransformResult(
        outcome=TransformOutcome.SKIPPED,
        reason=f"Validation failed: {', '.join(normalized.issues)}",
    )


def _resolve_point_id(candidate: str) -> tuple[str, str | None]:
    """Return (point_id, original_id); ids the index cannot take get a fresh UUID."""

    try:
        return str(uuid.UUID(candidate)), None
    except (TypeError, ValueError):
        return str(uuid.uuid4()), candidate


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
