"""MongoDB `posts` collection reader with identifier-cursor pagination."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from news_migrate.etl.models import DateRange, SourceRecord
from news_migrate.etl.sources.base import SourceConnectionError, SourceFetchError

logger = logging.getLogger(__name__)

DEFAULT_STATUS_FILTER: tuple[int, ...] = (1,)


@dataclass(slots=True)
class MongoSourceConfig:
    """Connection and query settings for the Mongo source."""

    connection_string: str
    database_name: str
    collection_name: str = "posts"
    status_filter: tuple[int, ...] | None = DEFAULT_STATUS_FILTER
    server_selection_timeout_ms: int = 5_000
    socket_timeout_ms: int = 45_000
    max_pool_size: int = 10


class MongoSourceReader:
    """Reads published posts in ascending `_id` order."""

    name = "mongodb"

    def __init__(
        self,
        config: MongoSourceConfig,
        *,
        client: MongoClient[dict[str, Any]] | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None

    def connect(self) -> None:
        if self._client is not None:
            return
        try:
            self._client = MongoClient(
                self.config.connection_string,
                maxPoolSize=self.config.max_pool_size,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
                socketTimeoutMS=self.config.socket_timeout_ms,
            )
            self._client.admin.command("ping")
        except PyMongoError as exc:
            self._client = None
            raise SourceConnectionError(message=f"MongoDB connection failed: {exc}") from exc
        logger.info("MongoDB connected (database=%s)", self.config.database_name)

    def disconnect(self) -> None:
        if self._client is None:
            return
        if self._owns_client:
            self._client.close()
        self._client = None
        logger.info("MongoDB disconnected")

    def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("MongoDB health check failed: %s", exc)
            return False
        return True

    def __enter__(self) -> MongoSourceReader:
        self.connect()
        return self

    def __exit__(self, *_: object) -> None:
        self.disconnect()

    def count(self, date_range: DateRange | None = None) -> int:
        query = self._build_query(date_range=date_range, status_filter=self.config.status_filter)
        try:
            return int(self._collection().count_documents(query))
        except PyMongoError as exc:
            raise SourceFetchError(message=f"Failed to count posts: {exc}") from exc

    def fetch_batch(
        self,
        limit: int,
        from_cursor: str | None = None,
        date_range: DateRange | None = None,
        status_filter: tuple[int, ...] | None = None,
    ) -> list[SourceRecord]:
        """Records after `from_cursor`; `status_filter=None` uses the configured statuses."""

        if limit <= 0:
            return []
        if status_filter is None:
            status_filter = self.config.status_filter
        query = self._build_query(date_range=date_range, status_filter=status_filter)
        if from_cursor:
            query["_id"] = {"$gt": _cursor_value(from_cursor)}

        try:
            documents = list(
                self._collection().find(query).sort("_id", ASCENDING).limit(limit),
            )
        except PyMongoError as exc:
            raise SourceFetchError(
                message=f"Failed to fetch posts after {from_cursor or '<start>'}: {exc}",
                from_cursor=from_cursor,
            ) from exc
        return [document_to_record(document) for document in documents]

    def latest_id(self) -> str | None:
        """Greatest identifier in the collection, regardless of filters."""

        try:
            document = self._collection().find_one({}, sort=[("_id", DESCENDING)])
        except PyMongoError as exc:
            raise SourceFetchError(message=f"Failed to read latest post id: {exc}") from exc
        if document is None:
            return None
        return str(document["_id"])

    def _collection(self) -> Collection[dict[str, Any]]:
        if self._client is None:
            raise SourceConnectionError(message="Database not connected")
        return self._client[self.config.database_name][self.config.collection_name]

    @staticmethod
    def _build_query(
        *,
        date_range: DateRange | None,
        status_filter: tuple[int, ...] | None,
    ) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if status_filter:
            if len(status_filter) == 1:
                query["status"] = status_filter[0]
            else:
                query["status"] = {"$in": list(status_filter)}
        if date_range is not None and not date_range.is_empty():
            published: dict[str, datetime] = {}
            if date_range.start is not None:
                published["$gte"] = date_range.start
            if date_range.end is not None:
                published["$lte"] = date_range.end
            query["published_at"] = published
        return query


def document_to_record(document: dict[str, Any]) -> SourceRecord:
    """Map a raw `posts` document to a source record."""

    content = document.get("content")
    content_text = content.get("text") if isinstance(content, dict) else None
    attachments = document.get("attachments")
    published_at = document.get("published_at") or document.get("created_at")
    status = document.get("status")

    return SourceRecord(
        id=str(document["_id"]),
        title=_optional_str(document.get("title")),
        published_at=published_at if isinstance(published_at, datetime) else None,
        status=int(status) if isinstance(status, int | float) else None,
        content_text=_optional_str(content_text),
        text=_optional_str(document.get("text")),
        body=_optional_str(document.get("body")),
        summary=_optional_str(document.get("summary")),
        seo_description=_optional_str(document.get("seo_description")),
        short_title=_optional_str(document.get("short_title")),
        slug=_optional_str(document.get("slug")),
        categories=[str(item) for item in document.get("categories") or []],
        topics=[str(item) for item in document.get("topics") or []],
        hit=document.get("hit") if isinstance(document.get("hit"), int) else None,
        attachments=to_jsonable(attachments) if isinstance(attachments, dict) else {},
        source_id=_optional_str(document.get("source_id")),
        raw=to_jsonable(document),
    )


def to_jsonable(value: Any) -> Any:
    """Convert BSON values into JSON-serializable structures."""

    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [to_jsonable(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, str | int | float | bool) or value is None:
        return value
    return str(value)


def _cursor_value(cursor: str) -> ObjectId | str:
    try:
        return ObjectId(cursor)
    except (InvalidId, TypeError):
        return cursor


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
