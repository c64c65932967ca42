"""Runtime configuration for the migration pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

DEFAULT_VECTOR_SIZE = 1536


@dataclass(slots=True)
class SourceSettings:
    """MongoDB source settings."""

    connection_string: str = ""
    database_name: str = "haberdb"
    collection_name: str = "posts"
    statuses: tuple[int, ...] = (1,)
    server_selection_timeout_ms: int = 5_000
    socket_timeout_ms: int = 45_000
    max_pool_size: int = 10


@dataclass(slots=True)
class DatabaseSettings:
    """Relational target settings."""

    url: str = "sqlite:///.news_migrate.db"


@dataclass(slots=True)
class VectorSettings:
    """Qdrant collection settings."""

    url: str = "http://localhost:6333"
    api_key: str | None = None
    collection_name: str = "news_embeddings"
    vector_size: int = DEFAULT_VECTOR_SIZE
    content_preview_chars: int = 500


@dataclass(slots=True)
class EmbeddingSettings:
    """Embedding generation settings."""

    model_name: str = "text-embedding-3-small"
    api_key: str | None = None
    request_timeout_seconds: float = 30.0
    max_retries: int = 2
    max_content_chars: int = 1_000
    allow_fallback: bool = True


@dataclass(slots=True)
class MigrationSettings:
    """Batch loop and validation policy settings."""

    batch_size: int = 500
    channel_name: str = "MongoDB Import"
    batch_delay_seconds: float = 0.1
    record_limit: int = 0
    validation_mode: str = "permissive"
    write_relational: bool = True
    write_vectors: bool = True


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    source: SourceSettings = field(default_factory=SourceSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    vector: VectorSettings = field(default_factory=VectorSettings)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    migration: MigrationSettings = field(default_factory=MigrationSettings)

    @classmethod
    def from_env(cls, database_url: str | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            source=SourceSettings(
                connection_string=os.getenv("MONGODB_CONNECTION_STRING", "").strip(),
                database_name=os.getenv("MONGODB_DATABASE_NAME", "haberdb"),
                collection_name=os.getenv("NEWS_MIGRATE_SOURCE_COLLECTION", "posts"),
                statuses=_collect_statuses(),
                server_selection_timeout_ms=int(
                    os.getenv("NEWS_MIGRATE_SOURCE_SERVER_SELECTION_TIMEOUT_MS", "5000"),
                ),
                socket_timeout_ms=int(os.getenv("NEWS_MIGRATE_SOURCE_SOCKET_TIMEOUT_MS", "45000")),
                max_pool_size=int(os.getenv("NEWS_MIGRATE_SOURCE_MAX_POOL_SIZE", "10")),
            ),
            database=DatabaseSettings(
                url=database_url
                or os.getenv("NEWS_MIGRATE_DATABASE_URL", "sqlite:///.news_migrate.db"),
            ),
            vector=VectorSettings(
                url=os.getenv("QDRANT_URL", "http://localhost:6333"),
                api_key=os.getenv("QDRANT_API_KEY") or None,
                collection_name=os.getenv("NEWS_MIGRATE_VECTOR_COLLECTION", "news_embeddings"),
                vector_size=int(
                    os.getenv("NEWS_MIGRATE_VECTOR_SIZE", str(DEFAULT_VECTOR_SIZE)),
                ),
                content_preview_chars=int(
                    os.getenv("NEWS_MIGRATE_CONTENT_PREVIEW_CHARS", "500"),
                ),
            ),
            embedding=EmbeddingSettings(
                model_name=os.getenv("NEWS_MIGRATE_EMBEDDING_MODEL", "text-embedding-3-small"),
                api_key=os.getenv("OPENAI_API_KEY") or None,
                request_timeout_seconds=float(
                    os.getenv("NEWS_MIGRATE_EMBEDDING_TIMEOUT_SECONDS", "30.0"),
                ),
                max_retries=int(os.getenv("NEWS_MIGRATE_EMBEDDING_MAX_RETRIES", "2")),
                max_content_chars=int(
                    os.getenv("NEWS_MIGRATE_EMBEDDING_MAX_CONTENT_CHARS", "1000"),
                ),
                allow_fallback=_env_bool("NEWS_MIGRATE_EMBEDDING_ALLOW_FALLBACK", default=True),
            ),
            migration=MigrationSettings(
                batch_size=int(os.getenv("NEWS_MIGRATE_BATCH_SIZE", "500")),
                channel_name=os.getenv("NEWS_MIGRATE_CHANNEL_NAME", "MongoDB Import"),
                batch_delay_seconds=float(
                    os.getenv("NEWS_MIGRATE_BATCH_DELAY_SECONDS", "0.1"),
                ),
                record_limit=int(os.getenv("NEWS_MIGRATE_RECORD_LIMIT", "0")),
                validation_mode=os.getenv("NEWS_MIGRATE_VALIDATION_MODE", "permissive")
                .strip()
                .lower(),
                write_relational=_env_bool("NEWS_MIGRATE_WRITE_RELATIONAL", default=True),
                write_vectors=_env_bool("NEWS_MIGRATE_WRITE_VECTORS", default=True),
            ),
        )

    def validate_for_run(self, override_connection_string: str | None = None) -> None:
        """Raise configuration error if a migration run cannot start with these settings."""

        connection_string = (override_connection_string or self.source.connection_string).strip()
        if not connection_string:
            raise ValueError(
                "A MongoDB connection string is required. "
                "Set MONGODB_CONNECTION_STRING or pass --connection-string.",
            )
        if not connection_string.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                "Invalid MongoDB connection string: expected mongodb:// or mongodb+srv:// scheme.",
            )
        if not self.source.database_name.strip():
            raise ValueError("MONGODB_DATABASE_NAME must not be empty.")
        if self.migration.batch_size <= 0:
            raise ValueError("NEWS_MIGRATE_BATCH_SIZE must be a positive integer.")
        if self.migration.record_limit < 0:
            raise ValueError("NEWS_MIGRATE_RECORD_LIMIT must be >= 0.")
        if self.migration.batch_delay_seconds < 0:
            raise ValueError("NEWS_MIGRATE_BATCH_DELAY_SECONDS must be >= 0.")
        if self.migration.validation_mode not in {"strict", "permissive"}:
            raise ValueError(
                "Invalid NEWS_MIGRATE_VALIDATION_MODE: "
                f"{self.migration.validation_mode!r}. Expected strict or permissive.",
            )
        if not self.migration.channel_name.strip():
            raise ValueError("NEWS_MIGRATE_CHANNEL_NAME must not be empty.")
        if not (self.migration.write_relational or self.migration.write_vectors):
            raise ValueError(
                "At least one target is required: enable NEWS_MIGRATE_WRITE_RELATIONAL "
                "or NEWS_MIGRATE_WRITE_VECTORS.",
            )
        if self.migration.write_vectors:
            self.validate_for_vectors()

    def validate_for_vectors(self) -> None:
        """Raise configuration error if the vector index cannot be used."""

        if self.vector.vector_size <= 0:
            raise ValueError("NEWS_MIGRATE_VECTOR_SIZE must be a positive integer.")
        if self.vector.url != ":memory:":
            _validate_http_url(self.vector.url, name="QDRANT_URL")
        if not self.vector.collection_name.strip():
            raise ValueError("NEWS_MIGRATE_VECTOR_COLLECTION must not be empty.")
        if self.embedding.max_content_chars <= 0:
            raise ValueError("NEWS_MIGRATE_EMBEDDING_MAX_CONTENT_CHARS must be > 0.")
        if not self.embedding.api_key and not self.embedding.allow_fallback:
            raise ValueError(
                "OPENAI_API_KEY is required when NEWS_MIGRATE_EMBEDDING_ALLOW_FALLBACK=false.",
            )


def _collect_statuses() -> tuple[int, ...]:
    raw = os.getenv("NEWS_MIGRATE_SOURCE_STATUSES", "1").strip()
    if not raw:
        return ()

    statuses: list[int] = []
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        try:
            statuses.append(int(token))
        except ValueError as error:
            raise ValueError(
                f"Invalid NEWS_MIGRATE_SOURCE_STATUSES entry: {token!r}. Expected integers.",
            ) from error
    return tuple(dict.fromkeys(statuses))


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
