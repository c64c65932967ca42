from __future__ import annotations

import allure
import pytest

from news_migrate.config import (
    EmbeddingSettings,
    MigrationSettings,
    Settings,
    SourceSettings,
    VectorSettings,
)

pytestmark = [
    allure.epic("Migration"),
    allure.feature("Configuration"),
]

_MONGO_URL = "mongodb://localhost:27017"


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.source.connection_string == ""
    assert settings.source.database_name == "haberdb"
    assert settings.source.collection_name == "posts"
    assert settings.source.statuses == (1,)
    assert settings.database.url == "sqlite:///.news_migrate.db"
    assert settings.vector.url == "http://localhost:6333"
    assert settings.vector.collection_name == "news_embeddings"
    assert settings.vector.vector_size == 1536
    assert settings.embedding.model_name == "text-embedding-3-small"
    assert settings.migration.batch_size == 500
    assert settings.migration.batch_delay_seconds == 0.1
    assert settings.migration.channel_name == "MongoDB Import"
    assert settings.migration.validation_mode == "permissive"


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONGODB_CONNECTION_STRING", f"  {_MONGO_URL}  ")
    monkeypatch.setenv("MONGODB_DATABASE_NAME", "archive")
    monkeypatch.setenv("NEWS_MIGRATE_SOURCE_STATUSES", "1, 2, 1")
    monkeypatch.setenv("QDRANT_URL", "https://qdrant.example:6333")
    monkeypatch.setenv("QDRANT_API_KEY", "secret")
    monkeypatch.setenv("NEWS_MIGRATE_BATCH_SIZE", "50")
    monkeypatch.setenv("NEWS_MIGRATE_VALIDATION_MODE", " Strict ")
    monkeypatch.setenv("NEWS_MIGRATE_WRITE_VECTORS", "no")

    settings = Settings.from_env(database_url="sqlite:///explicit.db")

    assert settings.source.connection_string == _MONGO_URL
    assert settings.source.database_name == "archive"
    assert settings.source.statuses == (1, 2)
    assert settings.database.url == "sqlite:///explicit.db"
    assert settings.vector.url == "https://qdrant.example:6333"
    assert settings.vector.api_key == "secret"
    assert settings.migration.batch_size == 50
    assert settings.migration.validation_mode == "strict"
    assert settings.migration.write_vectors is False


def test_empty_status_list_disables_status_filter(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWS_MIGRATE_SOURCE_STATUSES", " ")

    assert Settings.from_env().source.statuses == ()


def test_invalid_status_entry_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWS_MIGRATE_SOURCE_STATUSES", "1,published")

    with pytest.raises(ValueError, match="Invalid NEWS_MIGRATE_SOURCE_STATUSES entry: 'published'"):
        Settings.from_env()


def test_invalid_boolean_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWS_MIGRATE_WRITE_RELATIONAL", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for NEWS_MIGRATE_WRITE_RELATIONAL"):
        Settings.from_env()


def test_validate_for_run_requires_connection_string() -> None:
    with pytest.raises(ValueError, match="MONGODB_CONNECTION_STRING"):
        Settings().validate_for_run()


def test_validate_for_run_accepts_override_connection_string() -> None:
    Settings().validate_for_run(override_connection_string="mongodb+srv://cluster.example/db")


def test_validate_for_run_rejects_non_mongo_scheme() -> None:
    settings = Settings(source=SourceSettings(connection_string="postgresql://localhost/db"))

    with pytest.raises(ValueError, match="Invalid MongoDB connection string"):
        settings.validate_for_run()


@pytest.mark.parametrize(
    ("migration", "message"),
    [
        (MigrationSettings(batch_size=0), "NEWS_MIGRATE_BATCH_SIZE"),
        (MigrationSettings(record_limit=-1), "NEWS_MIGRATE_RECORD_LIMIT"),
        (MigrationSettings(batch_delay_seconds=-0.5), "NEWS_MIGRATE_BATCH_DELAY_SECONDS"),
        (MigrationSettings(validation_mode="lenient"), "Invalid NEWS_MIGRATE_VALIDATION_MODE"),
        (MigrationSettings(channel_name="  "), "NEWS_MIGRATE_CHANNEL_NAME"),
        (
            MigrationSettings(write_relational=False, write_vectors=False),
            "At least one target is required",
        ),
    ],
)
def test_validate_for_run_rejects_bad_migration_settings(
    migration: MigrationSettings,
    message: str,
) -> None:
    settings = Settings(source=SourceSettings(connection_string=_MONGO_URL), migration=migration)

    with pytest.raises(ValueError, match=message):
        settings.validate_for_run()


def test_validate_for_run_checks_vector_settings_only_when_vectors_enabled() -> None:
    settings = Settings(
        source=SourceSettings(connection_string=_MONGO_URL),
        vector=VectorSettings(url="not a url"),
        migration=MigrationSettings(write_vectors=False),
    )
    settings.validate_for_run()

    settings.migration.write_vectors = True
    with pytest.raises(ValueError, match="Invalid QDRANT_URL"):
        settings.validate_for_run()


def test_validate_for_vectors_accepts_in_memory_location() -> None:
    Settings(vector=VectorSettings(url=":memory:")).validate_for_vectors()


def test_validate_for_vectors_rejects_bad_values() -> None:
    with pytest.raises(ValueError, match="NEWS_MIGRATE_VECTOR_SIZE"):
        Settings(vector=VectorSettings(vector_size=0)).validate_for_vectors()
    with pytest.raises(ValueError, match="NEWS_MIGRATE_VECTOR_COLLECTION"):
        Settings(vector=VectorSettings(collection_name=" ")).validate_for_vectors()


def test_validate_for_vectors_requires_api_key_without_fallback() -> None:
    settings = Settings(embedding=EmbeddingSettings(api_key=None, allow_fallback=False))

    with pytest.raises(ValueError, match="OPENAI_API_KEY is required"):
        settings.validate_for_vectors()

    settings.embedding.api_key = "sk-test"
    settings.validate_for_vectors()
