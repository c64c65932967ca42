"""Embedding backends with a deterministic offline fallback."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from news_migrate.config import EmbeddingSettings

logger = logging.getLogger(__name__)

Vector = list[float]
_WORD_RE = re.compile(r"\w+", re.UNICODE)
_SENTENCE_TRANSFORMER_PREFIXES = ("intfloat/", "sentence-transformers/")
HASHING_MODEL_NAME = "hashing"


class EmbeddingError(RuntimeError):
    """Primary embedding backend failed or returned unusable vectors."""


class Embedder(Protocol):
    """Embedding backend interface."""

    model_name: str

    def embed(self, texts: list[str]) -> list[Vector]:
        """Encode texts into vectors of the configured dimensionality."""
        raise NotImplementedError


def build_embedding_text(title: str, content: str, *, max_content_chars: int = 1_000) -> str:
    """Text sent to the embedding model: title plus a bounded content prefix."""

    return f"{title}\n\n{content[:max_content_chars]}"


@dataclass(slots=True)
class HashingEmbedder:
    """Offline embedder scattering hashed word frequencies across the vector."""

    model_name: str = HASHING_MODEL_NAME
    dimensions: int = 1536
    positions_per_word: int = 3
    fill_dimensions: int = 10

    def embed(self, texts: list[str]) -> list[Vector]:
        return [self._embed_single(text) for text in texts]

    def _embed_single(self, text: str) -> Vector:
        vector = [0.0] * self.dimensions
        normalized = (text or "").lower().strip()
        if not normalized:
            return vector

        words = _WORD_RE.findall(normalized)
        frequencies: dict[str, int] = {}
        for word in words:
            frequencies[word] = frequencies.get(word, 0) + 1

        total = len(words)
        for word, count in sorted(frequencies.items()):
            frequency = count / total
            digest = hashlib.sha1(word.encode("utf-8"), usedforsecurity=False).digest()  # noqa: S324
            for slot in range(self.positions_per_word):
                chunk = digest[slot * 4 : slot * 4 + 4]
                position = int.from_bytes(chunk, byteorder="little") % self.dimensions
                vector[position] += frequency * (1.0 + 0.1 * math.cos(position))

        diversity = len(set(normalized)) / len(normalized)
        length_factor = math.log1p(len(normalized))
        for index in range(min(self.fill_dimensions, self.dimensions)):
            if vector[index] == 0.0:
                vector[index] = 0.01 * (diversity + length_factor / (index + 1))

        norm = math.sqrt(sum(value * value for value in vector))
        if norm > 0:
            vector = [value / norm for value in vector]
        return vector


@dataclass(slots=True)
class OpenAIEmbedder:
    """OpenAI embeddings API backend."""

    model_name: str
    dimensions: int
    api_key: str | None = None
    timeout_seconds: float = 30.0
    max_retries: int = 2
    _client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        from openai import OpenAI

        self._client = OpenAI(
            api_key=self.api_key,
            timeout=httpx.Timeout(self.timeout_seconds, connect=10.0),
            max_retries=self.max_retries,
        )

    def embed(self, texts: list[str]) -> list[Vector]:
        if not texts:
            return []
        request: dict[str, Any] = {
            "model": self.model_name,
            "input": texts,
            "encoding_format": "float",
        }
        if self.model_name.startswith("text-embedding-3"):
            request["dimensions"] = self.dimensions
        response = self._client.embeddings.create(**request)
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


@dataclass(slots=True)
class SentenceTransformerEmbedder:
    """Sentence-transformers backend with lazy import."""

    model_name: str
    _model: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        from sentence_transformers import SentenceTransformer  # type: ignore

        self._model = SentenceTransformer(self.model_name)

    def embed(self, texts: list[str]) -> list[Vector]:
        prefixed = [f"passage: {text}" for text in texts]
        vectors = self._model.encode(prefixed, normalize_embeddings=True)
        return [vector.tolist() for vector in vectors]


@dataclass(slots=True)
class ResilientEmbedder:
    """Primary backend guarded by the hashing fallback; never raises on backend failure."""

    dimensions: int
    primary: Embedder | None = None
    fallback: HashingEmbedder = field(init=False)

    def __post_init__(self) -> None:
        self.fallback = HashingEmbedder(dimensions=self.dimensions)

    @property
    def model_name(self) -> str:
        if self.primary is None:
            return self.fallback.model_name
        return self.primary.model_name

    def embed(self, texts: list[str]) -> list[Vector]:
        if not texts:
            return []
        if self.primary is None:
            return self.fallback.embed(texts)
        try:
            vectors = self.primary.embed(texts)
            self._check_vectors(vectors, expected=len(texts))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Embedding model %s failed, using hashing fallback for %d text(s): %s",
                self.primary.model_name,
                len(texts),
                exc,
            )
            return self.fallback.embed(texts)
        return vectors

    def embed_one(self, text: str) -> Vector:
        return self.embed([text])[0]

    def _check_vectors(self, vectors: list[Vector], *, expected: int) -> None:
        if len(vectors) != expected:
            raise EmbeddingError(f"Expected {expected} embeddings, got {len(vectors)}")
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding size {len(vector)} does not match vector size {self.dimensions}",
                )


def build_embedder(settings: EmbeddingSettings, *, dimensions: int) -> ResilientEmbedder:
    """Build the configured embedder.

    The hashing fallback is always attached; `allow_fallback=False` only forbids starting
    without a working primary backend.
    """

    model_name = settings.model_name
    if model_name == HASHING_MODEL_NAME:
        return ResilientEmbedder(dimensions=dimensions)

    if model_name.startswith(_SENTENCE_TRANSFORMER_PREFIXES):
        try:
            primary: Embedder = SentenceTransformerEmbedder(model_name=model_name)
        except (ImportError, ModuleNotFoundError, OSError, RuntimeError, ValueError) as error:
            if settings.allow_fallback:
                logger.warning("Embedding model %s unavailable: %s", model_name, error)
                return ResilientEmbedder(dimensions=dimensions)
            raise RuntimeError(
                f"Failed to initialize embedding model {model_name}. "
                "Install sentence-transformers or set "
                "NEWS_MIGRATE_EMBEDDING_ALLOW_FALLBACK=true.",
            ) from error
        return ResilientEmbedder(dimensions=dimensions, primary=primary)

    if not settings.api_key:
        if settings.allow_fallback:
            logger.warning("OPENAI_API_KEY is not set; embeddings use the hashing fallback.")
            return ResilientEmbedder(dimensions=dimensions)
        raise RuntimeError(f"OPENAI_API_KEY is required for embedding model {model_name}.")

    return ResilientEmbedder(
        dimensions=dimensions,
        primary=OpenAIEmbedder(
            model_name=model_name,
            dimensions=dimensions,
            api_key=settings.api_key,
            timeout_seconds=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
        ),
    )
