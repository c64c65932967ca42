"""Common source reader contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from news_migrate.etl.models import DateRange, SourceRecord


@dataclass(slots=True)
class SourceError(Exception):
    """Base source read error."""

    message: str
    code: str = "source_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class SourceConnectionError(SourceError):
    """Source store is unreachable or refused the connection."""

    code: str = "source_unavailable"


@dataclass(slots=True)
class SourceFetchError(SourceError):
    """Reading the next batch failed; fatal to the running job."""

    code: str = "source_fetch_failed"
    from_cursor: str | None = None


class SourceReader(Protocol):
    """Interface for paginated, cursor-resumable record sources."""

    name: str

    def count(self, date_range: DateRange | None = None) -> int:
        """Count records eligible for migration."""
        raise NotImplementedError

    def fetch_batch(
        self,
        limit: int,
        from_cursor: str | None = None,
        date_range: DateRange | None = None,
    ) -> list[SourceRecord]:
        """Fetch records with identifier strictly greater than the cursor, ascending."""
        raise NotImplementedError


@runtime_checkable
class ConnectableSourceReader(Protocol):
    """Optional connection lifecycle for stateful source readers."""

    def connect(self) -> None:
        raise NotImplementedError

    def health_check(self) -> bool:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError
