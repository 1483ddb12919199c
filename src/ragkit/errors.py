"""Exception hierarchy for ragkit.

Recoverable conditions (one resource failing to index, a cold model cache)
are absorbed by the caller and surfaced in structured results; everything
else propagates.
"""

from __future__ import annotations


class RagError(Exception):
    """Base class for all ragkit errors."""


class ConfigurationError(RagError):
    """Missing runtime dependency, invalid config value, or model mismatch.

    Fatal: never retried.
    """


class DownloadError(RagError):
    """Network failure while fetching model assets."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to download {url}: {reason}")
        self.url = url
        self.reason = reason


class ValidationError(RagError):
    """A record violates its schema (metadata type, embedding dimensions)."""


class PartialIndexError(RagError):
    """Indexing a single resource failed; the batch continues."""

    def __init__(self, resource_id: str, cause: BaseException | str) -> None:
        super().__init__(f"{resource_id}: {cause}")
        self.resource_id = resource_id
        self.cause = cause


class StorageError(RagError):
    """SQLite read/write failure, closed handle, or write in readonly mode."""


class QueryError(RagError):
    """Filter does not match the metadata schema."""
