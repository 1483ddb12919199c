"""Vector store providers."""

from ragkit.store.provider import SqliteVecRAGProvider

__all__ = ["SqliteVecRAGProvider"]
