"""ragkit: local embeddings and a schema-driven SQLite vector store for RAG."""

from ragkit.config import RagConfig, load_config
from ragkit.db.models import (
    IndexProgress,
    IndexResult,
    QueryStats,
    RAGChunk,
    RAGQuery,
    RAGResult,
    RAGStats,
    Resource,
)
from ragkit.errors import (
    ConfigurationError,
    DownloadError,
    PartialIndexError,
    QueryError,
    RagError,
    StorageError,
    ValidationError,
)
from ragkit.metadata.filters import QueryFilters
from ragkit.store.provider import SqliteVecRAGProvider

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DownloadError",
    "IndexProgress",
    "IndexResult",
    "PartialIndexError",
    "QueryError",
    "QueryFilters",
    "QueryStats",
    "RAGChunk",
    "RAGQuery",
    "RAGResult",
    "RAGStats",
    "RagConfig",
    "RagError",
    "Resource",
    "SqliteVecRAGProvider",
    "StorageError",
    "ValidationError",
    "__version__",
    "load_config",
]
