"""Domain models for the ragkit store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from ragkit.metadata.filters import QueryFilters


@dataclass
class Resource:
    """A document to index.

    ``content_hash`` drives reindex avoidance: when it matches the hash stored
    with the resource's chunks, the resource is skipped. When ``content`` is
    None the provider reads ``file_path`` itself.
    """

    id: str
    file_path: str
    content_hash: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict)
    modified_at: datetime | None = None
    size_bytes: int = 0
    estimated_token_count: int = 0
    content: str | None = None


@dataclass
class RAGChunk:
    chunk_id: str
    resource_id: str
    content: str
    content_hash: str
    token_count: int
    chunk_index: int
    total_chunks: int
    embedding_model: str
    embedded_at: datetime
    embedding: list[float] = field(default_factory=list)
    file_path: str = ""
    heading_path: str | None = None
    start_line: int | None = None
    end_line: int | None = None
    previous_chunk_id: str | None = None
    next_chunk_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    distance: float | None = None  # set on query results
    score: float | None = None  # 1 / (1 + distance)
    rowid: int | None = None  # set after insert


@dataclass
class IndexResult:
    resources_indexed: int = 0
    resources_skipped: int = 0
    resources_updated: int = 0
    chunks_created: int = 0
    chunks_deleted: int = 0
    duration_ms: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)  # {resource_id, error}


@dataclass
class IndexProgress:
    """Reported to ``on_progress`` after each resource."""

    resource_id: str
    status: str  # "indexed" | "updated" | "skipped" | "failed"
    resources_done: int
    resources_total: int


@dataclass
class RAGQuery:
    text: str
    filters: QueryFilters | Mapping[str, Any] | None = None
    limit: int = 10


@dataclass
class QueryStats:
    total_matches: int
    search_duration_ms: int
    embedding_model: str


@dataclass
class RAGResult:
    chunks: list[RAGChunk]
    stats: QueryStats


@dataclass
class RAGStats:
    total_chunks: int
    total_resources: int
    embedding_model: str
    db_size_bytes: int
    last_indexed: datetime | None = None
