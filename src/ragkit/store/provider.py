"""SQLite + sqlite-vec RAG provider: index resources, query chunks.

Index flow per resource:

    content → hash check → chunker → embed_batch → enrich → serialize → one transaction

Query flow:

    filters → WHERE predicate → embed → KNN / filtered scan → decoded chunks

SQLite work runs synchronously on the event loop thread; the connection is
never shared across threads. Only embedding work is awaited, and no ``await``
happens between deleting and inserting a resource's chunks.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

from ragkit.chunking.base import BaseChunker
from ragkit.chunking.counters import ApproximateTokenCounter, TokenCounter
from ragkit.chunking.enrich import enrich_chunks, generate_content_hash
from ragkit.chunking.tokens import TokenChunker
from ragkit.config import RagConfig
from ragkit.db.connection import Database
from ragkit.db.migrations import run_migrations
from ragkit.db.models import (
    IndexProgress,
    IndexResult,
    QueryStats,
    RAGQuery,
    RAGResult,
    RAGStats,
    Resource,
)
from ragkit.db.repository import ChunkRepository
from ragkit.embedding.base import EmbeddingProvider
from ragkit.embedding.factory import create_embedding_provider
from ragkit.errors import (
    ConfigurationError,
    DownloadError,
    PartialIndexError,
    StorageError,
    ValidationError,
)
from ragkit.metadata.filters import build_where_clause
from ragkit.metadata.schema import DateType, MetadataSchema, unwrap
from ragkit.resources import split_frontmatter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[IndexProgress], None]

# Fatal for the whole batch: the next resource would fail the same way.
_BATCH_FATAL = (ConfigurationError, DownloadError, StorageError)


class SqliteVecRAGProvider:
    """Vector store over one SQLite file.

    Build with ``await SqliteVecRAGProvider.create(config)``; use as an async
    context manager or call ``close()``. After ``close()`` (or ``clear()``)
    every operation raises StorageError.
    """

    def __init__(
        self,
        config: RagConfig,
        embedding_provider: EmbeddingProvider,
        chunker: BaseChunker,
        token_counter: TokenCounter,
    ) -> None:
        self._config = config
        self._embedding = embedding_provider
        self._chunker = chunker
        self._token_counter = token_counter
        self._conn: sqlite3.Connection | None = None
        self._repo: ChunkRepository | None = None

    @classmethod
    async def create(
        cls,
        config: RagConfig | None = None,
        *,
        embedding_provider: EmbeddingProvider | None = None,
        chunker: BaseChunker | None = None,
        token_counter: TokenCounter | None = None,
    ) -> SqliteVecRAGProvider:
        """Open (or create) the store described by *config*.

        Args:
            config: Store, chunking and metadata settings (defaults if None).
            embedding_provider: Overrides ``config.embedding``.
            chunker: Overrides the default TokenChunker.
            token_counter: Used for chunk ``token_count`` and the default chunker.

        Raises:
            ConfigurationError: The store was built with a different model.
            StorageError: The database cannot be opened.
        """
        config = config or RagConfig()
        counter = token_counter or ApproximateTokenCounter()
        provider = cls(
            config,
            embedding_provider or create_embedding_provider(config.embedding),
            chunker
            or TokenChunker(
                target_chunk_size=config.chunking.target_chunk_size,
                padding_factor=config.chunking.padding_factor,
                model_token_limit=config.chunking.model_token_limit,
                token_counter=counter,
            ),
            counter,
        )
        provider._open()
        return provider

    def _open(self) -> None:
        store = self._config.store
        conn = Database(store.db_path, readonly=store.readonly).connect()
        try:
            if not store.readonly:
                run_migrations(conn, store.table_name)
            repo = ChunkRepository(conn, store.table_name, self._config.metadata)
            if repo.exists():
                repo.ensure_embedding_model(
                    self._embedding.model, self._embedding.dimensions, readonly=store.readonly
                )
                if not store.readonly:
                    repo.ensure_metadata_table()
        except sqlite3.Error as exc:
            conn.close()
            raise StorageError(f"Cannot initialise store at {store.db_path}: {exc}") from exc
        except Exception:
            conn.close()
            raise
        self._conn = conn
        self._repo = repo
        logger.debug("Opened store %s (table %s)", store.db_path, store.table_name)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def readonly(self) -> bool:
        return self._config.store.readonly

    @property
    def schema(self) -> MetadataSchema:
        return self._config.metadata

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        return self._embedding

    @property
    def db_path(self) -> Path:
        return Path(self._config.store.db_path)

    def _require_open(self) -> ChunkRepository:
        if self._repo is None:
            raise StorageError("Provider is closed")
        return self._repo

    def _require_writable(self, operation: str) -> ChunkRepository:
        repo = self._require_open()
        if self.readonly:
            raise StorageError(f"Cannot {operation} in readonly mode")
        return repo

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def index_resources(
        self,
        resources: Sequence[Resource],
        on_progress: ProgressCallback | None = None,
    ) -> IndexResult:
        """Index *resources*, skipping those whose content hash is unchanged.

        A failure on one resource is recorded in ``IndexResult.errors`` and the
        batch continues. Configuration, download and storage errors abort it.
        """
        self._require_writable("index")
        start = time.perf_counter()
        result = IndexResult()
        total = len(resources)

        for done, resource in enumerate(resources, start=1):
            try:
                status = await self._index_resource(resource, result)
            except _BATCH_FATAL:
                raise
            except Exception as exc:
                failure = PartialIndexError(resource.id, exc)
                logger.warning("Failed to index %s", failure)
                result.errors.append({"resource_id": failure.resource_id, "error": str(exc)})
                status = "failed"
            else:
                logger.info("%s %s", status.capitalize(), resource.id)
            if on_progress is not None:
                on_progress(
                    IndexProgress(
                        resource_id=resource.id,
                        status=status,
                        resources_done=done,
                        resources_total=total,
                    )
                )

        result.duration_ms = int((time.perf_counter() - start) * 1000)
        return result

    async def _index_resource(self, resource: Resource, result: IndexResult) -> str:
        content = await self._read_content(resource)
        content_hash = resource.content_hash or generate_content_hash(content)

        repo = self._require_open()
        stored_hash = repo.get_resource_content_hash(resource.id)
        if stored_hash == content_hash:
            result.resources_skipped += 1
            return "skipped"

        raw_chunks = self._chunker.chunk(content)
        texts = [c.content for c in raw_chunks]
        embeddings = await self._embedding.embed_batch(texts) if texts else []
        self._check_dimensions(embeddings, resource.id)

        chunks = enrich_chunks(
            raw_chunks,
            resource,
            embeddings,
            self._embedding.model,
            metadata=_frontmatter_metadata(resource.frontmatter, self.schema),
            token_counter=self._token_counter,
        )

        # The provider may have been closed while embeddings were awaited.
        repo = self._require_open()
        try:
            deleted = repo.replace_resource_chunks(resource.id, chunks, content_hash)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Duplicate chunk key for '{resource.id}': {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write chunks for '{resource.id}': {exc}") from exc

        result.resources_indexed += 1
        result.chunks_created += len(chunks)
        result.chunks_deleted += deleted
        if stored_hash is not None:
            result.resources_updated += 1
            return "updated"
        return "indexed"

    async def _read_content(self, resource: Resource) -> str:
        if resource.content is not None:
            return resource.content
        text = await asyncio.to_thread(Path(resource.file_path).read_text, encoding="utf-8")
        _, body = split_frontmatter(text)
        return body

    def _check_dimensions(self, embeddings: Sequence[Sequence[float]], resource_id: str) -> None:
        expected = self._embedding.dimensions
        for i, vector in enumerate(embeddings):
            if len(vector) != expected:
                raise ValidationError(
                    f"Embedding {i} of '{resource_id}' has {len(vector)} dimensions, "
                    f"expected {expected}"
                )

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def query(self, query: RAGQuery) -> RAGResult:
        """Return the chunks nearest to ``query.text`` that match its filters.

        Raises:
            QueryError: Filters reference fields outside the metadata schema,
                or values of the wrong type. Raised before any embedding or
                storage work.
        """
        self._require_open()
        start = time.perf_counter()
        where = build_where_clause(query.filters, self.schema)

        chunks = []
        repo = self._require_open()
        if repo.exists():
            vector = await self._embedding.embed(query.text)
            self._check_dimensions([vector], "query")
            repo = self._require_open()
            try:
                chunks = repo.search(vector, query.limit, where)
            except sqlite3.Error as exc:
                raise StorageError(f"Search failed: {exc}") from exc

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(
            "Query returned %d chunks in %d ms (filter: %s)", len(chunks), duration_ms, where
        )
        return RAGResult(
            chunks=chunks,
            stats=QueryStats(
                total_matches=len(chunks),
                search_duration_ms=duration_ms,
                embedding_model=self._embedding.model,
            ),
        )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def get_stats(self) -> RAGStats:
        repo = self._require_open()
        if not repo.exists():
            return RAGStats(
                total_chunks=0,
                total_resources=0,
                embedding_model=self._embedding.model,
                db_size_bytes=repo.db_size_bytes(),
                last_indexed=None,
            )
        return RAGStats(
            total_chunks=repo.count_chunks(),
            total_resources=repo.count_resources(),
            embedding_model=repo.get_info("embedding_model") or self._embedding.model,
            db_size_bytes=repo.db_size_bytes(),
            last_indexed=repo.last_indexed(),
        )

    async def delete_resource(self, resource_id: str) -> int:
        """Delete one resource's chunks atomically. Returns the count removed."""
        repo = self._require_writable("delete")
        try:
            deleted = repo.delete_resource(resource_id)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete '{resource_id}': {exc}") from exc
        logger.info("Deleted %s (%d chunks)", resource_id, deleted)
        return deleted

    async def clear(self) -> None:
        """Drop every table of this store, close, and delete the database file.

        The provider is closed afterwards.
        """
        repo = self._require_writable("clear")
        try:
            repo.drop_all()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to clear store: {exc}") from exc
        await self.close()
        for suffix in ("", "-wal", "-shm"):
            path = Path(f"{self.db_path}{suffix}")
            path.unlink(missing_ok=True)
        logger.info("Cleared store %s", self.db_path)

    async def close(self) -> None:
        """Release the connection and the embedding provider. Idempotent."""
        conn, self._conn, self._repo = self._conn, None, None
        if conn is not None:
            conn.close()
            await self._embedding.close()

    async def __aenter__(self) -> SqliteVecRAGProvider:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _frontmatter_metadata(frontmatter: dict[str, Any], schema: MetadataSchema) -> dict[str, Any]:
    """Pick schema fields out of *frontmatter*.

    YAML parses bare dates (``2024-01-31``) as ``date``; date fields accept
    them as midnight UTC.
    """
    metadata: dict[str, Any] = {}
    for field, field_type in schema.items():
        if field not in frontmatter:
            continue
        value = frontmatter[field]
        if isinstance(unwrap(field_type), DateType) and type(value) is date:
            value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        metadata[field] = value
    return metadata
