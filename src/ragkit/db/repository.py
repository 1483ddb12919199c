"""Repository for one chunk store: core rows, metadata columns, vectors.

Three tables share a prefix ``T``:

- ``T``           core chunk columns; ``id`` aliases rowid
- ``T_metadata``  ``chunk_id`` plus one column per metadata schema field
- ``T_vec``       sqlite-vec ``vec0`` table keyed by ``T.id``

Search queries alias them as ``chunks`` and ``metadata`` so predicates from
ragkit.metadata.filters can be pushed straight into SQL.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Sequence

import numpy as np

from ragkit.db.migrations import DEFAULT_TABLE_NAME, validate_table_name
from ragkit.db.models import RAGChunk
from ragkit.db.vectors import ensure_vec_table, serialize_vector, vec_table_name
from ragkit.errors import ConfigurationError, QueryError, ValidationError
from ragkit.metadata.codec import (
    SENTINEL_NUMBER,
    SENTINEL_STRING,
    datetime_to_millis,
    deserialize_metadata,
    millis_to_datetime,
    sentinel_for,
    serialize_metadata,
)
from ragkit.metadata.schema import MetadataSchema, column_type, quote_identifier, storage_name

logger = logging.getLogger(__name__)

_CORE_COLUMNS = (
    "id",
    "chunk_id",
    "resource_id",
    "chunk_index",
    "total_chunks",
    "content",
    "content_hash",
    "resource_content_hash",
    "token_count",
    "file_path",
    "heading_path",
    "start_line",
    "end_line",
    "embedding_model",
    "embedded_at",
    "previous_chunk_id",
    "next_chunk_id",
)

# Metadata columns are selected as m_<column> so they never clash with core names.
_META_PREFIX = "m_"


class ChunkRepository:
    """Data access layer for a chunk store.

    Wraps an open sqlite3.Connection (owned by the caller) with migrations
    already applied for *table*. Writes that must be atomic run inside a
    single ``with conn:`` transaction.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        table: str = DEFAULT_TABLE_NAME,
        schema: MetadataSchema | None = None,
    ) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded.
            table: Table prefix of the store.
            schema: Metadata schema; drives the ``T_metadata`` columns.
        """
        self._conn = conn
        self.table = validate_table_name(table)
        self.metadata_table = f"{table}_metadata"
        self.vec_table = vec_table_name(table)
        self.schema: MetadataSchema = dict(schema or {})

    # ------------------------------------------------------------------
    # Store info
    # ------------------------------------------------------------------

    def get_info(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM store_info WHERE table_name = ? AND key = ?",
            (self.table, key),
        ).fetchone()
        return row["value"] if row else None

    def set_info(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO store_info (table_name, key, value) VALUES (?, ?, ?)
            ON CONFLICT(table_name, key) DO UPDATE SET value = excluded.value
            """,
            (self.table, key, value),
        )
        self._conn.commit()

    def ensure_embedding_model(self, model: str, dimensions: int, *, readonly: bool = False) -> None:
        """Record the store's embedding model, or check it against the recorded one.

        Raises:
            ConfigurationError: The store was built with a different model or
                dimension count. Vectors from different models are not comparable.
        """
        stored_model = self.get_info("embedding_model")
        stored_dims = self.get_info("dimensions")

        if stored_model is None:
            if readonly:
                return
            self.set_info("embedding_model", model)
            self.set_info("dimensions", str(dimensions))
        elif stored_model != model or int(stored_dims or 0) != dimensions:
            raise ConfigurationError(
                f"Store '{self.table}' was built with {stored_model} ({stored_dims} dims); "
                f"current provider is {model} ({dimensions} dims). "
                "Clear the store or configure the original model."
            )

        if not readonly:
            ensure_vec_table(self._conn, self.table, dimensions)

    # ------------------------------------------------------------------
    # Metadata columns
    # ------------------------------------------------------------------

    def metadata_columns(self) -> list[str]:
        rows = self._conn.execute(f"PRAGMA table_info({self.metadata_table})").fetchall()
        return [r["name"] for r in rows if r["name"] != "chunk_id"]

    def ensure_metadata_table(self) -> list[str]:
        """Add a column for every schema field the metadata table lacks.

        Existing rows get the field's sentinel. Returns the added column names.
        """
        existing = set(self.metadata_columns())
        added: list[str] = []
        for field, field_type in self.schema.items():
            column = storage_name(field)
            if column in existing:
                continue
            default = sentinel_for(field_type)
            default_sql = f"'{default}'" if isinstance(default, str) else str(default)
            self._conn.execute(
                f"ALTER TABLE {self.metadata_table} "
                f"ADD COLUMN {quote_identifier(column)} {column_type(field_type)} "
                f"NOT NULL DEFAULT {default_sql}"
            )
            added.append(column)
        if added:
            self._conn.commit()
            logger.info("Added metadata columns to %s: %s", self.metadata_table, ", ".join(added))
        return added

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def get_resource_content_hash(self, resource_id: str) -> str | None:
        """Return the resource hash stored with *resource_id*'s chunks, if any."""
        row = self._conn.execute(
            f"SELECT resource_content_hash FROM {self.table} WHERE resource_id = ? LIMIT 1",
            (resource_id,),
        ).fetchone()
        return row["resource_content_hash"] if row else None

    def count_resource_chunks(self, resource_id: str) -> int:
        return self._conn.execute(
            f"SELECT COUNT(*) FROM {self.table} WHERE resource_id = ?", (resource_id,)
        ).fetchone()[0]

    def replace_resource_chunks(
        self,
        resource_id: str,
        chunks: Sequence[RAGChunk],
        resource_content_hash: str,
    ) -> int:
        """Atomically swap *resource_id*'s chunks for *chunks*.

        Rows are encoded before the transaction opens, so a ValidationError
        leaves the stored chunks untouched. Delete and insert share one
        transaction; readers never see a half-replaced resource.

        Returns:
            Number of chunks deleted.
        """
        encoded = [self._encode(chunk, resource_content_hash) for chunk in chunks]
        with self._conn:
            deleted = self._delete_resource(resource_id)
            for core, vector, meta in encoded:
                self._insert(core, vector, meta)
        return deleted

    def delete_resource(self, resource_id: str) -> int:
        """Delete all chunks, vectors and metadata rows of *resource_id*."""
        with self._conn:
            return self._delete_resource(resource_id)

    def _delete_resource(self, resource_id: str) -> int:
        rows = self._conn.execute(
            f"SELECT id, chunk_id FROM {self.table} WHERE resource_id = ?", (resource_id,)
        ).fetchall()
        if not rows:
            return 0
        ids = [r["id"] for r in rows]
        chunk_ids = [r["chunk_id"] for r in rows]
        id_marks = ",".join("?" * len(ids))
        if self._has_vec_table():
            self._conn.execute(f"DELETE FROM {self.vec_table} WHERE rowid IN ({id_marks})", ids)
        self._conn.execute(
            f"DELETE FROM {self.metadata_table} WHERE chunk_id IN ({id_marks})", chunk_ids
        )
        self._conn.execute(f"DELETE FROM {self.table} WHERE resource_id = ?", (resource_id,))
        return len(rows)

    def _encode(
        self, chunk: RAGChunk, resource_content_hash: str
    ) -> tuple[dict[str, Any], bytes, dict[str, Any]]:
        core = {
            "chunk_id": chunk.chunk_id,
            "resource_id": chunk.resource_id,
            "chunk_index": chunk.chunk_index,
            "total_chunks": chunk.total_chunks,
            "content": chunk.content,
            "content_hash": chunk.content_hash,
            "resource_content_hash": resource_content_hash,
            "token_count": chunk.token_count,
            "file_path": chunk.file_path,
            "heading_path": _or_sentinel(chunk.heading_path, SENTINEL_STRING),
            "start_line": _or_sentinel(chunk.start_line, SENTINEL_NUMBER),
            "end_line": _or_sentinel(chunk.end_line, SENTINEL_NUMBER),
            "embedding_model": chunk.embedding_model,
            "embedded_at": datetime_to_millis(chunk.embedded_at),
            "previous_chunk_id": _or_sentinel(chunk.previous_chunk_id, SENTINEL_STRING),
            "next_chunk_id": _or_sentinel(chunk.next_chunk_id, SENTINEL_STRING),
        }
        if not chunk.embedding:
            raise ValidationError(f"Chunk '{chunk.chunk_id}' has no embedding")
        meta = serialize_metadata(chunk.metadata, self.schema)
        return core, serialize_vector(chunk.embedding), meta

    def _insert(self, core: dict[str, Any], vector: bytes, meta: dict[str, Any]) -> int:
        columns = ", ".join(core)
        marks = ", ".join("?" * len(core))
        cur = self._conn.execute(
            f"INSERT INTO {self.table} ({columns}) VALUES ({marks})", tuple(core.values())
        )
        rowid = cur.lastrowid
        self._conn.execute(
            f"INSERT INTO {self.vec_table}(rowid, embedding) VALUES (?, ?)", (rowid, vector)
        )
        meta_columns = ", ".join(["chunk_id", *(quote_identifier(c) for c in meta)])
        meta_marks = ", ".join("?" * (len(meta) + 1))
        self._conn.execute(
            f"INSERT INTO {self.metadata_table} ({meta_columns}) VALUES ({meta_marks})",
            (core["chunk_id"], *meta.values()),
        )
        return rowid

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search(
        self,
        embedding: Sequence[float],
        limit: int = 10,
        where: str | None = None,
        *,
        include_embeddings: bool = False,
    ) -> list[RAGChunk]:
        """Nearest chunks to *embedding*, ordered by ascending L2 distance.

        Without *where* this is a vec0 KNN query. With *where* it is an exact
        scan computing ``vec_distance_l2`` over rows matching the predicate,
        which keeps the limit exact under filtering.
        """
        if limit < 1:
            raise QueryError(f"limit must be >= 1, got {limit}")
        if not self._has_vec_table():
            return []

        select = self._select_list(include_embeddings)
        meta_join = (
            f"LEFT JOIN {self.metadata_table} AS metadata ON metadata.chunk_id = chunks.chunk_id"
        )
        blob = serialize_vector(embedding)

        if where is None:
            sql = (
                f"WITH v AS ("
                f"SELECT rowid AS vec_rowid, distance, embedding FROM {self.vec_table} "
                f"WHERE embedding MATCH ? AND k = ?) "
                f"SELECT {select}, v.distance AS distance FROM v "
                f"JOIN {self.table} AS chunks ON chunks.id = v.vec_rowid {meta_join} "
                f"ORDER BY v.distance"
            )
            params: tuple[Any, ...] = (blob, limit)
        else:
            sql = (
                f"SELECT {select}, vec_distance_l2(v.embedding, ?) AS distance "
                f"FROM {self.vec_table} AS v "
                f"JOIN {self.table} AS chunks ON chunks.id = v.rowid {meta_join} "
                f"WHERE {where} ORDER BY distance LIMIT ?"
            )
            params = (blob, limit)

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            raise QueryError(f"Search failed: {exc}") from exc
        return [self._row_to_chunk(r, include_embeddings) for r in rows]

    def _select_list(self, include_embeddings: bool) -> str:
        parts = [f"chunks.{c} AS {c}" for c in _CORE_COLUMNS]
        parts += [
            f"metadata.{quote_identifier(c)} AS {_META_PREFIX}{c}" for c in self.metadata_columns()
        ]
        if include_embeddings:
            parts.append("v.embedding AS embedding")
        return ", ".join(parts)

    def _row_to_chunk(self, row: sqlite3.Row, include_embeddings: bool) -> RAGChunk:
        meta_row = {
            key[len(_META_PREFIX):]: row[key] for key in row.keys() if key.startswith(_META_PREFIX)
        }
        distance = float(row["distance"])
        return RAGChunk(
            rowid=row["id"],
            chunk_id=row["chunk_id"],
            resource_id=row["resource_id"],
            content=row["content"],
            content_hash=row["content_hash"],
            token_count=row["token_count"],
            chunk_index=row["chunk_index"],
            total_chunks=row["total_chunks"],
            embedding_model=row["embedding_model"],
            embedded_at=millis_to_datetime(row["embedded_at"]),
            embedding=_decode_vector(row["embedding"]) if include_embeddings else [],
            file_path=row["file_path"],
            heading_path=_from_sentinel(row["heading_path"], SENTINEL_STRING),
            start_line=_from_sentinel(row["start_line"], SENTINEL_NUMBER),
            end_line=_from_sentinel(row["end_line"], SENTINEL_NUMBER),
            previous_chunk_id=_from_sentinel(row["previous_chunk_id"], SENTINEL_STRING),
            next_chunk_id=_from_sentinel(row["next_chunk_id"], SENTINEL_STRING),
            metadata=deserialize_metadata(meta_row, self.schema),
            distance=distance,
            score=1.0 / (1.0 + distance),
        )

    # ------------------------------------------------------------------
    # Stats & lifecycle
    # ------------------------------------------------------------------

    def count_chunks(self) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]

    def count_resources(self) -> int:
        return self._conn.execute(
            f"SELECT COUNT(DISTINCT resource_id) FROM {self.table}"
        ).fetchone()[0]

    def last_indexed(self) -> datetime | None:
        row = self._conn.execute(f"SELECT MAX(embedded_at) FROM {self.table}").fetchone()
        return millis_to_datetime(row[0]) if row[0] is not None else None

    def db_size_bytes(self) -> int:
        page_count = self._conn.execute("PRAGMA page_count").fetchone()[0]
        page_size = self._conn.execute("PRAGMA page_size").fetchone()[0]
        return page_count * page_size

    def drop_all(self) -> None:
        """Drop the store's tables and bookkeeping rows."""
        with self._conn:
            self._conn.execute(f"DROP TABLE IF EXISTS {self.vec_table}")
            self._conn.execute(f"DROP TABLE IF EXISTS {self.metadata_table}")
            self._conn.execute(f"DROP TABLE IF EXISTS {self.table}")
            self._conn.execute("DELETE FROM store_info WHERE table_name = ?", (self.table,))
            self._conn.execute("DELETE FROM schema_version WHERE table_name = ?", (self.table,))

    def exists(self) -> bool:
        """True once migrations have created the store's core table."""
        return self._table_exists(self.table)

    def _has_vec_table(self) -> bool:
        return self._table_exists(self.vec_table)

    def _table_exists(self, name: str) -> bool:
        return (
            self._conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?", (name,)
            ).fetchone()
            is not None
        )


# ------------------------------------------------------------------
# Row helpers
# ------------------------------------------------------------------

def _or_sentinel(value: Any, sentinel: str | int) -> Any:
    return sentinel if value is None else value


def _from_sentinel(value: Any, sentinel: str | int) -> Any:
    return None if value is None or value == sentinel else value


def _decode_vector(blob: bytes | None) -> list[float]:
    if blob is None:
        return []
    return np.frombuffer(blob, dtype=np.float32).tolist()
