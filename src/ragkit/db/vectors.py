"""sqlite-vec virtual table management for a chunk store."""

from __future__ import annotations

import sqlite3
from typing import Sequence

import sqlite_vec

from ragkit.db.migrations import validate_table_name


def vec_table_name(table: str) -> str:
    """Return the vec table name for a chunk table."""
    return f"{table}_vec"


def ensure_vec_table(conn: sqlite3.Connection, table: str, dimensions: int) -> str:
    """Create ``{table}_vec`` if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        table: Chunk table name; the vec table's rowid is the chunk's id.
        dimensions: Embedding vector dimensions (e.g. 384 for all-MiniLM-L6-v2).

    Returns:
        The vec table name.
    """
    validate_table_name(table)
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    name = vec_table_name(table)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {name} USING vec0(embedding float[{dimensions}])"
        )
        conn.commit()

    return name


def serialize_vector(vector: Sequence[float]) -> bytes:
    """Pack a vector as little-endian float32, the sqlite-vec blob format."""
    return sqlite_vec.serialize_float32(list(vector))
