"""Forward-only migration runner for a chunk store's tables.

Every store lives under a table prefix (default ``rag_chunks``), so migration
SQL is a template formatted with ``{table}``. Versions are tracked per prefix
in ``schema_version``.

The vec table (``{table}_vec``) and the metadata columns are NOT
migration-managed: their shape depends on the embedding dimensions and the
metadata schema. See ensure_vec_table() and ChunkRepository.ensure_metadata_table().
"""

from __future__ import annotations

import re
import sqlite3

from ragkit.errors import ConfigurationError

DEFAULT_TABLE_NAME = "rag_chunks"

_TABLE_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# schema_version and store_info are the bootstrap tables, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    table_name  TEXT NOT NULL,
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_CREATE_STORE_INFO = """
CREATE TABLE IF NOT EXISTS store_info (
    table_name  TEXT NOT NULL,
    key         TEXT NOT NULL,
    value       TEXT NOT NULL,
    PRIMARY KEY (table_name, key)
)
"""

# id aliases rowid so vec rows stay keyed to their chunk across VACUUM.
_V1_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id                      INTEGER PRIMARY KEY,
    chunk_id                TEXT NOT NULL UNIQUE,
    resource_id             TEXT NOT NULL,
    chunk_index             INTEGER NOT NULL,
    total_chunks            INTEGER NOT NULL,
    content                 TEXT NOT NULL,
    content_hash            TEXT NOT NULL,
    resource_content_hash   TEXT NOT NULL,
    token_count             INTEGER NOT NULL,
    file_path               TEXT NOT NULL DEFAULT '',
    heading_path            TEXT NOT NULL DEFAULT '',
    start_line              INTEGER NOT NULL DEFAULT -1,
    end_line                INTEGER NOT NULL DEFAULT -1,
    embedding_model         TEXT NOT NULL,
    embedded_at             INTEGER NOT NULL,
    previous_chunk_id       TEXT NOT NULL DEFAULT '',
    next_chunk_id           TEXT NOT NULL DEFAULT '',
    UNIQUE (resource_id, chunk_index)
);

CREATE TABLE IF NOT EXISTS {table}_metadata (
    chunk_id    TEXT PRIMARY KEY
);
"""

# Append-only. Each entry: (version: int, sql template: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def validate_table_name(table: str) -> str:
    """Return *table* unchanged if it is a plain SQL identifier."""
    if not _TABLE_NAME_RE.fullmatch(table):
        raise ConfigurationError(
            f"Invalid table name '{table}': use letters, digits and underscores."
        )
    return table


def current_version(conn: sqlite3.Connection, table: str) -> int:
    row = conn.execute(
        "SELECT MAX(version) FROM schema_version WHERE table_name = ?", (table,)
    ).fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection, table: str = DEFAULT_TABLE_NAME) -> None:
    """Apply all pending migrations for *table* in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    validate_table_name(table)
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.execute(_CREATE_STORE_INFO)
    conn.commit()

    current = current_version(conn, table)
    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql.format(table=table))
            conn.execute(
                "INSERT INTO schema_version (table_name, version) VALUES (?, ?)",
                (table, version),
            )
            conn.commit()
