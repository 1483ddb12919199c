"""Tests for the forward-only migration runner."""

from __future__ import annotations

import pytest

from ragkit.db.connection import Database
from ragkit.db.migrations import (
    MIGRATIONS,
    current_version,
    run_migrations,
    validate_table_name,
)
from ragkit.errors import ConfigurationError


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


def _columns(conn, table: str) -> set[str]:
    return {r["name"] for r in conn.execute(f"PRAGMA table_info({table})").fetchall()}


# --- Bootstrap ---

def test_run_migrations_creates_bookkeeping_tables(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    assert _table_exists(conn, "store_info")
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn, "rag_chunks") == MIGRATIONS[-1][0]
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

def test_run_migrations_creates_chunk_tables(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "rag_chunks")
    assert _table_exists(conn, "rag_chunks_metadata")
    assert {"chunk_id", "resource_id", "resource_content_hash", "heading_path"} <= _columns(
        conn, "rag_chunks"
    )
    assert _columns(conn, "rag_chunks_metadata") == {"chunk_id"}
    conn.close()


def test_vec_table_not_migration_managed(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert not _table_exists(conn, "rag_chunks_vec")
    conn.close()


def test_custom_table_prefix_versioned_separately(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn, "rag_chunks")
    run_migrations(conn, "notes")
    assert _table_exists(conn, "notes")
    assert _table_exists(conn, "notes_metadata")
    assert current_version(conn, "notes") == MIGRATIONS[-1][0]
    assert conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == 2 * len(MIGRATIONS)
    conn.close()


def test_current_version_unknown_table(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn, "other") == 0
    conn.close()


# --- Table name validation ---

@pytest.mark.parametrize("bad", ["rag-chunks", "1table", "x; DROP TABLE y", ""])
def test_invalid_table_name_rejected(tmp_path, bad):
    conn = _fresh_conn(tmp_path)
    with pytest.raises(ConfigurationError, match="Invalid table name"):
        run_migrations(conn, bad)
    conn.close()


def test_validate_table_name_returns_name():
    assert validate_table_name("Docs_2") == "Docs_2"
