"""Tests for sqlite-vec virtual table management."""

from __future__ import annotations

import struct

import pytest

from ragkit.db.vectors import ensure_vec_table, serialize_vector, vec_table_name
from ragkit.errors import ConfigurationError


def test_vec_table_name():
    assert vec_table_name("rag_chunks") == "rag_chunks_vec"


def test_ensure_vec_table_creates_table(tmp_db):
    table = ensure_vec_table(tmp_db, "rag_chunks", dimensions=8)
    assert table == "rag_chunks_vec"
    row = tmp_db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    assert row is not None


def test_ensure_vec_table_idempotent(tmp_db):
    assert ensure_vec_table(tmp_db, "rag_chunks", 8) == ensure_vec_table(tmp_db, "rag_chunks", 8)


def test_ensure_vec_table_dimensions_enforced(tmp_db):
    ensure_vec_table(tmp_db, "rag_chunks", dimensions=4)
    tmp_db.execute(
        "INSERT INTO rag_chunks_vec(rowid, embedding) VALUES (?, ?)",
        (1, serialize_vector([0.1, 0.2, 0.3, 0.4])),
    )
    with pytest.raises(Exception):
        tmp_db.execute(
            "INSERT INTO rag_chunks_vec(rowid, embedding) VALUES (?, ?)",
            (2, serialize_vector([0.1, 0.2])),
        )


def test_ensure_vec_table_rejects_bad_dimensions(tmp_db):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, "rag_chunks", dimensions=0)


def test_ensure_vec_table_rejects_bad_table_name(tmp_db):
    with pytest.raises(ConfigurationError):
        ensure_vec_table(tmp_db, "bad name", dimensions=4)


def test_serialize_vector_float32_little_endian():
    blob = serialize_vector([1.0, -2.5])
    assert blob == struct.pack("<2f", 1.0, -2.5)
