"""Tests for ChunkRepository: atomic replace, metadata columns, vector search."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import pytest

from ragkit.db.migrations import run_migrations
from ragkit.db.models import RAGChunk
from ragkit.db.repository import ChunkRepository
from ragkit.errors import ConfigurationError, QueryError, ValidationError
from ragkit.metadata.filters import build_where_clause
from ragkit.metadata.schema import ArrayType, NumberType, OptionalType, StringType

_DIMS = 4
_STAMP = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

SCHEMA = {
    "Domain": StringType(),
    "priority": OptionalType(NumberType()),
    "tags": OptionalType(ArrayType()),
}


@pytest.fixture
def repo(tmp_db):
    r = ChunkRepository(tmp_db, "rag_chunks", SCHEMA)
    r.ensure_embedding_model("fake/model", _DIMS)
    r.ensure_metadata_table()
    return r


def _chunk(
    resource_id="doc-1",
    index=0,
    total=1,
    content="hello world",
    embedding=(1.0, 0.0, 0.0, 0.0),
    metadata=None,
    **kwargs,
) -> RAGChunk:
    return RAGChunk(
        chunk_id=f"{resource_id}-chunk-{index}",
        resource_id=resource_id,
        content=content,
        content_hash=f"h-{content}",
        token_count=len(content.split()),
        chunk_index=index,
        total_chunks=total,
        embedding_model="fake/model",
        embedded_at=_STAMP,
        embedding=list(embedding),
        metadata={"Domain": "docs"} if metadata is None else metadata,
        **kwargs,
    )


# ------------------------------------------------------------------
# Store info / embedding model
# ------------------------------------------------------------------


def test_set_and_get_info(repo):
    repo.set_info("k", "v1")
    repo.set_info("k", "v2")
    assert repo.get_info("k") == "v2"
    assert repo.get_info("missing") is None


def test_ensure_embedding_model_records_and_creates_vec_table(repo, tmp_db):
    assert repo.get_info("embedding_model") == "fake/model"
    assert repo.get_info("dimensions") == str(_DIMS)
    assert repo._has_vec_table()


def test_ensure_embedding_model_same_model_ok(repo):
    repo.ensure_embedding_model("fake/model", _DIMS)


def test_ensure_embedding_model_mismatch_raises(repo):
    with pytest.raises(ConfigurationError, match="was built with fake/model"):
        repo.ensure_embedding_model("other/model", _DIMS)
    with pytest.raises(ConfigurationError):
        repo.ensure_embedding_model("fake/model", 8)


def test_ensure_embedding_model_readonly_does_not_write(tmp_db):
    r = ChunkRepository(tmp_db, "rag_chunks")
    r.ensure_embedding_model("fake/model", _DIMS, readonly=True)
    assert r.get_info("embedding_model") is None
    assert not r._has_vec_table()


def test_stores_isolated_by_table_prefix(tmp_db):
    run_migrations(tmp_db, "other")
    a = ChunkRepository(tmp_db, "rag_chunks")
    b = ChunkRepository(tmp_db, "other")
    a.ensure_embedding_model("m1", 4)
    b.ensure_embedding_model("m2", 8)
    assert a.get_info("embedding_model") == "m1"
    assert b.get_info("embedding_model") == "m2"


# ------------------------------------------------------------------
# Metadata columns
# ------------------------------------------------------------------


def test_metadata_columns_lowercased(repo):
    assert repo.metadata_columns() == ["domain", "priority", "tags"]


def test_ensure_metadata_table_idempotent(repo):
    assert repo.ensure_metadata_table() == []


def test_ensure_metadata_table_adds_new_fields_with_sentinel(repo, tmp_db):
    repo.replace_resource_chunks("doc-1", [_chunk()], "rh1")

    wider = ChunkRepository(tmp_db, "rag_chunks", {**SCHEMA, "owner": OptionalType(StringType())})
    assert wider.ensure_metadata_table() == ["owner"]
    row = tmp_db.execute("SELECT owner FROM rag_chunks_metadata").fetchone()
    assert row["owner"] == ""


def test_keyword_field_names_stored_and_filtered(tmp_db):
    schema = {"order": OptionalType(NumberType()), "group": StringType()}
    kw = ChunkRepository(tmp_db, "rag_chunks", schema)
    kw.ensure_embedding_model("fake/model", _DIMS)
    assert kw.ensure_metadata_table() == ["order", "group"]

    kw.replace_resource_chunks(
        "doc-1",
        [
            _chunk("doc-1", 0, 2, "first", (1.0, 0.0, 0.0, 0.0), {"order": 1, "group": "a"}),
            _chunk("doc-1", 1, 2, "second", (0.0, 1.0, 0.0, 0.0), {"group": "b"}),
        ],
        "rh1",
    )

    where = build_where_clause({"metadata": {"order": 1, "group": "a"}}, schema)
    results = kw.search([1.0, 0.0, 0.0, 0.0], limit=5, where=where)
    assert [c.content for c in results] == ["first"]
    assert results[0].metadata == {"order": 1, "group": "a"}

    unfiltered = kw.search([0.0, 1.0, 0.0, 0.0], limit=5)
    assert unfiltered[0].metadata == {"group": "b"}


# ------------------------------------------------------------------
# replace / delete
# ------------------------------------------------------------------


def test_replace_inserts_rows_in_all_tables(repo, tmp_db):
    deleted = repo.replace_resource_chunks(
        "doc-1", [_chunk(index=0, total=2), _chunk(index=1, total=2, content="second")], "rh1"
    )
    assert deleted == 0
    assert repo.count_chunks() == 2
    assert repo.count_resource_chunks("doc-1") == 2
    assert tmp_db.execute("SELECT COUNT(*) FROM rag_chunks_vec").fetchone()[0] == 2
    assert tmp_db.execute("SELECT COUNT(*) FROM rag_chunks_metadata").fetchone()[0] == 2
    assert repo.get_resource_content_hash("doc-1") == "rh1"


def test_replace_swaps_all_chunks_of_resource(repo, tmp_db):
    repo.replace_resource_chunks(
        "doc-1", [_chunk(index=i, total=3, content=f"c{i}") for i in range(3)], "rh1"
    )
    deleted = repo.replace_resource_chunks("doc-1", [_chunk(content="only")], "rh2")

    assert deleted == 3
    assert repo.count_resource_chunks("doc-1") == 1
    assert repo.get_resource_content_hash("doc-1") == "rh2"
    assert tmp_db.execute("SELECT COUNT(*) FROM rag_chunks_vec").fetchone()[0] == 1
    assert tmp_db.execute("SELECT COUNT(*) FROM rag_chunks_metadata").fetchone()[0] == 1


def test_replace_leaves_other_resources(repo):
    repo.replace_resource_chunks("doc-1", [_chunk("doc-1")], "rh1")
    repo.replace_resource_chunks("doc-2", [_chunk("doc-2")], "rh2")
    repo.replace_resource_chunks("doc-1", [_chunk("doc-1", content="new")], "rh3")
    assert repo.count_resources() == 2
    assert repo.get_resource_content_hash("doc-2") == "rh2"


def test_replace_invalid_metadata_keeps_old_chunks(repo):
    repo.replace_resource_chunks("doc-1", [_chunk()], "rh1")
    with pytest.raises(ValidationError, match="Domain"):
        repo.replace_resource_chunks("doc-1", [_chunk(metadata={})], "rh2")
    assert repo.get_resource_content_hash("doc-1") == "rh1"
    assert repo.count_resource_chunks("doc-1") == 1


def test_replace_missing_embedding_raises(repo):
    with pytest.raises(ValidationError, match="no embedding"):
        repo.replace_resource_chunks("doc-1", [_chunk(embedding=())], "rh1")


def test_replace_rolls_back_on_insert_failure(repo):
    repo.replace_resource_chunks("doc-1", [_chunk()], "rh1")
    duplicate = [_chunk(index=0), _chunk(index=0, content="dup")]
    with pytest.raises(sqlite3.IntegrityError):
        repo.replace_resource_chunks("doc-1", duplicate, "rh2")
    assert repo.get_resource_content_hash("doc-1") == "rh1"
    assert repo.count_resource_chunks("doc-1") == 1


def test_delete_resource(repo, tmp_db):
    repo.replace_resource_chunks("doc-1", [_chunk(index=i, total=2) for i in range(2)], "rh1")
    assert repo.delete_resource("doc-1") == 2
    assert repo.count_chunks() == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM rag_chunks_vec").fetchone()[0] == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM rag_chunks_metadata").fetchone()[0] == 0


def test_delete_unknown_resource_returns_zero(repo):
    assert repo.delete_resource("nope") == 0


# ------------------------------------------------------------------
# search
# ------------------------------------------------------------------


def _seed(repo):
    repo.replace_resource_chunks(
        "doc-1",
        [
            _chunk("doc-1", 0, 2, "alpha", (1.0, 0.0, 0.0, 0.0), {"Domain": "security", "tags": ["auth", "jwt"]}),
            _chunk("doc-1", 1, 2, "beta", (0.0, 1.0, 0.0, 0.0), {"Domain": "security", "priority": 2}),
        ],
        "rh1",
    )
    repo.replace_resource_chunks(
        "doc-2",
        [_chunk("doc-2", 0, 1, "gamma", (0.9, 0.1, 0.0, 0.0), {"Domain": "ops"})],
        "rh2",
    )


def test_search_orders_by_distance(repo):
    _seed(repo)
    results = repo.search([1.0, 0.0, 0.0, 0.0], limit=3)
    assert [c.content for c in results] == ["alpha", "gamma", "beta"]
    assert results[0].distance == pytest.approx(0.0)
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(1.0 / (1.0 + results[1].distance))


def test_search_respects_limit(repo):
    _seed(repo)
    assert len(repo.search([1.0, 0.0, 0.0, 0.0], limit=1)) == 1


def test_search_decodes_core_fields_and_metadata(repo):
    _seed(repo)
    top = repo.search([1.0, 0.0, 0.0, 0.0], limit=1)[0]
    assert top.chunk_id == "doc-1-chunk-0"
    assert top.embedded_at == _STAMP
    assert top.heading_path is None
    assert top.start_line is None
    assert top.previous_chunk_id is None
    assert top.metadata == {"Domain": "security", "tags": ["auth", "jwt"]}
    assert top.embedding == []
    assert top.rowid is not None


def test_search_include_embeddings(repo):
    _seed(repo)
    top = repo.search([1.0, 0.0, 0.0, 0.0], limit=1, include_embeddings=True)[0]
    assert top.embedding == pytest.approx([1.0, 0.0, 0.0, 0.0])


def test_search_with_metadata_filter(repo):
    _seed(repo)
    where = build_where_clause({"metadata": {"Domain": "security"}}, SCHEMA)
    results = repo.search([1.0, 0.0, 0.0, 0.0], limit=10, where=where)
    assert [c.content for c in results] == ["alpha", "beta"]


def test_search_with_array_contains_filter(repo):
    _seed(repo)
    where = build_where_clause({"metadata": {"tags": "jwt"}}, SCHEMA)
    results = repo.search([0.0, 1.0, 0.0, 0.0], limit=10, where=where)
    assert [c.content for c in results] == ["alpha"]


def test_search_with_resource_filter(repo):
    _seed(repo)
    where = build_where_clause({"resource_id": ["doc-2"]}, SCHEMA)
    results = repo.search([1.0, 0.0, 0.0, 0.0], limit=10, where=where)
    assert [c.resource_id for c in results] == ["doc-2"]


def test_search_filtered_limit_is_exact(repo):
    _seed(repo)
    where = build_where_clause({"metadata": {"Domain": "security"}}, SCHEMA)
    results = repo.search([0.9, 0.1, 0.0, 0.0], limit=1, where=where)
    assert [c.content for c in results] == ["alpha"]


def test_search_empty_resource_list_matches_nothing(repo):
    _seed(repo)
    where = build_where_clause({"resource_id": []}, SCHEMA)
    assert repo.search([1.0, 0.0, 0.0, 0.0], where=where) == []


def test_search_rejects_bad_limit(repo):
    with pytest.raises(QueryError):
        repo.search([1.0, 0.0, 0.0, 0.0], limit=0)


def test_search_bad_predicate_raises_query_error(repo):
    _seed(repo)
    with pytest.raises(QueryError, match="Search failed"):
        repo.search([1.0, 0.0, 0.0, 0.0], where="metadata.no_such_column = 1")


def test_search_without_vec_table_returns_empty(tmp_db):
    assert ChunkRepository(tmp_db).search([1.0, 0.0, 0.0, 0.0]) == []


# ------------------------------------------------------------------
# Stats & lifecycle
# ------------------------------------------------------------------


def test_stats_counts(repo):
    assert repo.last_indexed() is None
    _seed(repo)
    assert repo.count_chunks() == 3
    assert repo.count_resources() == 2
    assert repo.last_indexed() == _STAMP
    assert repo.db_size_bytes() > 0


def test_drop_all(repo, tmp_db):
    _seed(repo)
    repo.drop_all()
    assert not repo.exists()
    assert not repo._has_vec_table()
    assert repo.get_info("embedding_model") is None
    assert tmp_db.execute(
        "SELECT COUNT(*) FROM schema_version WHERE table_name = 'rag_chunks'"
    ).fetchone()[0] == 0


def test_exists(repo, tmp_db):
    assert repo.exists()
    assert not ChunkRepository(tmp_db, "never_migrated").exists()
