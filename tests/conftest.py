"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import math

import pytest

from ragkit.cli import common
from ragkit.db.connection import Database
from ragkit.db.migrations import DEFAULT_TABLE_NAME, run_migrations
from ragkit.embedding.base import EmbeddingProvider


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic hash-based embeddings; identical text gives identical vectors."""

    def __init__(self, dimensions: int = 8, model: str = "fake/hash-embed") -> None:
        self._dimensions = dimensions
        self._model = model
        self.calls: list[list[str]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]

    def vector(self, text: str) -> list[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        raw = [(digest[i % len(digest)] / 255.0) - 0.5 for i in range(self._dimensions)]
        norm = math.sqrt(sum(v * v for v in raw)) or 1.0
        return [v / norm for v in raw]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with migrations applied, closed after test."""
    db = Database(tmp_path / ".ragkit.db")
    conn = db.connect()
    run_migrations(conn, DEFAULT_TABLE_NAME)
    yield conn
    conn.close()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run CLI commands in tmp_path with fake embeddings and no global config."""
    for var in ("RAGKIT_EMBEDDING_PROVIDER", "RAGKIT_EMBEDDING_MODEL", "RAGKIT_DB_PATH"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("ragkit.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.setattr(
        "ragkit.store.provider.create_embedding_provider",
        lambda _config: FakeEmbeddingProvider(),
    )
    monkeypatch.setattr(common.console, "width", 200)
    monkeypatch.chdir(tmp_path)
    return tmp_path
