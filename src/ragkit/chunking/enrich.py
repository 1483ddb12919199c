"""Turn raw chunks into linked, hashed, embedded RAGChunks."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any, Sequence

from ragkit.chunking.base import RawChunk
from ragkit.chunking.counters import ApproximateTokenCounter, TokenCounter
from ragkit.db.models import RAGChunk, Resource
from ragkit.errors import ValidationError


def generate_chunk_id(resource_id: str, index: int) -> str:
    """``"{resource_id}-chunk-{index}"``; unique across the store."""
    return f"{resource_id}-chunk-{index}"


def generate_content_hash(content: str) -> str:
    """SHA-256 hex digest of *content* (UTF-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def enrich_chunks(
    raw_chunks: Sequence[RawChunk],
    resource: Resource,
    embeddings: Sequence[Sequence[float]],
    embedding_model: str,
    *,
    metadata: dict[str, Any] | None = None,
    token_counter: TokenCounter | None = None,
    embedded_at: datetime | None = None,
) -> list[RAGChunk]:
    """Attach ids, prev/next links, hashes, token counts and embeddings.

    Args:
        raw_chunks: Output of a chunker, in document order.
        resource: Parent resource; supplies the id and file path.
        embeddings: One vector per raw chunk, same order.
        embedding_model: Model name stamped on every chunk.
        metadata: Schema metadata shared by every chunk of the resource.
        token_counter: Counter for ``token_count`` (default approximate).
        embedded_at: Timestamp to stamp (default now, UTC).

    Raises:
        ValidationError: ``embeddings`` and ``raw_chunks`` differ in length.
    """
    if len(embeddings) != len(raw_chunks):
        raise ValidationError(
            f"Got {len(embeddings)} embeddings for {len(raw_chunks)} chunks of '{resource.id}'"
        )
    counter = token_counter or ApproximateTokenCounter()
    stamp = embedded_at or datetime.now(timezone.utc)
    total = len(raw_chunks)

    return [
        RAGChunk(
            chunk_id=generate_chunk_id(resource.id, index),
            resource_id=resource.id,
            content=raw.content,
            content_hash=generate_content_hash(raw.content),
            token_count=counter.count(raw.content),
            chunk_index=index,
            total_chunks=total,
            embedding_model=embedding_model,
            embedded_at=stamp,
            embedding=[float(x) for x in embedding],
            file_path=resource.file_path,
            heading_path=raw.heading_path,
            start_line=raw.start_line,
            end_line=raw.end_line,
            previous_chunk_id=generate_chunk_id(resource.id, index - 1) if index > 0 else None,
            next_chunk_id=generate_chunk_id(resource.id, index + 1) if index < total - 1 else None,
            metadata=dict(metadata or {}),
        )
        for index, (raw, embedding) in enumerate(zip(raw_chunks, embeddings))
    ]
