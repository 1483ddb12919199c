"""Chunking: split documents into embeddable pieces."""

from ragkit.chunking.base import BaseChunker, RawChunk
from ragkit.chunking.counters import ApproximateTokenCounter, TokenCounter, WhitespaceTokenCounter
from ragkit.chunking.enrich import enrich_chunks, generate_chunk_id, generate_content_hash
from ragkit.chunking.tokens import TokenChunker

__all__ = [
    "ApproximateTokenCounter",
    "BaseChunker",
    "RawChunk",
    "TokenChunker",
    "TokenCounter",
    "WhitespaceTokenCounter",
    "enrich_chunks",
    "generate_chunk_id",
    "generate_content_hash",
]
