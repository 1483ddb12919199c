"""Base chunker interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class RawChunk:
    """A slice of a document before ids, hashes and embeddings are attached.

    Line numbers are 1-based and inclusive.
    """

    content: str
    heading_path: str | None = None
    heading_level: int | None = None
    start_line: int | None = None
    end_line: int | None = None


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    The store only relies on ``chunk()``; any segmentation policy can be
    plugged into ``SqliteVecRAGProvider`` by subclassing this.
    """

    @abstractmethod
    def chunk(self, text: str) -> list[RawChunk]:
        """Split *text* into ordered chunks.

        Args:
            text: Full document text (frontmatter already stripped).

        Returns:
            Ordered list of RawChunk objects; empty for blank input.
        """
