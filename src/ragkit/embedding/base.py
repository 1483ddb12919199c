"""Embedding provider interface shared by local and remote backends."""

from __future__ import annotations

from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """Turns text into fixed-length float vectors.

    Subclasses expose ``name``, ``model`` and ``dimensions`` as read-only
    properties and implement the two async embedding calls. ``embed_batch``
    must return ``[]`` for an empty input without touching the backend.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend identifier, e.g. ``"onnx"``."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier stored alongside every embedding."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one backend call, preserving order."""

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        if not vectors:
            raise RuntimeError(f"{self.name} provider returned no embeddings")
        return vectors[0]

    async def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
