"""Build an embedding provider from configuration."""

from __future__ import annotations

from pathlib import Path

from ragkit.config import EmbeddingCfg
from ragkit.embedding.base import EmbeddingProvider
from ragkit.embedding.litellm_provider import (
    DEFAULT_LITELLM_MODEL,
    LiteLLMEmbeddingConfig,
    LiteLLMEmbeddingProvider,
)
from ragkit.embedding.onnx_provider import (
    DEFAULT_ONNX_DIMENSIONS,
    DEFAULT_ONNX_MODEL,
    OnnxEmbeddingConfig,
    OnnxEmbeddingProvider,
)
from ragkit.errors import ConfigurationError


def create_embedding_provider(cfg: EmbeddingCfg) -> EmbeddingProvider:
    """Return the provider named by ``cfg.provider`` (``onnx`` | ``litellm``).

    Raises:
        ConfigurationError: Unknown provider, or unknown dimensions for a
            remote model.
    """
    match cfg.provider:
        case "onnx":
            return OnnxEmbeddingProvider(
                OnnxEmbeddingConfig(
                    model=cfg.model or DEFAULT_ONNX_MODEL,
                    dimensions=cfg.dimensions or DEFAULT_ONNX_DIMENSIONS,
                    model_path=Path(cfg.model_path).expanduser() if cfg.model_path else None,
                    cache_dir=Path(cfg.cache_dir).expanduser() if cfg.cache_dir else None,
                    execution_providers=cfg.execution_providers,
                    max_sequence_length=cfg.max_sequence_length,
                    timeout=cfg.timeout,
                )
            )
        case "litellm":
            return LiteLLMEmbeddingProvider(
                LiteLLMEmbeddingConfig(
                    model=cfg.model or DEFAULT_LITELLM_MODEL,
                    dimensions=cfg.dimensions,
                    num_retries=cfg.num_retries,
                    timeout=cfg.timeout,
                )
            )
        case other:
            raise ConfigurationError(
                f"Unknown embedding provider '{other}'. Choose 'onnx' or 'litellm'."
            )
