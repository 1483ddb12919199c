"""Embedding providers: local ONNX pipeline and remote LiteLLM backend."""

from ragkit.embedding.base import EmbeddingProvider
from ragkit.embedding.factory import create_embedding_provider
from ragkit.embedding.litellm_provider import LiteLLMEmbeddingConfig, LiteLLMEmbeddingProvider
from ragkit.embedding.onnx_provider import OnnxEmbeddingConfig, OnnxEmbeddingProvider
from ragkit.embedding.pooling import l2_normalize, mean_pooling
from ragkit.embedding.tokenizer import BertTokenizer

__all__ = [
    "BertTokenizer",
    "EmbeddingProvider",
    "LiteLLMEmbeddingConfig",
    "LiteLLMEmbeddingProvider",
    "OnnxEmbeddingConfig",
    "OnnxEmbeddingProvider",
    "create_embedding_provider",
    "l2_normalize",
    "mean_pooling",
]
