"""Remote embedding provider routed through LiteLLM.

Any embedding model LiteLLM supports works (``openai/text-embedding-3-small``,
``cohere/embed-english-v3.0``, ``ollama/nomic-embed-text``, ...). LiteLLM's
built-in retry with exponential backoff handles transient API errors; API key
presence is validated before the first request.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import litellm

from ragkit.embedding.base import EmbeddingProvider
from ragkit.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

DEFAULT_LITELLM_MODEL = "openai/text-embedding-3-small"

MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Provider → env var holding its API key (None = no key needed).
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,
}


@dataclass
class LiteLLMEmbeddingConfig:
    """Configuration for the LiteLLM provider.

    Attributes:
        model: LiteLLM model string (provider/model format).
        dimensions: Output size; looked up from the model name when None.
            Sent to the API only when it differs from the model's native size.
        num_retries: LiteLLM retry count for transient errors.
        timeout: Request timeout in seconds (None = LiteLLM default).
    """

    model: str = DEFAULT_LITELLM_MODEL
    dimensions: int | None = None
    num_retries: int = 3
    timeout: float | None = None


def resolve_dimensions(model: str, dimensions: int | None = None) -> int:
    """Return *dimensions* or the known native size of *model*."""
    if dimensions is not None:
        return dimensions
    native = MODEL_DIMENSIONS.get(model.split("/")[-1])
    if native is None:
        raise ConfigurationError(
            f"Unknown embedding dimensions for model '{model}'. "
            "Set embedding.dimensions in ragkit.yaml."
        )
    return native


def validate_api_key(model: str) -> None:
    """Raise ConfigurationError if the API key env var for *model* is missing."""
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise ConfigurationError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embed text through a hosted embedding API."""

    def __init__(self, config: LiteLLMEmbeddingConfig | None = None) -> None:
        self._config = config or LiteLLMEmbeddingConfig()
        self._dimensions = resolve_dimensions(self._config.model, self._config.dimensions)
        self._key_checked = False

    @property
    def name(self) -> str:
        return "litellm"

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        if not self._key_checked:
            validate_api_key(self.model)
            self._key_checked = True

        kwargs: dict = {"num_retries": self._config.num_retries}
        if self._config.timeout is not None:
            kwargs["timeout"] = self._config.timeout
        native = MODEL_DIMENSIONS.get(self.model.split("/")[-1])
        if native is not None and native != self._dimensions:
            kwargs["dimensions"] = self._dimensions

        response = await litellm.aembedding(model=self.model, input=texts, **kwargs)
        data = sorted(response.data, key=_item_index)
        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return [_item_embedding(item) for item in data]


def _item_index(item) -> int:
    return item.get("index", 0) if isinstance(item, dict) else getattr(item, "index", 0)


def _item_embedding(item) -> list[float]:
    return item["embedding"] if isinstance(item, dict) else item.embedding
