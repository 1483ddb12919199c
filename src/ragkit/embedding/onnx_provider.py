"""Local embedding provider: WordPiece tokenizer + ONNX Runtime + mean pooling.

No API key required. The first call downloads ``model.onnx`` and ``vocab.txt``
from HuggingFace into the cache directory (unless ``model_path`` points at a
pre-downloaded directory), creates an inference session, and keeps both for
the lifetime of the provider.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from ragkit.embedding.base import EmbeddingProvider
from ragkit.embedding.download import (
    ModelFiles,
    default_cache_dir,
    ensure_model_files,
    local_model_files,
)
from ragkit.embedding.pooling import l2_normalize, mean_pooling
from ragkit.embedding.tokenizer import DEFAULT_MAX_LENGTH, BertTokenizer
from ragkit.errors import ConfigurationError, DownloadError

logger = logging.getLogger(__name__)

DEFAULT_ONNX_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_ONNX_DIMENSIONS = 384

_HIDDEN_STATE_OUTPUT = "last_hidden_state"


@dataclass
class OnnxEmbeddingConfig:
    """Configuration for the local ONNX provider.

    Attributes:
        model: HuggingFace model id.
        dimensions: Hidden size of the model (384 for all-MiniLM-L6-v2).
        model_path: Directory already containing model.onnx + vocab.txt.
        cache_dir: Where downloaded models are kept.
        execution_providers: ONNX Runtime providers to request (None = default).
        max_sequence_length: Token limit per text, including [CLS]/[SEP].
        timeout: Seconds allowed for the first load and for each inference call.
    """

    model: str = DEFAULT_ONNX_MODEL
    dimensions: int = DEFAULT_ONNX_DIMENSIONS
    model_path: Path | None = None
    cache_dir: Path | None = None
    execution_providers: list[str] | None = None
    max_sequence_length: int = DEFAULT_MAX_LENGTH
    timeout: float | None = None


@dataclass
class _LoadedModel:
    session: Any
    tokenizer: BertTokenizer
    input_names: frozenset[str]


def load_onnxruntime() -> Any:
    """Import onnxruntime or raise a ConfigurationError with install instructions."""
    try:
        import onnxruntime
    except ImportError as exc:
        raise ConfigurationError(
            "onnxruntime is not installed. Install with: pip install onnxruntime"
        ) from exc
    return onnxruntime


class OnnxEmbeddingProvider(EmbeddingProvider):
    """Embed text locally with an ONNX export of a BERT-style encoder."""

    def __init__(self, config: OnnxEmbeddingConfig | None = None) -> None:
        self._config = config or OnnxEmbeddingConfig()
        self._init_task: asyncio.Future[_LoadedModel] | None = None

    @property
    def name(self) -> str:
        return "onnx"

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def dimensions(self) -> int:
        return self._config.dimensions

    # ------------------------------------------------------------------
    # Lazy initialisation
    # ------------------------------------------------------------------

    async def _initialize(self) -> _LoadedModel:
        """Return the loaded model, starting the load at most once.

        Concurrent callers await the same task. A DownloadError clears the
        cached task so a later call may try again; a ConfigurationError stays
        cached and is re-raised to every caller.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load_model())
        task = self._init_task
        try:
            return await asyncio.shield(task)
        except (DownloadError, asyncio.TimeoutError):
            if self._init_task is task:
                self._init_task = None
            raise

    async def _load_model(self) -> _LoadedModel:
        ort = load_onnxruntime()
        files = await self._with_timeout(asyncio.to_thread(self._resolve_files))

        options: dict[str, Any] = {}
        if self._config.execution_providers:
            options["providers"] = self._config.execution_providers

        session = await self._with_timeout(
            asyncio.to_thread(ort.InferenceSession, str(files.model_path), **options)
        )
        tokenizer = await asyncio.to_thread(BertTokenizer.from_vocab_file, files.vocab_path)

        output_names = {o.name for o in session.get_outputs()}
        if _HIDDEN_STATE_OUTPUT not in output_names:
            raise ConfigurationError(
                f"ONNX model '{self.model}' has no '{_HIDDEN_STATE_OUTPUT}' output "
                f"(outputs: {', '.join(sorted(output_names))})."
            )

        logger.info("Loaded ONNX model %s (vocab size %d)", self.model, tokenizer.vocab_size)
        return _LoadedModel(
            session=session,
            tokenizer=tokenizer,
            input_names=frozenset(i.name for i in session.get_inputs()),
        )

    def _resolve_files(self) -> ModelFiles:
        if self._config.model_path is not None:
            files = local_model_files(Path(self._config.model_path))
            missing = [p for p in (files.model_path, files.vocab_path) if not p.exists()]
            if missing:
                raise ConfigurationError(
                    f"model_path is missing {', '.join(p.name for p in missing)}: "
                    f"{self._config.model_path}"
                )
            return files
        return ensure_model_files(self.model, self._config.cache_dir or default_cache_dir())

    async def _with_timeout(self, awaitable):
        if self._config.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self._config.timeout)

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Tokenize, run one batched inference, mean-pool, L2-normalize."""
        if not texts:
            return []

        loaded = await self._initialize()
        batch = loaded.tokenizer.tokenize_batch(texts, self._config.max_sequence_length)

        input_ids = np.asarray(batch.input_ids, dtype=np.int64)
        attention_mask = np.asarray(batch.attention_mask, dtype=np.int64)
        feeds = {
            "input_ids": input_ids,
            "attention_mask": attention_mask,
            "token_type_ids": np.zeros_like(input_ids),
        }
        feeds = {k: v for k, v in feeds.items() if k in loaded.input_names}

        outputs = await self._with_timeout(
            asyncio.to_thread(loaded.session.run, [_HIDDEN_STATE_OUTPUT], feeds)
        )
        hidden = np.asarray(outputs[0], dtype=np.float32)

        if hidden.ndim != 3 or hidden.shape[2] != self.dimensions:
            raise ConfigurationError(
                f"ONNX model '{self.model}' returned hidden states of shape "
                f"{tuple(hidden.shape)}; expected dimension {self.dimensions}."
            )

        pooled = mean_pooling(
            hidden, batch.attention_mask, len(texts), batch.max_len, self.dimensions
        )
        return [l2_normalize(v) for v in pooled]

    async def close(self) -> None:
        self._init_task = None
