"""ragkit configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (RAGKIT_EMBEDDING_PROVIDER, RAGKIT_EMBEDDING_MODEL,
                             RAGKIT_DB_PATH)
  3. Per-project ragkit.yaml
  4. Global ~/.ragkit/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ragkit.errors import ConfigurationError
from ragkit.metadata.schema import MetadataSchema, schema_from_dict

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".ragkit"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "ragkit.yaml"

DEFAULT_DB_PATH = ".ragkit.db"

EMBEDDING_PROVIDERS: frozenset[str] = frozenset(["onnx", "litellm"])

# Fields that suggest an API key, forbidden in global config.
# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like max_tokens or model_token_limit.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "store", "chunking", "retrieval", "metadata"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (ragkit.yaml: embedding:).

    ``model`` and ``dimensions`` default per provider when left unset.
    ``cache_dir``, ``model_path``, ``max_sequence_length`` and
    ``execution_providers`` only apply to ``onnx``; ``num_retries`` only to
    ``litellm``.
    """

    provider: str = "onnx"
    model: str | None = None
    dimensions: int | None = None
    cache_dir: str | None = None
    model_path: str | None = None
    max_sequence_length: int = 256
    execution_providers: list[str] | None = None
    timeout: float | None = None
    num_retries: int = 3


@dataclass
class StoreCfg:
    """Vector store configuration (ragkit.yaml: store:)."""

    db_path: str = DEFAULT_DB_PATH
    table_name: str = "rag_chunks"
    readonly: bool = False


@dataclass
class ChunkingCfg:
    """Default chunker sizing (ragkit.yaml: chunking:)."""

    target_chunk_size: int = 512
    padding_factor: float = 0.9
    model_token_limit: int = 8191


@dataclass
class RetrievalCfg:
    """Query defaults (ragkit.yaml: retrieval:)."""

    limit: int = 10


@dataclass
class RagConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    store: StoreCfg = field(default_factory=StoreCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    metadata: MetadataSchema = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigurationError if *data* contains any API-key-like key names.

    The ``metadata`` section is exempt: its keys are document field names.
    """

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else str(k)
                if full == "metadata":
                    continue
                if _API_KEY_RE.search(str(k)):
                    raise ConfigurationError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}': ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config '{path}' must be a mapping, got {type(data).__name__}")
    return data


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _optional(value: Any, cast: Any) -> Any:
    return None if value is None else cast(value)


def _cfg_from_dict(data: dict[str, Any]) -> RagConfig:
    """Build a *RagConfig* from a merged raw YAML dict."""
    cfg = RagConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            providers = e.get("execution_providers")
            cfg.embedding = EmbeddingCfg(
                provider=str(e.get("provider", cfg.embedding.provider)).lower(),
                model=_optional(e.get("model"), str),
                dimensions=_optional(e.get("dimensions"), int),
                cache_dir=_optional(e.get("cache_dir"), str),
                model_path=_optional(e.get("model_path"), str),
                max_sequence_length=int(
                    e.get("max_sequence_length", cfg.embedding.max_sequence_length)
                ),
                execution_providers=[str(p) for p in providers] if providers else None,
                timeout=_optional(e.get("timeout"), float),
                num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
            )

        if "store" in data:
            s = data["store"] or {}
            cfg.store = StoreCfg(
                db_path=str(s.get("db_path", cfg.store.db_path)),
                table_name=str(s.get("table_name", cfg.store.table_name)),
                readonly=bool(s.get("readonly", cfg.store.readonly)),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                target_chunk_size=int(c.get("target_chunk_size", cfg.chunking.target_chunk_size)),
                padding_factor=float(c.get("padding_factor", cfg.chunking.padding_factor)),
                model_token_limit=int(c.get("model_token_limit", cfg.chunking.model_token_limit)),
            )

        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg.retrieval = RetrievalCfg(limit=int(r.get("limit", cfg.retrieval.limit)))
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid config value: {exc}") from exc

    if "metadata" in data:
        m = data["metadata"] or {}
        if not isinstance(m, dict):
            raise ConfigurationError("metadata: must map field names to types")
        cfg.metadata = schema_from_dict(m)

    return cfg


def _validate(cfg: RagConfig) -> None:
    if cfg.embedding.provider not in EMBEDDING_PROVIDERS:
        raise ConfigurationError(
            f"Unknown embedding provider '{cfg.embedding.provider}'. "
            f"Choose one of: {', '.join(sorted(EMBEDDING_PROVIDERS))}"
        )
    if cfg.retrieval.limit < 1:
        raise ConfigurationError(f"retrieval.limit must be >= 1, got {cfg.retrieval.limit}")
    if not 0.0 < cfg.chunking.padding_factor <= 1.0:
        raise ConfigurationError(
            f"chunking.padding_factor must be in (0, 1], got {cfg.chunking.padding_factor}"
        )


def _apply_env_overrides(cfg: RagConfig) -> RagConfig:
    """Apply RAGKIT_* environment variable overrides."""
    if provider := os.environ.get("RAGKIT_EMBEDDING_PROVIDER"):
        cfg.embedding.provider = provider.lower()
    if model := os.environ.get("RAGKIT_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("RAGKIT_DB_PATH"):
        cfg.store.db_path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagConfig:
    """Load and return a merged *RagConfig*.

    Applies layers in order: global → per-project → env vars. A relative
    ``store.db_path`` is resolved against *project_dir*. CLI flag overrides
    must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *ragkit.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RagConfig* with env var overrides applied.

    Raises:
        ConfigurationError: Global config contains API-key-like fields, a
            value has the wrong type, or the metadata schema is invalid.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)

    db_path = Path(cfg.store.db_path).expanduser()
    if not db_path.is_absolute():
        cfg.store.db_path = str(search_dir / db_path)

    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.ragkit/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# ragkit global configuration: model defaults only.\n"
            "# NEVER store API keys here; use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  provider: onnx\n"
            "  model: sentence-transformers/all-MiniLM-L6-v2\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
