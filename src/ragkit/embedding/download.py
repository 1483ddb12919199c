"""HuggingFace model file cache for the local ONNX provider.

Files are fetched from the public resolve endpoint:
  https://huggingface.co/{model_id}/resolve/main/onnx/model.onnx
  https://huggingface.co/{model_id}/resolve/main/vocab.txt

Writes go to a temp file in the target directory and are renamed into place,
so an interrupted download never leaves a truncated model in the cache.
"""

from __future__ import annotations

import logging
import os
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path

from ragkit.errors import DownloadError

logger = logging.getLogger(__name__)

_HF_BASE_URL = "https://huggingface.co"
_USER_AGENT = "ragkit/0.1"
_TIMEOUT = 60  # seconds, per socket operation
_MAX_REDIRECTS = 5  # resolve/main redirects to the CDN
_READ_BLOCK = 1024 * 1024

MODEL_FILENAME = "model.onnx"
VOCAB_FILENAME = "vocab.txt"


@dataclass
class ModelFiles:
    """Local paths of a model's ONNX weights and WordPiece vocabulary."""

    model_path: Path
    vocab_path: Path


def default_cache_dir() -> Path:
    """Return ``$XDG_CACHE_HOME/ragkit/onnx-models`` (``~/.cache`` fallback)."""
    base = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return Path(base) / "ragkit" / "onnx-models"


def model_dir(model_id: str, cache_dir: Path) -> Path:
    """Cache directory for *model_id* (slashes flattened to underscores)."""
    return cache_dir / model_id.replace("/", "_")


def local_model_files(directory: Path) -> ModelFiles:
    """Model files inside a pre-downloaded directory (no network access)."""
    return ModelFiles(
        model_path=directory / MODEL_FILENAME,
        vocab_path=directory / VOCAB_FILENAME,
    )


def ensure_model_files(model_id: str, cache_dir: Path | None = None) -> ModelFiles:
    """Download ``model.onnx`` and ``vocab.txt`` for *model_id* unless cached.

    Blocking; the async provider runs it in a worker thread.

    Raises:
        DownloadError: If either file cannot be fetched. Not retried.
    """
    files = local_model_files(model_dir(model_id, cache_dir or default_cache_dir()))
    base_url = f"{_HF_BASE_URL}/{model_id}/resolve/main"

    if not files.model_path.exists():
        url = f"{base_url}/onnx/{MODEL_FILENAME}"
        logger.info("Downloading model %s -> %s", url, files.model_path)
        download_file(url, files.model_path)
        logger.info("Model download complete.")

    if not files.vocab_path.exists():
        url = f"{base_url}/{VOCAB_FILENAME}"
        logger.info("Downloading vocab %s", url)
        download_file(url, files.vocab_path)
        logger.info("Vocab download complete.")

    return files


def download_file(url: str, destination: Path) -> None:
    """Stream *url* to *destination*, creating parent directories."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

    fd, tmp_name = tempfile.mkstemp(dir=destination.parent, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as out:
            try:
                with opener.open(request, timeout=_TIMEOUT) as response:
                    while block := response.read(_READ_BLOCK):
                        out.write(block)
            except urllib.error.HTTPError as exc:
                raise DownloadError(url, f"{exc.code} {exc.reason}") from exc
            except (urllib.error.URLError, OSError) as exc:
                raise DownloadError(url, str(exc)) from exc
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise DownloadError after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise DownloadError(req.full_url, f"too many redirects (>{self._max_redirects})")
        return super().redirect_request(req, fp, code, msg, headers, newurl)
