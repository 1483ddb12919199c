"""Tests for the HuggingFace model file cache."""

from __future__ import annotations

import io
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from ragkit.embedding.download import (
    default_cache_dir,
    download_file,
    ensure_model_files,
    local_model_files,
    model_dir,
)
from ragkit.errors import DownloadError


def _opener_returning(payload: bytes):
    response = io.BytesIO(payload)
    opener = MagicMock()
    opener.open.return_value.__enter__.return_value = response
    opener.open.return_value.__exit__.return_value = False
    return opener


def test_default_cache_dir_uses_xdg(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    assert default_cache_dir() == tmp_path / "ragkit" / "onnx-models"


def test_model_dir_flattens_slashes(tmp_path):
    assert model_dir("org/name", tmp_path) == tmp_path / "org_name"


def test_local_model_files(tmp_path):
    files = local_model_files(tmp_path)
    assert files.model_path == tmp_path / "model.onnx"
    assert files.vocab_path == tmp_path / "vocab.txt"


def test_download_file_writes_destination(tmp_path):
    dest = tmp_path / "nested" / "model.onnx"
    with patch(
        "ragkit.embedding.download.urllib.request.build_opener",
        return_value=_opener_returning(b"weights"),
    ):
        download_file("https://example.test/model.onnx", dest)

    assert dest.read_bytes() == b"weights"
    assert list(dest.parent.glob("*.part")) == []


def test_download_file_http_error_raises_download_error(tmp_path):
    opener = MagicMock()
    opener.open.side_effect = urllib.error.HTTPError(
        "https://example.test/x", 404, "Not Found", {}, None
    )
    dest = tmp_path / "model.onnx"
    with patch("ragkit.embedding.download.urllib.request.build_opener", return_value=opener):
        with pytest.raises(DownloadError, match="404") as exc_info:
            download_file("https://example.test/x", dest)

    assert exc_info.value.url == "https://example.test/x"
    assert not dest.exists()
    assert list(tmp_path.glob("*.part")) == []


def test_download_file_network_error_raises_download_error(tmp_path):
    opener = MagicMock()
    opener.open.side_effect = urllib.error.URLError("connection refused")
    with patch("ragkit.embedding.download.urllib.request.build_opener", return_value=opener):
        with pytest.raises(DownloadError, match="connection refused"):
            download_file("https://example.test/x", tmp_path / "vocab.txt")


def test_ensure_model_files_downloads_missing(tmp_path):
    with patch("ragkit.embedding.download.download_file") as mock_dl:
        files = ensure_model_files("org/model", tmp_path)

    urls = [call.args[0] for call in mock_dl.call_args_list]
    assert urls == [
        "https://huggingface.co/org/model/resolve/main/onnx/model.onnx",
        "https://huggingface.co/org/model/resolve/main/vocab.txt",
    ]
    assert files.model_path == tmp_path / "org_model" / "model.onnx"


def test_ensure_model_files_skips_cached(tmp_path):
    directory = tmp_path / "org_model"
    directory.mkdir()
    (directory / "model.onnx").write_bytes(b"x")
    (directory / "vocab.txt").write_text("[PAD]")

    with patch("ragkit.embedding.download.download_file") as mock_dl:
        ensure_model_files("org/model", tmp_path)

    mock_dl.assert_not_called()
