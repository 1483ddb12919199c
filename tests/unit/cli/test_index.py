"""Tests for ragkit index."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from ragkit.cli.main import app

runner = CliRunner()


def _write_docs(root: Path) -> Path:
    docs = root / "docs"
    docs.mkdir()
    (docs / "install.md").write_text("# Install\n\nRun the installer and restart.\n")
    (docs / "usage.md").write_text("# Usage\n\nPass a path to index it.\n")
    return docs


def test_index_new_files(cli_env):
    _write_docs(cli_env)
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 0, result.output
    assert "Indexed 2 new, 0 updated, 0 unchanged" in result.output
    assert (cli_env / ".ragkit.db").exists()


def test_index_skips_unchanged(cli_env):
    _write_docs(cli_env)
    runner.invoke(app, ["index", "docs"])
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 0, result.output
    assert "Indexed 0 new, 0 updated, 2 unchanged" in result.output
    assert "chunks +0 / -0" in result.output


def test_index_reports_updates(cli_env):
    docs = _write_docs(cli_env)
    runner.invoke(app, ["index", "docs"])
    (docs / "usage.md").write_text("# Usage\n\nPass several paths at once.\n")
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 0, result.output
    assert "Indexed 0 new, 1 updated, 1 unchanged" in result.output


def test_index_custom_db_path(cli_env):
    _write_docs(cli_env)
    result = runner.invoke(app, ["index", "docs", "--db", "store/custom.db"])

    assert result.exit_code == 0, result.output
    assert (cli_env / "store" / "custom.db").exists()
    assert not (cli_env / ".ragkit.db").exists()


def test_index_no_files(cli_env):
    (cli_env / "empty").mkdir()
    result = runner.invoke(app, ["index", "empty"])

    assert result.exit_code == 1
    assert "No indexable files" in result.output


def test_index_unreadable_file_exits_nonzero(cli_env):
    docs = _write_docs(cli_env)
    (docs / "broken.md").write_bytes(b"\xff\xfe\x00broken")
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 1
    assert "broken.md" in result.output
    assert "Indexed 2 new" in result.output


def test_index_missing_required_metadata_fails_resource(cli_env):
    (cli_env / "ragkit.yaml").write_text("metadata:\n  domain: string\n")
    docs = _write_docs(cli_env)
    (docs / "install.md").write_text("---\ndomain: ops\n---\n# Install\n\nRun it.\n")
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 1
    assert "Indexed 1 new" in result.output
    assert "docs/usage.md" in result.output


def test_index_litellm_asks_for_confirmation(cli_env):
    (cli_env / "ragkit.yaml").write_text("embedding:\n  provider: litellm\n  model: openai/text-embedding-3-small\n")
    _write_docs(cli_env)
    result = runner.invoke(app, ["index", "docs"], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert not (cli_env / ".ragkit.db").exists()


def test_index_litellm_yes_skips_prompt(cli_env):
    (cli_env / "ragkit.yaml").write_text("embedding:\n  provider: litellm\n  model: openai/text-embedding-3-small\n")
    _write_docs(cli_env)
    result = runner.invoke(app, ["index", "docs", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Proceed" not in result.output
    assert "Indexed 2 new" in result.output


def test_index_invalid_config(cli_env):
    (cli_env / "ragkit.yaml").write_text("embedding:\n  provider: word2vec\n")
    _write_docs(cli_env)
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 1
    assert "Unknown embedding provider" in result.output
