"""Tests for ragkit stats and ragkit clear."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from ragkit.cli.main import app

runner = CliRunner()


def _index_docs(root: Path, config: str = "") -> None:
    if config:
        (root / "ragkit.yaml").write_text(config)
    docs = root / "docs"
    docs.mkdir()
    (docs / "a.md").write_text("# A\n\nFirst document.\n")
    (docs / "b.md").write_text("# B\n\nSecond document.\n")
    result = runner.invoke(app, ["index", "docs"])
    assert result.exit_code == 0, result.output


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


def test_stats_shows_counts(cli_env):
    _index_docs(cli_env)
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0, result.output
    assert "Resources:  2" in result.output
    assert "Chunks:     2" in result.output
    assert "fake/hash-embed" in result.output
    assert "rag_chunks" in result.output


def test_stats_lists_metadata_fields(cli_env):
    _index_docs(cli_env, "metadata:\n  domain: string?\n  tags: array?\n")
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0, result.output
    assert "domain, tags" in result.output


def test_stats_missing_db(cli_env):
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 1
    assert "No database found" in result.output


def test_stats_explicit_db(cli_env):
    _index_docs(cli_env)
    (cli_env / ".ragkit.db").rename(cli_env / "moved.db")
    result = runner.invoke(app, ["stats", "--db", "moved.db"])

    assert result.exit_code == 0, result.output
    assert "Resources:  2" in result.output


# ---------------------------------------------------------------------------
# clear
# ---------------------------------------------------------------------------


def test_clear_with_yes(cli_env):
    _index_docs(cli_env)
    result = runner.invoke(app, ["clear", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Cleared" in result.output
    assert not (cli_env / ".ragkit.db").exists()


def test_clear_declined(cli_env):
    _index_docs(cli_env)
    result = runner.invoke(app, ["clear"], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled." in result.output
    assert (cli_env / ".ragkit.db").exists()


def test_clear_then_reindex(cli_env):
    _index_docs(cli_env)
    runner.invoke(app, ["clear", "-y"])
    result = runner.invoke(app, ["index", "docs"])

    assert result.exit_code == 0, result.output
    assert "Indexed 2 new" in result.output


def test_clear_missing_db(cli_env):
    result = runner.invoke(app, ["clear", "--yes"])

    assert result.exit_code == 1
    assert "No database found" in result.output
