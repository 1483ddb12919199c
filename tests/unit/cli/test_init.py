"""Tests for ragkit init."""

from __future__ import annotations

import stat

import yaml
from typer.testing import CliRunner

from ragkit.cli.main import app
from ragkit.config import load_config

runner = CliRunner()


def test_init_writes_project_config(cli_env):
    global_cfg = cli_env / "home" / "config.yaml"
    result = runner.invoke(app, ["init", "--global-config", str(global_cfg)])

    assert result.exit_code == 0, result.output
    data = yaml.safe_load((cli_env / "ragkit.yaml").read_text())
    assert data["embedding"]["provider"] == "onnx"
    assert data["store"]["table_name"] == "rag_chunks"
    assert data["metadata"] == {}
    assert global_cfg.exists()
    assert stat.S_IMODE(global_cfg.stat().st_mode) == 0o600


def test_init_output_loads_as_config(cli_env):
    runner.invoke(app, ["init", "--global-config", str(cli_env / "home" / "config.yaml")])
    cfg = load_config(cli_env, global_config_path=cli_env / "home" / "config.yaml")
    assert cfg.embedding.provider == "onnx"
    assert cfg.retrieval.limit == 10
    assert cfg.metadata == {}


def test_init_litellm_provider(cli_env):
    result = runner.invoke(
        app,
        ["init", "project", "--provider", "litellm", "--global-config", str(cli_env / "g.yaml")],
    )
    assert result.exit_code == 0, result.output
    data = yaml.safe_load((cli_env / "project" / "ragkit.yaml").read_text())
    assert data["embedding"]["provider"] == "litellm"


def test_init_keeps_existing_config(cli_env):
    (cli_env / "ragkit.yaml").write_text("retrieval:\n  limit: 3\n")
    result = runner.invoke(app, ["init", "--global-config", str(cli_env / "g.yaml")])

    assert result.exit_code == 0
    assert "already exists" in result.output
    assert (cli_env / "ragkit.yaml").read_text() == "retrieval:\n  limit: 3\n"


def test_init_unknown_provider(cli_env):
    result = runner.invoke(app, ["init", "--provider", "openai", "--global-config", str(cli_env / "g.yaml")])
    assert result.exit_code == 1
    assert "Unknown provider" in result.output
    assert not (cli_env / "ragkit.yaml").exists()
