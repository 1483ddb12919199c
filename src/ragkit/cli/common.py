"""Shared helpers for ragkit CLI commands."""

from __future__ import annotations

import dataclasses
from pathlib import Path

from rich.console import Console

from ragkit.config import RagConfig, load_config

console = Console()


def resolve_config(db: Path | None, *, readonly: bool = False) -> RagConfig:
    """Load config from the CWD and apply ``--db`` / readonly overrides."""
    cfg = load_config()
    if db is not None:
        cfg.store.db_path = str(db)
    if readonly:
        cfg.store = dataclasses.replace(cfg.store, readonly=True)
    return cfg
