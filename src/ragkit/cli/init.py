"""ragkit init: scaffold ragkit.yaml and the global config.

Creates:
  ragkit.yaml              project config (embedding, store, metadata schema)
  ~/.ragkit/config.yaml    global model defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ragkit.cli.common import console
from ragkit.config import DEFAULT_DB_PATH, ensure_global_config

_PROJECT_TEMPLATE = """\
# ragkit project configuration.
# API keys go in environment variables, never in this file.

embedding:
  provider: {provider}          # onnx (local) | litellm (remote API)
  # model: sentence-transformers/all-MiniLM-L6-v2

store:
  db_path: {db_path}
  table_name: rag_chunks

chunking:
  target_chunk_size: 512
  padding_factor: 0.9

retrieval:
  limit: 10

# Frontmatter fields to store with every chunk and filter on with --where.
# Types: string, number, boolean, date, array, object; append ? for optional.
metadata: {{}}
#   domain: string
#   tags: array?
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
    provider: Annotated[
        str,
        typer.Option("--provider", help="Embedding provider: onnx or litellm."),
    ] = "onnx",
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override global config path (for testing)."),
    ] = None,
) -> None:
    """Create ragkit.yaml in PROJECT_DIR."""
    if provider not in ("onnx", "litellm"):
        console.print(f"[red]Error:[/] Unknown provider '{provider}'.\n  Use:  --provider onnx|litellm")
        raise typer.Exit(1)

    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)
    target = project_dir / "ragkit.yaml"

    if target.exists():
        console.print(f"[yellow]⚠[/]  {target} already exists; leaving it unchanged.")
    else:
        target.write_text(
            _PROJECT_TEMPLATE.format(provider=provider, db_path=DEFAULT_DB_PATH),
            encoding="utf-8",
        )
        console.print(f"  [green]✓[/] {target}")

    global_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {global_path}")
