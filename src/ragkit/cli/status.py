"""ragkit stats and ragkit clear: store overview and reset."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel

from ragkit.cli.common import console, resolve_config
from ragkit.cli.errors import err_no_db, err_rag
from ragkit.config import RagConfig
from ragkit.db.models import RAGStats
from ragkit.errors import RagError
from ragkit.store.provider import SqliteVecRAGProvider

_DB_OPTION_HELP = "Path to the store (default: store.db_path from ragkit.yaml)."


def stats_cmd(
    db: Annotated[Path | None, typer.Option("--db", help=_DB_OPTION_HELP)] = None,
) -> None:
    """Show chunk and resource counts for the store."""
    try:
        cfg = resolve_config(db, readonly=True)
        if not Path(cfg.store.db_path).exists():
            console.print(err_no_db(cfg.store.db_path))
            raise typer.Exit(1)
        stats = asyncio.run(_stats(cfg))
    except RagError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1) from exc

    last = stats.last_indexed.strftime("%Y-%m-%d %H:%M UTC") if stats.last_indexed else "never"
    size_mb = stats.db_size_bytes / (1024 * 1024)
    lines = [
        f"Database:   {cfg.store.db_path} ({size_mb:.1f} MB)",
        f"Table:      {cfg.store.table_name}",
        f"Resources:  [bold]{stats.total_resources:,}[/]",
        f"Chunks:     [bold]{stats.total_chunks:,}[/]",
        f"Model:      {stats.embedding_model}",
        f"Indexed:    {last}",
    ]
    if cfg.metadata:
        lines.append(f"Metadata:   {', '.join(cfg.metadata)}")
    console.print(Panel("\n".join(lines), title="[bold]ragkit store[/]", expand=False))


def clear_cmd(
    db: Annotated[Path | None, typer.Option("--db", help=_DB_OPTION_HELP)] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete every indexed chunk and the database file."""
    try:
        cfg = resolve_config(db)
        if not Path(cfg.store.db_path).exists():
            console.print(err_no_db(cfg.store.db_path))
            raise typer.Exit(1)

        if not yes:
            if not typer.confirm(f"Delete all data in {cfg.store.db_path}?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        asyncio.run(_clear(cfg))
    except RagError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1) from exc

    console.print(f"[green]✓[/] Cleared {cfg.store.db_path}")


async def _stats(cfg: RagConfig) -> RAGStats:
    async with await SqliteVecRAGProvider.create(cfg) as provider:
        return await provider.get_stats()


async def _clear(cfg: RagConfig) -> None:
    provider = await SqliteVecRAGProvider.create(cfg)
    try:
        await provider.clear()
    finally:
        await provider.close()
