"""ragkit index: index Markdown/text files into the store.

Each file becomes one Resource: id = path relative to the CWD, hash = sha256
of the file bytes, metadata = YAML frontmatter fields named in the schema.
Unchanged files are skipped by content hash.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from ragkit.cli.common import console, resolve_config
from ragkit.cli.errors import err_no_files, err_rag
from ragkit.config import RagConfig
from ragkit.db.models import IndexProgress, IndexResult, Resource
from ragkit.errors import RagError
from ragkit.resources import collect_files, resource_from_path
from ragkit.store.provider import SqliteVecRAGProvider


def index_cmd(
    paths: Annotated[
        list[Path],
        typer.Argument(help="Files or directories to index (directories are walked)."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store (default: store.db_path from ragkit.yaml)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt for paid embedding APIs."),
    ] = False,
) -> None:
    """Index files into the vector store."""
    files = collect_files(paths)
    if not files:
        console.print(err_no_files([str(p) for p in paths]))
        raise typer.Exit(1)

    try:
        cfg = resolve_config(db)
        resources, unreadable = _load_resources(files)
        for path, reason in unreadable:
            console.print(f"  [red]✗[/] {path}: {reason}")

        if cfg.embedding.provider == "litellm" and not yes:
            tokens = sum(r.estimated_token_count for r in resources)
            console.print(
                f"{len(resources)} files, ~{tokens:,} tokens to embed via "
                f"{cfg.embedding.model or 'the default remote model'} (unchanged files are skipped)."
            )
            if not typer.confirm("Proceed with embedding?", default=True):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        result = asyncio.run(_index(cfg, resources))
    except RagError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1) from exc

    _print_result(result)
    if result.errors or unreadable:
        raise typer.Exit(1)


def _load_resources(files: list[Path]) -> tuple[list[Resource], list[tuple[Path, str]]]:
    resources: list[Resource] = []
    unreadable: list[tuple[Path, str]] = []
    root = Path.cwd()
    for f in files:
        try:
            resources.append(resource_from_path(f, root))
        except (OSError, UnicodeDecodeError) as exc:
            unreadable.append((f, str(exc)))
    return resources, unreadable


async def _index(cfg: RagConfig, resources: list[Resource]) -> IndexResult:
    async with await SqliteVecRAGProvider.create(cfg) as provider:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Indexing…", total=len(resources))

            def _on_progress(p: IndexProgress) -> None:
                prog.update(task, completed=p.resources_done, description=f"Indexing {p.resource_id}")

            return await provider.index_resources(resources, on_progress=_on_progress)


def _print_result(result: IndexResult) -> None:
    new = result.resources_indexed - result.resources_updated
    console.print(
        f"[green]✓[/] Indexed {new} new, {result.resources_updated} updated, "
        f"{result.resources_skipped} unchanged  |  "
        f"chunks +{result.chunks_created} / -{result.chunks_deleted}  |  "
        f"{result.duration_ms} ms"
    )
    for err in result.errors:
        console.print(f"  [red]✗[/] {err['resource_id']}: {err['error']}")
