"""ragkit query: semantic search over the store."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.table import Table

from ragkit.cli.common import console, resolve_config
from ragkit.cli.errors import err_invalid_where, err_no_db, err_rag
from ragkit.config import RagConfig
from ragkit.db.models import RAGQuery, RAGResult
from ragkit.errors import QueryError, RagError
from ragkit.metadata.filters import QueryFilters
from ragkit.metadata.schema import (
    BooleanType,
    DateType,
    FieldType,
    MetadataSchema,
    NumberType,
    ObjectType,
    unwrap,
)
from ragkit.store.provider import SqliteVecRAGProvider

_PREVIEW_CHARS = 160


def query_cmd(
    text: Annotated[str, typer.Argument(help="Query text.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum results (default: retrieval.limit)."),
    ] = None,
    resource_id: Annotated[
        list[str] | None,
        typer.Option("--resource-id", "-r", help="Restrict to a resource id (repeatable)."),
    ] = None,
    where: Annotated[
        list[str] | None,
        typer.Option("--where", "-w", help="Metadata filter field=value (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store (default: store.db_path from ragkit.yaml)."),
    ] = None,
) -> None:
    """Search the store and print the closest chunks."""
    try:
        cfg = resolve_config(db, readonly=True)
        if not Path(cfg.store.db_path).exists():
            console.print(err_no_db(cfg.store.db_path))
            raise typer.Exit(1)

        metadata: dict[str, Any] = {}
        for expr in where or []:
            key, sep, raw = expr.partition("=")
            if not sep or not key.strip():
                console.print(err_invalid_where(expr))
                raise typer.Exit(1)
            key = key.strip()
            metadata[key] = parse_filter_value(key, raw, cfg.metadata)

        filters = QueryFilters(resource_id=resource_id or None, metadata=metadata)
        query = RAGQuery(text=text, filters=filters, limit=limit or cfg.retrieval.limit)
        result = asyncio.run(_query(cfg, query))
    except RagError as exc:
        console.print(err_rag(exc))
        raise typer.Exit(1) from exc

    _print_result(result)


def parse_filter_value(key: str, raw: str, schema: MetadataSchema) -> Any:
    """Convert a command-line string to the Python type *key*'s field expects.

    Raises:
        QueryError: *key* is not in *schema*, or *raw* does not parse.
    """
    if key not in schema:
        known = ", ".join(schema) or "(none)"
        raise QueryError(f"Unknown metadata field '{key}'. Schema fields: {known}")
    field_type: FieldType = unwrap(schema[key])
    try:
        match field_type:
            case NumberType():
                number = float(raw)
                return int(number) if number.is_integer() and "." not in raw else number
            case BooleanType():
                lowered = raw.strip().lower()
                if lowered not in ("true", "false", "1", "0", "yes", "no"):
                    raise ValueError(f"expected true/false, got '{raw}'")
                return lowered in ("true", "1", "yes")
            case DateType():
                return datetime.fromisoformat(raw)
            case ObjectType():
                return json.loads(raw)
            case _:
                return raw
    except ValueError as exc:
        raise QueryError(f"Bad value for '{key}': {exc}") from exc


async def _query(cfg: RagConfig, query: RAGQuery) -> RAGResult:
    async with await SqliteVecRAGProvider.create(cfg) as provider:
        return await provider.query(query)


def _print_result(result: RAGResult) -> None:
    if not result.chunks:
        console.print("[yellow]No matching chunks.[/]")
        return

    table = Table(show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Resource")
    table.add_column("Location", style="dim")
    table.add_column("Content")

    for i, chunk in enumerate(result.chunks, start=1):
        location = chunk.heading_path or ""
        if chunk.start_line is not None:
            location = f"{location} (L{chunk.start_line}-{chunk.end_line})".strip()
        preview = " ".join(chunk.content.split())
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[: _PREVIEW_CHARS - 1] + "…"
        table.add_row(str(i), f"{chunk.score:.3f}", chunk.resource_id, location, preview)

    console.print(table)
    console.print(
        f"[dim]{result.stats.total_matches} matches in {result.stats.search_duration_ms} ms "
        f"({result.stats.embedding_model})[/]"
    )
