"""ragkit CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from ragkit.cli.index import index_cmd
from ragkit.cli.init import init_cmd
from ragkit.cli.query import query_cmd
from ragkit.cli.status import clear_cmd, stats_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("ragkit")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragkit {_version()}")
        raise typer.Exit()


def _configure_logging(verbose: int) -> None:
    """WARNING by default, INFO with -v, DEBUG with -vv. Logs go to stderr."""
    level = logging.WARNING if verbose <= 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


app = typer.Typer(
    name="ragkit",
    help=(
        "ragkit: local embeddings + SQLite vector store.\n\n"
        "  ragkit index   Index Markdown/text files.\n"
        "  ragkit query   Semantic search with metadata filters."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="More log output (-v info, -vv debug)."),
    ] = 0,
) -> None:
    """ragkit: local embeddings + SQLite vector store."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("query")(query_cmd)
app.command("stats")(stats_cmd)
app.command("clear")(clear_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragkit version."""
    typer.echo(f"ragkit {_version()}")


if __name__ == "__main__":
    app()
