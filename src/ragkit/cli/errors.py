"""ragkit rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from ragkit.cli.errors import err_no_db
    console.print(err_no_db(".ragkit.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from ragkit.errors import (
    ConfigurationError,
    DownloadError,
    QueryError,
    RagError,
    StorageError,
    ValidationError,
)


def err_no_db(db_path: str = ".ragkit.db") -> str:
    """No store found at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  ragkit index <PATH>"
    )


def err_no_files(paths: list[str]) -> str:
    """Nothing indexable under the given paths."""
    return (
        f"[yellow]No indexable files found in:[/] {escape(', '.join(paths))}\n"
        "  Supported extensions: .md .markdown .txt .rst .text"
    )


def err_invalid_where(expr: str) -> str:
    """--where expression is not key=value."""
    return (
        f"[red]Error:[/] Invalid --where expression: '{escape(expr)}'\n"
        "  Use:  --where field=value   (field must be declared under metadata: in ragkit.yaml)"
    )


def err_download(exc: DownloadError) -> str:
    return (
        f"[red]Error:[/] Could not download the embedding model.\n"
        f"  {escape(str(exc))}\n"
        "  Check your network connection, or set embedding.model_path in ragkit.yaml\n"
        "  to a directory containing model.onnx and vocab.txt."
    )


def err_configuration(exc: ConfigurationError) -> str:
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        "  Check ragkit.yaml and ~/.ragkit/config.yaml, or run:  ragkit init"
    )


def err_query(exc: QueryError) -> str:
    return (
        f"[red]Error:[/] Invalid query: {escape(str(exc))}\n"
        "  Filter only on fields declared under metadata: in ragkit.yaml."
    )


def err_storage(exc: StorageError) -> str:
    return (
        f"[red]Error:[/] Storage failure: {escape(str(exc))}\n"
        "  Check the --db path and file permissions."
    )


def err_rag(exc: RagError) -> str:
    """Pick the message for any ragkit error."""
    match exc:
        case DownloadError():
            return err_download(exc)
        case ConfigurationError():
            return err_configuration(exc)
        case QueryError():
            return err_query(exc)
        case StorageError():
            return err_storage(exc)
        case ValidationError():
            return f"[red]Error:[/] Invalid data: {escape(str(exc))}"
        case _:
            return f"[red]Error:[/] {escape(str(exc))}"
