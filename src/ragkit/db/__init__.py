"""ragkit storage layer: SQLite + sqlite-vec."""

from ragkit.db.connection import Database
from ragkit.db.migrations import DEFAULT_TABLE_NAME, MIGRATIONS, run_migrations
from ragkit.db.repository import ChunkRepository
from ragkit.db.vectors import ensure_vec_table, vec_table_name

__all__ = [
    "ChunkRepository",
    "DEFAULT_TABLE_NAME",
    "Database",
    "MIGRATIONS",
    "ensure_vec_table",
    "run_migrations",
    "vec_table_name",
]
