"""SQLite connection layer with sqlite-vec extension."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

from ragkit.errors import StorageError


class Database:
    """SQLite store file with sqlite-vec vector search support."""

    def __init__(self, db_path: Path | str, *, readonly: bool = False) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing,
                unless *readonly*).
            readonly: Open with ``mode=ro``; the file must already exist.
        """
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection.

        Raises:
            StorageError: The file cannot be opened or the extension cannot load.
        """
        try:
            if self.readonly:
                if not self.db_path.exists():
                    raise StorageError(f"Database not found: {self.db_path}")
                conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
            if not self.readonly:
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        except AttributeError as exc:
            # Python builds without loadable-extension support lack enable_load_extension.
            raise StorageError(
                f"This Python's sqlite3 cannot load extensions (needed for sqlite-vec): {exc}"
            ) from exc
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None
