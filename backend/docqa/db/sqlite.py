"""SQLite management utilities."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
    "PRAGMA busy_timeout=5000;",
)


class SQLiteDatabase:
    """Thin wrapper around sqlite3 providing pragmatic defaults.

    The connection is opened lazily on first use. A single connection is
    shared by the API thread pool and the worker, so statements are
    serialised through a re-entrant lock held for the length of a
    transaction.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path.expanduser()
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            for pragma in DEFAULT_PRAGMAS:
                self._connection.execute(pragma)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def executescript(self, script: str) -> None:
        with self._lock:
            conn = self.connect()
            conn.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        with self._lock:
            conn = self.connect()
            return conn.execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchall()

    @contextmanager
    def transaction(self, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
        """Run a block in one transaction; ``immediate`` takes the write lock up front."""
        with self._lock:
            conn = self.connect()
            if conn.in_transaction:
                conn.commit()
            cursor = conn.cursor()
            try:
                if immediate:
                    cursor.execute("BEGIN IMMEDIATE")
                yield cursor
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        if schema_sql is None:
            schema_path = Path(__file__).with_name("schema.sql")
            schema_sql = schema_path.read_text(encoding="utf-8")
        self.executescript(schema_sql)


__all__ = ["SQLiteDatabase"]
