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
    "PRAGMA temp_store=MEMORY;",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS index_jobs (
  id TEXT PRIMARY KEY,
  collection TEXT NOT NULL,
  partition_json TEXT,
  into_name TEXT,
  status TEXT NOT NULL,
  metadata_json TEXT,
  summary_json TEXT,
  detail TEXT,
  created_at INTEGER NOT NULL,
  started_at INTEGER,
  finished_at INTEGER
);

CREATE INDEX IF NOT EXISTS idx_index_jobs_collection ON index_jobs (collection, created_at);

CREATE TABLE IF NOT EXISTS lifecycle_runs (
  id TEXT PRIMARY KEY,
  collection TEXT NOT NULL,
  mode TEXT NOT NULL,
  status TEXT NOT NULL,
  report_json TEXT NOT NULL,
  created_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_lifecycle_runs_collection ON lifecycle_runs (collection, created_at);
"""


class SQLiteDatabase:
    """Thin wrapper around sqlite3 providing pragmatic defaults.

    One connection is shared by the service and the job workers, so
    statements are serialised through a re-entrant lock.
    """

    def __init__(self, db_path: Path, read_only: bool = False) -> None:
        self.db_path = Path(db_path).expanduser()
        self.read_only = read_only
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is None:
                if self.read_only:
                    uri = f"file:{self.db_path}?mode=ro"
                    self._connection = sqlite3.connect(uri, uri=True, check_same_thread=False)
                else:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                    self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
                self._connection.row_factory = sqlite3.Row
                for pragma in DEFAULT_PRAGMAS:
                    self._connection.execute(pragma)
            return self._connection

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def __enter__(self) -> "SQLiteDatabase":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        self.close()

    def commit(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.rollback()

    def executescript(self, script: str) -> None:
        with self._lock:
            self.connect().executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        with self._lock:
            return self.connect().execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        with self._lock:
            return self.connect().execute(sql, params or []).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Row | None:
        with self._lock:
            return self.connect().execute(sql, params or []).fetchone()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            conn = self.connect()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        self.executescript(schema_sql or SCHEMA_SQL)


__all__ = ["SQLiteDatabase", "SCHEMA_SQL"]
