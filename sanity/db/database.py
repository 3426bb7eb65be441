"""Relational store access through a parametrized execute/query contract.

The rest of the package only depends on :class:`Database`; the bundled
implementation is SQLite, which is what local development and the tests
use.
"""

from __future__ import annotations

import os
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

DEFAULT_DB_PATH = Path.home() / ".sanity" / "sanity.db"

SCHEMA: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS test_runs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        status TEXT CHECK(status IN ('in_progress', 'completed')) DEFAULT 'in_progress'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS connectors (
        id TEXT PRIMARY KEY,
        test_run_id TEXT NOT NULL,
        connector_name TEXT NOT NULL,
        version TEXT NOT NULL,
        label TEXT,
        description TEXT,
        icon TEXT,
        status TEXT CHECK(status IN ('pending', 'ok', 'fail', 'blocked')) DEFAULT 'pending',
        blocked_reason TEXT,
        notes TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (test_run_id) REFERENCES test_runs(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS components (
        id TEXT PRIMARY KEY,
        connector_id TEXT NOT NULL,
        component_name TEXT NOT NULL,
        label TEXT,
        description TEXT,
        icon TEXT,
        version TEXT,
        is_private BOOLEAN DEFAULT FALSE,
        status TEXT CHECK(status IN ('pending', 'ok', 'fail')) DEFAULT 'pending',
        github_issues TEXT DEFAULT '[]',
        tested_at DATETIME,
        FOREIGN KEY (connector_id) REFERENCES connectors(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        user_id TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, key)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_connectors_test_run ON connectors(test_run_id)",
    "CREATE INDEX IF NOT EXISTS idx_components_connector ON components(connector_id)",
    "CREATE INDEX IF NOT EXISTS idx_test_runs_created ON test_runs(created_at DESC)",
]


class Database(Protocol):
    """Parametrized execute/query contract consumed by the stores."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement and return the number of affected rows."""
        ...

    def execute_many(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        ...

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return the rows as dicts."""
        ...


class SQLiteDatabase:
    """SQLite-backed :class:`Database`.

    A single connection is shared between threads (FastAPI runs sync work in
    a thread pool), so every statement is serialized through a lock.
    ``":memory:"`` is accepted for throwaway databases.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        if path is None:
            path = os.environ.get("SANITY_DATABASE_PATH") or DEFAULT_DB_PATH
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._lock:
            cursor = self._conn.execute(sql, tuple(params))
            self._conn.commit()
            return cursor.rowcount

    def execute_many(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        with self._lock:
            self._conn.executemany(sql, [tuple(r) for r in rows])
            self._conn.commit()

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            cursor = self._conn.execute(sql, tuple(params))
            return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def initialize_schema(db: Database) -> None:
    """Create tables and indexes if they do not exist yet."""
    for statement in SCHEMA:
        db.execute(statement)
