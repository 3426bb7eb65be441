"""Entity stores for test runs, connectors, components and settings.

Each store wraps a :class:`~sanity.db.database.Database` and speaks in the
dataclasses from :mod:`sanity.models.catalog`. Stores do not touch caches;
cache reads and invalidation live in :mod:`sanity.catalog.service` and
:mod:`sanity.rollup.engine`.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Iterable, Mapping

from sanity.db.database import Database
from sanity.models.catalog import (
    Component,
    Connector,
    TestRun,
    component_from_row,
    connector_from_row,
    run_from_row,
)

_RUN_COUNTS = """
    (SELECT COUNT(*) FROM connectors WHERE test_run_id = tr.id) AS connector_count,
    (SELECT COUNT(*) FROM connectors WHERE test_run_id = tr.id AND status = 'ok') AS ok_count,
    (SELECT COUNT(*) FROM connectors WHERE test_run_id = tr.id AND status = 'fail') AS fail_count,
    (SELECT COUNT(*) FROM connectors WHERE test_run_id = tr.id AND status = 'blocked') AS blocked_count
"""

_CONNECTOR_COUNTS = """
    (SELECT COUNT(*) FROM components WHERE connector_id = c.id) AS component_count,
    (SELECT COUNT(*) FROM components WHERE connector_id = c.id AND status = 'ok') AS ok_count,
    (SELECT COUNT(*) FROM components WHERE connector_id = c.id AND status = 'fail') AS fail_count
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TestRunStore:
    """Test run rows plus their aggregate connector counts."""

    __test__ = False

    def __init__(self, db: Database) -> None:
        self.db = db

    def list_all(self) -> list[TestRun]:
        rows = self.db.query(
            f"SELECT tr.*, {_RUN_COUNTS} FROM test_runs tr ORDER BY tr.created_at DESC, tr.rowid DESC"
        )
        return [run_from_row(r) for r in rows]

    def get(self, run_id: str) -> TestRun | None:
        rows = self.db.query(
            f"SELECT tr.*, {_RUN_COUNTS} FROM test_runs tr WHERE tr.id = ?",
            (run_id,),
        )
        return run_from_row(rows[0]) if rows else None

    def create(self, run_id: str, name: str) -> TestRun:
        self.db.execute(
            "INSERT INTO test_runs (id, name, created_at) VALUES (?, ?, ?)",
            (run_id, name, _now()),
        )
        return self.get(run_id)  # type: ignore[return-value]

    def update_status(self, run_id: str, status: str) -> None:
        self.db.execute("UPDATE test_runs SET status = ? WHERE id = ?", (status, run_id))

    def delete(self, run_id: str) -> None:
        """Delete a run together with its connectors and components."""
        self.db.execute(
            "DELETE FROM components WHERE connector_id IN "
            "(SELECT id FROM connectors WHERE test_run_id = ?)",
            (run_id,),
        )
        self.db.execute("DELETE FROM connectors WHERE test_run_id = ?", (run_id,))
        self.db.execute("DELETE FROM test_runs WHERE id = ?", (run_id,))

    def daily_report(self, run_id: str) -> dict:
        """Build the verification report of a run.

        Components are grouped by the day they were last tested; failed
        components are listed with their issue references and blocked
        connectors with their reason.
        """
        totals = self.db.query(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN co.status = 'ok' THEN 1 ELSE 0 END) AS ok_count,
                SUM(CASE WHEN co.status = 'fail' THEN 1 ELSE 0 END) AS fail_count
            FROM components co
            JOIN connectors c ON c.id = co.connector_id
            WHERE c.test_run_id = ?
            """,
            (run_id,),
        )[0]
        days = self.db.query(
            """
            SELECT
                substr(co.tested_at, 1, 10) AS day,
                COUNT(*) AS tested,
                SUM(CASE WHEN co.status = 'ok' THEN 1 ELSE 0 END) AS ok_count,
                SUM(CASE WHEN co.status = 'fail' THEN 1 ELSE 0 END) AS fail_count
            FROM components co
            JOIN connectors c ON c.id = co.connector_id
            WHERE c.test_run_id = ? AND co.tested_at IS NOT NULL
            GROUP BY day
            ORDER BY day
            """,
            (run_id,),
        )
        failed = self.db.query(
            """
            SELECT c.connector_name, co.component_name, co.github_issues, co.tested_at
            FROM components co
            JOIN connectors c ON c.id = co.connector_id
            WHERE c.test_run_id = ? AND co.status = 'fail'
            ORDER BY c.connector_name, co.component_name
            """,
            (run_id,),
        )
        blocked = self.db.query(
            """
            SELECT connector_name, blocked_reason FROM connectors
            WHERE test_run_id = ? AND status = 'blocked'
            ORDER BY connector_name
            """,
            (run_id,),
        )

        total = int(totals["total"] or 0)
        ok_count = int(totals["ok_count"] or 0)
        fail_count = int(totals["fail_count"] or 0)
        return {
            "test_run_id": run_id,
            "totals": {
                "components": total,
                "ok": ok_count,
                "fail": fail_count,
                "pending": total - ok_count - fail_count,
            },
            "days": [
                {
                    "date": d["day"],
                    "tested": int(d["tested"] or 0),
                    "ok": int(d["ok_count"] or 0),
                    "fail": int(d["fail_count"] or 0),
                }
                for d in days
            ],
            "failed_components": [
                {
                    "connector_name": f["connector_name"],
                    "component_name": f["component_name"],
                    "github_issues": json.loads(f["github_issues"] or "[]"),
                    "tested_at": f["tested_at"],
                }
                for f in failed
            ],
            "blocked_connectors": [
                {"connector_name": b["connector_name"], "blocked_reason": b["blocked_reason"]}
                for b in blocked
            ],
        }


class ConnectorStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def list_by_test_run(self, run_id: str) -> list[Connector]:
        rows = self.db.query(
            f"SELECT c.*, {_CONNECTOR_COUNTS} FROM connectors c "
            "WHERE c.test_run_id = ? ORDER BY c.connector_name",
            (run_id,),
        )
        return [connector_from_row(r) for r in rows]

    def get(self, connector_id: str) -> Connector | None:
        rows = self.db.query(
            f"SELECT c.*, {_CONNECTOR_COUNTS} FROM connectors c WHERE c.id = ?",
            (connector_id,),
        )
        return connector_from_row(rows[0]) if rows else None

    def add(self, connector: Connector) -> None:
        self.db.execute(
            """
            INSERT INTO connectors
                (id, test_run_id, connector_name, version, label, description, icon, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                connector.id,
                connector.test_run_id,
                connector.connector_name,
                connector.version,
                connector.label,
                connector.description,
                connector.icon,
                _now(),
            ),
        )

    def update_status(
        self, connector_id: str, status: str, blocked_reason: str | None = None
    ) -> None:
        self.db.execute(
            "UPDATE connectors SET status = ?, blocked_reason = ? WHERE id = ?",
            (status, blocked_reason, connector_id),
        )

    def set_derived_status(self, connector_id: str, status: str) -> bool:
        """Write a rolled-up status unless the connector is blocked.

        The blocked check is part of the UPDATE so a concurrent manual
        block is never overwritten. Returns True when a row changed.
        """
        changed = self.db.execute(
            "UPDATE connectors SET status = ? WHERE id = ? AND status != 'blocked'",
            (status, connector_id),
        )
        return changed > 0

    def update_notes(self, connector_id: str, notes: str) -> None:
        self.db.execute("UPDATE connectors SET notes = ? WHERE id = ?", (notes, connector_id))

    def component_stats(self, connector_id: str) -> tuple[int, int, int]:
        """Return ``(total, ok, fail)`` counts of the connector's components."""
        row = self.db.query(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN status = 'ok' THEN 1 ELSE 0 END) AS ok_count,
                SUM(CASE WHEN status = 'fail' THEN 1 ELSE 0 END) AS fail_count
            FROM components WHERE connector_id = ?
            """,
            (connector_id,),
        )[0]
        return int(row["total"] or 0), int(row["ok_count"] or 0), int(row["fail_count"] or 0)


class ComponentStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def list_by_connector(self, connector_id: str) -> list[Component]:
        rows = self.db.query(
            "SELECT * FROM components WHERE connector_id = ? ORDER BY component_name",
            (connector_id,),
        )
        return [component_from_row(r) for r in rows]

    def get(self, component_id: str) -> Component | None:
        rows = self.db.query("SELECT * FROM components WHERE id = ?", (component_id,))
        return component_from_row(rows[0]) if rows else None

    def add_many(self, components: Iterable[Component]) -> None:
        self.db.execute_many(
            """
            INSERT INTO components
                (id, connector_id, component_name, label, description, icon, version, is_private)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    c.id,
                    c.connector_id,
                    c.component_name,
                    c.label,
                    c.description,
                    c.icon,
                    c.version,
                    1 if c.is_private else 0,
                )
                for c in components
            ],
        )

    def update_status(self, component_id: str, status: str, github_issues: list[str]) -> None:
        self.db.execute(
            "UPDATE components SET status = ?, github_issues = ?, tested_at = ? WHERE id = ?",
            (status, json.dumps(github_issues), _now(), component_id),
        )


class SettingsStore:
    """Per-user key/value overrides for remote-service configuration."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def get_many(self, user_id: str, keys: Iterable[str]) -> dict[str, str]:
        keys = list(keys)
        if not keys:
            return {}
        placeholders = ", ".join("?" for _ in keys)
        rows = self.db.query(
            f"SELECT key, value FROM settings WHERE user_id = ? AND key IN ({placeholders})",
            (user_id, *keys),
        )
        return {r["key"]: r["value"] or "" for r in rows}

    def set_many(self, user_id: str, values: Mapping[str, str]) -> None:
        self.db.execute_many(
            """
            INSERT INTO settings (user_id, key, value, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, key) DO UPDATE SET
                value = excluded.value, updated_at = excluded.updated_at
            """,
            [(user_id, key, value, _now()) for key, value in values.items()],
        )
