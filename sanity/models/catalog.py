"""Catalog verification models: test runs, connectors and components."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TestRunStatus(str, Enum):
    in_progress = "in_progress"
    completed = "completed"


class ConnectorStatus(str, Enum):
    pending = "pending"
    ok = "ok"
    fail = "fail"
    blocked = "blocked"


class ComponentStatus(str, Enum):
    pending = "pending"
    ok = "ok"
    fail = "fail"


@dataclass
class TestRun:
    """A timestamped snapshot of the catalog tracked for manual verification."""

    __test__ = False

    id: str
    name: str
    created_at: str = ""
    status: str = TestRunStatus.in_progress.value
    connector_count: int = 0
    ok_count: int = 0
    fail_count: int = 0
    blocked_count: int = 0

    @property
    def pending_count(self) -> int:
        return self.connector_count - self.ok_count - self.fail_count - self.blocked_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "status": self.status,
            "connector_count": self.connector_count,
            "ok_count": self.ok_count,
            "fail_count": self.fail_count,
            "blocked_count": self.blocked_count,
            "pending_count": self.pending_count,
        }


@dataclass
class Connector:
    """A pluggable integration package inside a test run."""

    id: str
    test_run_id: str
    connector_name: str
    version: str
    label: str = ""
    description: str = ""
    icon: str = ""
    status: str = ConnectorStatus.pending.value
    blocked_reason: str | None = None
    notes: str = ""
    created_at: str = ""
    component_count: int = 0
    ok_count: int = 0
    fail_count: int = 0

    @property
    def is_blocked(self) -> bool:
        return self.status == ConnectorStatus.blocked.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "connector_name": self.connector_name,
            "version": self.version,
            "label": self.label,
            "description": self.description,
            "icon": self.icon,
            "status": self.status,
            "blocked_reason": self.blocked_reason,
            "notes": self.notes,
            "created_at": self.created_at,
            "component_count": self.component_count,
            "ok_count": self.ok_count,
            "fail_count": self.fail_count,
        }


@dataclass
class Component:
    """A single automation unit belonging to a connector."""

    id: str
    connector_id: str
    component_name: str
    label: str = ""
    description: str = ""
    icon: str = ""
    version: str = ""
    is_private: bool = False
    status: str = ComponentStatus.pending.value
    github_issues: list[str] = field(default_factory=list)
    tested_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "connector_id": self.connector_id,
            "component_name": self.component_name,
            "label": self.label,
            "description": self.description,
            "icon": self.icon,
            "version": self.version,
            "is_private": self.is_private,
            "status": self.status,
            "github_issues": list(self.github_issues),
            "tested_at": self.tested_at,
        }


def run_from_row(row: dict) -> TestRun:
    return TestRun(
        id=row["id"],
        name=row["name"],
        created_at=str(row.get("created_at") or ""),
        status=row.get("status") or TestRunStatus.in_progress.value,
        connector_count=int(row.get("connector_count") or 0),
        ok_count=int(row.get("ok_count") or 0),
        fail_count=int(row.get("fail_count") or 0),
        blocked_count=int(row.get("blocked_count") or 0),
    )


def connector_from_row(row: dict) -> Connector:
    return Connector(
        id=row["id"],
        test_run_id=row["test_run_id"],
        connector_name=row["connector_name"],
        version=row["version"],
        label=row.get("label") or "",
        description=row.get("description") or "",
        icon=row.get("icon") or "",
        status=row.get("status") or ConnectorStatus.pending.value,
        blocked_reason=row.get("blocked_reason"),
        notes=row.get("notes") or "",
        created_at=str(row.get("created_at") or ""),
        component_count=int(row.get("component_count") or 0),
        ok_count=int(row.get("ok_count") or 0),
        fail_count=int(row.get("fail_count") or 0),
    )


def component_from_row(row: dict) -> Component:
    return Component(
        id=row["id"],
        connector_id=row["connector_id"],
        component_name=row["component_name"],
        label=row.get("label") or "",
        description=row.get("description") or "",
        icon=row.get("icon") or "",
        version=row.get("version") or "",
        is_private=bool(row.get("is_private")),
        status=row.get("status") or ComponentStatus.pending.value,
        github_issues=_decode_issues(row.get("github_issues")),
        tested_at=row.get("tested_at"),
    )


def _decode_issues(raw: Any) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(i) for i in raw]
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return [str(raw)]
    return [str(i) for i in data] if isinstance(data, list) else []
