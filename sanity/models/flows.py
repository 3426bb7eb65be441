"""Flow reconciliation models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class SyncStatus:
    MATCH = "match"  # Canonical hashes are equal
    MODIFIED = "modified"  # Canonical hashes differ
    SERVER_ONLY = "server_only"  # No repository file with the same flow name
    ERROR = "error"  # A required fetch failed

    ALL = (MATCH, MODIFIED, SERVER_ONLY, ERROR)


@dataclass
class FlowRecord:
    """A flow as listed by the execution server."""

    flow_id: str
    name: str
    stage: str = ""
    btime: str = ""
    mtime: str = ""

    @property
    def running(self) -> bool:
        return self.stage == "running"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "FlowRecord":
        return cls(
            flow_id=str(data.get("flowId", "")),
            name=data.get("name") or "",
            stage=data.get("stage") or "",
            btime=data.get("btime") or "",
            mtime=data.get("mtime") or "",
        )


@dataclass
class RepositoryFlowRecord:
    """A flow definition file tracked in the source-control repository."""

    path: str
    sha: str
    connector: str = "unknown"
    url: str = ""
    content: dict[str, Any] | None = None

    @property
    def name(self) -> str:
        if self.content:
            return self.content.get("name") or ""
        return ""


@dataclass
class FlowSyncState:
    """Drift classification of one server flow."""

    flow_id: str
    status: str
    repository_path: str | None = None
    repository_url: str | None = None
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sync_status": self.status,
            "github_path": self.repository_path,
            "github_url": self.repository_url,
        }


@dataclass
class FlowSelection:
    """A flow chosen for synchronization into the repository."""

    flow_id: str
    name: str
    connector: str = ""
    repository_path: str = ""


@dataclass
class SyncedFlow:
    flow_id: str
    name: str
    path: str


@dataclass
class SyncResult:
    """Outcome of a sync: the branch, the merge request and per-flow results."""

    branch: str
    pr_url: str = ""
    pr_number: int | None = None
    synced: list[SyncedFlow] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "pr_url": self.pr_url,
            "pr_number": self.pr_number,
            "branch": self.branch,
            "synced": [
                {"flow_id": s.flow_id, "name": s.name, "path": s.path, "success": True}
                for s in self.synced
            ],
            "errors": self.errors,
        }
