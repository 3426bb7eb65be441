"""Pydantic models for API request/response serialization.

Request bodies are validated here for shape only; value rules (status
names, issue URL format, blocked reasons) are enforced by the sanity
package so the CLI and the API share them.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Test run models
# ---------------------------------------------------------------------------


class RunCreateRequest(BaseModel):
    name: str = ""


class RunStatusRequest(BaseModel):
    status: str


class RunResponse(BaseModel):
    id: str
    name: str
    created_at: str = ""
    status: str = "in_progress"
    connector_count: int = 0
    ok_count: int = 0
    fail_count: int = 0
    blocked_count: int = 0
    pending_count: int = 0


class IngestResponse(BaseModel):
    id: str
    success: bool = True
    connector_count: int = 0
    component_count: int = 0
    failed_connectors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Connector / component models
# ---------------------------------------------------------------------------


class ConnectorUpdateRequest(BaseModel):
    """Explicit status change and/or notes edit."""

    status: Optional[str] = None
    blocked_reason: Optional[str] = None
    notes: Optional[str] = None


class ComponentUpdateRequest(BaseModel):
    status: str
    github_issues: list[str] = Field(default_factory=list)
    github_issue: Optional[str] = None

    def issues(self) -> list[str]:
        issues = list(self.github_issues)
        if self.github_issue:
            issues.append(self.github_issue)
        return issues


# ---------------------------------------------------------------------------
# Flow models
# ---------------------------------------------------------------------------


class FlowRef(BaseModel):
    flow_id: str
    name: str = ""


class SyncStatusRequest(BaseModel):
    flows: list[FlowRef]


class FlowSyncStateResponse(BaseModel):
    sync_status: str
    github_path: Optional[str] = None
    github_url: Optional[str] = None


class SyncStatusResponse(BaseModel):
    statuses: dict[str, FlowSyncStateResponse] = Field(default_factory=dict)


class FlowNameRequest(BaseModel):
    flow_id: str = ""
    flow_name: str = ""


class FlowDiffResponse(BaseModel):
    server: str
    github: str
    github_path: str
    sync_status: str


class ToggleRequest(BaseModel):
    flow_id: str = ""
    action: str = ""


class FlowIdRequest(BaseModel):
    flow_id: str = ""


class DeleteFlowsRequest(BaseModel):
    flow_ids: list[str] = Field(default_factory=list)


class SyncFlowItem(BaseModel):
    flow_id: str
    name: str
    connector: str = ""
    github_path: str = ""


class SyncRequest(BaseModel):
    flows: list[SyncFlowItem] = Field(default_factory=list)
    pr_title: str = ""
    pr_description: str = ""
    target_branch: str = ""


class SyncedFlowResponse(BaseModel):
    flow_id: str
    name: str
    path: str
    success: bool = True


class SyncResponse(BaseModel):
    success: bool = True
    pr_url: str = ""
    pr_number: Optional[int] = None
    branch: str
    synced: list[SyncedFlowResponse] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)


class BatchOutcomeResponse(BaseModel):
    """Per-item outcome of a batch endpoint; partial failure is not an error."""

    success: bool
    successes: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ExecutionServerSettingsRequest(BaseModel):
    base_url: str = ""
    username: str = ""
    password: str = ""
    clear_credentials: bool = False


class SourceControlSettingsRequest(BaseModel):
    owner: str = ""
    repo: str = ""
    branch: str = ""
    token: str = ""
    clear_token: bool = False
