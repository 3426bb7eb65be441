"""Canonical form of a flow definition.

The execution server assigns or rewrites several fields that carry no
authoring intent. They are stripped before a definition is hashed or
written to the repository, so a round trip through the server never
shows up as drift.
"""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any

from sanity.models.flows import SyncStatus

# Top-level fields owned by the execution server.
STRIPPED_FIELDS = (
    "flowId",
    "btime",
    "mtime",
    "userId",
    "runtimeErrors",
    "customFields",
    "stage",
    "description",
)

RESULTS_COMPONENT_TYPE = "appmixer.utils.test.ProcessE2EResults"
RESULT_STORE_FIELDS = ("failedStoreId", "successStoreId")

INDENT = 4


def _result_processors(flow: dict[str, Any]) -> list[dict[str, Any]]:
    steps = flow.get("flow")
    if not isinstance(steps, dict):
        return []
    return [
        step
        for step in steps.values()
        if isinstance(step, dict) and step.get("type") == RESULTS_COMPONENT_TYPE
    ]


def canonicalize(flow: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``flow`` without server-assigned fields.

    Idempotent; the input is never modified.
    """
    cleaned = copy.deepcopy(flow)
    for name in STRIPPED_FIELDS:
        cleaned.pop(name, None)
    for step in _result_processors(cleaned):
        properties = (step.get("config") or {}).get("properties")
        if isinstance(properties, dict):
            for name in RESULT_STORE_FIELDS:
                properties.pop(name, None)
    return cleaned


def result_store_ids(flow: dict[str, Any]) -> dict[str, str | None]:
    """Result-store ids configured on the flow's result-processing step."""
    for step in _result_processors(flow):
        properties = (step.get("config") or {}).get("properties") or {}
        return {name: properties.get(name) or None for name in RESULT_STORE_FIELDS}
    return {name: None for name in RESULT_STORE_FIELDS}


def serialize(flow: dict[str, Any]) -> str:
    """Deterministic text form: sorted keys, four-space indentation."""
    return json.dumps(flow, sort_keys=True, indent=INDENT, ensure_ascii=False)


def content_hash(flow: dict[str, Any]) -> str:
    """Stable hash of the canonical serialization of ``flow``."""
    text = serialize(canonicalize(flow))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def classify(server_flow: dict[str, Any], repository_flow: dict[str, Any] | None) -> str:
    """Compare two definitions by canonical hash."""
    if repository_flow is None:
        return SyncStatus.SERVER_ONLY
    if content_hash(server_flow) == content_hash(repository_flow):
        return SyncStatus.MATCH
    return SyncStatus.MODIFIED
