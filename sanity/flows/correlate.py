"""Name-based correlation helpers.

Flows are matched to run-result records by their human name, and a
connector is guessed from a flow name for grouping. Neither is an
identity: the connector guess is a display hint and falls back to
``unknown``.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

UNKNOWN_CONNECTOR = "unknown"

_CONNECTOR_PATTERNS = (
    re.compile(r"e2e[_\s-]+(\w+)", re.IGNORECASE),  # "E2E box", "E2E_box"
    re.compile(r"(\w+)[_\s-]+e2e", re.IGNORECASE),  # "box E2E"
    re.compile(r"appmixer\.(\w+)", re.IGNORECASE),  # "appmixer.box"
)

FLOW_ROOT = "src/appmixer"


def _normalize(value: str) -> str:
    return value.strip().lower()


def find_record_by_name(
    records: Iterable[dict[str, Any]], name: str, key: str = "key"
) -> dict[str, Any] | None:
    """Find the record whose ``key`` field names the same flow as ``name``.

    Rules are tried in order and the first that yields a match wins:

    1. exact equality
    2. case-insensitive, trimmed equality
    3. containment in either direction, case-insensitive
    """
    candidates = [r for r in records if isinstance(r, dict) and isinstance(r.get(key), str)]
    if not candidates or not (name or "").strip():
        return None

    for record in candidates:
        if record[key] == name:
            return record

    wanted = _normalize(name)
    for record in candidates:
        if _normalize(record[key]) == wanted:
            return record

    for record in candidates:
        candidate = _normalize(record[key])
        if candidate and (wanted in candidate or candidate in wanted):
            return record
    return None


def extract_connector(flow_name: str | None) -> str:
    """Guess the connector a flow exercises from its name."""
    if not flow_name:
        return UNKNOWN_CONNECTOR
    for pattern in _CONNECTOR_PATTERNS:
        match = pattern.search(flow_name)
        if match and match.group(1):
            return match.group(1).lower()
    return UNKNOWN_CONNECTOR


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "flow"


def generate_flow_path(connector: str | None, flow_name: str) -> str:
    """Repository path for a flow that is not tracked yet.

    ``src/appmixer/<connector>/test-flow-<slug>.json``
    """
    folder = slugify(connector or UNKNOWN_CONNECTOR).replace("-", "")
    return f"{FLOW_ROOT}/{folder}/test-flow-{slugify(flow_name)}.json"
