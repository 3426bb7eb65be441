"""Latest E2E run results of a flow.

A flow's result-processing step writes into two data stores, one for
failed and one for successful runs, each keyed by flow name. The records
of both stores are merged per component; a failure reported in either
store wins.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from sanity.clients.execution_server import ExecutionServerClient
from sanity.errors import NotFoundError, ValidationError
from sanity.flows.canonical import result_store_ids
from sanity.flows.correlate import find_record_by_name


def normalize_result_array(value: Any) -> list[Any]:
    """Store values are either a list or a JSON-encoded list."""
    if isinstance(value, list):
        return value
    if not isinstance(value, str):
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    return parsed if isinstance(parsed, list) else []


def to_result_detail(item: Any) -> dict[str, Any]:
    item = item if isinstance(item, dict) else {}
    success = item.get("success") if isinstance(item.get("success"), list) else []
    errors = item.get("error") if isinstance(item.get("error"), list) else []
    return {
        "component_id": item.get("componentId") or "",
        "component_name": item.get("componentName") or "Unknown component",
        "success": success,
        "errors": errors,
        "status": "failed" if errors else "passed",
        "asserts": len(errors),
    }


def merge_result_details(primary: list[Any], secondary: list[Any]) -> list[dict[str, Any]]:
    """Merge per-component details in first-seen order."""
    merged: dict[str, dict[str, Any]] = {}
    for detail in [to_result_detail(i) for i in primary + secondary]:
        key = detail["component_id"] or detail["component_name"]
        current = merged.get(key)
        if current is None:
            merged[key] = detail
            continue
        merged[key] = {
            **current,
            **detail,
            "success": detail["success"] or current["success"],
            "errors": detail["errors"] or current["errors"],
            "status": "failed" if detail["errors"] else current["status"],
            "asserts": len(detail["errors"]) if detail["errors"] else current["asserts"],
        }
    return list(merged.values())


async def get_results(
    execution: ExecutionServerClient, user: str, flow_id: str, flow_name: str
) -> dict[str, Any]:
    if not flow_id or not (flow_name or "").strip():
        raise ValidationError("flow_id and flow_name are required")

    flow = await execution.get_flow(user, flow_id)
    stores = result_store_ids(flow)
    failed_store, success_store = stores["failedStoreId"], stores["successStoreId"]
    if not failed_store and not success_store:
        raise NotFoundError("No E2E result stores configured for this flow")

    async def records(store_id: str | None) -> list[dict]:
        return await execution.get_store_records(user, store_id) if store_id else []

    failed_records, success_records = await asyncio.gather(
        records(failed_store), records(success_store)
    )
    failed_record = find_record_by_name(failed_records, flow_name)
    success_record = find_record_by_name(success_records, flow_name)
    if failed_record is None and success_record is None:
        raise NotFoundError("No E2E test results found in configured stores")

    details = merge_result_details(
        normalize_result_array((failed_record or {}).get("value")),
        normalize_result_array((success_record or {}).get("value")),
    )
    failed = sum(1 for d in details if d["status"] == "failed")
    return {
        "name": flow_name,
        "status": "failed" if failed else "passed",
        "failed_asserts": failed,
        "total_asserts": len(details),
        "details": details,
        "stores": {
            "failed_store_id": failed_store,
            "success_store_id": success_store,
            "failed_record_key": (failed_record or {}).get("key"),
            "success_record_key": (success_record or {}).get("key"),
        },
    }
