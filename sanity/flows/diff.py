"""Flow diff engine: classify drift between the server and the repository.

Repository flows are discovered from the recursive tree (every
``test-flow*.json`` blob under ``src/appmixer/``), fetched in groups of
ten and indexed by the flow name stored inside each file. A server flow
is paired with the repository file of exactly the same name.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable

from sanity.batch.executor import BatchExecutor
from sanity.clients.execution_server import ExecutionServerClient
from sanity.clients.source_control import SourceControlClient
from sanity.errors import NotFoundError, SanityError, ValidationError
from sanity.flows.canonical import canonicalize, classify, serialize
from sanity.flows.correlate import FLOW_ROOT, UNKNOWN_CONNECTOR, extract_connector
from sanity.models.flows import FlowRecord, FlowSyncState, RepositoryFlowRecord, SyncStatus

logger = logging.getLogger(__name__)

REPOSITORY_FETCH_CONCURRENCY = 10
SERVER_FETCH_CONCURRENCY = 5


def is_flow_file(entry: dict[str, Any]) -> bool:
    path = entry.get("path") or ""
    return (
        entry.get("type") == "blob"
        and path.startswith(f"{FLOW_ROOT}/")
        and "test-flow" in path
        and path.endswith(".json")
    )


def connector_from_path(path: str) -> str:
    """``src/appmixer/<connector>/...`` -> ``<connector>``."""
    parts = path.split("/")
    return parts[2] if len(parts) > 3 and parts[2] else UNKNOWN_CONNECTOR


def flow_stats(flows: Iterable[dict[str, Any]]) -> dict[str, int]:
    flows = list(flows)
    stats = {
        "total": len(flows),
        "running": sum(1 for f in flows if f["running"]),
    }
    stats["stopped"] = stats["total"] - stats["running"]
    for status in SyncStatus.ALL:
        stats[status] = sum(1 for f in flows if f["sync_status"] == status)
    return stats


class FlowDiffEngine:
    def __init__(
        self,
        execution: ExecutionServerClient,
        source_control: SourceControlClient,
    ) -> None:
        self.execution = execution
        self.source_control = source_control

    # -- repository side ---------------------------------------------------

    async def find_repository_flow_files(self, user: str) -> list[RepositoryFlowRecord]:
        config = self.source_control.config(user)
        tree = await self.source_control.get_tree(user)
        return [
            RepositoryFlowRecord(
                path=entry["path"],
                sha=entry.get("sha", ""),
                connector=connector_from_path(entry["path"]),
                url=self.source_control.file_url(config, entry["path"]),
            )
            for entry in tree
            if is_flow_file(entry)
        ]

    async def build_repository_flow_map(self, user: str) -> dict[str, RepositoryFlowRecord]:
        """Index repository flow files by the flow name they contain.

        Files that cannot be fetched or parsed are skipped; the tree fetch
        itself must succeed.
        """
        files = await self.find_repository_flow_files(user)

        async def load(record: RepositoryFlowRecord) -> RepositoryFlowRecord:
            data = await self.source_control.get_file(user, record.path)
            record.content = json.loads(data["content"])
            return record

        result = await BatchExecutor(REPOSITORY_FETCH_CONCURRENCY).run(
            files, load, describe=lambda r: r.path
        )
        flow_map: dict[str, RepositoryFlowRecord] = {}
        for record in result.results:
            if record is not None and record.name:
                flow_map[record.name] = record
        logger.debug("Indexed %d repository flows from %d files", len(flow_map), len(files))
        return flow_map

    # -- classification ----------------------------------------------------

    async def compute_statuses(
        self, user: str, flows: Iterable[FlowRecord]
    ) -> dict[str, FlowSyncState]:
        """Sync state of every flow, keyed by flow id.

        When the repository cannot be listed every flow is ``error``: an
        unreadable repository is not evidence that a flow is server-only.
        """
        flows = list(flows)
        try:
            flow_map = await self.build_repository_flow_map(user)
        except SanityError as exc:
            logger.warning("Repository flows unavailable: %s", exc)
            return {
                f.flow_id: FlowSyncState(f.flow_id, SyncStatus.ERROR, error=str(exc))
                for f in flows
            }
        return await self._classify_all(user, flows, flow_map)

    async def _classify_all(
        self,
        user: str,
        flows: list[FlowRecord],
        flow_map: dict[str, RepositoryFlowRecord],
    ) -> dict[str, FlowSyncState]:
        async def classify_one(flow: FlowRecord) -> FlowSyncState:
            record = flow_map.get(flow.name)
            if record is None:
                return FlowSyncState(flow.flow_id, SyncStatus.SERVER_ONLY)
            state = FlowSyncState(
                flow.flow_id,
                SyncStatus.ERROR,
                repository_path=record.path,
                repository_url=record.url,
            )
            try:
                server_flow = await self.execution.get_flow(user, flow.flow_id)
            except SanityError as exc:
                logger.warning("Failed to fetch flow %s: %s", flow.flow_id, exc)
                state.error = str(exc)
                return state
            state.status = classify(server_flow, record.content)
            return state

        result = await BatchExecutor(SERVER_FETCH_CONCURRENCY).run(
            flows, classify_one, describe=lambda f: f.flow_id
        )
        states: dict[str, FlowSyncState] = {}
        for flow, state in zip(flows, result.results):
            states[flow.flow_id] = state or FlowSyncState(flow.flow_id, SyncStatus.ERROR)
        return states

    async def list_flows(self, user: str) -> dict[str, Any]:
        """Server flows enriched with connector, designer link and sync state."""
        config = self.execution.resolver.execution_server(user)
        raw = await self.execution.list_flows(user)
        flows = [FlowRecord.from_api(item) for item in raw]
        states = await self.compute_statuses(user, flows)

        enriched = []
        for flow in flows:
            state = states[flow.flow_id]
            enriched.append(
                {
                    "flow_id": flow.flow_id,
                    "name": flow.name,
                    "connector": extract_connector(flow.name),
                    "url": f"{config.designer_url}/designer/{flow.flow_id}",
                    "created_at": flow.btime,
                    "updated_at": flow.mtime,
                    "running": flow.running,
                    **state.to_dict(),
                }
            )
        enriched.sort(key=lambda f: (f["connector"] == UNKNOWN_CONNECTOR, f["connector"], f["name"]))
        return {"flows": enriched, "stats": flow_stats(enriched)}

    # -- single-flow operations --------------------------------------------

    async def _repository_flow(self, user: str, flow_name: str) -> RepositoryFlowRecord:
        record = (await self.build_repository_flow_map(user)).get(flow_name)
        if record is None or record.content is None:
            raise NotFoundError("Flow not found in repository")
        return record

    async def diff(self, user: str, flow_id: str, flow_name: str) -> dict[str, Any]:
        """Canonical text of both copies, for side-by-side review."""
        if not flow_id or not (flow_name or "").strip():
            raise ValidationError("flow_id and flow_name are required")
        server_flow, record = await asyncio.gather(
            self.execution.get_flow(user, flow_id),
            self._repository_flow(user, flow_name),
        )
        return {
            "server": serialize(canonicalize(server_flow)),
            "github": serialize(canonicalize(record.content or {})),
            "github_path": record.path,
            "sync_status": classify(server_flow, record.content),
        }

    async def revert(self, user: str, flow_id: str, flow_name: str) -> dict[str, Any]:
        """Overwrite the server flow with the repository copy."""
        if not flow_id or not (flow_name or "").strip():
            raise ValidationError("flow_id and flow_name are required")
        record = await self._repository_flow(user, flow_name)
        await self.execution.update_flow(user, flow_id, record.content or {})
        logger.info("Reverted flow %s from %s", flow_id, record.path)
        return {"success": True, "github_path": record.path}
