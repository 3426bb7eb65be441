"""Sync orchestrator: publish selected server flows as a pull request.

The procedure is strictly ordered where it has to be:

1. validate the request and check write permission (no mutation yet)
2. create one branch from the target branch
3. per flow, independently: fetch, canonicalize, write the file
4. open the pull request, unless no flow was written

A failing flow is recorded and never aborts the others.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from sanity.batch.executor import BatchExecutor
from sanity.clients.execution_server import ExecutionServerClient
from sanity.clients.source_control import SourceControlClient
from sanity.errors import BatchFailedError, ValidationError
from sanity.flows.canonical import canonicalize, serialize
from sanity.flows.correlate import generate_flow_path
from sanity.models.flows import FlowSelection, SyncedFlow, SyncResult

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "sync-e2e-flows"
PR_FOOTER = "*Synced from {full_name} via Connector Sanity Check*"

# Contents-API commits to one branch serialize on the branch ref.
DEFAULT_WRITE_CONCURRENCY = 1


def build_pr_body(
    description: str,
    synced: Sequence[SyncedFlow],
    errors: Sequence[dict[str, str]],
    full_name: str,
) -> str:
    lines = [description.strip(), "", "## Synced Flows", ""]
    lines += [f"- `{s.path}` - {s.name}" for s in synced]
    lines.append("")
    if errors:
        lines += ["## Errors", ""]
        lines += [f"- {e['name']}: {e['error']}" for e in errors]
        lines.append("")
    lines += ["---", PR_FOOTER.format(full_name=full_name)]
    return "\n".join(lines).lstrip("\n")


class SyncOrchestrator:
    def __init__(
        self,
        execution: ExecutionServerClient,
        source_control: SourceControlClient,
        write_concurrency: int = DEFAULT_WRITE_CONCURRENCY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.execution = execution
        self.source_control = source_control
        self.write_concurrency = write_concurrency
        self._clock = clock

    def branch_name(self) -> str:
        return f"{BRANCH_PREFIX}-{int(self._clock() * 1000)}"

    async def sync(
        self,
        user: str,
        flows: Sequence[FlowSelection],
        title: str,
        target_branch: str,
        description: str = "",
    ) -> SyncResult:
        if not flows:
            raise ValidationError("No flows provided")
        title = (title or "").strip()
        if not title:
            raise ValidationError("PR title is required")
        target_branch = (target_branch or "").strip()
        if not target_branch:
            raise ValidationError("Target branch is required")

        await self.source_control.verify_write_access(user)

        branch = self.branch_name()
        await self.source_control.create_branch(user, branch, target_branch)
        logger.info("Created branch %s from %s for %d flows", branch, target_branch, len(flows))

        async def sync_one(selection: FlowSelection) -> SyncedFlow:
            definition = await self.execution.get_flow(user, selection.flow_id)
            content = serialize(canonicalize(definition)) + "\n"
            path = selection.repository_path or generate_flow_path(
                selection.connector, selection.name
            )
            await self.source_control.create_or_update_file(
                user, path, content, f"Sync E2E flow: {selection.name}", branch
            )
            return SyncedFlow(selection.flow_id, selection.name, path)

        batch = await BatchExecutor(self.write_concurrency).run(
            list(flows), sync_one, describe=lambda s: s.name
        )
        synced = [r for r in batch.results if r is not None]
        errors = [
            {"flow_id": f.item.flow_id, "name": f.item.name, "error": f.error}
            for f in batch.failures
        ]

        if not synced:
            raise BatchFailedError(
                "Failed to sync any flows: " + ", ".join(e["error"] for e in errors),
                errors,
            )

        config = self.source_control.config(user)
        pr = await self.source_control.create_pull_request(
            user,
            title,
            build_pr_body(description, synced, errors, config.full_name),
            head=branch,
            base=target_branch,
        )
        logger.info(
            "Opened pull request %s with %d flows (%d failed)",
            pr.get("html_url", ""),
            len(synced),
            len(errors),
        )
        return SyncResult(
            branch=branch,
            pr_url=pr.get("html_url", ""),
            pr_number=pr.get("number"),
            synced=synced,
            errors=errors,
        )
