"""Start, stop and delete flows on the execution server."""

from __future__ import annotations

import logging
from typing import Sequence

from sanity.clients.execution_server import ExecutionServerClient
from sanity.errors import PartialBatchFailure, SanityError, ValidationError

logger = logging.getLogger(__name__)

ACTIONS = ("start", "stop")


async def toggle_flow(
    execution: ExecutionServerClient, user: str, flow_id: str, action: str
) -> dict:
    if not flow_id:
        raise ValidationError("flow_id is required")
    if action not in ACTIONS:
        raise ValidationError('action must be "start" or "stop"')
    if action == "start":
        result = await execution.start_flow(user, flow_id)
    else:
        result = await execution.stop_flow(user, flow_id)
    logger.info("Flow %s: %s", flow_id, action)
    return {"success": True, "action": action, "result": result}


async def delete_flows(
    execution: ExecutionServerClient, user: str, flow_ids: Sequence[str]
) -> PartialBatchFailure:
    """Delete each flow independently; failures are reported, not raised."""
    if not flow_ids:
        raise ValidationError("No flow IDs provided")
    outcome = PartialBatchFailure()
    for flow_id in flow_ids:
        try:
            await execution.delete_flow(user, flow_id)
        except SanityError as exc:
            logger.warning("Failed to delete flow %s: %s", flow_id, exc)
            outcome.failures.append({"flow_id": flow_id, "error": exc.message})
            continue
        outcome.successes.append({"flow_id": flow_id, "success": True})
    return outcome
