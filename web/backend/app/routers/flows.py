"""E2E flows router -- drift status, diff, revert, lifecycle, results and sync.

Every endpoint acts on behalf of the authenticated user, whose settings
select the execution server and the repository.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sanity.errors import ValidationError
from sanity.flows.lifecycle import delete_flows, toggle_flow
from sanity.flows.results import get_results
from sanity.models.flows import FlowRecord, FlowSelection
from web.backend.app.middleware.auth import get_current_user
from web.backend.app.models.api import (
    BatchOutcomeResponse,
    DeleteFlowsRequest,
    FlowDiffResponse,
    FlowIdRequest,
    FlowNameRequest,
    SyncRequest,
    SyncResponse,
    SyncStatusRequest,
    SyncStatusResponse,
    ToggleRequest,
)
from web.backend.app.services import AppServices, get_services

router = APIRouter(prefix="/api/e2e-flows", tags=["e2e-flows"])


@router.get("", summary="List E2E flows with their sync status")
async def list_flows(
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    listing = await services.diff.list_flows(user)
    listing["source_control"] = services.resolver.source_control_info(user)
    listing["execution_server"] = services.resolver.execution_server_info(user)
    return listing


@router.post("/sync-status", response_model=SyncStatusResponse, summary="Classify drift")
async def sync_status(
    request: SyncStatusRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    flows = [FlowRecord(flow_id=f.flow_id, name=f.name) for f in request.flows]
    states = await services.diff.compute_statuses(user, flows)
    return {"statuses": {flow_id: s.to_dict() for flow_id, s in states.items()}}


@router.post("/diff", response_model=FlowDiffResponse, summary="Canonical text of both copies")
async def diff_flow(
    request: FlowNameRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return await services.diff.diff(user, request.flow_id, request.flow_name)


@router.post("/revert", summary="Overwrite the server flow with the repository copy")
async def revert_flow(
    request: FlowNameRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return await services.diff.revert(user, request.flow_id, request.flow_name)


@router.post("/toggle", summary="Start or stop a flow")
async def toggle(
    request: ToggleRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return await toggle_flow(services.execution, user, request.flow_id, request.action)


@router.post("/start", summary="Start a flow")
async def start(
    request: FlowIdRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return await toggle_flow(services.execution, user, request.flow_id, "start")


@router.post("/stop", summary="Stop a flow")
async def stop(
    request: FlowIdRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return await toggle_flow(services.execution, user, request.flow_id, "stop")


@router.post("/delete", response_model=BatchOutcomeResponse, summary="Delete flows")
async def delete(
    request: DeleteFlowsRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    outcome = await delete_flows(services.execution, user, request.flow_ids)
    return outcome.to_dict()


@router.post("/results", summary="Latest E2E run results of a flow")
async def results(
    request: FlowNameRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return await get_results(services.execution, user, request.flow_id, request.flow_name)


@router.post("/sync", response_model=SyncResponse, summary="Open a pull request with flows")
async def sync(
    request: SyncRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """Publish the selected flows on a new branch and open a pull request.

    Per-flow failures are listed in ``errors``; the request fails only
    when no flow could be written.
    """
    if not request.flows:
        raise ValidationError("No flows provided")
    selections = [
        FlowSelection(
            flow_id=f.flow_id,
            name=f.name,
            connector=f.connector,
            repository_path=f.github_path,
        )
        for f in request.flows
    ]
    result = await services.sync.sync(
        user,
        selections,
        title=request.pr_title,
        target_branch=request.target_branch,
        description=request.pr_description,
    )
    return result.to_dict()
