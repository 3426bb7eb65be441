"""Test runs router -- catalog snapshots, their connectors and reports."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from sanity.errors import SanityError, ValidationError
from web.backend.app.middleware.auth import get_current_user
from web.backend.app.models.api import (
    IngestResponse,
    RunCreateRequest,
    RunResponse,
    RunStatusRequest,
)
from web.backend.app.services import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/test-runs",
    tags=["test-runs"],
    dependencies=[Depends(get_current_user)],
)


@router.get("", response_model=list[RunResponse], summary="List test runs")
async def list_test_runs(services: AppServices = Depends(get_services)):
    return services.catalog.list_test_runs()


@router.post("", response_model=IngestResponse, summary="Create a test run from the catalog")
async def create_test_run(
    request: RunCreateRequest,
    services: AppServices = Depends(get_services),
):
    result = await services.ingestor.create_test_run(request.name)
    return result.to_dict()


@router.post("/create-stream", summary="Create a test run, streaming progress events")
async def create_test_run_stream(
    request: RunCreateRequest,
    services: AppServices = Depends(get_services),
):
    """Same as ``POST /api/test-runs`` but answers with server-sent events.

    Each event is a JSON object with a ``step`` of ``init``, ``fetching``,
    ``fetched``, ``progress``, ``done`` or ``error``.
    """
    if not request.name.strip():
        raise ValidationError("Name is required")

    queue: asyncio.Queue = asyncio.Queue()

    async def produce() -> None:
        try:
            await services.ingestor.create_test_run(request.name, emit=queue.put_nowait)
        except SanityError as exc:
            queue.put_nowait({"step": "error", "message": exc.message})
        except Exception as exc:
            logger.exception("Test run creation failed")
            queue.put_nowait({"step": "error", "message": str(exc)})
        finally:
            queue.put_nowait(None)

    async def events():
        task = asyncio.create_task(produce())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield f"data: {json.dumps(event)}\n\n"
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/{run_id}", response_model=RunResponse, summary="Get a test run")
async def get_test_run(run_id: str, services: AppServices = Depends(get_services)):
    return services.catalog.get_test_run(run_id)


@router.patch("/{run_id}", response_model=RunResponse, summary="Update a test run's status")
async def update_test_run(
    run_id: str,
    request: RunStatusRequest,
    services: AppServices = Depends(get_services),
):
    return services.catalog.update_test_run_status(run_id, request.status)


@router.delete("/{run_id}", summary="Delete a test run with its connectors and components")
async def delete_test_run(run_id: str, services: AppServices = Depends(get_services)):
    services.catalog.delete_test_run(run_id)
    return {"success": True}


@router.get("/{run_id}/connectors", summary="List the connectors of a test run")
async def list_connectors(run_id: str, services: AppServices = Depends(get_services)):
    return services.catalog.list_connectors(run_id)


@router.get("/{run_id}/report", summary="Verification report of a test run")
async def get_report(run_id: str, services: AppServices = Depends(get_services)):
    return services.catalog.get_report(run_id)
