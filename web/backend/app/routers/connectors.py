"""Connectors and components router -- manual verification writes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sanity.errors import ValidationError
from web.backend.app.middleware.auth import get_current_user
from web.backend.app.models.api import ComponentUpdateRequest, ConnectorUpdateRequest
from web.backend.app.services import AppServices, get_services

router = APIRouter(prefix="/api", tags=["connectors"], dependencies=[Depends(get_current_user)])


@router.get("/connectors/{connector_id}", summary="Get a connector with its components")
async def get_connector(connector_id: str, services: AppServices = Depends(get_services)):
    return services.catalog.get_connector(connector_id)


@router.patch("/connectors/{connector_id}", summary="Set a connector's status or notes")
async def update_connector(
    connector_id: str,
    request: ConnectorUpdateRequest,
    services: AppServices = Depends(get_services),
):
    """Explicit connector transition.

    ``blocked_reason`` is required when ``status`` is ``blocked`` and is
    cleared by any other status.
    """
    if request.status is None and request.notes is None:
        raise ValidationError("status or notes is required")

    connector = None
    if request.status is not None:
        connector = services.rollup.update_connector_status(
            connector_id, request.status, request.blocked_reason
        )
    if request.notes is not None:
        connector = services.rollup.update_connector_notes(connector_id, request.notes)
    return {"success": True, "connector": connector.to_dict()}


@router.patch("/components/{component_id}", summary="Set a component's status")
async def update_component(
    component_id: str,
    request: ComponentUpdateRequest,
    services: AppServices = Depends(get_services),
):
    component = services.rollup.update_component_status(
        component_id, request.status, request.issues()
    )
    return {"success": True, "component": component.to_dict()}
