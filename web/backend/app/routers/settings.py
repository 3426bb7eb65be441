"""Settings router -- per-user remote-service overrides.

Secrets are write-only: responses carry ``has_env_*`` and ``has_custom_*``
flags, never the values.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from sanity.config.resolver import SettingKeys
from sanity.errors import ValidationError
from web.backend.app.middleware.auth import get_current_user
from web.backend.app.models.api import (
    ExecutionServerSettingsRequest,
    SourceControlSettingsRequest,
)
from web.backend.app.services import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/execution-server", summary="Effective execution-server settings")
async def get_execution_server(
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return services.resolver.execution_server_info(user)


@router.post("/execution-server", summary="Save execution-server credentials")
async def save_execution_server(
    request: ExecutionServerSettingsRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    if request.clear_credentials:
        values = {key: "" for key in SettingKeys.EXECUTION_SERVER}
    else:
        values = {
            SettingKeys.APPMIXER_BASE_URL: request.base_url.strip(),
            SettingKeys.APPMIXER_USERNAME: request.username.strip(),
            SettingKeys.APPMIXER_PASSWORD: request.password.strip(),
        }
        if not all(values.values()):
            raise ValidationError("Base URL, username, and password are required")

    services.settings.set_many(user, values)
    services.token_cache.invalidate(user)
    logger.info("Execution-server settings updated for %s", user)
    return {"success": True}


@router.get("/source-control", summary="Effective repository settings")
async def get_source_control(
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return services.resolver.source_control_info(user)


@router.post("/source-control", summary="Save repository settings and token")
async def save_source_control(
    request: SourceControlSettingsRequest,
    user: str = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    values = {
        SettingKeys.GITHUB_REPO_OWNER: request.owner.strip(),
        SettingKeys.GITHUB_REPO_NAME: request.repo.strip(),
        SettingKeys.GITHUB_REPO_BRANCH: request.branch.strip(),
    }
    if not all(values.values()):
        raise ValidationError("Owner, repo, and branch are required")

    if request.clear_token:
        values[SettingKeys.GITHUB_TOKEN] = ""
    elif request.token.strip():
        values[SettingKeys.GITHUB_TOKEN] = request.token.strip()

    services.settings.set_many(user, values)
    services.tree_cache.invalidate(user)
    logger.info("Source-control settings updated for %s", user)
    return {"success": True}
