"""Execution-server REST client (flows, flow lifecycle, data stores).

Every call resolves the user's effective configuration and reuses the
user's memoized token from :class:`~sanity.cache.token_cache.TokenCache`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sanity.cache.token_cache import TokenCache
from sanity.clients.http import DEFAULT_TIMEOUT, raise_for_upstream, send
from sanity.config.resolver import ConfigResolver, ExecutionServerConfig
from sanity.errors import AuthenticationError

logger = logging.getLogger(__name__)

E2E_FLOW_FILTER = "customFields.category:E2E_test_flow"
FLOW_PROJECTION = "-thumbnail,-stageChangeInfo,-started,-stopped"


class ExecutionServerClient:
    def __init__(
        self,
        resolver: ConfigResolver,
        token_cache: TokenCache,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.resolver = resolver
        self.token_cache = token_cache
        self._transport = transport
        self._timeout = timeout

    def _client(self, config: ExecutionServerConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=config.base_url,
            transport=self._transport,
            timeout=self._timeout,
        )

    async def authenticate(self, config: ExecutionServerConfig) -> str:
        async with self._client(config) as client:
            response = await send(
                client,
                "POST",
                "/user/auth",
                "Execution server authentication",
                json={"username": config.username, "password": config.password},
            )
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Execution server rejected credentials for {config.username}",
                detail={"upstream_status": response.status_code},
            )
        raise_for_upstream(response, "Execution server authentication")
        token = response.json().get("token")
        if not token:
            raise AuthenticationError("Execution server returned no token")
        return token

    async def _request(
        self, user: str, method: str, path: str, action: str, **kwargs: Any
    ) -> httpx.Response:
        config = self.resolver.execution_server(user)
        token = await self.token_cache.get_token(user, config, self.authenticate)
        async with self._client(config) as client:
            response = await send(
                client,
                method,
                path,
                action,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        raise_for_upstream(response, action, not_found=True)
        return response

    async def list_flows(self, user: str, flow_filter: str = E2E_FLOW_FILTER) -> list[dict]:
        response = await self._request(
            user,
            "GET",
            "/flows",
            "List flows",
            params={"filter": flow_filter, "projection": "-thumbnail"},
        )
        return response.json()

    async def get_flow(self, user: str, flow_id: str) -> dict:
        response = await self._request(
            user,
            "GET",
            f"/flows/{flow_id}",
            f"Fetch flow {flow_id}",
            params={"projection": FLOW_PROJECTION},
        )
        return response.json()

    async def update_flow(self, user: str, flow_id: str, definition: dict) -> dict:
        response = await self._request(
            user, "PUT", f"/flows/{flow_id}", f"Update flow {flow_id}", json=definition
        )
        return response.json() if response.content else {}

    async def start_flow(self, user: str, flow_id: str) -> dict:
        return await self._coordinate(user, flow_id, "start")

    async def stop_flow(self, user: str, flow_id: str) -> dict:
        return await self._coordinate(user, flow_id, "stop")

    async def _coordinate(self, user: str, flow_id: str, command: str) -> dict:
        response = await self._request(
            user,
            "PATCH",
            f"/flows/{flow_id}/coordinator",
            f"{command.capitalize()} flow {flow_id}",
            json={"command": command},
        )
        return response.json() if response.content else {}

    async def delete_flow(self, user: str, flow_id: str) -> None:
        await self._request(user, "DELETE", f"/flows/{flow_id}", f"Delete flow {flow_id}")

    async def get_store_records(self, user: str, store_id: str) -> list[dict]:
        response = await self._request(
            user,
            "GET",
            "/store",
            f"Fetch store records {store_id}",
            params={"storeId": store_id},
        )
        data = response.json()
        return data if isinstance(data, list) else []
