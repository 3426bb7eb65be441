"""Connector catalog (modules API) client.

The catalog lists connectors as ``{name: {version: metadata}}``. When a
connector lists several versions, the highest semantic version wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from sanity.clients.http import DEFAULT_TIMEOUT, raise_for_upstream, send
from sanity.errors import NotFoundError

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?")


@dataclass
class CatalogComponent:
    name: str
    label: str = ""
    description: str = ""
    icon: str = ""
    version: str = "1.0.0"
    private: bool = False


@dataclass
class CatalogConnector:
    name: str
    version: str
    label: str = ""
    description: str = ""
    icon: str = ""
    components: list[CatalogComponent] = field(default_factory=list)


def version_key(version: str) -> tuple:
    """Sort key for semantic versions; unparsable versions sort lowest.

    A release sorts above its pre-releases (``1.2.0 > 1.2.0-beta``).
    """
    match = _VERSION_RE.match(version.strip())
    if not match:
        return (0, (), (), version)
    major, minor, patch, pre = match.groups()
    numbers = (int(major), int(minor or 0), int(patch or 0))
    return (1, numbers, (0,) if pre else (1,), pre or "")


def select_version(versions: dict[str, Any]) -> str:
    return max(versions, key=version_key)


def _short_name(name: str) -> str:
    return name.split(".")[-1]


class CatalogClient:
    def __init__(
        self,
        api_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def fetch_all_connectors(self) -> list[CatalogConnector]:
        async with self._client() as client:
            response = await send(
                client, "GET", self.api_url, "Fetch connectors", params={"latest": "true"}
            )
        raise_for_upstream(response, "Fetch connectors")

        connectors = []
        for name, versions in response.json().items():
            if not versions:
                continue
            version = select_version(versions)
            data = versions[version] or {}
            connectors.append(
                CatalogConnector(
                    name=name,
                    version=version,
                    label=data.get("label") or _short_name(name),
                    description=data.get("description") or "",
                    icon=data.get("icon") or "",
                )
            )
        return connectors

    async def fetch_components(self, connector_name: str, version: str) -> list[CatalogComponent]:
        """Components of one connector version; a missing connector has none."""
        async with self._client() as client:
            response = await send(
                client,
                "GET",
                f"{self.api_url}/{connector_name}/components",
                f"Fetch components for {connector_name}",
                params={"version": version},
            )
        try:
            raise_for_upstream(response, f"Fetch components for {connector_name}", not_found=True)
        except NotFoundError:
            return []

        return [
            CatalogComponent(
                name=name,
                label=details.get("label") or _short_name(name),
                description=details.get("description") or "",
                icon=details.get("icon") or "",
                version=details.get("version") or "1.0.0",
                private=bool(details.get("private", False)),
            )
            for name, details in response.json().items()
        ]
