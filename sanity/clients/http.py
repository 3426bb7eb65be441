"""Shared httpx helpers for the remote-service clients."""

from __future__ import annotations

from typing import Any

import httpx

from sanity.errors import NotFoundError, UpstreamRequestError

DEFAULT_TIMEOUT = 30.0


def _error_code(response: httpx.Response) -> str:
    try:
        data: Any = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("code") or data.get("message") or data.get("error") or "")
    return ""


async def send(
    client: httpx.AsyncClient, method: str, url: str, action: str, **kwargs: Any
) -> httpx.Response:
    """Issue a request; transport failures become :class:`UpstreamRequestError`."""
    try:
        return await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise UpstreamRequestError(f"{action} failed: {exc}", status=None) from exc


def raise_for_upstream(
    response: httpx.Response, action: str, not_found: bool = False
) -> None:
    """Convert a non-2xx response into the error taxonomy.

    With ``not_found`` a 404 becomes :class:`NotFoundError` instead of an
    upstream failure.
    """
    if response.is_success:
        return
    if not_found and response.status_code == 404:
        raise NotFoundError(f"{action}: not found")
    raise UpstreamRequestError(
        f"{action} failed: {response.status_code}",
        status=response.status_code,
        code=_error_code(response),
    )
