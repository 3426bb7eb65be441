"""Auth middleware -- identity gate and FastAPI dependency for the current user.

Identity is verified upstream: the identity provider in front of the
backend forwards the user in the ``X-Authenticated-User`` header. The
backend treats the value as an opaque user identifier.

Every request without that header is answered with ``401`` unless its
path is on the public allow-list.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

USER_HEADER = "X-Authenticated-User"

PUBLIC_PATHS = ("/login", "/auth", "/health", "/docs", "/redoc", "/openapi.json")


def is_public_path(path: str) -> bool:
    return path == "/" or any(
        path == prefix or path.startswith(prefix + "/") for prefix in PUBLIC_PATHS
    )


async def require_identity(request: Request, call_next):
    """HTTP middleware rejecting unauthenticated requests outside the allow-list."""
    user = (request.headers.get(USER_HEADER) or "").strip()
    if not user and not is_public_path(request.url.path):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Unauthorized"},
        )
    return await call_next(request)


async def get_current_user(
    x_authenticated_user: Optional[str] = Header(None, alias=USER_HEADER),
) -> str:
    """FastAPI dependency returning the authenticated user identifier.

    Raises ``401 Unauthorized`` when the header is missing or blank.
    """
    user = (x_authenticated_user or "").strip()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user

