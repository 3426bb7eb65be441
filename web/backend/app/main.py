"""FastAPI application for the connector sanity-check portal.

Provides REST API endpoints wrapping the sanity package for:
- Test runs: catalog snapshots, connector/component verification, reports
- E2E flows: drift status, diff, revert, lifecycle, results and sync
- Per-user settings for the execution server and the repository
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# Ensure the sanity package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sanity import __version__
from sanity.errors import SanityError
from sanity.utils.log import configure_logging
from web.backend.app.middleware.auth import require_identity
from web.backend.app.routers import connectors, flows, settings, test_runs

configure_logging(os.environ.get("SANITY_LOG_LEVEL", "INFO"), rich_console=False)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Connector Sanity Check API",
    description=(
        "REST API for tracking manual connector verification and "
        "reconciling E2E test flows between the execution server and the "
        "connector repository."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(require_identity)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(SanityError)
async def sanity_error_handler(request: Request, exc: SanityError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "detail": jsonable_encoder(exc.errors())},
    )


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(test_runs.router)
app.include_router(connectors.router)
app.include_router(flows.router)
app.include_router(settings.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "Connector Sanity Check API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
