"""FastAPI application for the modengine moderation service.

Provides REST API endpoints wrapping the modengine package for:
- Report intake and the moderation queue
- Moderator decisions and their audit trail
- Statistics and overdue tracking
- Ad-hoc text classification against the filter policy
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modengine import __version__
from modengine.moderation.errors import (
    AlreadyResolvedError,
    ConcurrentModificationError,
    ModerationError,
    NotFoundError,
    PersistenceError,
    RateLimitedError,
    ValidationError,
)
from web.backend.app.routers import moderation

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the SLA monitor for as long as the application is up."""
    engine = app.dependency_overrides.get(moderation.get_engine, moderation.get_engine)()
    engine.start()
    try:
        yield
    finally:
        engine.stop()


app = FastAPI(
    title="modengine API",
    description=(
        "REST API for the moderation engine. "
        "Provides endpoints for report intake, the moderation queue, "
        "moderator decisions, statistics and text scanning."
    ),
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyResolvedError, status.HTTP_409_CONFLICT),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


@app.exception_handler(ModerationError)
async def moderation_error_handler(request: Request, exc: ModerationError):
    code = next(
        (c for cls, c in _STATUS_BY_ERROR if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    headers = {}
    if isinstance(exc, RateLimitedError) and exc.retry_after_seconds:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__, "retryable": exc.retryable},
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(moderation.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "modengine API",
        "version": __version__,
        "description": "Content moderation REST API",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
