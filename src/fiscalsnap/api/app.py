"""
FastAPI Application Factory & Configuration.

This module initializes the fiscalsnap FastAPI application instance. It is
responsible for:
1.  **Middleware Setup**: CORS for the admin UI.
2.  **Exception Handling**: domain errors become structured JSON
    `{error, message, detail, retryable}` with the error's status code.
    Request validation failures use the same body with status 400, so 422
    stays reserved for a rollback confirmation mismatch.
3.  **Routing**: mounting the snapshot and schedule routers plus `/health`.
4.  **Lifecycle**: creating the SnapshotService singleton and, when
    `FISCALSNAP_SCHEDULER_ENABLED` is set, running the retention scheduler loop.

Design Pattern
--------------
We use an **Application Factory** pattern (`create_app`), so tests can spin
up a separate app per test with their own service instance.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fiscalsnap import __version__
from fiscalsnap.api.dependencies import get_snapshot_service
from fiscalsnap.api.routers import schedules, snapshots
from fiscalsnap.api.schemas import ErrorBody
from fiscalsnap.core.errors import SnapshotError
from fiscalsnap.core.settings import get_logger, load_settings
from fiscalsnap.services.scheduler import SchedulerLoop

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    ASGI Lifespan context manager.

    - **Startup**: build the service singleton; start the scheduler loop if enabled.
    - **Shutdown**: stop the loop.
    """
    cfg = load_settings()
    service = get_snapshot_service()
    logger.info("fiscalsnap API starting (env=%s)", cfg.environment)

    loop: SchedulerLoop | None = None
    if cfg.scheduler_enabled:
        loop = SchedulerLoop(service.scheduler, cfg.scheduler_interval_seconds)
        loop.start()
    app.state.scheduler_loop = loop

    yield

    if loop is not None:
        loop.stop()
    logger.info("fiscalsnap API shutting down")


def create_app() -> FastAPI:
    """
    Construct and configure the fiscalsnap FastAPI application.

    Returns
    -------
    FastAPI
        The configured ASGI application ready to be served by Uvicorn.
    """
    app = FastAPI(
        title="fiscalsnap API",
        description="Fiscal book snapshots, comparison, rollback and retention",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Global Exception Handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(SnapshotError)
    async def snapshot_error_handler(request: Request, exc: SnapshotError) -> JSONResponse:
        """Map domain errors to their status code and a structured body."""
        if exc.status_code >= 500:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        body = ErrorBody(
            error=type(exc).__name__,
            message=exc.message,
            detail=str(exc),
            retryable=exc.retryable,
        )
        return JSONResponse(status_code=exc.status_code, content=body.dump())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed request bodies and parameters share the 400 validation shape."""
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}"
            for e in exc.errors()
        )
        body = ErrorBody(
            error="ValidationError",
            message="Request validation failed",
            detail=problems or None,
        )
        return JSONResponse(status_code=400, content=body.dump())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler so unhandled exceptions still return JSON."""
        logger.exception("unhandled error on %s", request.url.path)
        body = ErrorBody(error="Internal Server Error", message="Unexpected error", detail=str(exc))
        return JSONResponse(status_code=500, content=body.dump())

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    # schedule paths are more specific than /snapshots/{id}; register them first
    app.include_router(schedules.router)
    app.include_router(snapshots.router)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict[str, str]:
        """Simple liveness probe."""
        return {"status": "ok", "version": __version__}

    return app


__all__ = ["create_app"]
