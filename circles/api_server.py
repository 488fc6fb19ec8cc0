"""
FastAPI API Server.

REST API for submitting voice notes and imported text, generating gift
ideas, and inspecting the offline queue and the unassigned-note inbox.

Start with:
    uvicorn circles.api_server:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from dotenv import load_dotenv
load_dotenv(".env.local")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from circles.api.gift_ideas import router as gift_ideas_router
from circles.api.intake import router as intake_router
from circles.api.middleware import ApiKeyAuthMiddleware, RateLimitMiddleware, RequestIdMiddleware
from circles.api.queue import router as queue_router
from circles.config import Settings, get_settings
from circles.errors import (
    ContactNotFound,
    CredentialMissing,
    IntakeError,
    NoContentExtracted,
    TransportError,
)
from circles.logging_config import get_logger, setup_logging
from circles.pipeline import Pipeline, build_pipeline

setup_logging()
logger = get_logger(__name__)


def _error_status(exc: IntakeError) -> int:
    if isinstance(exc, ContactNotFound):
        return 404
    if isinstance(exc, CredentialMissing):
        return 503
    if isinstance(exc, (NoContentExtracted, TransportError)):
        return 502
    return 500


async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
    status = _error_status(exc)
    logger.error(
        "intake_request_failed",
        path=request.url.path,
        status=status,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__})


def create_app(pipeline: Optional[Pipeline] = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the API app.

    When ``pipeline`` is given it is used as-is and never started or
    closed by the app; otherwise one is built from settings on startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup and shutdown lifecycle hooks."""
        logger.info("api_server_starting", environment=settings.environment.value)
        if pipeline is not None:
            yield
            logger.info("api_server_stopping")
            return

        owned = build_pipeline(settings)
        await owned.start()
        app.state.pipeline = owned
        monitor_task = asyncio.create_task(owned.monitor.run()) if owned.monitor else None
        try:
            yield
        finally:
            logger.info("api_server_stopping")
            if monitor_task is not None:
                monitor_task.cancel()
            await owned.close()

    app = FastAPI(
        title="Circles Intake Service API",
        description="AI summarization, contact matching and profile merging for Circles notes",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    # Middleware (last added runs first)
    app.add_middleware(ApiKeyAuthMiddleware, api_keys=settings.api_keys)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(IntakeError, intake_error_handler)

    # Routers
    app.include_router(intake_router)
    app.include_router(gift_ideas_router)
    app.include_router(queue_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "circles-intake"}

    @app.get("/", tags=["System"])
    async def root() -> dict[str, str]:
        """API root."""
        return {
            "service": "Circles Intake Service",
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app


app = create_app()
