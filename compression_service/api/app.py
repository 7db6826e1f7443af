#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Operational HTTP surface for the compression service. It configures the
application lifespan (orchestrator construction and shutdown), request ID
middleware, error handlers and routes.

Author: System Architect
Date: 2026-10-19
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from compression_service.api.routes import compression_router
from compression_service.core.config.constants import HEADER_REQUEST_ID
from compression_service.core.config.settings import Settings, get_settings
from compression_service.core.exceptions import (
    AllProvidersFailedError,
    CompressionBaseError,
    InvalidImageError,
    NoProviderAvailableError,
)
from compression_service.core.logging.logger import (
    clear_request_id,
    get_logger,
    set_request_id,
    setup_logging,
)
from compression_service.monitoring.metrics_collector import MetricsCollector
from compression_service.services.compression_orchestrator import (
    CompressionOrchestrator,
    create_compression_orchestrator,
)

logger = get_logger(__name__)

API_BASE_PATH = "/api/v1"


def _status_for(exc: CompressionBaseError) -> int:
    if isinstance(exc, InvalidImageError):
        return 400
    if isinstance(exc, AllProvidersFailedError):
        return 502
    if isinstance(exc, NoProviderAvailableError):
        return 503
    return 500


def create_app(
    settings: Settings | None = None,
    orchestrator: CompressionOrchestrator | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings instance; the global one when omitted
        orchestrator: Prebuilt orchestrator. When given, the lifespan uses it
            as-is and leaves closing it to the caller.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle (startup and shutdown).
        """
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

        logger.info(
            "Starting Image Compression Service",
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION,
        )

        owned = orchestrator is None
        service = orchestrator or create_compression_orchestrator(settings)
        service.metrics_collector.set_app_info(
            settings.app.APP_NAME, settings.app.APP_VERSION, settings.app.ENVIRONMENT
        )
        app.state.orchestrator = service

        try:
            yield
        finally:
            logger.info("Shutting down Image Compression Service")
            if owned:
                await service.aclose()
            app.state.orchestrator = None

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Resilient multi-provider image compression",
        lifespan=lifespan,
    )

    # ========================================================================
    # Middleware
    # ========================================================================

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Inject a request ID into all requests for log correlation."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or uuid.uuid4().hex[:12]
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    # ========================================================================
    # Exception Handlers
    # ========================================================================

    @app.exception_handler(CompressionBaseError)
    async def compression_exception_handler(request: Request, exc: CompressionBaseError):
        logger.error(
            f"Compression service error: {exc.message}",
            error_type=type(exc).__name__,
            request_id=exc.request_id,
        )
        return JSONResponse(
            status_code=_status_for(exc),
            content=exc.to_dict(),
            headers={HEADER_REQUEST_ID: exc.request_id or ""},
        )

    # ========================================================================
    # Root Endpoints
    # ========================================================================

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{API_BASE_PATH}/compression/health",
        }

    @app.get("/metrics", tags=["Root"], include_in_schema=False)
    async def prometheus_metrics():
        """Prometheus text exposition for scraping."""
        return Response(
            content=MetricsCollector.get_prometheus_metrics(),
            media_type=MetricsCollector.get_content_type(),
        )

    app.include_router(compression_router, prefix=API_BASE_PATH)

    return app


# Create application instance
app = create_app()


def main() -> None:
    """Run the API with uvicorn using host/port from settings."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "compression_service.api.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
    )


if __name__ == "__main__":
    main()
