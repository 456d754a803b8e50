"""
DSMR Logger Exporter - Main Application
FastAPI application bridging a DSMR smart-meter logger to Prometheus
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .dsmr_client import DsmrLoggerClient
from .exceptions import ExporterException, UpstreamError
from .mapper import MeasurementMapper
from .metrics import MetricsSink
from .middleware import RequestTracingMiddleware
from .routers import health_router, metrics_router
from .scrape import ScrapeHandler

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    sink: Optional[MetricsSink] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """
    Build the exporter application

    Args:
        settings: Exporter settings, loaded from the environment if omitted
        sink: Metrics sink, a fresh one with its own registry if omitted
        transport: httpx transport for the DSMR logger client (tests inject
            httpx.MockTransport here)
    """
    settings = settings or get_settings()
    sink = sink or MetricsSink(prefix=settings.metrics_prefix)

    # ============================================================
    # Application Lifecycle Management
    # ============================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the shared upstream client on startup, close it on shutdown"""
        logger.info("exporter_starting",
            app_name=settings.app_name,
            version=settings.app_version,
            dsmr_base_url=str(settings.dsmr_base_url),
            serve_stale_on_error=settings.serve_stale_on_error
        )

        dsmr_client = DsmrLoggerClient(
            settings.dsmr_base_url,
            timeout=settings.upstream_timeout_seconds,
            transport=transport
        )
        await dsmr_client.connect()

        mapper = MeasurementMapper(settings.metrics_prefix, on_discard=sink.track_discard)
        app.state.scrape_handler = ScrapeHandler(
            client=dsmr_client,
            mapper=mapper,
            sink=sink,
            serve_stale_on_error=settings.serve_stale_on_error
        )
        logger.info("exporter_ready")

        yield

        logger.info("exporter_shutting_down")
        await dsmr_client.disconnect()
        logger.info("exporter_shutdown_complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Prometheus exporter for DSMR smart-meter data loggers",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.metrics_sink = sink

    app.add_middleware(RequestTracingMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)

    # ============================================================
    # Exception Handlers
    # ============================================================

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError):
        """DSMR logger failures fail the scrape with 502"""
        return JSONResponse(
            status_code=502,
            content=exc.to_dict()
        )

    @app.exception_handler(ExporterException)
    async def exporter_exception_handler(request: Request, exc: ExporterException):
        """Handle other exporter exceptions"""
        logger.error("exporter_error", error=exc.error_code, message=exc.message)
        return JSONResponse(
            status_code=500,
            content=exc.to_dict()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred"
            }
        )

    return app
