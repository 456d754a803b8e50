"""
Request tracing and instrumentation middleware

Provides request ID tracking, timing and HTTP metrics for every request.
HTTP metrics are labelled with the matched route template, so the label set
stays bounded whatever paths clients send.
"""
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = structlog.get_logger(__name__)

# Paths excluded from the HTTP request metrics
IGNORED_PATHS = frozenset({"/metrics", "/favicon.ico"})

# Endpoint label for requests no route matches
UNMATCHED_ENDPOINT = "unmatched"


def endpoint_label(request: Request) -> str:
    """Route template serving the request, UNMATCHED_ENDPOINT if none"""
    partial = None
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return route.path
        if match == Match.PARTIAL and partial is None:
            partial = route.path
    return partial or UNMATCHED_ENDPOINT

# ============================================================================
# Request Tracing Middleware
# ============================================================================

class RequestTracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request tracing and HTTP metrics

    Features:
    - Generates or extracts request ID
    - Adds response headers (X-Request-ID, X-Response-Time)
    - Binds context to structlog for automatic inclusion in logs
    - Records request count, latency and in-flight requests in the metrics sink
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path
        )

        sink = request.app.state.metrics_sink
        instrumented = request.url.path not in IGNORED_PATHS
        endpoint = endpoint_label(request) if instrumented else None
        if instrumented:
            sink.track_request_started(request.method, endpoint)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error("request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2)
            )
            if instrumented:
                sink.track_request_finished(request.method, endpoint, 500, duration)
            structlog.contextvars.unbind_contextvars("request_id", "method", "path")
            raise

        duration = time.perf_counter() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration * 1000:.2f}ms"

        if instrumented:
            sink.track_request_finished(
                request.method,
                endpoint,
                response.status_code,
                duration
            )

        logger.info("request_completed",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )

        structlog.contextvars.unbind_contextvars("request_id", "method", "path")

        return response
