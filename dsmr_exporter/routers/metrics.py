"""
Metrics Router - Prometheus Endpoint

Exposes /metrics endpoint for Prometheus scraping
"""
from fastapi import APIRouter, Depends, Response

from ..dependencies import get_scrape_handler
from ..scrape import ScrapeHandler

router = APIRouter(tags=["Observability"])


@router.get("/metrics")
async def prometheus_metrics(handler: ScrapeHandler = Depends(get_scrape_handler)):
    """
    Prometheus metrics endpoint

    Polls the DSMR logger once, updates the measurement gauges and returns
    all metrics in Prometheus text format.

    Responds 502 when the logger cannot be polled and no stale fallback
    is available.
    """
    body = await handler.handle_scrape()
    return Response(
        content=body,
        media_type=handler.sink.content_type
    )
