"""Health and status endpoints"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..config import Settings
from ..dependencies import get_app_settings, get_metrics_sink
from ..metrics import MetricsSink
from ..models import HealthStatus, UpstreamStatus

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthStatus)
async def health_check(
    settings: Settings = Depends(get_app_settings),
    sink: MetricsSink = Depends(get_metrics_sink)
):
    """
    Health check endpoint

    Reports the outcome of the latest upstream polls without polling the
    logger itself. Degraded when the most recent poll failed.
    """
    status = "healthy"
    if sink.last_error_at is not None and (
        sink.last_success_at is None or sink.last_error_at > sink.last_success_at
    ):
        status = "degraded"

    return HealthStatus(
        status=status,
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        upstream=UpstreamStatus(
            url=str(settings.dsmr_base_url),
            last_success=sink.last_success_at,
            last_error=sink.last_error,
            last_error_at=sink.last_error_at
        )
    )
