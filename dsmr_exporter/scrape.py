"""
Scrape Handler
Ties one Prometheus scrape to one fresh DSMR logger poll

Per scrape: fetch -> map -> apply -> render.

On upstream failure the stored gauges are left untouched. With
serve_stale_on_error enabled and at least one earlier successful poll,
the scrape still succeeds and <prefix>_scrape_stale is set to 1;
otherwise the UpstreamError propagates and the scrape fails.
"""
import structlog

from .dsmr_client import DsmrLoggerClient
from .exceptions import UpstreamError
from .mapper import MeasurementMapper
from .metrics import MetricsSink

logger = structlog.get_logger(__name__)


class ScrapeHandler:
    """Runs the poll/map/apply/render cycle for a single scrape"""

    def __init__(
        self,
        client: DsmrLoggerClient,
        mapper: MeasurementMapper,
        sink: MetricsSink,
        serve_stale_on_error: bool = True
    ):
        self.client = client
        self.mapper = mapper
        self.sink = sink
        self.serve_stale_on_error = serve_stale_on_error

    async def poll_logger(self) -> int:
        """Fetch the current readings and apply them, returns applied gauge count"""
        timer = self.sink.time_upstream_request()
        with timer:
            measurements = await self.client.fetch_actual()

        updates = self.mapper.map_batch(measurements)
        applied = self.sink.apply_all(updates)
        self.sink.track_upstream_success()

        logger.debug(
            "upstream_poll_completed",
            measurements=len(measurements),
            gauges=applied,
            duration_ms=round(timer.duration * 1000, 2)
        )
        return applied

    async def handle_scrape(self) -> str:
        """Poll the logger and return the rendered metrics"""
        try:
            await self.poll_logger()
        except UpstreamError as exc:
            had_success = self.sink.has_succeeded
            self.sink.track_upstream_failure(exc.error_code, exc.message)
            logger.warning(
                "upstream_poll_failed",
                error=exc.error_code,
                url=exc.url,
                reason=exc.details.get("reason")
            )
            if not (self.serve_stale_on_error and had_success):
                raise
            self.sink.mark_stale()
            logger.info(
                "serving_stale_metrics",
                last_success=self.sink.last_success_at.isoformat()
            )

        return self.sink.render()
