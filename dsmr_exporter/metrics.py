"""
Prometheus Metrics Sink for the DSMR Logger Exporter

Holds the latest value of every DSMR measurement gauge and renders them,
together with the exporter's own instrumentation, in Prometheus text format.

Metrics Categories:
- Measurements: one gauge per (name, unit) reported by the logger
- Runtime: process, platform and GC collectors
- HTTP: request count, latency and in-flight requests of this service
- Upstream: poll health, staleness, latency, errors, discarded measurements

Each sink owns its own CollectorRegistry (allows multiple instances for testing).
"""
import threading
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

import structlog
from prometheus_client import (
    Counter, Gauge, Histogram,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.gc_collector import GCCollector
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

from .mapper import DiscardReason
from .models import GaugeUpdate, RawMeasurement

logger = structlog.get_logger(__name__)

# Exposition suffixes prometheus_client adds to counter/histogram/info samples
SAMPLE_SUFFIXES = ("", "_total", "_created", "_bucket", "_count", "_sum", "_info")


class StoredGaugeCollector:
    """Custom collector yielding one gauge family per stored measurement"""

    def __init__(self, sink: "MetricsSink"):
        self.sink = sink

    def collect(self):
        for metric_name, value in sorted(self.sink.snapshot().items()):
            yield GaugeMetricFamily(
                metric_name,
                "DSMR logger measurement",
                value=value
            )


class MetricsTimer:
    """Context manager for timing operations"""

    def __init__(self, histogram, labels: Optional[dict] = None):
        self.histogram = histogram
        self.labels = labels or {}
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time
        if self.labels:
            self.histogram.labels(**self.labels).observe(self.duration)
        else:
            self.histogram.observe(self.duration)


class MetricsSink:
    """
    Process-wide store of gauge values plus the exporter's instrumentation

    Stored values are never cleared: a gauge keeps its last value until a
    later update for the same name overwrites it.
    """

    def __init__(
        self,
        prefix: str = "dsmr_logger",
        registry: Optional[CollectorRegistry] = None,
        runtime_collectors: bool = True
    ):
        self.prefix = prefix
        self.registry = registry if registry is not None else CollectorRegistry()
        self._values: Dict[str, float] = {}
        self._lock = threading.Lock()

        self.last_success_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_error_at: Optional[datetime] = None

        if runtime_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        # ============================================================
        # HTTP Metrics
        # ============================================================

        self.http_requests_total = Counter(
            f'{prefix}_http_requests_total',
            'Total HTTP requests served',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.http_requests_duration_seconds = Histogram(
            f'{prefix}_http_requests_duration_seconds',
            'HTTP request duration in seconds',
            ['method', 'endpoint', 'status'],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry
        )

        self.http_requests_pending = Gauge(
            f'{prefix}_http_requests_pending',
            'HTTP requests currently being served',
            ['method', 'endpoint'],
            registry=self.registry
        )

        # ============================================================
        # Upstream Metrics
        # ============================================================

        self.up = Gauge(
            f'{prefix}_up',
            '1 if the last DSMR logger poll succeeded, 0 otherwise',
            registry=self.registry
        )

        self.scrape_stale = Gauge(
            f'{prefix}_scrape_stale',
            '1 if the served measurements come from an earlier poll',
            registry=self.registry
        )

        self.last_success_timestamp_seconds = Gauge(
            f'{prefix}_last_success_timestamp_seconds',
            'Unix timestamp of the last successful DSMR logger poll',
            registry=self.registry
        )

        self.upstream_request_duration_seconds = Histogram(
            f'{prefix}_upstream_request_duration_seconds',
            'DSMR logger poll duration in seconds',
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry
        )

        self.upstream_errors_total = Counter(
            f'{prefix}_upstream_errors_total',
            'Total failed DSMR logger polls',
            ['error'],
            registry=self.registry
        )

        self.measurements_discarded_total = Counter(
            f'{prefix}_measurements_discarded_total',
            'Total measurements skipped because their value is not a usable number',
            ['reason'],
            registry=self.registry
        )

        self._reserved = self._reserved_names()
        self.registry.register(StoredGaugeCollector(self))

    def _reserved_names(self) -> frozenset:
        """Every sample name the built-in instrumentation may expose"""
        names = set()
        for family in self.registry.collect():
            names.update(family.name + suffix for suffix in SAMPLE_SUFFIXES)
            names.update(sample.name for sample in family.samples)
        return frozenset(names)

    # ============================================================
    # Gauge Store
    # ============================================================

    def apply(self, update: GaugeUpdate) -> None:
        """Set or overwrite the stored value for update.metric_name"""
        if update.metric_name in self._reserved:
            logger.warning("gauge_name_reserved", metric_name=update.metric_name)
            return
        with self._lock:
            self._values[update.metric_name] = update.value

    def apply_all(self, updates: Iterable[GaugeUpdate]) -> int:
        """Apply updates in order, returns how many were applied"""
        count = 0
        for update in updates:
            self.apply(update)
            count += 1
        return count

    def get(self, metric_name: str) -> Optional[float]:
        """Stored value for metric_name, None if never set"""
        with self._lock:
            return self._values.get(metric_name)

    def snapshot(self) -> Dict[str, float]:
        """Copy of all stored gauge values"""
        with self._lock:
            return dict(self._values)

    # ============================================================
    # Rendering
    # ============================================================

    def render(self) -> str:
        """All metrics of this sink in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")

    @property
    def content_type(self) -> str:
        """Get Prometheus content type"""
        return CONTENT_TYPE_LATEST

    # ============================================================
    # Helper Functions
    # ============================================================

    @property
    def has_succeeded(self) -> bool:
        """True once any upstream poll has succeeded"""
        return self.last_success_at is not None

    def time_upstream_request(self) -> MetricsTimer:
        """Timer for one DSMR logger poll"""
        return MetricsTimer(self.upstream_request_duration_seconds)

    def track_upstream_success(self) -> None:
        """Mark the last poll as successful and the gauges as fresh"""
        now = datetime.now(timezone.utc)
        self.last_success_at = now
        self.up.set(1)
        self.scrape_stale.set(0)
        self.last_success_timestamp_seconds.set(now.timestamp())

    def track_upstream_failure(self, error_code: str, message: str) -> None:
        """Mark the last poll as failed"""
        self.last_error = message
        self.last_error_at = datetime.now(timezone.utc)
        self.up.set(0)
        self.upstream_errors_total.labels(error=error_code).inc()

    def mark_stale(self) -> None:
        """Flag the served measurements as coming from an earlier poll"""
        self.scrape_stale.set(1)

    def track_discard(self, measurement: RawMeasurement, reason: DiscardReason) -> None:
        """Count a measurement skipped by the mapper"""
        self.measurements_discarded_total.labels(reason=reason.value).inc()

    def track_request_started(self, method: str, endpoint: str) -> None:
        self.http_requests_pending.labels(method=method, endpoint=endpoint).inc()

    def track_request_finished(self, method: str, endpoint: str, status_code: int, duration: float) -> None:
        """Track a served HTTP request"""
        self.http_requests_pending.labels(method=method, endpoint=endpoint).dec()
        self.http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=str(status_code)
        ).inc()
        self.http_requests_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
            status=str(status_code)
        ).observe(duration)
