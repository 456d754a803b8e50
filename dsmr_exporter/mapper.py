"""
Measurement Mapper

Turns the logger's loosely-typed measurements into gauge updates.

Naming rules:
- with a non-empty unit:  <prefix>_<name>_<unit lower-cased>
- without a unit:         <prefix>_<name>

The name keeps its case. Characters that are not allowed in a Prometheus
metric name are replaced with "_" in both name and unit, so names that are
already valid pass through unchanged.

Values that are not JSON numbers, or numbers that do not fit a finite
64-bit float, are discarded without raising.
"""
import math
import re
from enum import Enum
from typing import Callable, Iterable, List, Optional

import structlog

from .models import GaugeUpdate, RawMeasurement, ValueKind

logger = structlog.get_logger(__name__)

INVALID_METRIC_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


class DiscardReason(str, Enum):
    """Why a measurement produced no gauge update"""
    NON_NUMERIC = "non_numeric"
    UNREPRESENTABLE = "unrepresentable"


DiscardCallback = Callable[[RawMeasurement, DiscardReason], None]


def sanitize_metric_component(text: str) -> str:
    """Replace characters invalid in a metric name with underscores"""
    return INVALID_METRIC_CHARS.sub("_", text)


def build_metric_name(prefix: str, name: str, unit: Optional[str] = None) -> str:
    """Deterministic gauge name for (prefix, name, unit)"""
    if unit:
        return f"{prefix}_{sanitize_metric_component(name)}_{sanitize_metric_component(unit.lower())}"
    return f"{prefix}_{sanitize_metric_component(name)}"


def to_float(value) -> Optional[float]:
    """
    Convert a JSON number to a float

    Returns None for integers too large for a float and for inf/nan.
    """
    try:
        number = float(value)
    except (OverflowError, TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class MeasurementMapper:
    """Maps raw measurements to gauge updates under a fixed prefix"""

    def __init__(self, prefix: str, on_discard: Optional[DiscardCallback] = None):
        self.prefix = prefix
        self.on_discard = on_discard

    def map_measurement(self, measurement: RawMeasurement) -> Optional[GaugeUpdate]:
        """Return the gauge update for one measurement, or None if discarded"""
        kind = measurement.value_kind

        if kind is ValueKind.OTHER:
            self._discard(measurement, DiscardReason.NON_NUMERIC)
            return None

        # ValueKind.NUMBER
        value = to_float(measurement.value)
        if value is None:
            self._discard(measurement, DiscardReason.UNREPRESENTABLE)
            return None

        unit = measurement.unit if measurement.has_unit else None
        metric_name = build_metric_name(self.prefix, measurement.name, unit)

        if INVALID_METRIC_CHARS.search(measurement.name) or (unit and INVALID_METRIC_CHARS.search(unit)):
            logger.debug("metric_name_sanitized", name=measurement.name, unit=unit, metric_name=metric_name)

        return GaugeUpdate(metric_name=metric_name, value=value)

    def map_batch(self, measurements: Iterable[RawMeasurement]) -> List[GaugeUpdate]:
        """Map every measurement in batch order, skipping discarded ones"""
        updates = []
        for measurement in measurements:
            update = self.map_measurement(measurement)
            if update is not None:
                updates.append(update)
        return updates

    def _discard(self, measurement: RawMeasurement, reason: DiscardReason) -> None:
        logger.debug(
            "measurement_discarded",
            name=measurement.name,
            reason=reason.value,
            value_type=type(measurement.value).__name__
        )
        if self.on_discard is not None:
            self.on_discard(measurement, reason)
