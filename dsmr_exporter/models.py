"""
Pydantic models for the DSMR logger payload and the exporter's own responses
All models in one place for simplicity
"""
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# ============================================================
# Enums
# ============================================================

class ValueKind(str, Enum):
    """Kind of a measurement value as delivered by the logger"""
    NUMBER = "number"  # JSON number (int or float)
    OTHER = "other"    # strings, booleans, null, objects, arrays

# ============================================================
# Upstream Payload Models
# ============================================================

class RawMeasurement(BaseModel):
    """
    One entry of the logger's `actual` list

    `value` is kept loosely typed: the feed mixes numeric readings with
    string statuses and nested objects.
    """
    name: str
    value: Any
    unit: Optional[str] = None

    @property
    def value_kind(self) -> ValueKind:
        # bool is an int subclass in Python but not a JSON number
        if isinstance(self.value, bool):
            return ValueKind.OTHER
        if isinstance(self.value, (int, float)):
            return ValueKind.NUMBER
        return ValueKind.OTHER

    @property
    def has_unit(self) -> bool:
        return bool(self.unit)


class ActualReadings(BaseModel):
    """Response body of GET /api/v1/sm/actual"""
    actual: List[RawMeasurement]

# ============================================================
# Gauge Models
# ============================================================

class GaugeUpdate(BaseModel):
    """Value to store in the metrics sink under metric_name"""
    model_config = ConfigDict(frozen=True)

    metric_name: str
    value: float

# ============================================================
# Health Models
# ============================================================

class UpstreamStatus(BaseModel):
    """Outcome of the most recent upstream polls"""
    url: str
    last_success: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None


class HealthStatus(BaseModel):
    """Health check response"""
    status: str = Field(..., description="healthy or degraded")
    version: str
    timestamp: datetime
    upstream: UpstreamStatus
