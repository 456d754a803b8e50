"""
Shared fixtures for exporter tests
"""
import pytest
from fastapi.testclient import TestClient

from dsmr_exporter.config import Settings
from dsmr_exporter.main import create_app
from dsmr_exporter.metrics import MetricsSink

from .fake_logger import FakeDsmrLogger

DSMR_BASE_URL = "http://dsmr-logger.local"


@pytest.fixture
def settings():
    """Exporter settings pointing at the fake logger"""
    return Settings(_env_file=None, dsmr_base_url=DSMR_BASE_URL)


@pytest.fixture
def sink():
    """Fresh metrics sink with its own registry"""
    return MetricsSink(prefix="dsmr_logger", runtime_collectors=False)


@pytest.fixture
def make_client(settings, sink):
    """
    Factory for a TestClient wired to a FakeDsmrLogger

    Usage:
        with make_client(fake_logger) as client:
            client.get("/metrics")
    """
    def _make(fake_logger: FakeDsmrLogger, **overrides):
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        app = create_app(app_settings, sink=sink, transport=fake_logger.transport)
        return TestClient(app)

    return _make
