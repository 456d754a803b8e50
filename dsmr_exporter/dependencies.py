"""
FastAPI dependencies

Components are created once per application and kept on app.state;
routes receive them through Depends so tests can swap them per app.
"""
from fastapi import Request

from .config import Settings
from .metrics import MetricsSink
from .scrape import ScrapeHandler


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metrics_sink(request: Request) -> MetricsSink:
    return request.app.state.metrics_sink


def get_scrape_handler(request: Request) -> ScrapeHandler:
    return request.app.state.scrape_handler
