"""
Entrypoint: python -m dsmr_exporter

Loads settings from the environment, configures logging and serves the
exporter with uvicorn. uvicorn handles SIGTERM/SIGINT and runs the app
lifespan shutdown before exiting.
"""
import sys

import uvicorn

from .config import load_settings
from .exceptions import ConfigurationError
from .logging_config import configure_logging
from .main import create_app


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger = configure_logging("INFO")
        logger.error("invalid_configuration", message=e.message, errors=e.details["errors"])
        return 1

    configure_logging(settings.log_level, settings.json_logs)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
