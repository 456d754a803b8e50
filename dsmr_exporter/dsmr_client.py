"""
DSMR Logger HTTP Client
Polls the logger's REST API for the current smart-meter readings

One GET per call against <base url>/api/v1/sm/actual; the path of the
configured base URL is replaced, scheme, host, port and query are kept.
No retries and no caching: a failed call is reported to the caller.
"""
import asyncio
from typing import List, Optional

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import UpstreamDecodeError, UpstreamUnreachableError
from .models import ActualReadings, RawMeasurement

logger = structlog.get_logger(__name__)

ACTUAL_PATH = "/api/v1/sm/actual"


def build_actual_url(base_url) -> httpx.URL:
    """Base URL with its path replaced by the actual-readings endpoint"""
    return httpx.URL(str(base_url)).copy_with(path=ACTUAL_PATH)


class DsmrLoggerClient:
    """
    Async client for the DSMR logger API

    The underlying httpx.AsyncClient is opened by connect() and closed by
    disconnect(); the application lifespan owns both calls.
    """

    def __init__(
        self,
        base_url,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = build_actual_url(base_url)
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def connect(self):
        """Create the shared HTTP client"""
        if self.is_connected:
            return
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            follow_redirects=True,
            headers={"Accept": "application/json"}
        )
        logger.info("dsmr_client_connected", url=str(self.url), timeout=self.timeout)

    async def disconnect(self):
        """Close the shared HTTP client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("dsmr_client_closed")

    async def fetch_actual(self) -> List[RawMeasurement]:
        """
        Fetch the current measurement batch

        Raises:
            UpstreamUnreachableError: request not sent, timed out, or non-2xx status
            UpstreamDecodeError: body is not JSON or not shaped like {"actual": [...]}
        """
        if not self.is_connected:
            await self.connect()

        url = str(self.url)

        # httpx limits each phase; wait_for bounds the whole request
        try:
            response = await asyncio.wait_for(self._client.get(self.url), self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamUnreachableError(url, f"timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            raise UpstreamUnreachableError(url, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise UpstreamUnreachableError(
                url,
                f"HTTP {response.status_code}",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamDecodeError(url, f"invalid JSON: {e}") from e

        try:
            readings = ActualReadings.model_validate(payload)
        except ValidationError as e:
            raise UpstreamDecodeError(url, f"unexpected shape: {e.error_count()} validation error(s)") from e

        logger.debug("dsmr_actual_fetched", url=url, measurements=len(readings.actual))
        return readings.actual
