"""
Custom exceptions for better error handling
Keep it simple but comprehensive
"""
from typing import Optional


class ExporterException(Exception):
    """Base exception for all exporter errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }

# ============================================================
# Configuration Exceptions
# ============================================================

class ConfigurationError(ExporterException):
    """Invalid or missing configuration, fatal at startup"""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"errors": errors or []}
        )

# ============================================================
# Upstream (DSMR logger) Exceptions
# ============================================================

class UpstreamError(ExporterException):
    """DSMR logger could not deliver a usable measurement batch"""

    def __init__(self, message: str, error_code: str, url: str, **details):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"url": url, **details}
        )
        self.url = url


class UpstreamUnreachableError(UpstreamError):
    """Request could not be sent, timed out, or got a non-2xx answer"""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        details = {"reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message=f"DSMR logger unreachable: {reason}",
            error_code="UPSTREAM_UNREACHABLE",
            url=url,
            **details
        )
        self.reason = reason
        self.status_code = status_code


class UpstreamDecodeError(UpstreamError):
    """Response body is not JSON or does not match the expected shape"""

    def __init__(self, url: str, reason: str):
        super().__init__(
            message=f"Failed to decode DSMR logger response: {reason}",
            error_code="UPSTREAM_DECODE_ERROR",
            url=url,
            reason=reason
        )
        self.reason = reason
