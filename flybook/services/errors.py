"""
Service Errors - typed failures surfaced through the API envelope
"""
from typing import Any, Optional


class FlyBookError(Exception):
    """Base class for errors that map onto an API response"""
    status_code: int = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ValidationError(FlyBookError):
    """Malformed or missing request fields"""
    status_code = 400


class NormalizationError(ValidationError):
    """A flight payload that cannot be reconciled into a NormalizedFlight"""


class NotFoundError(FlyBookError):
    status_code = 404


class UpstreamError(FlyBookError):
    """Transport, auth or provider-reported failure from the flight API"""
    status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        self.upstream_status = upstream_status
        self.payload = payload
        super().__init__(message, detail=payload)


class PersistenceError(FlyBookError):
    status_code = 500
