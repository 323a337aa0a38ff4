"""
Error taxonomy shared by courier adapters, stores and the sync orchestrator.

Adapter errors (UpstreamError and subclasses) never escape the sync
orchestrator; they are translated into the `warning`/`source` fields of the
sync result. StorageError is the only failure reconciliation and alerting
can raise.
"""


class CourierServiceError(Exception):
    """Base exception for courierhub service errors."""
    pass


class UpstreamError(CourierServiceError):
    """Raised when an upstream courier or storefront API call fails."""
    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Expired or invalid credential (HTTP 401/403). Not retried automatically."""
    pass


class UpstreamTransientError(UpstreamError):
    """5xx, timeout or connection failure. Triggers fallback to cached data."""
    pass


class UpstreamNotFound(UpstreamError):
    """404 on a single-record lookup. Callers convert it into a soft "not found" result."""
    pass


class MalformedPayloadError(UpstreamError):
    """Upstream body or nested field could not be parsed."""
    pass


class StorageError(CourierServiceError):
    """Database read/write failure. Fatal for the current request."""
    pass


class UnsupportedCourierOperation(CourierServiceError):
    """The courier has no upstream endpoint for the requested operation."""
    pass
