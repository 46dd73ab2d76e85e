"""
Service layer exceptions.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class UpstreamError(ServiceError):
    """Upstream transport failed or answered with an error document."""

    pass


class RequestTimeoutError(UpstreamError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class ResponseParseError(UpstreamError):
    """Upstream body is not XML or does not have a recognised shape."""

    pass


class RequestDeferredError(ServiceError):
    """Upstream kept answering "accepted, try later" past the retry budget."""

    def __init__(self, endpoint: str, attempts: int, service_id: str | None = None):
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(
            f"Request to '{endpoint}' still queued upstream after {attempts} attempts",
            service_id=service_id,
        )


class StoreError(ServiceError):
    """Persistence operation failed and was rolled back."""

    pass


def describe_error(exc: Exception) -> tuple[str, str]:
    """Map a failure to a (status, message) pair for callers that must not raise."""
    if isinstance(exc, RequestDeferredError):
        return (
            "queued",
            "Request has been queued by BoardGameGeek. "
            "Please try again in a few moments.",
        )
    if isinstance(exc, ServiceError):
        return "error", str(exc)
    return "error", f"{type(exc).__name__}: {exc}"
