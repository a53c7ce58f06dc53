"""
Error taxonomy for the proxy.

Every failure the handler reports to a client is a ``ProxyError`` carrying the
HTTP status and the message placed in the JSON error body.
"""

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """JSON body returned for every failed request."""

    error: str = Field(description="Human-readable error message")


class ProxyError(Exception):
    """Base class for failures surfaced to the client."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> bytes:
        """Serialize the error as ``{"error": <message>}``."""
        return ErrorBody(error=self.message).model_dump_json().encode()


class InvalidRequest(ProxyError):
    status_code = 400
    default_message = "Invalid request"


class Forbidden(ProxyError):
    status_code = 403
    default_message = "Domain not allowed"


class MethodNotAllowed(ProxyError):
    status_code = 405
    default_message = "Method not allowed"


class RateLimited(ProxyError):
    """Raised when a client has exhausted its request window."""

    status_code = 429
    default_message = "Too many requests, please try again later"

    def __init__(self, message: str | None = None, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamFetchFailed(ProxyError):
    status_code = 502
    default_message = "Failed to fetch image"


class ImageProcessingFailed(ProxyError):
    status_code = 500
    default_message = "Failed to process image"


class RequestTimeout(ProxyError):
    status_code = 504
    default_message = "Timed out fetching image"
