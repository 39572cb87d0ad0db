"""
Domain errors and their HTTP mapping.

Business errors are expected outcomes surfaced to the caller and never retried
by the system itself. DeliveryError is the transient class: callers may retry.
"""

from fastapi import Request
from fastapi.responses import ORJSONResponse


class RestockError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BusinessError(RestockError):
    """Expected, user-facing, non-retryable error."""


class InvalidContact(BusinessError):
    pass


class NotFound(BusinessError):
    pass


class AlreadyNotified(BusinessError):
    pass


class NotifyInProgress(AlreadyNotified):
    """Another notify() call holds the claim on this request."""


class AlreadyConverted(BusinessError):
    pass


class QuotaExceeded(BusinessError):
    def __init__(self, used: int, limit: int):
        super().__init__(
            f"Monthly notification limit reached ({used}/{limit}). "
            "Upgrade to Pro for unlimited notifications."
        )
        self.used = used
        self.limit = limit


class UnsupportedChannel(BusinessError):
    pass


class LinkExpired(BusinessError):
    pass


class DeliveryError(RestockError):
    """A delivery provider failed to hand the message off."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


# ---------------------------------------------------------------------------
# (exception type, status code). First match wins, so subclasses go first.
# ---------------------------------------------------------------------------

ERROR_STATUS_RULES: list[tuple[type[RestockError], int]] = [
    (InvalidContact, 400),
    (UnsupportedChannel, 400),
    (AlreadyNotified, 400),
    (AlreadyConverted, 400),
    (QuotaExceeded, 403),
    (NotFound, 404),
    (LinkExpired, 410),
    (DeliveryError, 502),
]


def status_for(exc: RestockError) -> int:
    for error_type, status_code in ERROR_STATUS_RULES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def restock_error_handler(request: Request, exc: RestockError) -> ORJSONResponse:
    """Render a RestockError as ``{"detail", "error"}`` with its mapped status."""
    return ORJSONResponse(
        status_code=status_for(exc),
        content={"detail": exc.message, "error": type(exc).__name__},
    )
