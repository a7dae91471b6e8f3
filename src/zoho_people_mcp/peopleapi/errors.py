"""Typed errors raised by the Zoho People REST API client."""

from typing import Any

DEFAULT_RETRY_AFTER = 60


class ZohoApiError(Exception):
    """Raised when the Zoho People API call fails.

    Carries the upstream HTTP status code (500 when the request never got a
    response) and the raw response body for diagnostics.
    """

    def __init__(self, message: str, status_code: int = 500, response: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


class RateLimitError(ZohoApiError):
    """Raised on HTTP 429. ``retry_after`` is in seconds."""

    def __init__(self, message: str, retry_after: int = DEFAULT_RETRY_AFTER):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class AuthenticationError(ZohoApiError):
    """Raised when an access token cannot be obtained or refreshed."""

    def __init__(self, message: str):
        super().__init__(message, status_code=401)


def parse_retry_after(value: str | None) -> int:
    """Parse a ``Retry-After`` header into whole seconds.

    Falls back to :data:`DEFAULT_RETRY_AFTER` when the header is absent,
    not an integer, or negative.
    """
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        seconds = int(value.strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER
    if seconds < 0:
        return DEFAULT_RETRY_AFTER
    return seconds
