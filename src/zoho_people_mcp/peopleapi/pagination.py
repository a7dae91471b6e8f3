"""Pagination settings and the inter-page backoff schedule."""

from pydantic import BaseModel, ConfigDict, Field

MAX_DELAY_MS = 10_000
BACKOFF_FACTOR = 1.5

# Hard stop for pagination loops whose upstream always returns full pages.
MAX_PAGE_REQUESTS = 50


class PaginationConfig(BaseModel):
    """Immutable pagination settings passed to the client at construction."""

    model_config = ConfigDict(frozen=True)

    default_page_size: int = Field(200, gt=0)
    max_page_size: int = Field(200, gt=0, le=200)
    rate_limit_delay_ms: float = Field(1000.0, ge=0)
    max_retries: int = Field(3, ge=0)
    max_records_per_batch: int = Field(5000, gt=0)


def backoff_delay_ms(request_count: int, base_delay_ms: float) -> float:
    """Return the delay to apply before the given request of a pagination run.

    The first request (``request_count == 0``) is not delayed. After that the
    delay grows by a factor of 1.5 per request and is capped at 10 seconds.

    Args:
        request_count: Zero-based index of the upcoming request.
        base_delay_ms: Delay before the second request, in milliseconds.

    Returns:
        Delay in milliseconds.
    """
    if request_count <= 0:
        return 0.0
    return min(base_delay_ms * BACKOFF_FACTOR ** (request_count - 1), MAX_DELAY_MS)
