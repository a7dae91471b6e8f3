"""Zoho People REST API client package.

Provides an HTTP client for the Zoho People REST API that returns
normalized, validated response types. LLM-facing formatting is handled by
the tools module.

Exports:
    ZohoPeopleClient: HTTP client with OAuth handling and pagination.
    ZohoAuthManager: Refresh-token based access token provider.
    ZohoApiError, RateLimitError, AuthenticationError: Typed failures.
    PaginationConfig: Immutable pagination settings.
    types: Module containing Pydantic models for API responses.
"""

from . import types
from .auth import AuthTokenProvider, ZohoAuthManager, ZohoOAuth
from .client import (
    DEFAULT_DATA_CENTER,
    DEFAULT_TIMEOUT,
    MAX_PAGE_SIZE,
    RequestStats,
    ZohoPeopleClient,
)
from .errors import AuthenticationError, RateLimitError, ZohoApiError
from .pagination import PaginationConfig

__all__ = [
    "DEFAULT_DATA_CENTER",
    "DEFAULT_TIMEOUT",
    "MAX_PAGE_SIZE",
    "AuthTokenProvider",
    "AuthenticationError",
    "PaginationConfig",
    "RateLimitError",
    "RequestStats",
    "ZohoApiError",
    "ZohoAuthManager",
    "ZohoOAuth",
    "ZohoPeopleClient",
    "types",
]
