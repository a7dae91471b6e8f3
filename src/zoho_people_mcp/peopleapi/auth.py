"""OAuth access-token handling for the Zoho People REST API.

Provides the token provider contract consumed by the client, a provider
implementing Zoho's refresh-token grant, and the ``httpx.Auth`` flow that
attaches tokens to requests and retries once after a 401.
"""

import time
from collections.abc import Callable, Generator
from threading import Lock
from typing import Any, Protocol

import httpx
import structlog

from .errors import AuthenticationError

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

# Tokens are refreshed this many seconds before their reported expiry.
EXPIRY_SKEW_SECONDS = 60


class AuthTokenProvider(Protocol):
    """Supplies bearer tokens to the REST client."""

    def get_valid_access_token(self) -> str: ...

    def _token_is_fresh(self) -> bool:
        return (
            self._access_token is not None
            and time.time() < self._expires_at - EXPIRY_SKEW_SECONDS
        )

    def _request_token(self) -> None:
        """Run the refresh-token grant. Callers must hold ``self._lock``."""
        if not self._refresh_token:
            msg = "No refresh token available"
            raise AuthenticationError(msg)

        try:
            response = self._client.post(
                "/oauth/v2/token",
                data={
                    "grant_type": "refresh_token",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                },
            )
            response.raise_for_status()
            token_data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Failed to refresh access token: {exc}"
            raise AuthenticationError(msg) from exc

        # Zoho reports grant failures with a 200 and an "error" key
        if "access_token" not in token_data:
            error = token_data.get("error", "no access_token in response")
            msg = f"Failed to refresh access token: {error}"
            raise AuthenticationError(msg)

        self._access_token = token_data["access_token"]
        self._expires_at = time.time() + float(token_data.get("expires_in", 3600))
        logger.info(
            "Refreshed Zoho access token",
            expires_in_seconds=int(self._expires_at - time.time()),
        )

    def refresh_access_token(self) -> None:
        """Exchange the refresh token for a new access token.

        Raises:
            AuthenticationError: If no refresh token is configured or Zoho
                rejects the exchange.
        """
        with self._lock:
            self._request_token()

    def get_valid_access_token(self) -> str:
        """Return a cached access token, refreshing it when close to expiry.

        Threads finding the token stale wait on one another, so a single
        exchange serves all of them.
        """
        with self._lock:
            if not self._token_is_fresh():
                self._request_token()
            if self._access_token is None:
                msg = "Token refresh did not produce an access token"
                raise AuthenticationError(msg)
            return self._access_token


class ZohoOAuth(httpx.Auth):
    """httpx auth flow adding ``Zoho-oauthtoken`` headers.

    On a 401 response the provider is asked to refresh and the request is
    sent again exactly once. A second 401 is returned to the caller as-is.
    """

    def __init__(
        self,
        provider: AuthTokenProvider,
        on_refresh: Callable[[], None] | None = None,
    ):
        self._provider = provider
        self._on_refresh = on_refresh

    def _authorize(self, request: httpx.Request) -> None:
        token = self._provider.get_valid_access_token()
        request.headers["Authorization"] = f"Zoho-oauthtoken {token}"

    def auth_flow(
        self,
        request: httpx.Request,
    ) -> Generator[httpx.Request, httpx.Response, None]:
        self._authorize(request)
        response = yield request

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.info("Access token rejected, refreshing", url=str(request.url))
            self._provider.refresh_access_token()
            if self._on_refresh is not None:
                self._on_refresh()
            self._authorize(request)
            yield request
