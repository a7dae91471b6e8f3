"""Shared fixtures for Zoho People client tests."""

from collections.abc import Callable
from unittest.mock import MagicMock, patch

import httpx
import pytest

from zoho_people_mcp.peopleapi import auth, client, pagination

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def token_provider() -> MagicMock:
    """Token provider that always hands out the same access token."""
    provider = MagicMock(spec=auth.AuthTokenProvider)
    provider.get_valid_access_token.return_value = "access-token"
    return provider


@pytest.fixture
def make_client(
    token_provider: MagicMock,
) -> Callable[..., client.ZohoPeopleClient]:
    """Factory building a client whose HTTP traffic goes to ``handler``."""

    def factory(
        handler: Handler,
        pagination_config: pagination.PaginationConfig | None = None,
    ) -> client.ZohoPeopleClient:
        return client.ZohoPeopleClient(
            auth_provider=token_provider,
            pagination=pagination_config,
            transport=httpx.MockTransport(handler),
        )

    return factory


@pytest.fixture
def mock_sleep():
    """Patch out pagination backoff sleeps."""
    with patch("zoho_people_mcp.peopleapi.client.time.sleep") as sleep:
        yield sleep
