"""Tests for configuration loading and the server application wiring."""

import json
import time
from unittest.mock import MagicMock

import anyio
import httpx
import prometheus_client
import pytest
from mcp.server.fastmcp.exceptions import ToolError
from starlette.testclient import TestClient

from zoho_people_mcp import server, tools
from zoho_people_mcp.peopleapi import PaginationConfig

TOOL_NAMES = {
    "people_get_all_modules",
    "people_get_fields",
    "people_search_records",
    "people_get_records",
    "people_get_all_records",
    "people_get_timeline",
}


@pytest.fixture
def token_file(tmp_path):
    """Refresh token file with surrounding whitespace."""
    path = tmp_path / "refresh_token"
    path.write_text("  1000.refresh.token\n")
    return path


@pytest.fixture
def config_file(tmp_path, token_file):
    """Minimal JSON configuration file."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "client_id": "client-id",
                "client_secret": "client-secret",
                "refresh_token_file": str(token_file),
                "data_center": "eu",
                "pagination": {"rate_limit_delay_ms": 250, "max_records_per_batch": 100},
            },
        ),
    )
    return path


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_load_config_applies_defaults(config_file):
    """Unspecified settings take their defaults; nested pagination is parsed."""
    config = server.load_config(str(config_file))

    assert config.data_center == "eu"
    assert config.timeout == 30.0
    assert config.metrics_path == "/metrics"
    assert config.pagination.rate_limit_delay_ms == 250
    assert config.pagination.max_records_per_batch == 100
    assert config.pagination.max_page_size == 200


def test_load_config_missing_file(tmp_path):
    """A missing configuration file is reported clearly."""
    with pytest.raises(FileNotFoundError, match="Configuration file not found"):
        server.load_config(str(tmp_path / "absent.json"))


def test_config_rejects_invalid_port(token_file):
    """Ports outside 1..65535 are rejected."""
    with pytest.raises(ValueError):  # noqa: PT011
        server.ServerConfig(
            client_id="a",
            client_secret="b",
            refresh_token_file=str(token_file),
            port=70000,
        )


def test_read_refresh_token_strips_whitespace(token_file):
    """The token is read without surrounding whitespace."""
    assert server.read_refresh_token(str(token_file)) == "1000.refresh.token"


def test_read_refresh_token_missing_file(tmp_path):
    """A missing token file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError, match="Token file not found"):
        server.read_refresh_token(str(tmp_path / "nope"))


# ---------------------------------------------------------------------------
# MCP tools
# ---------------------------------------------------------------------------


def test_mcp_server_registers_people_tools():
    """Every People tool is exposed under its MCP name."""
    mcp = server.create_mcp_server(MagicMock(spec=tools.PeopleTools))

    registered = anyio.run(mcp.list_tools)

    assert {tool.name for tool in registered} == TOOL_NAMES


def test_unwrap_returns_text_for_success():
    """Successful tool results are returned as their JSON text."""
    result = tools.text_result({"ok": True})
    assert json.loads(server._unwrap(result)) == {"ok": True}


def test_unwrap_raises_tool_error_for_failure():
    """Error results are raised so MCP reports them as tool errors."""
    with pytest.raises(ToolError, match="Suggestions"):
        server._unwrap(tools.error_result("failed", ["try again"]))


def test_paginated_tool_call_leaves_event_loop_responsive(make_client):
    """Other tasks keep running while a tool pages through a module with backoff."""

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        records = [{"id": f"{page}-{i}"} for i in range(10)] if page <= 5 else []
        return httpx.Response(200, json={"result": records})

    people = make_client(handler, pagination_config=PaginationConfig(rate_limit_delay_ms=100))
    mcp = server.create_mcp_server(tools.PeopleTools(people))
    ticks: list[float] = []

    async def heartbeat():
        while True:
            ticks.append(time.monotonic())
            await anyio.sleep(0.02)

    async def call_with_heartbeat():
        async with anyio.create_task_group() as task_group:
            task_group.start_soon(heartbeat)
            await mcp.call_tool(
                "people_get_all_records",
                {"module_name": "emp", "per_page": 10},
            )
            task_group.cancel_scope.cancel()

    start = time.monotonic()
    anyio.run(call_with_heartbeat)
    elapsed = time.monotonic() - start

    assert people.stats.pages_fetched == 6
    # Backoff alone sleeps about 1.3 s; the heartbeat must tick throughout.
    assert elapsed > 1.0
    assert len(ticks) > 20


# ---------------------------------------------------------------------------
# HTTP application
# ---------------------------------------------------------------------------


def test_metrics_endpoint_serves_client_counters(config_file, monkeypatch):
    """The app built from config serves Prometheus metrics."""
    monkeypatch.setenv(server.CONFIG_ENV_VAR, str(config_file))
    app = server.create_app()

    response = TestClient(app).get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'zoho_people_api_requests_total{data_center="eu"} 0.0' in response.text


def test_create_server_requires_token_file(config_file, tmp_path):
    """Construction fails when the refresh token file is missing."""
    config = server.load_config(str(config_file))
    config = config.model_copy(update={"refresh_token_file": str(tmp_path / "nope")})

    with pytest.raises(FileNotFoundError):
        server.create_server(config)


def test_shutdown_callbacks_run_when_app_stops():
    """Cleanup callables run once the application lifespan ends."""
    close_client = MagicMock()
    close_auth = MagicMock()
    app = server.create_starlette_app(
        metrics_path="/metrics",
        registry=prometheus_client.CollectorRegistry(),
        mcp_server=server.create_mcp_server(MagicMock(spec=tools.PeopleTools)),
        on_shutdown=[close_client, close_auth],
    )

    with TestClient(app) as test_client:
        assert test_client.get("/metrics").status_code == 200
        close_client.assert_not_called()

    close_client.assert_called_once_with()
    close_auth.assert_called_once_with()
