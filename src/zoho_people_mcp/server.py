"""HTTP server for the Zoho People MCP server."""

import contextlib
import functools
import json
import logging
import os
import pathlib
import sys
from collections.abc import Callable, Sequence

import anyio.to_thread
import prometheus_client
import prometheus_client.core
import pydantic
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from . import peopleapi
from .collector import PeopleApiCollector
from .tools import PeopleTools, ToolResult

CONFIG_ENV_VAR = "ZOHO_PEOPLE_MCP_CONFIG_PATH"
SERVER_NAME = "zoho-people"
logger = structlog.get_logger(__name__)


class ServerConfig(pydantic.BaseModel):
    """Configuration for the Zoho People MCP server."""

    client_id: str = pydantic.Field(description="Zoho OAuth client ID")
    client_secret: str = pydantic.Field(description="Zoho OAuth client secret")
    refresh_token_file: str = pydantic.Field(
        description="Path to file containing the Zoho refresh token",
    )
    data_center: str = pydantic.Field(
        peopleapi.DEFAULT_DATA_CENTER,
        description="Zoho data center domain suffix (com, eu, in, com.au, ...)",
    )
    timeout: float = pydantic.Field(
        peopleapi.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    port: int = pydantic.Field(9093, description="HTTP server port", gt=0, lt=65536)
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")
    pagination: peopleapi.PaginationConfig = pydantic.Field(
        default_factory=peopleapi.PaginationConfig,
        description="Pagination and backoff settings",
    )


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output on stderr."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> ServerConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ServerConfig(**data)


def read_refresh_token(token_file: str) -> str:
    """Read the refresh token from a file, stripping surrounding whitespace."""
    token_path = pathlib.Path(token_file)
    if not token_path.exists():
        msg = f"Token file not found: {token_file}"
        raise FileNotFoundError(msg)
    return token_path.read_text().strip()


def _unwrap(result: ToolResult) -> str:
    """Return the text of a tool result, raising ToolError for error results."""
    text = result["content"][0]["text"]
    if result.get("isError"):
        raise ToolError(text)
    return text


async def _run_tool(method: Callable[..., ToolResult], *args, **kwargs) -> str:
    """Run a blocking tool method in a worker thread and unwrap its result.

    Tool methods block on HTTP calls and on the backoff between pages.
    """
    result = await anyio.to_thread.run_sync(functools.partial(method, *args, **kwargs))
    return _unwrap(result)


def create_mcp_server(tools: PeopleTools) -> FastMCP:
    """Create a FastMCP server exposing the People tools.

    Args:
        tools: Tool layer bound to a People client.

    Returns:
        FastMCP instance with all People tools registered.
    """
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool(name="people_get_all_modules")
    async def get_all_modules() -> str:
        """Get all available Zoho People modules (Employees, Departments, Attendance, etc.)."""
        return await _run_tool(tools.get_all_modules)

    @mcp.tool(name="people_get_fields")
    async def get_fields(module_name: str, field_id: str | None = None) -> str:
        """Get field metadata for a People module such as "employees" or "leave".

        Pass field_id to describe a single field.
        """
        return await _run_tool(tools.get_fields, module_name, field_id=field_id)

    @mcp.tool(name="people_search_records")
    async def search_records(
        module_name: str,
        criteria: str,
        fields: list[str] | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> str:
        """Search records in a People module by text (per_page max 200)."""
        return await _run_tool(
            tools.search_records,
            module_name,
            criteria,
            fields=fields,
            page=page,
            per_page=per_page,
        )

    @mcp.tool(name="people_get_records")
    async def get_records(
        module_name: str,
        fields: list[str] | None = None,
        page: int | None = None,
        per_page: int | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> str:
        """Get one page of records from a People module (sort_order: asc or desc)."""
        return await _run_tool(
            tools.get_records,
            module_name,
            fields=fields,
            page=page,
            per_page=per_page,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    @mcp.tool(name="people_get_all_records")
    async def get_all_records(
        module_name: str,
        max_records: int | None = None,
        per_page: int | None = None,
        fields: list[str] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> str:
        """Get records from a People module across pages, up to max_records."""
        return await _run_tool(
            tools.get_all_records,
            module_name,
            max_records=max_records,
            per_page=per_page,
            fields=fields,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    @mcp.tool(name="people_get_timeline")
    async def get_timeline(
        module_name: str,
        record_id: str,
        timeline_types: list[str] | None = None,
        include_inner_details: bool | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> str:
        """Get the activity timeline of a People record."""
        return await _run_tool(
            tools.get_timeline,
            module_name,
            record_id,
            timeline_types=timeline_types,
            include_inner_details=include_inner_details,
            page=page,
            per_page=per_page,
        )

    return mcp


def create_registry_with_collector(
    people_client: peopleapi.ZohoPeopleClient,
    data_center: str,
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry exporting the client's request counters.

    Args:
        people_client: Client whose stats are exported.
        data_center: Label value for the exported samples.

    Returns:
        Custom (non-global) registry with the collector registered.
    """
    registry = prometheus_client.core.CollectorRegistry()
    registry.register(
        PeopleApiCollector(
            stats_source=lambda: people_client.stats,
            data_center=data_center,
        ),
    )
    logger.info("Registered collector", collector="people_api")
    return registry


def create_starlette_app(
    metrics_path: str,
    registry: prometheus_client.core.CollectorRegistry,
    mcp_server: FastMCP,
    on_shutdown: Sequence[Callable[[], None]] = (),
) -> starlette.applications.Starlette:
    """Create a Starlette application serving metrics and the MCP SSE transport.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        registry: Prometheus collector registry.
        mcp_server: FastMCP server mounted at the root.
        on_shutdown: Cleanup callables run when the application stops.

    Returns:
        Configured Starlette application.
    """

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Serve Prometheus metrics in exposition format."""
        metrics_output = prometheus_client.generate_latest(registry)
        logger.info(
            "HTTP request",
            client_ip=request.client.host if request.client else "unknown",
            method=request.method,
            path=request.url.path,
        )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
        starlette.routing.Mount("/", app=mcp_server.sse_app()),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(app: starlette.applications.Starlette):
        yield
        for callback in on_shutdown:
            callback()
        logger.info("Server stopped")

    return starlette.applications.Starlette(routes=routes, lifespan=lifespan)


def create_server(config: ServerConfig) -> starlette.applications.Starlette:
    """Construct the server ASGI app from validated config."""
    auth_manager = peopleapi.ZohoAuthManager(
        client_id=config.client_id,
        client_secret=config.client_secret,
        refresh_token=read_refresh_token(config.refresh_token_file),
        data_center=config.data_center,
        timeout=config.timeout,
    )
    people_client = peopleapi.ZohoPeopleClient(
        auth_provider=auth_manager,
        data_center=config.data_center,
        pagination=config.pagination,
        timeout=config.timeout,
    )
    logger.info("Created People client", base_url=people_client.base_url)

    mcp_server = create_mcp_server(PeopleTools(people_client))
    registry = create_registry_with_collector(people_client, config.data_center)

    return create_starlette_app(
        metrics_path=config.metrics_path,
        registry=registry,
        mcp_server=mcp_server,
        on_shutdown=[people_client.close, auth_manager.close],
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the server ASGI app using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_server(config)
