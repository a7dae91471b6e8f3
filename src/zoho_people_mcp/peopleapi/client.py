"""Zoho People REST API client.

Provides an HTTP client with OAuth token handling, typed error translation,
response-shape normalization and rate-limited automatic pagination.
"""

import math
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
import dataclasses
from typing import Any

import httpx
import structlog

from .auth import AuthTokenProvider, ZohoOAuth
from .errors import RateLimitError, ZohoApiError, parse_retry_after
from .pagination import MAX_PAGE_REQUESTS, PaginationConfig, backoff_delay_ms
from .types import (
    FieldDescriptor,
    ModuleDescriptor,
    PageInfo,
    PaginatedRecords,
    PicklistOption,
    Record,
    RecordPage,
    TimelineResult,
)

logger = structlog.get_logger(__name__)

DEFAULT_DATA_CENTER = "com"

DEFAULT_TIMEOUT = 30.0

# Upstream ceiling for any single-page request.
MAX_PAGE_SIZE = 200

TIMELINE_UNAVAILABLE = "Timeline data not available for this module"

SORT_ORDERS = ("asc", "desc")

# Modules whose field metadata lives under a differently named form.
FIELD_ENDPOINTS = {
    "employees": "/forms/employee/fields",
    "departments": "/forms/P_Department/fields",
}

DATA_TYPE_MAP = {
    "singleline": "text",
    "multiline": "textarea",
    "email": "email",
    "phone": "phone",
    "date": "date",
    "datetime": "datetime",
    "number": "integer",
    "decimal": "decimal",
    "boolean": "boolean",
    "picklist": "picklist",
    "lookup": "lookup",
    "multiselect": "multiselectpicklist",
}

_READ_WRITE = ["read", "create", "update"]

# The /forms endpoint does not list every built-in module.
FALLBACK_MODULES = (
    ModuleDescriptor(
        api_name="employees",
        module_name="Employees",
        plural_label="Employees",
        singular_label="Employee",
    ),
    ModuleDescriptor(
        api_name="departments",
        module_name="Departments",
        plural_label="Departments",
        singular_label="Department",
    ),
    ModuleDescriptor(
        api_name="attendance",
        module_name="Attendance",
        plural_label="Attendance",
        singular_label="Attendance",
        supported_operations=_READ_WRITE,
        deletable=False,
    ),
    ModuleDescriptor(
        api_name="leave",
        module_name="Leave",
        plural_label="Leave Records",
        singular_label="Leave Record",
        supported_operations=_READ_WRITE,
        deletable=False,
    ),
    ModuleDescriptor(
        api_name="performance",
        module_name="Performance",
        plural_label="Performance Records",
        singular_label="Performance Record",
        supported_operations=_READ_WRITE,
        deletable=False,
    ),
    ModuleDescriptor(
        api_name="training",
        module_name="Training",
        plural_label="Training Records",
        singular_label="Training Record",
        supported_operations=_READ_WRITE,
        deletable=False,
    ),
)


@dataclasses.dataclass
class RequestStats:
    """Counters describing the client's traffic since construction.

    Shared by every thread using the client; update through :meth:`increment`.
    """

    requests: int = 0
    failures: int = 0
    rate_limited: int = 0
    token_refreshes: int = 0
    pages_fetched: int = 0
    _lock: threading.Lock = dataclasses.field(
        default_factory=threading.Lock,
        repr=False,
        compare=False,
    )

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)


# ---------------------------------------------------------------------------
# Response normalization
# ---------------------------------------------------------------------------

Extractor = Callable[[Any], list | None]


def _from_response_result(body: Any) -> list | None:
    if isinstance(body, dict) and isinstance(body.get("response"), dict):
        result = body["response"].get("result")
        if isinstance(result, list):
            return result
    return None


def _from_key(key: str) -> Extractor:
    def extract(body: Any) -> list | None:
        if isinstance(body, dict) and isinstance(body.get(key), list):
            return body[key]
        return None

    return extract


def _from_bare_list(body: Any) -> list | None:
    return body if isinstance(body, list) else None


# Tried in order, first non-None wins. Upstream shape drift is fixed here.
RECORD_EXTRACTORS: tuple[Extractor, ...] = (
    _from_response_result,
    _from_key("result"),
    _from_bare_list,
)
FIELD_EXTRACTORS: tuple[Extractor, ...] = (_from_key("fields"), _from_bare_list)
TIMELINE_EXTRACTORS: tuple[Extractor, ...] = (
    _from_key("timeline"),
    _from_key("activities"),
)


def extract_list(body: Any, extractors: tuple[Extractor, ...]) -> list:
    """Return the first list found by ``extractors``, or an empty list."""
    for extractor in extractors:
        found = extractor(body)
        if found is not None:
            return found
    return []


def _normalize_record(raw: dict[str, Any]) -> Record:
    record = dict(raw)
    if "id" in record and not isinstance(record["id"], str):
        record["id"] = str(record["id"])
    return record


def _first(entry: dict[str, Any], *keys: str) -> Any:
    """Return the first truthy value among ``keys``, else None."""
    for key in keys:
        value = entry.get(key)
        if value:
            return value
    return None


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def map_data_type(type_name: str | None) -> str:
    """Map a People field type onto the normalized data type vocabulary.

    Unknown types pass through lowercased; a missing type becomes "text".
    """
    if not type_name:
        return "text"
    lowered = str(type_name).lower()
    return DATA_TYPE_MAP.get(lowered, lowered)


def _transform_module(form: dict[str, Any]) -> ModuleDescriptor | None:
    api_name = _first(form, "form_name", "linkName")
    if api_name is None:
        return None
    label = _first(form, "display_name", "form_name") or api_name
    return ModuleDescriptor(
        api_name=str(api_name),
        module_name=str(label),
        plural_label=str(label),
        singular_label=str(label),
    )


def _transform_option(option: dict[str, Any] | str) -> PicklistOption:
    if not isinstance(option, dict):
        value = str(option)
        return PicklistOption(id=value, display_value=value, actual_value=value)
    return PicklistOption(
        id=_optional_str(_first(option, "id", "value")),
        display_value=_optional_str(_first(option, "display_name", "label", "value")),
        actual_value=_optional_str(_first(option, "value", "actual_value")),
    )


def _transform_field(field: dict[str, Any]) -> FieldDescriptor:
    options = field.get("options")
    sequence = _first(field, "sequence", "sequence_number")
    return FieldDescriptor(
        api_name=str(_first(field, "field_name", "api_name", "name") or ""),
        display_label=_optional_str(
            _first(field, "display_name", "display_label", "label"),
        ),
        data_type=map_data_type(_first(field, "type", "data_type")),
        required=bool(_first(field, "is_required", "required")),
        read_only=bool(_first(field, "is_read_only", "read_only")),
        id=_optional_str(_first(field, "field_id", "id")),
        custom_field=bool(_first(field, "is_custom", "custom_field")),
        pick_list_values=(
            [_transform_option(option) for option in options]
            if isinstance(options, list)
            else None
        ),
        sequence_number=int(sequence) if sequence is not None else None,
    )


def _error_message(response: httpx.Response, body: Any) -> str:
    if isinstance(body, dict):
        nested = body.get("response")
        if isinstance(nested, dict) and nested.get("message"):
            return str(nested["message"])
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


@contextmanager
def _translate_errors(context: str) -> Iterator[None]:
    """Wrap untyped failures into ZohoApiError prefixed with ``context``."""
    try:
        yield
    except ZohoApiError:
        raise
    except Exception as exc:
        msg = f"{context}: {exc}"
        raise ZohoApiError(msg) from exc


def _check_sort_order(sort_order: str | None) -> None:
    if sort_order is not None and sort_order not in SORT_ORDERS:
        msg = f"sort_order must be one of {SORT_ORDERS}, got {sort_order!r}"
        raise ValueError(msg)


def _check_paging(page: int | None, per_page: int | None) -> None:
    if page is not None and page < 1:
        msg = f"page must be at least 1, got {page}"
        raise ValueError(msg)
    if per_page is not None and per_page < 1:
        msg = f"per_page must be at least 1, got {per_page}"
        raise ValueError(msg)


def _check_module(module: str) -> None:
    if not module:
        msg = "module cannot be empty"
        raise ValueError(msg)


class ZohoPeopleClient:
    """HTTP client for the Zoho People REST API.

    Attaches OAuth tokens through :class:`ZohoOAuth`, translates upstream
    failures into :class:`ZohoApiError` / :class:`RateLimitError`, and
    normalizes the varying People response shapes into the models of
    :mod:`.types`.

    Thread-safe through thread-local storage of httpx.Client instances.
    Can be used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        auth_provider: AuthTokenProvider,
        data_center: str = DEFAULT_DATA_CENTER,
        pagination: PaginationConfig | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the REST API client.

        Args:
            auth_provider: Supplies and refreshes access tokens.
            data_center: Zoho data center domain suffix (e.g., "com", "eu", "in").
            pagination: Pagination settings (defaults when omitted).
            timeout: Request timeout in seconds (default: 30.0).
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: If data_center is empty or timeout is not positive.
        """
        if not data_center:
            msg = "data_center cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.base_url = f"https://people.zoho.{data_center}/people/api"
        self.pagination = pagination or PaginationConfig()
        self.stats = RequestStats()
        self._timeout = timeout
        self._transport = transport
        self._auth = ZohoOAuth(auth_provider, on_refresh=self._record_refresh)
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        # Use thread-local storage for httpx.Client (thread safety)
        self._local = threading.local()
        self._clients: list[httpx.Client] = []
        self._clients_lock = threading.Lock()

    @property
    def client(self) -> httpx.Client:
        """Get or create the thread-local httpx client."""
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                auth=self._auth,
                transport=self._transport,
            )
            with self._clients_lock:
                self._clients.append(self._local.client)
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the HTTP clients opened by every thread."""
        with self._clients_lock:
            clients, self._clients = self._clients, []
        for http_client in clients:
            if not http_client.is_closed:
                http_client.close()

    def _record_refresh(self) -> None:
        self.stats.increment("token_refreshes")

    def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a GET request to the People API and return the decoded body.

        Args:
            endpoint: API path relative to the base URL (e.g., "/forms").
            params: Optional query parameters.

        Returns:
            Decoded JSON body.

        Raises:
            RateLimitError: On HTTP 429.
            ZohoApiError: On any other HTTP failure or a transport failure.
        """
        start_time = time.time()
        params = params or {}
        self.stats.increment("requests")

        logger.debug(
            "Making API request",
            method="GET",
            endpoint=endpoint,
            params=params,
        )
        try:
            response = self.client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            self.stats.increment("failures")
            logger.exception(
                "API request failed",
                endpoint=endpoint,
                duration_seconds=round(time.time() - start_time, 3),
            )
            raise ZohoApiError(str(exc)) from exc

        duration = time.time() - start_time
        logger.debug(
            "API request completed",
            endpoint=endpoint,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            self.stats.increment("failures")
            self.stats.increment("rate_limited")
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                "Rate limit exceeded",
                endpoint=endpoint,
                retry_after=retry_after,
            )
            msg = "Rate limit exceeded"
            raise RateLimitError(msg, retry_after)

        if response.is_error:
            self.stats.increment("failures")
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            logger.error(
                "API error response",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise ZohoApiError(
                _error_message(response, body),
                response.status_code,
                body,
            )

        return response.json()

    def _rate_limit_delay(self, request_count: int) -> None:
        delay_ms = backoff_delay_ms(request_count, self.pagination.rate_limit_delay_ms)
        if delay_ms > 0:
            logger.debug("Pagination backoff", delay_ms=delay_ms)
            time.sleep(delay_ms / 1000)

    # ========== Metadata ==========

    def get_modules(self) -> list[ModuleDescriptor]:
        """Fetch all People modules (forms), merged with well-known modules.

        Modules reported by ``/forms`` come first; fallback modules whose
        ``api_name`` was not reported are appended.

        Raises:
            ZohoApiError: If the request fails.
        """
        with _translate_errors("Failed to get People modules"):
            data = self._make_request("/forms")
            forms = data.get("forms") if isinstance(data, dict) else None

            modules: list[ModuleDescriptor] = []
            for form in forms or []:
                if not isinstance(form, dict):
                    continue
                module = _transform_module(form)
                if module is not None:
                    modules.append(module)

            seen = {module.api_name for module in modules}
            modules.extend(m for m in FALLBACK_MODULES if m.api_name not in seen)
            return modules

    def get_fields(self, module: str) -> list[FieldDescriptor]:
        """Fetch field metadata for a People module.

        Args:
            module: Module API name (e.g., "employees").

        Raises:
            ValueError: If module is empty.
            ZohoApiError: If the request fails.
        """
        _check_module(module)
        endpoint = FIELD_ENDPOINTS.get(module, f"/forms/{module}/fields")

        with _translate_errors(f"Failed to get fields for People module {module}"):
            data = self._make_request(endpoint)
            fields = extract_list(data, FIELD_EXTRACTORS)
            return [_transform_field(f) for f in fields if isinstance(f, dict)]

    # ========== Records ==========

    def _list_records(
        self,
        module: str,
        params: dict[str, Any],
        page: int | None,
        per_page: int | None,
    ) -> RecordPage:
        if page is not None:
            params["page"] = page
        if per_page is not None:
            per_page = min(per_page, MAX_PAGE_SIZE)
            params["per_page"] = per_page

        data = self._make_request(f"/forms/{module}/records", params=params)
        records = [
            _normalize_record(raw)
            for raw in extract_list(data, RECORD_EXTRACTORS)
            if isinstance(raw, dict)
        ]
        return RecordPage(
            data=records,
            info=PageInfo(
                page=page or 1,
                per_page=per_page or MAX_PAGE_SIZE,
                count=len(records),
                more_records=False,
            ),
        )

    def search_records(
        self,
        module: str,
        criteria: str,
        fields: list[str] | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> RecordPage:
        """Search a People module with free-text criteria.

        Args:
            module: Module API name.
            criteria: Text to search for; empty means no filter.
            fields: Field API names to return.
            page: 1-based page number.
            per_page: Page size, clamped to 200.

        Raises:
            ValueError: If module is empty.
            ZohoApiError: If the request fails.
        """
        _check_module(module)
        _check_paging(page, per_page)
        params: dict[str, Any] = {}
        if criteria:
            params["searchStr"] = criteria
        if fields:
            params["fields"] = ",".join(fields)

        with _translate_errors(f"Failed to search records in People module {module}"):
            return self._list_records(module, params, page, per_page)

    def get_records(
        self,
        module: str,
        fields: list[str] | None = None,
        page: int | None = None,
        per_page: int | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> RecordPage:
        """Fetch one page of records from a People module.

        Args:
            module: Module API name.
            fields: Field API names to return.
            page: 1-based page number.
            per_page: Page size, clamped to 200.
            sort_by: Field API name to sort on.
            sort_order: "asc" or "desc".

        Raises:
            ValueError: If module is empty or sort_order is invalid.
            ZohoApiError: If the request fails.
        """
        _check_module(module)
        _check_sort_order(sort_order)
        _check_paging(page, per_page)
        params: dict[str, Any] = {}
        if fields:
            params["fields"] = ",".join(fields)
        if sort_by:
            params["sort_by"] = sort_by
        if sort_order:
            params["sort_order"] = sort_order

        with _translate_errors(f"Failed to get records from People module {module}"):
            return self._list_records(module, params, page, per_page)

    def get_all_records(
        self,
        module: str,
        page: int | None = None,
        per_page: int | None = None,
        max_records: int | None = None,
        fields: list[str] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> PaginatedRecords:
        """Fetch records across pages until exhausted or capped.

        People endpoints do not report reliable pagination metadata, so a
        page that comes back exactly full is taken to mean more records
        follow. A last page that happens to be exactly full therefore costs
        one extra, empty fetch. Requests are spaced by an exponential backoff
        and the loop stops after 50 fetches regardless of state.

        Args:
            module: Module API name.
            page: First page to fetch (default 1).
            per_page: Page size, clamped to the configured maximum.
            max_records: Total record cap (default from configuration).
            fields: Field API names to return.
            sort_by: Field API name to sort on.
            sort_order: "asc" or "desc".

        Returns:
            At most ``max_records`` records. ``has_more`` with fewer than
            ``max_records`` records means the safety cutoff was hit.

        Raises:
            ValueError: If module is empty or sort_order is invalid.
            ZohoApiError: If any page fetch fails.
        """
        _check_module(module)
        _check_sort_order(sort_order)
        _check_paging(page, per_page)
        config = self.pagination
        page_size = min(per_page or config.default_page_size, config.max_page_size)
        max_records = max_records or config.max_records_per_batch

        with _translate_errors(f"Failed to get all records from People module {module}"):
            records: list[Record] = []
            current_page = page or 1
            has_more = True
            request_count = 0

            while has_more and len(records) < max_records:
                if request_count >= MAX_PAGE_REQUESTS:
                    logger.warning(
                        "Stopping pagination to prevent infinite loop",
                        module=module,
                        requests=request_count,
                        records=len(records),
                    )
                    break

                self._rate_limit_delay(request_count)
                result = self.get_records(
                    module,
                    fields=fields,
                    page=current_page,
                    per_page=page_size,
                    sort_by=sort_by,
                    sort_order=sort_order,
                )
                request_count += 1
                self.stats.increment("pages_fetched")

                if result.data:
                    records.extend(result.data)
                    has_more = len(result.data) == page_size
                    current_page += 1
                else:
                    has_more = False

            data = records[:max_records]
            logger.info(
                "Fetched all records",
                module=module,
                records=len(data),
                requests=request_count,
            )
            return PaginatedRecords(
                data=data,
                total_records=len(data),
                has_more=has_more or len(records) > max_records,
                current_page=current_page,
                total_pages=math.ceil(len(data) / page_size),
            )

    # ========== Timeline ==========

    def get_timeline(
        self,
        module: str,
        record_id: str,
        timeline_types: list[str] | None = None,
        include_inner_details: bool | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> TimelineResult:
        """Fetch the activity timeline of a record.

        Not every People module has a timeline, so upstream failures of any
        kind produce an empty result carrying a warning instead of an error.

        Raises:
            ValueError: If module or record_id is empty.
        """
        _check_module(module)
        if not record_id:
            msg = "record_id cannot be empty"
            raise ValueError(msg)
        _check_paging(page, per_page)

        params: dict[str, Any] = {}
        if timeline_types:
            params["timeline_types"] = ",".join(timeline_types)
        if include_inner_details is not None:
            params["include_inner_details"] = str(include_inner_details).lower()
        if page is not None:
            params["page"] = page
        if per_page is not None:
            params["per_page"] = min(per_page, MAX_PAGE_SIZE)

        endpoint = f"/forms/{module}/records/{record_id}/timeline"
        try:
            data = self._make_request(endpoint, params=params)
            entries = [
                entry
                for entry in extract_list(data, TIMELINE_EXTRACTORS)
                if isinstance(entry, dict)
            ]
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Timeline not available",
                module=module,
                record_id=record_id,
                error=str(exc),
            )
            return TimelineResult(
                record_id=record_id,
                module=module,
                warning=TIMELINE_UNAVAILABLE,
            )

        return TimelineResult(timeline=entries, record_id=record_id, module=module)
