"""LLM-facing Zoho People tools.

Wraps :class:`ZohoPeopleClient` calls and reshapes their results into MCP
tool results: a JSON text block on success, or an error block listing
suggestions. Tool methods never raise for upstream failures.
"""

import json
from typing import Any

import structlog

from .peopleapi import MAX_PAGE_SIZE, RateLimitError, ZohoPeopleClient
from .peopleapi.types import FieldDescriptor, ModuleDescriptor

logger = structlog.get_logger(__name__)

PRODUCT = "Zoho People"

ToolResult = dict[str, Any]

# Common ways users refer to the built-in modules.
MODULE_ALIASES = {
    "employee": "employees",
    "emp": "employees",
    "department": "departments",
    "dept": "departments",
    "attendance": "attendance",
    "leave": "leave",
    "leaves": "leave",
    "performance": "performance",
    "training": "training",
    "trainings": "training",
}

COMMON_MODULES = [
    "employees - Employee records and profiles",
    "departments - Department/team structure",
    "attendance - Attendance tracking records",
    "leave - Leave requests and balances",
    "performance - Performance reviews and goals",
    "training - Training programs and records",
]


def text_result(payload: dict[str, Any]) -> ToolResult:
    """Build a successful tool result holding ``payload`` as JSON text."""
    return {
        "content": [{"type": "text", "text": json.dumps(payload, indent=2)}],
    }


def error_result(message: str, suggestions: list[str] | None = None) -> ToolResult:
    """Build an MCP error result, optionally followed by bullet suggestions."""
    text = message
    if suggestions:
        bullets = "\n".join(f"• {s}" for s in suggestions)
        text = f"{message}\n\nSuggestions:\n{bullets}"
    return {"isError": True, "content": [{"type": "text", "text": text}]}


def _failure(message: str, error: Exception, suggestions: list[str]) -> ToolResult:
    logger.warning("Tool call failed", error=str(error))
    if isinstance(error, RateLimitError):
        suggestions = [
            f"Wait {error.retry_after} seconds before retrying",
            *suggestions,
        ]
    return error_result(f"{message}: {error}", suggestions)


def _not_found(module_name: str, suggestions: list[str]) -> ToolResult:
    return error_result(f"People module '{module_name}' not found.", suggestions)


def _format_module(module: ModuleDescriptor) -> dict[str, Any]:
    return {
        "api_name": module.api_name,
        "module_name": module.module_name,
        "plural_label": module.plural_label,
        "singular_label": module.singular_label,
        "supported_operations": list(module.supported_operations),
        "capabilities": {
            "creatable": module.creatable,
            "deletable": module.deletable,
            "editable": module.editable,
            "viewable": module.viewable,
        },
    }


def _format_field(field: FieldDescriptor) -> dict[str, Any]:
    return {
        "api_name": field.api_name,
        "display_label": field.display_label,
        "data_type": field.data_type,
        "required": field.required,
        "read_only": field.read_only,
        "custom_field": field.custom_field,
        "pick_list_values": (
            [option.actual_value for option in field.pick_list_values]
            if field.pick_list_values is not None
            else None
        ),
    }


class PeopleTools:
    """Zoho People operations shaped for LLM consumption."""

    def __init__(self, client: ZohoPeopleClient):
        self._client = client

    def resolve_module(self, module_name: str) -> str | None:
        """Resolve a user-supplied module name to its API name.

        Known aliases ("emp", "dept", ...) are matched first, then the API
        name and labels of every available module, case-insensitively.
        Returns None when nothing matches.
        """
        normalized = "_".join(module_name.lower().split())
        if normalized in MODULE_ALIASES:
            return MODULE_ALIASES[normalized]

        wanted = module_name.lower()
        for module in self._client.get_modules():
            labels = (
                module.api_name,
                module.module_name,
                module.plural_label,
                module.singular_label,
            )
            if wanted in (label.lower() for label in labels):
                return module.api_name
        return None

    def get_all_modules(self) -> ToolResult:
        """List every People module with its capabilities."""
        try:
            modules = self._client.get_modules()
        except Exception as exc:  # noqa: BLE001
            return _failure(
                "Failed to get People modules",
                exc,
                [
                    "Check your Zoho People API access permissions",
                    "Verify your authentication tokens are valid",
                    "Ensure People product is enabled in your Zoho organization",
                ],
            )

        formatted = [_format_module(module) for module in modules]
        return text_result(
            {
                "product": PRODUCT,
                "total_modules": len(formatted),
                "modules": formatted,
                "common_modules": COMMON_MODULES,
                "usage_tips": [
                    "Use exact module API names in other People tools",
                    "Check supported_operations before attempting operations",
                    "Employees module is the core module for most HR operations",
                    "Custom forms appear as additional modules",
                ],
            },
        )

    def get_fields(self, module_name: str, field_id: str | None = None) -> ToolResult:
        """Describe the fields of a module, or a single field when ``field_id`` is set."""
        try:
            api_name = self.resolve_module(module_name)
            if api_name is None:
                return _not_found(
                    module_name,
                    [
                        "Check available modules using people_get_all_modules",
                        'Use exact module API names (e.g., "employees", "departments", "attendance")',
                        "Custom forms may have different API names than display names",
                    ],
                )
            fields = self._client.get_fields(api_name)
        except Exception as exc:  # noqa: BLE001
            return _failure(
                f"Failed to get fields for People module '{module_name}'",
                exc,
                [
                    "Verify the module exists and is accessible",
                    "Check your API permissions for field metadata access",
                    "Try using the exact API name from people_get_all_modules",
                ],
            )

        if field_id:
            fields = [f for f in fields if field_id in (f.id, f.api_name)]
            if not fields:
                return error_result(
                    f"Field '{field_id}' not found in People module '{api_name}'.",
                    ["Call people_get_fields without field_id to list all fields"],
                )

        formatted = [_format_field(field) for field in fields]
        return text_result(
            {
                "module": api_name,
                "product": PRODUCT,
                "total_fields": len(formatted),
                "fields": formatted,
                "usage_tips": [
                    "Use api_name in search criteria and record operations",
                    "Date fields typically use YYYY-MM-DD format",
                    "Picklist fields must use exact values from pick_list_values",
                    "Required fields must be provided when creating records",
                ],
            },
        )

    def search_records(
        self,
        module_name: str,
        criteria: str,
        fields: list[str] | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> ToolResult:
        """Free-text search within a module."""
        try:
            api_name = self.resolve_module(module_name)
            if api_name is None:
                return _not_found(
                    module_name,
                    [
                        "Check available modules with people_get_all_modules",
                        'Use exact module API names (e.g., "employees", "departments")',
                        "Module names are case-sensitive",
                    ],
                )
            result = self._client.search_records(
                api_name,
                criteria,
                fields=fields,
                page=page or 1,
                per_page=min(per_page or MAX_PAGE_SIZE, MAX_PAGE_SIZE),
            )
        except Exception as exc:  # noqa: BLE001
            return _failure(
                f"Search failed for People module '{module_name}'",
                exc,
                [
                    "Check your search criteria format",
                    "Verify the module exists with people_get_all_modules",
                    "Ensure you have read permissions for the module",
                    "Try a simpler search term to test connectivity",
                ],
            )

        return text_result(
            {
                "module": api_name,
                "product": PRODUCT,
                "search_criteria": criteria,
                "total_records": len(result.data),
                "records": result.data,
                "pagination": result.info.model_dump(),
                "search_tips": [
                    "People search uses text-based matching",
                    "Try partial matches for better results",
                    "Use specific field names when available",
                    "Consider using broader search terms if no results found",
                ],
            },
        )

    def get_records(
        self,
        module_name: str,
        fields: list[str] | None = None,
        page: int | None = None,
        per_page: int | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> ToolResult:
        """Fetch a single page of records."""
        try:
            api_name = self.resolve_module(module_name)
            if api_name is None:
                return _not_found(
                    module_name,
                    ["Check available modules with people_get_all_modules"],
                )
            result = self._client.get_records(
                api_name,
                fields=fields,
                page=page,
                per_page=per_page,
                sort_by=sort_by,
                sort_order=sort_order,
            )
        except Exception as exc:  # noqa: BLE001
            return _failure(
                f"Failed to get records from People module '{module_name}'",
                exc,
                [
                    "Verify the module exists with people_get_all_modules",
                    'Use "asc" or "desc" for sort_order',
                    "Ensure you have read permissions for the module",
                ],
            )

        return text_result(
            {
                "module": api_name,
                "product": PRODUCT,
                "total_records": len(result.data),
                "records": result.data,
                "pagination": result.info.model_dump(),
            },
        )

    def get_all_records(
        self,
        module_name: str,
        max_records: int | None = None,
        per_page: int | None = None,
        fields: list[str] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> ToolResult:
        """Fetch records across pages up to ``max_records``."""
        try:
            api_name = self.resolve_module(module_name)
            if api_name is None:
                return _not_found(
                    module_name,
                    ["Check available modules with people_get_all_modules"],
                )
            result = self._client.get_all_records(
                api_name,
                per_page=per_page,
                max_records=max_records,
                fields=fields,
                sort_by=sort_by,
                sort_order=sort_order,
            )
        except Exception as exc:  # noqa: BLE001
            return _failure(
                f"Failed to get all records from People module '{module_name}'",
                exc,
                [
                    "Lower max_records to reduce the number of requests",
                    "Verify the module exists with people_get_all_modules",
                ],
            )

        payload: dict[str, Any] = {"module": api_name, "product": PRODUCT}
        payload.update(result.model_dump(by_alias=True))
        return text_result(payload)

    def get_timeline(
        self,
        module_name: str,
        record_id: str,
        timeline_types: list[str] | None = None,
        include_inner_details: bool | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> ToolResult:
        """Activity history of a single record."""
        try:
            api_name = self.resolve_module(module_name)
            if api_name is None:
                return _not_found(
                    module_name,
                    [
                        "Check available modules with people_get_all_modules",
                        "Use exact module API names",
                    ],
                )
            timeline = self._client.get_timeline(
                api_name,
                record_id,
                timeline_types=timeline_types,
                include_inner_details=include_inner_details,
                page=page,
                per_page=per_page,
            )
        except Exception as exc:  # noqa: BLE001
            return _failure(
                f"Failed to get timeline for People record {record_id} "
                f"in module '{module_name}'",
                exc,
                [
                    "Verify the record ID exists",
                    "Check if timeline is supported for this module",
                    "Ensure you have read permissions for the record",
                    "Some People modules may not have timeline functionality",
                ],
            )

        return text_result(
            {
                "module": api_name,
                "product": PRODUCT,
                "record_id": record_id,
                "timeline_entries": timeline.timeline,
                "total_entries": len(timeline.timeline),
                "warning": timeline.warning,
                "timeline_info": [
                    "Timeline shows activity history for the record",
                    "May include status changes, field updates, and comments",
                    "Not all People modules support detailed timeline data",
                    "Use for audit trails and activity tracking",
                ],
            },
        )
