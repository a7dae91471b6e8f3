"""Normalized response types for the Zoho People REST API.

Pydantic models representing the shapes the client hands back to callers.
Upstream payloads vary between endpoints; the client maps them onto these
fixed models so the tool layer never has to probe raw JSON.
"""

from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

# Records are structurally open: any field API name to any value, plus "id".
Record: TypeAlias = dict[str, Any]

ALL_OPERATIONS = ["read", "create", "update", "delete"]


class ModuleDescriptor(BaseModel):
    """A People form (module) and what can be done with its records."""

    model_config = ConfigDict(frozen=True)

    api_name: str
    module_name: str
    plural_label: str
    singular_label: str
    supported_operations: list[str] = Field(
        default_factory=lambda: list(ALL_OPERATIONS),
    )

    # Capability flags
    creatable: bool = True
    deletable: bool = True
    editable: bool = True
    viewable: bool = True


class PicklistOption(BaseModel):
    """One allowed value of a picklist field."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    display_value: str | None = None
    actual_value: str | None = None


class FieldDescriptor(BaseModel):
    """Metadata for a single field of a People module.

    ``pick_list_values`` is None for fields without options, and an empty
    list for a picklist that has no options defined.
    """

    model_config = ConfigDict(frozen=True)

    api_name: str = ""
    display_label: str | None = None
    data_type: str = "text"
    required: bool = False
    read_only: bool = False
    id: str | None = None
    custom_field: bool = False
    pick_list_values: list[PicklistOption] | None = None
    sequence_number: int | None = None


class PageInfo(BaseModel):
    """Pagination metadata for a single page of records."""

    model_config = ConfigDict(frozen=True)

    page: int = 1
    per_page: int = 200
    count: int = 0
    # People endpoints never report this reliably
    more_records: bool = False


class RecordPage(BaseModel):
    """A single page of records."""

    model_config = ConfigDict(frozen=True)

    data: list[Record] = Field(default_factory=list)
    info: PageInfo = Field(default_factory=PageInfo)


class PaginatedRecords(BaseModel):
    """Records accumulated across several page fetches.

    Serializes with camelCase keys (``totalRecords``, ``hasMore``, ...)
    when dumped with ``by_alias=True``.
    """

    model_config = ConfigDict(frozen=True)

    data: list[Record] = Field(default_factory=list)
    total_records: int = Field(0, serialization_alias="totalRecords")
    has_more: bool = Field(False, serialization_alias="hasMore")
    current_page: int = Field(1, serialization_alias="currentPage")
    total_pages: int = Field(0, serialization_alias="totalPages")


class TimelineResult(BaseModel):
    """Activity history of one record.

    ``warning`` is set instead of raising when the module has no timeline.
    """

    model_config = ConfigDict(frozen=True)

    timeline: list[dict[str, Any]] = Field(default_factory=list)
    record_id: str
    module: str
    warning: str | None = None
