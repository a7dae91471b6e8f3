"""Tests for single-page record search and listing."""

from collections.abc import Callable

import httpx
import pytest

from zoho_people_mcp.peopleapi import ZohoApiError


def _capture(
    requests: list[httpx.Request],
    body,
) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=body)

    return handler


# ---------------------------------------------------------------------------
# Query parameters
# ---------------------------------------------------------------------------


def test_search_records_builds_query(make_client):
    """Search sends criteria, projected fields and paging parameters."""
    requests: list[httpx.Request] = []
    people = make_client(_capture(requests, {"result": []}))

    people.search_records(
        "employees",
        "john",
        fields=["FirstName", "Email"],
        page=2,
        per_page=50,
    )

    request = requests[0]
    assert request.url.path == "/people/api/forms/employees/records"
    assert dict(request.url.params) == {
        "searchStr": "john",
        "fields": "FirstName,Email",
        "page": "2",
        "per_page": "50",
    }


def test_search_records_omits_absent_params(make_client):
    """Empty criteria and missing options send no query parameters."""
    requests: list[httpx.Request] = []
    people = make_client(_capture(requests, {"result": []}))

    people.search_records("employees", "")

    assert dict(requests[0].url.params) == {}


@pytest.mark.parametrize("method", ["search", "list"])
def test_per_page_is_clamped_to_200(make_client, method):
    """A request for 500 records per page goes out as 200."""
    requests: list[httpx.Request] = []
    people = make_client(_capture(requests, {"result": []}))

    if method == "search":
        page = people.search_records("employees", "x", per_page=500)
    else:
        page = people.get_records("employees", per_page=500)

    assert requests[0].url.params["per_page"] == "200"
    assert page.info.per_page == 200


@pytest.mark.parametrize("method", ["search", "list"])
@pytest.mark.parametrize(
    ("paging", "match"),
    [
        ({"page": 0, "per_page": 0}, "page"),
        ({"per_page": -5}, "per_page"),
    ],
)
def test_non_positive_paging_rejected(make_client, method, paging, match):
    """Page numbers and sizes below 1 are caller errors and never sent."""
    requests: list[httpx.Request] = []
    people = make_client(_capture(requests, {"result": []}))

    with pytest.raises(ValueError, match=match):
        if method == "search":
            people.search_records("employees", "x", **paging)
        else:
            people.get_records("employees", **paging)

    assert requests == []


def test_get_records_sends_sort_params(make_client):
    """Sort field and order are forwarded when supplied."""
    requests: list[httpx.Request] = []
    people = make_client(_capture(requests, {"result": []}))

    people.get_records("employees", sort_by="EmployeeID", sort_order="desc")

    params = requests[0].url.params
    assert params["sort_by"] == "EmployeeID"
    assert params["sort_order"] == "desc"
    assert "searchStr" not in params


def test_get_records_rejects_unknown_sort_order(make_client):
    """Only asc and desc are accepted."""
    people = make_client(lambda request: httpx.Response(200, json=[]))

    with pytest.raises(ValueError, match="sort_order"):
        people.get_records("employees", sort_order="sideways")


def test_request_carries_oauth_header(make_client):
    """Every request carries the provider's token in Zoho's header format."""
    requests: list[httpx.Request] = []
    people = make_client(_capture(requests, []))

    people.get_records("employees")

    assert requests[0].headers["Authorization"] == "Zoho-oauthtoken access-token"
    assert requests[0].headers["Accept"] == "application/json"


# ---------------------------------------------------------------------------
# Response normalization
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "body",
    [
        {"response": {"result": [{"id": "1"}, {"id": "2"}]}},
        {"result": [{"id": "1"}, {"id": "2"}]},
        [{"id": "1"}, {"id": "2"}],
    ],
    ids=["response.result", "result", "bare-list"],
)
def test_response_shapes_normalize_to_records(make_client, body):
    """Each known upstream shape yields the same records."""
    people = make_client(lambda request: httpx.Response(200, json=body))

    page = people.get_records("employees")

    assert [r["id"] for r in page.data] == ["1", "2"]
    assert page.info.count == 2


def test_unrecognized_shape_yields_empty_page(make_client):
    """A body with no record list normalizes to an empty page."""
    body = {"response": {"status": 1, "errors": {"code": 7024}}}
    people = make_client(lambda request: httpx.Response(200, json=body))

    page = people.search_records("employees", "nobody")

    assert page.data == []
    assert page.info.count == 0


def test_info_defaults_and_more_records_false(make_client):
    """Page info defaults to page 1 of 200 and never reports more_records."""
    body = {"result": [{"id": "1"}]}
    people = make_client(lambda request: httpx.Response(200, json=body))

    info = people.get_records("employees").info

    assert info.model_dump() == {
        "page": 1,
        "per_page": 200,
        "count": 1,
        "more_records": False,
    }


def test_count_is_derived_not_trusted(make_client):
    """Upstream counts are ignored in favour of the normalized length."""
    body = {"response": {"result": [{"id": "1"}], "count": 99}}
    people = make_client(lambda request: httpx.Response(200, json=body))

    assert people.search_records("employees", "a").info.count == 1


def test_numeric_record_ids_become_strings(make_client):
    """Record ids are exposed as strings, other values untouched."""
    body = {"result": [{"id": 4400001, "Experience": 3}]}
    people = make_client(lambda request: httpx.Response(200, json=body))

    record = people.get_records("employees").data[0]

    assert record == {"id": "4400001", "Experience": 3}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_get_records_server_error(make_client):
    """A 500 surfaces as ZohoApiError carrying the status code."""
    people = make_client(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(ZohoApiError) as exc_info:
        people.get_records("employees")

    assert exc_info.value.status_code == 500
    assert exc_info.value.response == "boom"


def test_search_records_transport_failure(make_client):
    """Connection failures become ZohoApiError with status 500."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    people = make_client(handler)

    with pytest.raises(ZohoApiError, match="connection refused") as exc_info:
        people.search_records("employees", "a")

    assert exc_info.value.status_code == 500
    assert people.stats.failures == 1
