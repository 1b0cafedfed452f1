"""Tests for data models."""

import pytest

from club_data.errors import QuerySpecError
from club_data.keys import KeyType
from club_data.models import (
    ApiResult,
    Direction,
    Edge,
    FilterCondition,
    FilterOp,
    PaginationMode,
    PaginationSpec,
    QueryResult,
    QuerySpec,
    SortDirection,
)
from club_data.schemas import Location, User, parse_item


def test_query_spec_from_wire_shape() -> None:
    """Test parsing the JSON shape of a QuerySpec."""
    spec = QuerySpec.from_dict(
        {
            "filters": [{"field": "name", "op": "contains", "value": "john"}],
            "sort": {"field": "createdAt", "direction": "desc"},
            "pagination": {"mode": "offset", "limit": 20, "offset": 20},
        }
    )
    assert spec.filters == [FilterCondition(field="name", op=FilterOp.CONTAINS, value="john")]
    assert spec.sort is not None and spec.sort.direction == SortDirection.DESC
    assert spec.pagination == PaginationSpec(mode=PaginationMode.OFFSET, limit=20, offset=20)


def test_query_spec_to_dict_round_trip() -> None:
    """Test that to_dict produces what from_dict reads."""
    wire = {
        "filters": [{"field": "age", "op": "gt", "value": 30}],
        "sort": {"field": "age", "direction": "asc"},
        "pagination": {"mode": "cursor", "limit": 5, "cursor": "abc"},
    }
    assert QuerySpec.from_dict(wire).to_dict() == wire


def test_empty_query_spec() -> None:
    """Test that an absent spec means no filters, no sort and no pagination."""
    spec = QuerySpec.from_dict(None)
    assert spec.filters == []
    assert spec.sort is None
    assert spec.pagination is None
    assert spec.to_dict() == {}


@pytest.mark.parametrize("limit", [0, 101, -1, "10", True])
def test_pagination_limit_bounds(limit: object) -> None:
    """Test that limits outside 1..100 are rejected."""
    with pytest.raises(QuerySpecError):
        PaginationSpec(mode="offset", limit=limit)  # type: ignore[arg-type]


def test_unknown_operator_is_rejected() -> None:
    """Test that only eq, contains, gt and lt are accepted."""
    with pytest.raises(QuerySpecError, match="Allowed: eq, contains, gt, lt"):
        FilterCondition(field="name", op="like", value="x")  # type: ignore[arg-type]


def test_malformed_wire_shape() -> None:
    """Test that missing keys become QuerySpecError."""
    with pytest.raises(QuerySpecError):
        QuerySpec.from_dict({"filters": [{"op": "eq", "value": 1}]})
    with pytest.raises(QuerySpecError):
        QuerySpec.from_dict({"pagination": {"mode": "offset"}})


def test_query_result_wire_shape() -> None:
    """Test that optional result fields are omitted when unset."""
    assert QueryResult(items=[]).to_dict() == {"items": []}
    assert QueryResult(items=[1], next_cursor="c", total_count=3).to_dict() == {
        "items": [1],
        "nextCursor": "c",
        "totalCount": 3,
    }


def test_edge_pair_mirrors_keys() -> None:
    """Test that an edge pair is keyed from both sides."""
    forward, reverse = Edge.pair(KeyType.USER, "u1", KeyType.LOCATION, "l1", attributes={"role": "member"})
    assert forward.key() == ("USER#u1", "LOCATION#l1")
    assert reverse.key() == ("LOCATION#l1", "USER#u1")
    assert forward.direction == Direction.FORWARD
    assert reverse.direction == Direction.REVERSE
    assert reverse.attributes == {"role": "member"}
    assert forward.to_item() == {"PK": "USER#u1", "SK": "LOCATION#l1", "direction": "forward", "role": "member"}


def test_api_result_envelope() -> None:
    """Test both shapes of the result envelope."""
    assert ApiResult.ok([1]).to_dict() == {"success": True, "data": [1]}
    assert ApiResult.fail("nope").to_dict() == {"success": False, "error": "nope"}


def test_parse_item_reads_stored_attributes() -> None:
    """Test parsing a raw stored item by its camelCase attributes."""
    parsed = parse_item(
        User,
        {
            "PK": "USER#u1",
            "SK": "META",
            "userId": "u1",
            "displayName": "Jane",
            "userType": "LEAD",
            "isAdmin": True,
            "createdAt": "2026-01-01T00:00:00Z",
            "updatedAt": "2026-01-01T00:00:00Z",
        },
    )
    assert parsed.ok
    assert parsed.value is not None
    assert parsed.value.display_name == "Jane"
    assert parsed.value.to_item()["userType"] == "LEAD"


def test_parse_item_reports_mismatch_without_raising() -> None:
    """Test that a malformed item yields a SchemaMismatchError value."""
    parsed = parse_item(Location, {"PK": "LOCATION#l1", "SK": "META", "locationId": "l1", "locationCode": "bad code"})
    assert not parsed.ok
    assert parsed.value is None
    assert parsed.error is not None
    assert parsed.error.key == ("LOCATION#l1", "META")
