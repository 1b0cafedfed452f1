"""Tests for the table state adapter."""

import pytest

from club_data.adapter import (
    AdapterConfig,
    TableState,
    infer_operator,
    query_result_to_table_state,
    table_state_to_query_spec,
)
from club_data.errors import QuerySpecError
from club_data.models import FilterOp, QueryResult


def test_representative_table_state() -> None:
    """Test the canonical filter + sort + second page conversion."""
    state = TableState.from_dict(
        {
            "columnFilters": [{"id": "name", "value": "john"}],
            "sorting": [{"id": "createdAt", "desc": True}],
            "pagination": {"pageIndex": 1, "pageSize": 20},
        }
    )
    spec = table_state_to_query_spec(state)

    assert spec.to_dict() == {
        "filters": [{"field": "name", "op": "contains", "value": "john"}],
        "sort": {"field": "createdAt", "direction": "desc"},
        "pagination": {"mode": "offset", "limit": 20, "offset": 20},
    }


def test_operator_inference() -> None:
    """Test the default operator per value type."""
    assert infer_operator("x") == FilterOp.CONTAINS
    assert infer_operator(3) == FilterOp.EQ
    assert infer_operator(True) == FilterOp.EQ
    assert infer_operator(None) == FilterOp.EQ


def test_field_operator_overrides() -> None:
    """Test per-field and default operator configuration."""
    state = TableState.from_dict({"columnFilters": [{"id": "email", "value": "a@b.c"}, {"id": "age", "value": 3}]})
    spec = table_state_to_query_spec(state, AdapterConfig(field_operators={"email": FilterOp.EQ}))
    assert [f.op for f in spec.filters] == [FilterOp.EQ, FilterOp.EQ]

    spec = table_state_to_query_spec(state, AdapterConfig(default_operator=FilterOp.GT))
    assert [f.op for f in spec.filters] == [FilterOp.GT, FilterOp.GT]


def test_only_first_sort_entry_is_used() -> None:
    """Test that multi-column sorting collapses to the first column."""
    state = TableState.from_dict({"sorting": [{"id": "name", "desc": False}, {"id": "age", "desc": True}]})
    spec = table_state_to_query_spec(state)
    assert spec.sort is not None
    assert spec.sort.to_dict() == {"field": "name", "direction": "asc"}


def test_cursor_mode_selection() -> None:
    """Test auto, forced cursor and forced offset pagination."""
    with_cursor = TableState.from_dict({"pagination": {"pageIndex": 3, "pageSize": 10}, "cursor": "abc"})
    spec = table_state_to_query_spec(with_cursor)
    assert spec.pagination.to_dict() == {"mode": "cursor", "limit": 10, "cursor": "abc"}

    without_cursor = TableState.from_dict({"pagination": {"pageIndex": 0, "pageSize": 10}})
    spec = table_state_to_query_spec(without_cursor, AdapterConfig(pagination_mode="cursor"))
    assert spec.pagination.to_dict() == {"mode": "cursor", "limit": 10}

    spec = table_state_to_query_spec(with_cursor, AdapterConfig(pagination_mode="offset"))
    assert spec.pagination.to_dict() == {"mode": "offset", "limit": 10, "offset": 30}


def test_page_size_is_clamped_and_defaulted() -> None:
    """Test page sizes above the limit and missing page sizes."""
    spec = table_state_to_query_spec(TableState.from_dict({"pagination": {"pageIndex": 0, "pageSize": 500}}))
    assert spec.pagination.limit == 100

    spec = table_state_to_query_spec(
        TableState.from_dict({"pagination": {"pageIndex": 2, "pageSize": 0}}), AdapterConfig(default_page_size=15)
    )
    assert spec.pagination.to_dict() == {"mode": "offset", "limit": 15, "offset": 30}


def test_no_pagination_in_state() -> None:
    """Test that an absent pagination stays absent."""
    assert table_state_to_query_spec(TableState()).pagination is None


def test_reverse_only_threads_the_cursor() -> None:
    """Test that results never produce page indexes."""
    state = TableState.from_dict({"pagination": {"pageIndex": 0, "pageSize": 10}})
    assert query_result_to_table_state(QueryResult(items=[1], next_cursor="next"), state) == {"cursor": "next"}
    assert query_result_to_table_state(QueryResult(items=[1], total_count=40), state) == {}


def test_malformed_table_state() -> None:
    """Test that a column filter without id is rejected."""
    with pytest.raises(QuerySpecError):
        TableState.from_dict({"columnFilters": [{"value": "x"}]})


def test_table_state_to_dict_round_trip() -> None:
    """Test that the UI shape survives parsing."""
    data = {
        "columnFilters": [{"id": "name", "value": "john"}],
        "sorting": [{"id": "createdAt", "desc": True}],
        "pagination": {"pageIndex": 1, "pageSize": 20},
        "cursor": "abc",
        "globalFilter": "jo",
    }
    assert TableState.from_dict(data).to_dict() == data
