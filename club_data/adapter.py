"""Conversion between UI table state and QuerySpec.

Pure functions with no storage knowledge. The reverse direction only threads
the next cursor forward: cursor pagination has no stable page index, so no
offset or page index is ever inferred from a result.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from club_data.errors import QuerySpecError
from club_data.models import (
    MAX_LIMIT,
    FilterCondition,
    FilterOp,
    PaginationMode,
    PaginationSpec,
    QueryResult,
    QuerySpec,
    SortDirection,
    SortSpec,
)

DEFAULT_PAGE_SIZE = 20


@dataclass
class ColumnFilter:
    id: str
    value: Any


@dataclass
class ColumnSort:
    id: str
    desc: bool = False


@dataclass
class TablePagination:
    page_index: int = 0
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass
class TableState:
    """State of a data table as the UI keeps it."""

    column_filters: list[ColumnFilter] = field(default_factory=list)
    sorting: list[ColumnSort] = field(default_factory=list)
    pagination: TablePagination | None = None
    cursor: str | None = None
    global_filter: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableState":
        """Parse the camelCase shape used by the UI.

        Example:
            TableState.from_dict({
                "columnFilters": [{"id": "name", "value": "john"}],
                "sorting": [{"id": "createdAt", "desc": True}],
                "pagination": {"pageIndex": 1, "pageSize": 20},
            })
        """
        try:
            pagination = None
            if data.get("pagination"):
                raw = data["pagination"]
                pagination = TablePagination(
                    page_index=int(raw.get("pageIndex", 0)),
                    page_size=int(raw.get("pageSize", DEFAULT_PAGE_SIZE)),
                )
            return cls(
                column_filters=[
                    ColumnFilter(id=f["id"], value=f.get("value")) for f in data.get("columnFilters") or []
                ],
                sorting=[ColumnSort(id=s["id"], desc=bool(s.get("desc", False))) for s in data.get("sorting") or []],
                pagination=pagination,
                cursor=data.get("cursor"),
                global_filter=data.get("globalFilter"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise QuerySpecError(f"Malformed table state: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.column_filters:
            data["columnFilters"] = [{"id": f.id, "value": f.value} for f in self.column_filters]
        if self.sorting:
            data["sorting"] = [{"id": s.id, "desc": s.desc} for s in self.sorting]
        if self.pagination:
            data["pagination"] = {"pageIndex": self.pagination.page_index, "pageSize": self.pagination.page_size}
        if self.cursor is not None:
            data["cursor"] = self.cursor
        if self.global_filter is not None:
            data["globalFilter"] = self.global_filter
        return data


@dataclass
class AdapterConfig:
    """Mapping rules from table state to QuerySpec.

    ``field_operators`` override the operator per field; otherwise
    ``default_operator`` is used, and without one the operator is inferred
    from the value type.
    """

    field_operators: dict[str, FilterOp] = field(default_factory=dict)
    default_operator: FilterOp | None = None
    pagination_mode: Literal["auto", "cursor", "offset"] = "auto"
    default_page_size: int = DEFAULT_PAGE_SIZE


def infer_operator(value: Any) -> FilterOp:
    """Strings match by substring; everything else by equality."""
    if isinstance(value, str):
        return FilterOp.CONTAINS
    return FilterOp.EQ


def table_state_to_query_spec(state: TableState, config: AdapterConfig | None = None) -> QuerySpec:
    """Convert table state into a QuerySpec.

    Only the first sort entry is used. The global filter is left to the
    caller, since searching across columns is source specific.
    """
    config = config or AdapterConfig()

    filters = [
        FilterCondition(
            field=f.id,
            op=config.field_operators.get(f.id) or config.default_operator or infer_operator(f.value),
            value=f.value,
        )
        for f in state.column_filters
    ]

    sort = None
    if state.sorting:
        first = state.sorting[0]
        sort = SortSpec(field=first.id, direction=SortDirection.DESC if first.desc else SortDirection.ASC)

    pagination = None
    if state.pagination:
        limit = min(state.pagination.page_size or config.default_page_size, MAX_LIMIT)
        use_cursor = config.pagination_mode == "cursor" or (config.pagination_mode == "auto" and bool(state.cursor))
        if use_cursor:
            pagination = PaginationSpec(mode=PaginationMode.CURSOR, limit=limit, cursor=state.cursor)
        else:
            pagination = PaginationSpec(
                mode=PaginationMode.OFFSET, limit=limit, offset=max(state.pagination.page_index, 0) * limit
            )

    return QuerySpec(filters=filters, sort=sort, pagination=pagination)


def query_result_to_table_state(result: QueryResult[Any], state: TableState) -> dict[str, Any]:
    """Return the table state changes implied by a result.

    Args:
        result: Result of the last query
        state: Table state the query was built from

    Returns:
        Partial state update; contains ``cursor`` only when more pages exist
    """
    update: dict[str, Any] = {}
    if result.next_cursor:
        update["cursor"] = result.next_cursor
    return update
