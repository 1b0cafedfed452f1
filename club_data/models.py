"""Data models for club-data: query language, edges and result envelopes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from club_data.errors import QuerySpecError
from club_data.keys import KeyType, edge_key, entity_key

T = TypeVar("T")

MAX_LIMIT = 100


class FilterOp(str, Enum):
    """Filter operators supported by every data source."""

    EQ = "eq"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PaginationMode(str, Enum):
    CURSOR = "cursor"
    OFFSET = "offset"


def _coerce_enum(enum_cls: type[Enum], value: Any, what: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise QuerySpecError(f"Invalid {what} {value!r}. Allowed: {allowed}") from e


@dataclass(frozen=True)
class FilterCondition:
    """A single ``field op value`` condition."""

    field: str
    op: FilterOp
    value: Any = None

    def __post_init__(self) -> None:
        if not self.field:
            raise QuerySpecError("Filter field name is required")
        object.__setattr__(self, "op", _coerce_enum(FilterOp, self.op, "filter operator"))

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "op": self.op.value, "value": self.value}


@dataclass(frozen=True)
class SortSpec:
    """Sort on a single field."""

    field: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        if not self.field:
            raise QuerySpecError("Sort field is required")
        object.__setattr__(self, "direction", _coerce_enum(SortDirection, self.direction, "sort direction"))

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "direction": self.direction.value}


@dataclass(frozen=True)
class PaginationSpec:
    """Pagination intent; ``cursor`` is used in cursor mode, ``offset`` in offset mode."""

    mode: PaginationMode
    limit: int
    cursor: str | None = None
    offset: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", _coerce_enum(PaginationMode, self.mode, "pagination mode"))
        if isinstance(self.limit, bool) or not isinstance(self.limit, int):
            raise QuerySpecError(f"Limit must be an integer, got {self.limit!r}")
        if not 1 <= self.limit <= MAX_LIMIT:
            raise QuerySpecError(f"Limit must be between 1 and {MAX_LIMIT}, got {self.limit}")
        if self.offset is not None:
            if isinstance(self.offset, bool) or not isinstance(self.offset, int) or self.offset < 0:
                raise QuerySpecError(f"Offset must be a non-negative integer, got {self.offset!r}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"mode": self.mode.value, "limit": self.limit}
        if self.cursor is not None:
            data["cursor"] = self.cursor
        if self.offset is not None:
            data["offset"] = self.offset
        return data


@dataclass(frozen=True)
class QuerySpec:
    """Backend-agnostic query: filters (AND-ed), one sort field, pagination."""

    filters: list[FilterCondition] = field(default_factory=list)
    sort: SortSpec | None = None
    pagination: PaginationSpec | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "QuerySpec":
        """Parse the JSON wire shape.

        Args:
            data: Decoded JSON object (``filters``, ``sort``, ``pagination``)

        Returns:
            Validated QuerySpec
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise QuerySpecError("QuerySpec must be a JSON object")

        try:
            filters = [
                FilterCondition(field=f["field"], op=f["op"], value=f.get("value"))
                for f in data.get("filters") or []
            ]
            sort = None
            if data.get("sort"):
                raw_sort = data["sort"]
                sort = SortSpec(field=raw_sort["field"], direction=raw_sort.get("direction", "asc"))
            pagination = None
            if data.get("pagination"):
                raw_page = data["pagination"]
                pagination = PaginationSpec(
                    mode=raw_page["mode"],
                    limit=raw_page["limit"],
                    cursor=raw_page.get("cursor"),
                    offset=raw_page.get("offset"),
                )
        except (KeyError, TypeError) as e:
            raise QuerySpecError(f"Malformed QuerySpec: {e}") from e

        return cls(filters=filters, sort=sort, pagination=pagination)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.filters:
            data["filters"] = [f.to_dict() for f in self.filters]
        if self.sort:
            data["sort"] = self.sort.to_dict()
        if self.pagination:
            data["pagination"] = self.pagination.to_dict()
        return data


@dataclass
class QueryResult(Generic[T]):
    """Uniform query response.

    ``next_cursor`` is only set by cursor-mode sources when more pages exist;
    ``total_count`` is only set by in-memory sources.
    """

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None
    total_count: int | None = None

    def to_dict(self, serialize: Callable[[T], Any] | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {"items": [serialize(i) if serialize else i for i in self.items]}
        if self.next_cursor is not None:
            data["nextCursor"] = self.next_cursor
        if self.total_count is not None:
            data["totalCount"] = self.total_count
        return data


class Direction(str, Enum):
    """Which side of a relationship an edge item is keyed from."""

    FORWARD = "forward"
    REVERSE = "reverse"


@dataclass(frozen=True)
class Edge:
    """A stored relationship, keyed from ``source``'s partition."""

    source_type: KeyType
    source_id: str
    target_type: KeyType
    target_id: str
    direction: Direction = Direction.FORWARD
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def pair(
        cls,
        source_type: KeyType,
        source_id: str,
        target_type: KeyType,
        target_id: str,
        attributes: dict[str, Any] | None = None,
        reverse_attributes: dict[str, Any] | None = None,
    ) -> tuple["Edge", "Edge"]:
        """Build a relationship and its mirror image."""
        forward = cls(source_type, source_id, target_type, target_id, Direction.FORWARD, dict(attributes or {}))
        return forward, forward.mirror(reverse_attributes)

    def mirror(self, attributes: dict[str, Any] | None = None) -> "Edge":
        direction = Direction.REVERSE if self.direction == Direction.FORWARD else Direction.FORWARD
        return Edge(
            self.target_type,
            self.target_id,
            self.source_type,
            self.source_id,
            direction,
            dict(self.attributes if attributes is None else attributes),
        )

    def key(self) -> tuple[str, str]:
        return entity_key(self.source_type, self.source_id), edge_key(self.target_type, self.target_id)

    def to_item(self) -> dict[str, Any]:
        pk, sk = self.key()
        return {**self.attributes, "PK": pk, "SK": sk, "direction": self.direction.value}


@dataclass
class ApiResult(Generic[T]):
    """Success/error envelope returned above the DataSource layer."""

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T) -> "ApiResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ApiResult[T]":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}
