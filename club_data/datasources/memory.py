"""In-memory data source: load the whole collection, then query it in RAM.

Suited to small, bounded resources (locations, groups, roles, pages). The
loader runs on every call; wrap it yourself if you want caching, and accept
the staleness that comes with it.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Callable, TypeVar

import structlog
from pydantic import BaseModel

from club_data.datasource import DataSource
from club_data.errors import QuerySpecError, StorageUnavailableError
from club_data.models import FilterCondition, FilterOp, PaginationMode, QueryResult, QuerySpec, SortDirection, SortSpec

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_LIMIT = 20

_MISSING = object()


class InMemoryDataSource(DataSource[T]):
    """Data source over a loader returning the full collection."""

    def __init__(
        self,
        loader: Callable[[], Iterable[T]],
        id_field: str = "id",
        resource_name: str = "resource",
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        """Initialize in-memory data source.

        Args:
            loader: Zero-argument callable returning every item of the resource
            id_field: Field compared by get_by_id (name, alias or dot path)
            resource_name: Name used in logs and errors
            default_limit: Page size when the query has no pagination
        """
        self.loader = loader
        self.id_field = id_field
        self.resource_name = resource_name
        self.default_limit = default_limit

    def _load(self) -> list[T]:
        try:
            items = list(self.loader())
        except Exception as e:
            logger.error("Failed to load items", resource=self.resource_name, error=str(e))
            raise StorageUnavailableError(f"Failed to fetch {self.resource_name}") from e
        logger.debug("Loaded items", resource=self.resource_name, count=len(items))
        return items

    def query(self, spec: QuerySpec) -> QueryResult[T]:
        """Filter, sort and paginate the loaded collection."""
        items = self._load()

        if spec.filters:
            items = apply_filters(items, spec.filters)
        if spec.sort:
            items = apply_sort(items, spec.sort)

        total_count = len(items)

        offset, limit = 0, self.default_limit
        pagination = spec.pagination
        if pagination:
            limit = pagination.limit
            if pagination.mode == PaginationMode.OFFSET:
                offset = pagination.offset or 0
            elif pagination.cursor:
                offset = _cursor_to_offset(pagination.cursor)

        page = apply_offset_pagination(items, offset, limit)
        logger.debug(
            "In-memory query done", resource=self.resource_name, total=total_count, offset=offset, returned=len(page)
        )
        return QueryResult(items=page, total_count=total_count)

    def get_by_id(self, entity_id: str) -> T | None:
        for item in self._load():
            value = get_field(item, self.id_field)
            if value is not _MISSING and str(value) == entity_id:
                return item
        return None

    def count(self) -> int:
        return len(self._load())


def _cursor_to_offset(cursor: str) -> int:
    # A cursor over an in-memory list is just a position.
    try:
        offset = int(cursor)
    except ValueError as e:
        raise QuerySpecError(f"Invalid cursor for in-memory pagination: {cursor!r}") from e
    if offset < 0:
        raise QuerySpecError(f"Invalid cursor for in-memory pagination: {cursor!r}")
    return offset


def get_field(item: Any, path: str) -> Any:
    """Resolve a dot path on mappings, pydantic models (name or alias) and objects."""
    current = item
    for part in path.split("."):
        current = _lookup(current, part)
        if current is _MISSING or current is None:
            return _MISSING
    return current


def _lookup(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key, _MISSING)
    if isinstance(obj, BaseModel):
        for name, info in type(obj).model_fields.items():
            if key == name or key == info.alias:
                return getattr(obj, name)
        return _MISSING
    return getattr(obj, key, _MISSING)


def _comparable(value: Any) -> Any:
    # str-valued enums compare as their values
    return value.value if hasattr(value, "value") and isinstance(value, str) else value


def matches(item: Any, condition: FilterCondition) -> bool:
    """Check one condition against one item."""
    value = get_field(item, condition.field)
    if value is _MISSING:
        return False
    value = _comparable(value)
    expected = condition.value

    if condition.op == FilterOp.CONTAINS:
        if expected is None:
            return False
        return str(expected).lower() in str(value).lower()

    try:
        if condition.op == FilterOp.EQ:
            return value == expected
        if condition.op == FilterOp.GT:
            return value > expected
        if condition.op == FilterOp.LT:
            return value < expected
    except TypeError:
        return False

    logger.warning("Unsupported filter operator", op=condition.op)
    return False


def apply_filters(items: list[T], filters: list[FilterCondition]) -> list[T]:
    """Keep items matching every condition."""
    return [item for item in items if all(matches(item, condition) for condition in filters)]


def apply_sort(items: list[T], sort: SortSpec) -> list[T]:
    """Stable sort on one field; items without the field go last."""
    present: list[tuple[Any, T]] = []
    missing: list[T] = []
    for item in items:
        value = get_field(item, sort.field)
        if value is _MISSING:
            missing.append(item)
        else:
            present.append((_comparable(value), item))

    reverse = sort.direction == SortDirection.DESC
    try:
        present.sort(key=lambda pair: pair[0], reverse=reverse)
    except TypeError:
        present.sort(key=lambda pair: str(pair[0]), reverse=reverse)

    return [item for _, item in present] + missing


def apply_offset_pagination(items: list[T], offset: int, limit: int) -> list[T]:
    return items[offset : offset + limit]
