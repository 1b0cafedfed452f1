"""Scan-backed data source for entities without a shared partition key.

Filters are applied by the backend *after* items are read, so ``limit`` caps
the number of items evaluated per request, not the number returned: a page may
hold fewer than ``limit`` matches (even none) while ``next_cursor`` is still
set. Scan cost grows with table size regardless of ``limit``; use ``get_by_id``
whenever the id is known.
"""

import base64
import binascii
import json
from typing import Any, TypeVar

import structlog

from club_data.datasource import DataSource
from club_data.errors import QuerySpecError
from club_data.keys import META, KeyType, entity_key, prefix
from club_data.models import FilterCondition, FilterOp, PaginationMode, QueryResult, QuerySpec
from club_data.schemas import StoredItem, parse_item
from club_data.storage import TableClient
from club_data.validation import FilterableFieldConfig, validate_filters

logger = structlog.get_logger()

M = TypeVar("M", bound=StoredItem)

DEFAULT_LIMIT = 50


def encode_cursor(key: dict[str, Any]) -> str:
    """Encode a continuation key as base64 of its UTF-8 JSON."""
    return base64.b64encode(json.dumps(key, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> dict[str, Any]:
    """Decode a cursor produced by ``encode_cursor``.

    Raises:
        QuerySpecError: If the cursor is not base64 JSON of an object
    """
    try:
        key = json.loads(base64.b64decode(cursor.encode("ascii"), validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise QuerySpecError("Invalid pagination cursor") from e
    if not isinstance(key, dict):
        raise QuerySpecError("Invalid pagination cursor")
    return key


def build_filter_expression(
    filters: list[FilterCondition],
) -> tuple[list[str], dict[str, str], dict[str, Any]]:
    """Translate conditions into expression clauses with positional placeholders.

    Values never appear in the clauses themselves, only in the returned value
    map, so user input cannot alter the expression or collide with reserved words.

    Returns:
        Tuple of (clauses, attribute names, attribute values)

    Raises:
        QuerySpecError: If a condition has no value
    """
    clauses: list[str] = []
    names: dict[str, str] = {}
    values: dict[str, Any] = {}

    for i, condition in enumerate(filters):
        # Stored items never hold null attributes, and null expression values cannot be sent.
        if condition.value is None:
            raise QuerySpecError(f'Filter on "{condition.field}" needs a value')
        name, value = f"#field{i}", f":value{i}"
        if condition.op == FilterOp.EQ:
            clause = f"{name} = {value}"
        elif condition.op == FilterOp.CONTAINS:
            clause = f"contains({name}, {value})"
        elif condition.op == FilterOp.GT:
            clause = f"{name} > {value}"
        elif condition.op == FilterOp.LT:
            clause = f"{name} < {value}"
        else:
            logger.warning("Skipping unsupported filter operator", field=condition.field, op=condition.op)
            continue
        clauses.append(clause)
        names[name] = condition.field
        values[value] = condition.value

    return clauses, names, values


class ScanDataSource(DataSource[M]):
    """Data source issuing filtered table scans with cursor continuation."""

    def __init__(
        self,
        table: TableClient,
        model: type[M],
        key_type: KeyType,
        filter_config: FilterableFieldConfig,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        """Initialize scan data source.

        Args:
            table: Storage client for the shared table
            model: Schema every returned item is parsed against
            key_type: Entity type whose node items this source returns
            filter_config: Filter whitelist enforced before any scan
            default_limit: Scan page size when the query has no pagination
        """
        self.table = table
        self.model = model
        self.key_type = KeyType(key_type)
        self.filter_config = filter_config
        self.default_limit = default_limit

    def query(self, spec: QuerySpec) -> QueryResult[M]:
        """Scan one page of entities matching the query filters.

        ``sort`` is not honoured: scan order is the backend's.
        """
        validate_filters(spec, self.filter_config)

        limit, start_key = self.default_limit, None
        pagination = spec.pagination
        if pagination:
            limit = pagination.limit
            if pagination.mode == PaginationMode.OFFSET:
                if pagination.offset:
                    raise QuerySpecError(
                        f"Offset pagination is not supported for {self.filter_config.resource_name}; "
                        "use cursor pagination"
                    )
            elif pagination.cursor:
                start_key = decode_cursor(pagination.cursor)

        if spec.sort:
            logger.warning("Scan results are not sorted", resource=self.filter_config.resource_name)

        clauses, names, values = build_filter_expression(spec.filters)
        # Let the backend drop other item types before they leave the table.
        clauses.append("begins_with(#pk, :pkPrefix) AND #sk = :meta")
        names.update({"#pk": "PK", "#sk": "SK"})
        values.update({":pkPrefix": prefix(self.key_type), ":meta": META})

        logger.info(
            "Scanning table",
            resource=self.filter_config.resource_name,
            filters=len(spec.filters),
            limit=limit,
            continued=start_key is not None,
        )
        page = self.table.scan(
            filter_expression=" AND ".join(clauses),
            names=names,
            values=values,
            limit=limit,
            start_key=start_key,
        )

        items = [parsed for parsed in (self._parse(raw) for raw in page.items) if parsed is not None]
        next_cursor = encode_cursor(page.last_key) if page.last_key else None
        logger.debug("Scan page done", scanned=len(page.items), returned=len(items), has_more=next_cursor is not None)
        return QueryResult(items=items, next_cursor=next_cursor)

    def _parse(self, raw: dict[str, Any]) -> M | None:
        pk = raw.get("PK")
        if not isinstance(pk, str) or not pk.startswith(prefix(self.key_type)) or raw.get("SK") != META:
            logger.debug("Dropping foreign item from scan", pk=pk, sk=raw.get("SK"))
            return None
        parsed = parse_item(self.model, raw)
        if not parsed.ok:
            logger.warning("Dropping malformed item", error=str(parsed.error))
            return None
        return parsed.value

    def get_by_id(self, entity_id: str) -> M | None:
        """Direct key lookup; never scans."""
        raw = self.table.get(entity_key(self.key_type, entity_id), META)
        if raw is None:
            return None
        parsed = parse_item(self.model, raw)
        if not parsed.ok:
            logger.warning("Stored item is malformed", error=str(parsed.error))
            return None
        return parsed.value
