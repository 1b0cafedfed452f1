"""CLI for club-data."""

import json
import sys
from typing import Annotated, Any, Literal

import structlog
from cyclopts import App, Parameter

from club_data.config import Config, get_config
from club_data.config_commands import config_app
from club_data.edge_commands import edge_app
from club_data.graph import GraphStore
from club_data.models import ApiResult, FilterCondition, PaginationMode, PaginationSpec, QuerySpec, SortSpec
from club_data.outreach import OutreachStore
from club_data.registry import build_default_registry
from club_data.services import ClubService, config_user_resolver
from club_data.storage import TableClient
from club_data.task_commands import task_app

logger = structlog.get_logger()

app = App(
    help="club-data - Query and manage club data in DynamoDB",
)

app.command(config_app)
app.command(edge_app)
app.command(task_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_table() -> TableClient:
    """Get the configured table client."""
    return TableClient.from_config(get_config())


def get_graph() -> GraphStore:
    return GraphStore(get_table())


def _outreach(config: Config, table: TableClient) -> OutreachStore:
    return OutreachStore(
        table,
        max_candidates=config.get_int("assign.max_candidates"),
        max_rounds=config.get_int("assign.max_rounds"),
    )


def get_outreach() -> OutreachStore:
    config = get_config()
    return _outreach(config, TableClient.from_config(config))


def get_service() -> ClubService:
    """Get the service wired to the configured table and current user."""
    config = get_config()
    table = TableClient.from_config(config)
    return ClubService(build_default_registry(table), _outreach(config, table), config_user_resolver(config))


def current_user_id() -> str:
    """Current user id, as configured by ``config set user.id``."""
    return config_user_resolver(get_config())()


def print_failure(result: ApiResult[Any]) -> None:
    print(f"Error: {result.error}", file=sys.stderr)
    sys.exit(1)


def parse_value(raw: str) -> Any:
    """Interpret a CLI filter value as JSON when possible (numbers, booleans), else as text."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def build_query_spec(
    filter: str | None = None,
    sort: str | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    offset: int | None = None,
) -> QuerySpec:
    """Build a QuerySpec from CLI options.

    Args:
        filter: Comma-separated ``field:op:value`` conditions, e.g. ``userType:eq:LEAD``
        sort: ``field`` or ``field:desc``
        limit: Page size
        cursor: Cursor from a previous page
        offset: Items to skip (in-memory resources only)
    """
    filters = []
    if filter:
        for condition in filter.split(","):
            parts = condition.strip().split(":", 2)
            if len(parts) != 3:
                raise ValueError(f"Invalid filter {condition!r}, expected field:op:value")
            field, op, value = parts
            filters.append(FilterCondition(field=field, op=op, value=parse_value(value)))

    sort_spec = None
    if sort:
        field, _, direction = sort.partition(":")
        sort_spec = SortSpec(field=field, direction=direction or "asc")

    pagination = None
    if limit is not None or cursor is not None or offset is not None:
        mode = PaginationMode.CURSOR if cursor is not None else PaginationMode.OFFSET
        pagination = PaginationSpec(mode=mode, limit=limit or 20, cursor=cursor, offset=offset)

    return QuerySpec(filters=filters, sort=sort_spec, pagination=pagination)


@app.command
def query(
    resource: str,
    filter: str | None = None,
    sort: str | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    offset: int | None = None,
    spec: str | None = None,
) -> None:
    """Query a resource (users, locations, groups, roles, pages).

    Args:
        resource: Resource name
        filter: Comma-separated ``field:op:value`` conditions
        sort: ``field`` or ``field:desc``
        limit: Page size (1-100)
        cursor: Cursor returned by the previous page
        offset: Items to skip (in-memory resources only)
        spec: Full QuerySpec as JSON; overrides the other options
    """
    if spec:
        query_spec = QuerySpec.from_dict(json.loads(spec))
    else:
        query_spec = build_query_spec(filter=filter, sort=sort, limit=limit, cursor=cursor, offset=offset)

    result = get_service().query(resource, query_spec)
    if not result.success:
        print_failure(result)
        return
    print(json.dumps(result.data, indent=2))


@app.command
def get(resource: str, entity_id: str) -> None:
    """Get a single item of a resource by id."""
    result = get_service().get_by_id(resource, entity_id)
    if not result.success:
        print_failure(result)
        return
    print(json.dumps(result.data, indent=2))


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    app(tokens)


if __name__ == "__main__":
    app.meta()
