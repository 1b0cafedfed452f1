"""Field-level filter validation for scan-backed resources.

Scans apply filters after reading items, so an unrestricted filter lets a
caller force a full-table read to filter on an unindexed (and possibly
sensitive) field. Every scan-backed resource declares which fields, and which
operators per field, callers may filter on.
"""

from dataclasses import dataclass, field

import structlog

from club_data.errors import FilterValidationError
from club_data.models import FilterCondition, FilterOp, QuerySpec

logger = structlog.get_logger()


@dataclass(frozen=True)
class FilterableFieldConfig:
    """Filter whitelist for one resource."""

    resource_name: str
    allowed_fields: list[str]
    field_operators: dict[str, list[FilterOp]] = field(default_factory=dict)


# displayName (free text), email and phone (PII) and image are deliberately absent.
USER_FILTERABLE_FIELDS = FilterableFieldConfig(
    resource_name="User",
    allowed_fields=["userType", "isAdmin", "activeLocationId", "locationId", "createdAt", "updatedAt"],
    field_operators={
        "userType": [FilterOp.EQ],
        "isAdmin": [FilterOp.EQ],
        "activeLocationId": [FilterOp.EQ],
        "locationId": [FilterOp.EQ],
        "createdAt": [FilterOp.GT, FilterOp.LT, FilterOp.EQ],
        "updatedAt": [FilterOp.GT, FilterOp.LT, FilterOp.EQ],
    },
)


def validate_filters(spec: QuerySpec, config: FilterableFieldConfig) -> None:
    """Validate every filter of a QuerySpec against a resource whitelist.

    Args:
        spec: Query to validate
        config: Whitelist of the queried resource

    Raises:
        FilterValidationError: On the first disallowed field or operator
    """
    for condition in spec.filters:
        _validate_condition(condition, config)


def _validate_condition(condition: FilterCondition, config: FilterableFieldConfig) -> None:
    name, op = condition.field, condition.op.value

    if name not in config.allowed_fields:
        logger.info("Rejected filter field", resource=config.resource_name, field=name)
        raise FilterValidationError(
            name,
            op,
            config.allowed_fields,
            f'Cannot filter {config.resource_name} by field "{name}". '
            f"Allowed fields: {', '.join(config.allowed_fields)}. "
            "Use a specific endpoint for other lookups.",
        )

    allowed_ops = config.field_operators.get(name)
    if allowed_ops and condition.op not in allowed_ops:
        allowed = ", ".join(FilterOp(o).value for o in allowed_ops)
        logger.info("Rejected filter operator", resource=config.resource_name, field=name, op=op)
        raise FilterValidationError(
            name,
            op,
            config.allowed_fields,
            f'Operator "{op}" is not supported for field "{name}". Allowed operators for {name}: {allowed}.',
        )


class UserFilterBuilder:
    """Builds filters that pass ``USER_FILTERABLE_FIELDS``.

    Example:
        filters = build_user_filters().by_user_type("LEAD").created_after("2026-01-01T00:00:00Z").build()
    """

    def __init__(self) -> None:
        self._filters: list[FilterCondition] = []

    def _add(self, name: str, op: FilterOp, value: object) -> "UserFilterBuilder":
        self._filters.append(FilterCondition(field=name, op=op, value=value))
        return self

    def by_user_type(self, user_type: str) -> "UserFilterBuilder":
        return self._add("userType", FilterOp.EQ, user_type)

    def by_admin(self, is_admin: bool) -> "UserFilterBuilder":
        return self._add("isAdmin", FilterOp.EQ, is_admin)

    def by_active_location(self, location_id: str) -> "UserFilterBuilder":
        return self._add("activeLocationId", FilterOp.EQ, location_id)

    def by_location(self, location_id: str) -> "UserFilterBuilder":
        return self._add("locationId", FilterOp.EQ, location_id)

    def created_after(self, timestamp: str) -> "UserFilterBuilder":
        return self._add("createdAt", FilterOp.GT, timestamp)

    def created_before(self, timestamp: str) -> "UserFilterBuilder":
        return self._add("createdAt", FilterOp.LT, timestamp)

    def updated_after(self, timestamp: str) -> "UserFilterBuilder":
        return self._add("updatedAt", FilterOp.GT, timestamp)

    def updated_before(self, timestamp: str) -> "UserFilterBuilder":
        return self._add("updatedAt", FilterOp.LT, timestamp)

    def build(self) -> list[FilterCondition]:
        return list(self._filters)


def build_user_filters() -> UserFilterBuilder:
    return UserFilterBuilder()
