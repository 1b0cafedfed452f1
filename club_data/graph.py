"""Relationship storage: every edge is written in both directions, atomically."""

from datetime import datetime, timezone
from typing import Any

import structlog

from club_data.errors import ConflictError
from club_data.keys import KeyType, entity_key, parse_key, prefix
from club_data.models import Direction, Edge
from club_data.storage import TableClient, WriteOp

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GraphStore:
    """Adjacency edges between entities in the shared table."""

    def __init__(self, table: TableClient) -> None:
        self.table = table

    def link(
        self,
        source_type: KeyType,
        source_id: str,
        target_type: KeyType,
        target_id: str,
        attributes: dict[str, Any] | None = None,
        reverse_attributes: dict[str, Any] | None = None,
    ) -> tuple[Edge, Edge]:
        """Create a relationship and its mirror in one transaction.

        Args:
            source_type: Type of the owning entity
            source_id: Id of the owning entity
            target_type: Type of the related entity
            target_id: Id of the related entity
            attributes: Extra attributes stored on the forward edge
            reverse_attributes: Extra attributes on the reverse edge (defaults to ``attributes``)

        Returns:
            The forward and reverse edges written

        Raises:
            ConflictError: If either direction already exists
        """
        created = {"createdAt": _now()}
        forward, reverse = Edge.pair(
            source_type,
            source_id,
            target_type,
            target_id,
            attributes={**created, **(attributes or {})},
            reverse_attributes=None if reverse_attributes is None else {**created, **reverse_attributes},
        )
        logger.debug("Linking entities", source=forward.key()[0], target=reverse.key()[0])
        try:
            self.table.transact_write(
                [
                    WriteOp.put(forward.to_item(), require_absent=True),
                    WriteOp.put(reverse.to_item(), require_absent=True),
                ]
            )
        except ConflictError as e:
            raise ConflictError(f"Relationship {forward.key()[0]} -> {reverse.key()[0]} already exists") from e
        logger.info("Linked entities", source=forward.key()[0], target=reverse.key()[0])
        return forward, reverse

    def unlink(self, source_type: KeyType, source_id: str, target_type: KeyType, target_id: str) -> None:
        """Delete a relationship in both directions."""
        forward = Edge(source_type, source_id, target_type, target_id)
        reverse = forward.mirror()
        self.table.transact_write([WriteOp.delete(*forward.key()), WriteOp.delete(*reverse.key())])
        logger.info("Unlinked entities", source=forward.key()[0], target=reverse.key()[0])

    def neighbors(self, source_type: KeyType, source_id: str, target_type: KeyType) -> list[Edge]:
        """List edges of one type stored under an entity's partition."""
        items = self.table.query(entity_key(source_type, source_id), sk_prefix=prefix(target_type))
        edges = []
        for item in items:
            _, target_id = parse_key(item["SK"])
            attributes = {k: v for k, v in item.items() if k not in ("PK", "SK", "direction")}
            edges.append(
                Edge(
                    KeyType(source_type),
                    source_id,
                    KeyType(target_type),
                    target_id,
                    Direction(item.get("direction", Direction.FORWARD.value)),
                    attributes,
                )
            )
        return edges

    def neighbor_ids(self, source_type: KeyType, source_id: str, target_type: KeyType) -> list[str]:
        return [edge.target_id for edge in self.neighbors(source_type, source_id, target_type)]

    def add_user_to_location(self, user_id: str, location_id: str) -> None:
        self.link(KeyType.USER, user_id, KeyType.LOCATION, location_id)

    def add_user_to_group(self, user_id: str, group_id: str, location_id: str | None = None) -> None:
        attributes = {"locationId": location_id} if location_id else None
        self.link(KeyType.USER, user_id, KeyType.GROUP, group_id, attributes=attributes)

    def assign_role_to_group(self, group_id: str, role_name: str) -> None:
        self.link(KeyType.GROUP, group_id, KeyType.ROLE, role_name)

    def set_role_page_permission(self, role_name: str, page_name: str, actions: list[str] | None = None) -> None:
        """Grant a role access to a page.

        The allowed actions are only stored on the role side; the page side
        exists to answer "which roles can see this page".
        """
        self.link(
            KeyType.ROLE,
            role_name,
            KeyType.PAGE,
            page_name,
            attributes={"actions": list(actions or ["view"])},
            reverse_attributes={},
        )

    def locations_for_user(self, user_id: str) -> list[str]:
        return self.neighbor_ids(KeyType.USER, user_id, KeyType.LOCATION)

    def users_for_location(self, location_id: str) -> list[str]:
        return self.neighbor_ids(KeyType.LOCATION, location_id, KeyType.USER)

    def groups_for_user(self, user_id: str) -> list[str]:
        return self.neighbor_ids(KeyType.USER, user_id, KeyType.GROUP)

    def members_of_group(self, group_id: str) -> list[str]:
        return self.neighbor_ids(KeyType.GROUP, group_id, KeyType.USER)

    def roles_for_group(self, group_id: str) -> list[str]:
        return self.neighbor_ids(KeyType.GROUP, group_id, KeyType.ROLE)

    def pages_for_role(self, role_name: str) -> list[str]:
        return self.neighbor_ids(KeyType.ROLE, role_name, KeyType.PAGE)
