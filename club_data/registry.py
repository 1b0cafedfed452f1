"""Registry mapping resource names to data sources."""

from typing import Any, Callable

import structlog

from club_data.datasource import DataSource
from club_data.datasources import InMemoryDataSource, ScanDataSource
from club_data.entities import EntityStore
from club_data.keys import KeyType
from club_data.schemas import Location, Page, Role, User, UserGroup
from club_data.storage import TableClient
from club_data.validation import USER_FILTERABLE_FIELDS

logger = structlog.get_logger()

DataSourceFactory = Callable[[], DataSource[Any]]


class DataSourceRegistry:
    """Resource name -> data source factory.

    Factories run on every ``get`` so that sources never outlive the request
    that asked for them.
    """

    def __init__(self) -> None:
        self._factories: dict[str, DataSourceFactory] = {}

    def register(self, resource: str, factory: DataSourceFactory) -> None:
        logger.debug("Registering data source", resource=resource)
        self._factories[resource] = factory

    def get(self, resource: str) -> DataSource[Any]:
        """Build the data source of a resource.

        Raises:
            KeyError: If no data source is registered for the resource
        """
        factory = self._factories.get(resource)
        if factory is None:
            known = ", ".join(sorted(self._factories)) or "none"
            raise KeyError(f"No data source registered for {resource!r}. Registered resources: {known}")
        return factory()

    def resources(self) -> list[str]:
        return sorted(self._factories)

    def clear(self) -> None:
        self._factories.clear()


def build_default_registry(table: TableClient) -> DataSourceRegistry:
    """Wire every resource to its data source.

    Users have no shared partition key and can be numerous, so they are
    scanned with a filter whitelist. The other resources are small and loaded
    whole.
    """
    entities = EntityStore(table)
    registry = DataSourceRegistry()

    registry.register("users", lambda: ScanDataSource(table, User, KeyType.USER, USER_FILTERABLE_FIELDS))

    in_memory = {
        "locations": (Location, KeyType.LOCATION, "locationId"),
        "groups": (UserGroup, KeyType.GROUP, "groupId"),
        "roles": (Role, KeyType.ROLE, "roleName"),
        "pages": (Page, KeyType.PAGE, "pageName"),
    }
    for resource, (model, key_type, id_field) in in_memory.items():
        registry.register(resource, _in_memory_factory(entities, model, key_type, id_field, resource))

    return registry


def _in_memory_factory(
    entities: EntityStore, model: type, key_type: KeyType, id_field: str, resource: str
) -> DataSourceFactory:
    def factory() -> DataSource[Any]:
        return InMemoryDataSource(
            lambda: entities.list_all(model, key_type), id_field=id_field, resource_name=resource
        )

    return factory
