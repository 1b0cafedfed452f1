"""DataSource interface for querying resources."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from club_data.models import QueryResult, QuerySpec

T = TypeVar("T")


class DataSource(ABC, Generic[T]):
    """Abstract base class for resource data sources.

    Callers only see QuerySpec in and QueryResult out; how a source executes
    the query (in memory, table scan, ...) is its own business.
    """

    @abstractmethod
    def query(self, spec: QuerySpec) -> QueryResult[T]:
        """Execute a query and return one page of results."""
        pass

    def get_by_id(self, entity_id: str) -> T | None:
        """Fetch a single item by id, or None if it does not exist."""
        raise NotImplementedError(f"{type(self).__name__} does not support get_by_id")
