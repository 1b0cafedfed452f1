"""Service layer: every operation returns an ``ApiResult`` envelope.

Validation, not-found and authentication messages reach the caller verbatim.
Storage failures are logged here with their context and reported with a
generic message. Conflicts are handled below this layer and never surface.
"""

from typing import Any, Callable, TypeVar

import structlog
from pydantic import BaseModel

from club_data.config import Config
from club_data.datasource import DataSource
from club_data.errors import ClubDataError, NotFoundError, UnauthenticatedError, ValidationError
from club_data.models import ApiResult, QuerySpec
from club_data.outreach import OutreachStore
from club_data.registry import DataSourceRegistry

logger = structlog.get_logger()

T = TypeVar("T")

CurrentUserResolver = Callable[[], str]


def dump(item: Any) -> Any:
    """Serialize a stored item for callers, without its table keys."""
    if isinstance(item, BaseModel):
        return item.model_dump(by_alias=True, exclude_none=True, mode="json", exclude={"pk", "sk"})
    return item


def config_user_resolver(config: Config) -> CurrentUserResolver:
    """Resolve the current user from the ``user.id`` config key."""

    def resolve() -> str:
        user_id = config.get("user.id")
        if not user_id:
            raise UnauthenticatedError("Not signed in. Set your user id using:\n  club-data config set user.id <id>")
        return str(user_id)

    return resolve


class ClubService:
    """Operations exposed to the UI and the CLI."""

    def __init__(
        self, registry: DataSourceRegistry, outreach: OutreachStore, current_user: CurrentUserResolver
    ) -> None:
        """Initialize service.

        Args:
            registry: Data sources by resource name
            outreach: Task and assignment store
            current_user: Returns the signed-in user id or raises UnauthenticatedError
        """
        self.registry = registry
        self.outreach = outreach
        self.current_user = current_user

    def _run(self, action: str, operation: Callable[[], T]) -> ApiResult[T]:
        try:
            return ApiResult.ok(operation())
        except (ValidationError, NotFoundError, UnauthenticatedError) as e:
            logger.info("Request rejected", action=action, error=str(e))
            return ApiResult.fail(str(e))
        except ClubDataError as e:
            logger.error("Request failed", action=action, error=str(e), error_type=type(e).__name__)
            return ApiResult.fail(f"Failed to {action}")

    def _source(self, resource: str) -> DataSource[Any]:
        try:
            return self.registry.get(resource)
        except KeyError as e:
            raise NotFoundError(f"Unknown resource {resource!r}") from e

    def query(self, resource: str, spec: QuerySpec | dict[str, Any] | None = None) -> ApiResult[dict[str, Any]]:
        def run() -> dict[str, Any]:
            query_spec = spec if isinstance(spec, QuerySpec) else QuerySpec.from_dict(spec)
            return self._source(resource).query(query_spec).to_dict(serialize=dump)

        return self._run(f"fetch {resource}", run)

    def get_by_id(self, resource: str, entity_id: str) -> ApiResult[dict[str, Any]]:
        def run() -> dict[str, Any]:
            item = self._source(resource).get_by_id(entity_id)
            if item is None:
                raise NotFoundError(f"{resource} {entity_id} not found")
            return dump(item)

        return self._run(f"fetch {resource}", run)

    def self_assign(self, task_id: str, count: int) -> ApiResult[dict[str, Any]]:
        def run() -> dict[str, Any]:
            result = self.outreach.self_assign(task_id, self.current_user(), count)
            return {"assigned": [dump(a) for a in result.assigned], "shortfall": result.shortfall}

        return self._run("assign targets", run)

    def my_assigned(self, task_id: str | None = None, include_closed: bool = False) -> ApiResult[list[dict[str, Any]]]:
        def run() -> list[dict[str, Any]]:
            entries = self.outreach.my_assignments(self.current_user(), task_id=task_id, include_closed=include_closed)
            return [dump(e) for e in entries]

        return self._run("fetch assignments", run)

    def unassigned_count(self, task_id: str) -> ApiResult[int]:
        return self._run("count unassigned targets", lambda: self.outreach.unassigned_count(task_id))

    def skip(self, task_id: str, target_user_id: str) -> ApiResult[None]:
        return self._run("skip target", lambda: self.outreach.skip(task_id, self.current_user(), target_user_id))

    def release(self, task_id: str, target_user_id: str) -> ApiResult[None]:
        return self._run("release target", lambda: self.outreach.release(task_id, self.current_user(), target_user_id))

    def save_interaction(self, task_id: str, target_user_id: str, **details: Any) -> ApiResult[dict[str, Any]]:
        """Record an interaction for one of the current user's targets.

        Args:
            task_id: Task of the assignment
            target_user_id: Contacted target
            **details: called, messaged, notes, rating, follow_up_at
        """

        def run() -> dict[str, Any]:
            interaction = self.outreach.record_interaction(task_id, self.current_user(), target_user_id, **details)
            return dump(interaction)

        return self._run("save interaction", run)
