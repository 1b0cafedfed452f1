"""Shapes of the items stored in the table.

Models use the stored attribute names (camelCase, ``PK``/``SK``) as aliases,
so ``Model.model_validate(item)`` reads a raw item and
``model.to_item()`` writes one back.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from club_data.errors import SchemaMismatchError


class UserType(str, Enum):
    MEMBER = "MEMBER"
    LEAD = "LEAD"


class GroupType(str, Enum):
    TEACHER = "TEACHER"
    VOLUNTEER = "VOLUNTEER"


class TaskStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class AssignmentStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    SKIPPED = "SKIPPED"
    COMPLETED = "COMPLETED"


class StoredItem(BaseModel):
    """Base for every stored item."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    pk: str = Field(alias="PK")
    sk: str = Field(alias="SK")

    def to_item(self) -> dict[str, Any]:
        """Dump to a storable item (aliased keys, enums as values, no None)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class User(StoredItem):
    user_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    image: str | None = None
    location_id: str | None = None
    active_location_id: str | None = None
    user_type: UserType
    is_admin: bool = False
    created_at: str
    updated_at: str


class EmailIdentity(StoredItem):
    email: str
    user_id: str
    provider: Literal["google", "github", "microsoft"] | None = None
    created_at: str
    updated_at: str


class Location(StoredItem):
    location_id: str = Field(min_length=1)
    location_code: str = Field(min_length=2, max_length=20, pattern=r"^[A-Z0-9-]+$")
    name: str = Field(min_length=1, max_length=100)
    place_id: str | None = None
    formatted_address: str | None = None
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    status: Literal["active", "inactive"] = "active"
    created_at: str
    updated_at: str


class LocationCodeLookup(StoredItem):
    location_id: str
    location_code: str
    created_at: str


class UserGroup(StoredItem):
    group_id: str = Field(min_length=1)
    location_id: str
    group_type: GroupType
    name: str = Field(min_length=1, max_length=255)
    created_at: str
    updated_at: str


class Role(StoredItem):
    role_name: str = Field(min_length=1, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    created_at: str
    updated_at: str


class Page(StoredItem):
    page_name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    created_at: str


class AllowedActions(BaseModel):
    call: bool = True
    message: bool = True


class Task(StoredItem):
    task_id: str
    location_id: str
    created_by: str
    title: str
    status: TaskStatus = TaskStatus.OPEN
    allowed_actions: AllowedActions = Field(default_factory=AllowedActions)
    created_at: str
    updated_at: str


class TaskTarget(StoredItem):
    task_id: str
    target_user_id: str
    target_type: UserType = UserType.MEMBER
    added_at: str


class Assignment(StoredItem):
    """Task -> target claim; at most one per target."""

    task_id: str
    target_user_id: str
    assignee_user_id: str
    assigned_by: Literal["CREATOR", "SELF"] = "SELF"
    assigned_at: str
    status: AssignmentStatus = AssignmentStatus.ASSIGNED


class TaskAssignmentIndex(StoredItem):
    """Volunteer -> assignment mirror, for "my tasks" lookups."""

    user_id: str
    task_id: str
    target_user_id: str
    task_title: str | None = None
    location_id: str | None = None
    assigned_at: str
    status: AssignmentStatus = AssignmentStatus.ASSIGNED


class ActionsTaken(BaseModel):
    called: bool = False
    messaged: bool = False


class Interaction(StoredItem):
    task_id: str
    target_user_id: str
    assignee_user_id: str
    actions_taken: ActionsTaken = Field(default_factory=ActionsTaken)
    notes: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    follow_up_at: str | None = None
    updated_at: str


class LocationTaskIndex(StoredItem):
    task_id: str
    location_id: str
    title: str
    status: TaskStatus = TaskStatus.OPEN
    created_at: str


M = TypeVar("M", bound=StoredItem)


@dataclass(frozen=True)
class Parsed(Generic[M]):
    """Outcome of parsing one raw item: either ``value`` or ``error`` is set."""

    value: M | None = None
    error: SchemaMismatchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_item(model: type[M], item: dict[str, Any]) -> Parsed[M]:
    """Parse a raw item without raising."""
    try:
        return Parsed(value=model.model_validate(item))
    except pydantic.ValidationError as e:
        key = (item.get("PK"), item.get("SK"))
        return Parsed(error=SchemaMismatchError(model.__name__, key, str(e)))
