"""Repositories for node entities (users, locations, groups, roles, pages)."""

import uuid
from datetime import datetime, timezone
from typing import Any, TypeVar

import pydantic
import structlog

from club_data.errors import ConflictError, NotFoundError, ValidationError
from club_data.keys import (
    META,
    KeyType,
    email_pk,
    entity_key,
    group_pk,
    location_code_pk,
    location_pk,
    normalize_email,
    page_pk,
    prefix,
    role_pk,
    user_pk,
)
from club_data.schemas import (
    EmailIdentity,
    Location,
    LocationCodeLookup,
    Page,
    Role,
    StoredItem,
    User,
    UserGroup,
    parse_item,
)
from club_data.storage import TableClient, WriteOp

logger = structlog.get_logger()

M = TypeVar("M", bound=StoredItem)

SCAN_PAGE_SIZE = 100


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def build_item(model: type[M], **fields: Any) -> M:
    try:
        return model(**fields)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e.errors()[0]['msg']}") from e


class EntityStore:
    """Create and read node entities."""

    def __init__(self, table: TableClient) -> None:
        self.table = table

    def get(self, model: type[M], key_type: KeyType, entity_id: str) -> M | None:
        """Read one node by id.

        Args:
            model: Schema of the node
            key_type: Key type of the node
            entity_id: Node id

        Returns:
            Parsed node, or None if it does not exist or is malformed
        """
        raw = self.table.get(entity_key(key_type, entity_id), META)
        if raw is None:
            return None
        parsed = parse_item(model, raw)
        if not parsed.ok:
            logger.warning("Stored item is malformed", error=str(parsed.error))
            return None
        return parsed.value

    def list_all(self, model: type[M], key_type: KeyType) -> list[M]:
        """Read every node of one type by scanning the whole table.

        Used as the loader of in-memory resources, which are small.
        """
        names = {"#pk": "PK", "#sk": "SK"}
        values = {":pkPrefix": prefix(key_type), ":meta": META}
        results: list[M] = []
        start_key = None
        while True:
            page = self.table.scan(
                filter_expression="begins_with(#pk, :pkPrefix) AND #sk = :meta",
                names=names,
                values=values,
                limit=SCAN_PAGE_SIZE,
                start_key=start_key,
            )
            for raw in page.items:
                parsed = parse_item(model, raw)
                if parsed.ok:
                    results.append(parsed.value)
                else:
                    logger.warning("Dropping malformed item", error=str(parsed.error))
            start_key = page.last_key
            if not start_key:
                break
        logger.debug("Listed entities", key_type=KeyType(key_type).value, count=len(results))
        return results

    def create_user(
        self,
        display_name: str,
        user_type: str = "MEMBER",
        email: str | None = None,
        user_id: str | None = None,
        **fields: Any,
    ) -> User:
        """Create a user, plus its email identity when an email is given.

        Both items are written in one transaction, so an email can never point
        at a missing user nor be claimed by two users.

        Raises:
            ConflictError: If the user id or the email is already taken
        """
        user_id = user_id or new_id()
        now = _now()
        user = build_item(
            User,
            pk=user_pk(user_id),
            sk=META,
            user_id=user_id,
            display_name=display_name,
            email=normalize_email(email) if email else None,
            user_type=user_type,
            created_at=now,
            updated_at=now,
            **fields,
        )
        ops = [WriteOp.put(user.to_item(), require_absent=True)]
        if email:
            identity = EmailIdentity(
                pk=email_pk(email),
                sk=META,
                email=normalize_email(email),
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            ops.append(WriteOp.put(identity.to_item(), require_absent=True))

        try:
            self.table.transact_write(ops)
        except ConflictError as e:
            raise ConflictError(f"User {user_id} or email {email} already exists") from e
        logger.info("Created user", user_id=user_id)
        return user

    def get_user(self, user_id: str) -> User | None:
        return self.get(User, KeyType.USER, user_id)

    def get_user_id_by_email(self, email: str) -> str | None:
        """Resolve an email (case-insensitively) to a user id."""
        identity = self.get(EmailIdentity, KeyType.EMAIL, email)
        return identity.user_id if identity else None

    def create_location(self, name: str, location_code: str, location_id: str | None = None, **fields: Any) -> Location:
        """Create a location and reserve its code.

        Raises:
            ConflictError: If the location code is already used
        """
        location_id = location_id or new_id()
        code = location_code.strip().upper()
        now = _now()
        location = build_item(
            Location,
            pk=location_pk(location_id),
            sk=META,
            location_id=location_id,
            location_code=code,
            name=name,
            created_at=now,
            updated_at=now,
            **fields,
        )
        lookup = LocationCodeLookup(
            pk=location_code_pk(code), sk=META, location_id=location_id, location_code=code, created_at=now
        )
        try:
            self.table.transact_write(
                [
                    WriteOp.put(location.to_item(), require_absent=True),
                    WriteOp.put(lookup.to_item(), require_absent=True),
                ]
            )
        except ConflictError as e:
            logger.info("Location code taken", location_code=code)
            raise ConflictError(f'Location code "{code}" is already in use') from e
        logger.info("Created location", location_id=location_id, location_code=code)
        return location

    def get_location(self, location_id: str) -> Location | None:
        return self.get(Location, KeyType.LOCATION, location_id)

    def get_location_by_code(self, location_code: str) -> Location | None:
        lookup = self.get(LocationCodeLookup, KeyType.LOCATION_CODE, location_code.strip().upper())
        if lookup is None:
            return None
        return self.get_location(lookup.location_id)

    def create_group(self, location_id: str, name: str, group_type: str, group_id: str | None = None) -> UserGroup:
        """Create a group inside an existing location.

        Raises:
            NotFoundError: If the location does not exist
        """
        if self.get_location(location_id) is None:
            raise NotFoundError(f"Location {location_id} not found")
        group_id = group_id or new_id()
        now = _now()
        group = build_item(
            UserGroup,
            pk=group_pk(group_id),
            sk=META,
            group_id=group_id,
            location_id=location_id,
            group_type=group_type,
            name=name,
            created_at=now,
            updated_at=now,
        )
        self.table.put(group.to_item(), require_absent=True)
        logger.info("Created group", group_id=group_id, location_id=location_id)
        return group

    def create_role(self, role_name: str, description: str | None = None) -> Role:
        now = _now()
        role = build_item(
            Role,
            pk=role_pk(role_name),
            sk=META,
            role_name=role_name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        try:
            self.table.put(role.to_item(), require_absent=True)
        except ConflictError as e:
            raise ConflictError(f'Role "{role_name}" already exists') from e
        logger.info("Created role", role_name=role_name)
        return role

    def create_page(self, page_name: str, description: str | None = None) -> Page:
        page = build_item(
            Page, pk=page_pk(page_name), sk=META, page_name=page_name, description=description, created_at=_now()
        )
        try:
            self.table.put(page.to_item(), require_absent=True)
        except ConflictError as e:
            raise ConflictError(f'Page "{page_name}" already exists') from e
        logger.info("Created page", page_name=page_name)
        return page
