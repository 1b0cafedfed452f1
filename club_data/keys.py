"""Key scheme for the single-table design.

Every item in the table is addressed by a partition key (``PK``) and a sort
key (``SK``), both of the form ``<TYPE>#<id>``.

Nodes (entities) live at ``PK=<TYPE>#<id>, SK=META``:

    User                PK=USER#<userId>            SK=META
    EmailIdentity       PK=EMAIL#<email>            SK=META
    Location            PK=LOCATION#<locationId>    SK=META
    LocationCodeLookup  PK=LOCATION_CODE#<code>     SK=META
    UserGroup           PK=GROUP#<groupId>          SK=META
    Role                PK=ROLE#<roleName>          SK=META
    Page                PK=PAGE#<pageName>          SK=META
    Task                PK=TASK#<taskId>            SK=META

Edges live under the owning entity's partition with the target's key as sort
key, so ``begins_with(SK, "<TYPE>#")`` lists all edges of one type:

    User -> Location    PK=USER#<userId>            SK=LOCATION#<locationId>
    Location -> User    PK=LOCATION#<locationId>    SK=USER#<userId>
    User -> Group       PK=USER#<userId>            SK=GROUP#<groupId>
    Group -> User       PK=GROUP#<groupId>          SK=USER#<userId>
    Group -> Role       PK=GROUP#<groupId>          SK=ROLE#<roleName>
    Role -> Group       PK=ROLE#<roleName>          SK=GROUP#<groupId>
    Role -> Page        PK=ROLE#<roleName>          SK=PAGE#<pageName>
    Page -> Role        PK=PAGE#<pageName>          SK=ROLE#<roleName>
    Task -> Target      PK=TASK#<taskId>            SK=TARGET#<userId>
    Task -> Assignment  PK=TASK#<taskId>            SK=ASSIGNMENT#<targetUserId>
    User -> Assignment  PK=USER#<userId>            SK=TASKASSIGNMENT#<taskId>#<targetUserId>
    Task -> Interaction PK=TASK#<taskId>            SK=INTERACTION#<targetUserId>
    Location -> Task    PK=LOCATION#<locationId>    SK=TASK#<taskId>
"""

from enum import Enum

SEPARATOR = "#"
META = "META"


class KeyType(str, Enum):
    """Key prefixes. None of them contains the separator."""

    USER = "USER"
    EMAIL = "EMAIL"
    LOCATION = "LOCATION"
    LOCATION_CODE = "LOCATION_CODE"
    GROUP = "GROUP"
    ROLE = "ROLE"
    PAGE = "PAGE"
    TASK = "TASK"
    TARGET = "TARGET"
    ASSIGNMENT = "ASSIGNMENT"
    INTERACTION = "INTERACTION"
    TASKASSIGNMENT = "TASKASSIGNMENT"


def prefix(key_type: KeyType) -> str:
    """Return the ``<TYPE>#`` prefix used for begins_with queries."""
    return f"{KeyType(key_type).value}{SEPARATOR}"


def entity_key(key_type: KeyType, entity_id: str) -> str:
    """Build the partition key of an entity.

    Args:
        key_type: Entity type
        entity_id: Entity identifier (must be non-empty)

    Returns:
        Key in the form ``<TYPE>#<id>``
    """
    entity_id = str(entity_id)
    if not entity_id:
        raise ValueError(f"Empty id for key type {KeyType(key_type).value}")
    if key_type == KeyType.EMAIL:
        entity_id = normalize_email(entity_id)
    return prefix(key_type) + entity_id


def edge_key(key_type: KeyType, target_id: str) -> str:
    """Build the sort key of an edge pointing at ``target_id``."""
    return entity_key(key_type, target_id)


def composite_id(*parts: str) -> str:
    """Join id parts with the separator.

    Parts may not contain the separator themselves, otherwise two different
    part lists could produce the same id.
    """
    if not parts:
        raise ValueError("composite_id needs at least one part")
    for part in parts:
        if not part or SEPARATOR in part:
            raise ValueError(f"Invalid composite id part: {part!r}")
    return SEPARATOR.join(parts)


def parse_key(key: str) -> tuple[KeyType, str]:
    """Split a ``<TYPE>#<id>`` key into its type and id."""
    type_name, sep, entity_id = key.partition(SEPARATOR)
    if not sep or not entity_id:
        raise ValueError(f"Not a typed key: {key!r}")
    try:
        return KeyType(type_name), entity_id
    except ValueError as e:
        raise ValueError(f"Unknown key type in {key!r}") from e


def normalize_email(email: str) -> str:
    """Emails are matched case-insensitively."""
    return email.strip().lower()


def user_pk(user_id: str) -> str:
    return entity_key(KeyType.USER, user_id)


def email_pk(email: str) -> str:
    return entity_key(KeyType.EMAIL, email)


def location_pk(location_id: str) -> str:
    return entity_key(KeyType.LOCATION, location_id)


def location_code_pk(location_code: str) -> str:
    return entity_key(KeyType.LOCATION_CODE, location_code)


def group_pk(group_id: str) -> str:
    return entity_key(KeyType.GROUP, group_id)


def role_pk(role_name: str) -> str:
    return entity_key(KeyType.ROLE, role_name)


def page_pk(page_name: str) -> str:
    return entity_key(KeyType.PAGE, page_name)


def task_pk(task_id: str) -> str:
    return entity_key(KeyType.TASK, task_id)


def target_sk(target_user_id: str) -> str:
    return edge_key(KeyType.TARGET, target_user_id)


def assignment_sk(target_user_id: str) -> str:
    return edge_key(KeyType.ASSIGNMENT, target_user_id)


def interaction_sk(target_user_id: str) -> str:
    return edge_key(KeyType.INTERACTION, target_user_id)


def task_assignment_sk(task_id: str, target_user_id: str) -> str:
    return edge_key(KeyType.TASKASSIGNMENT, composite_id(task_id, target_user_id))
