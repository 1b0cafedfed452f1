"""Error taxonomy for the data-access layer."""


class ClubDataError(Exception):
    """Base class for all club-data errors."""


class ValidationError(ClubDataError, ValueError):
    """A request was rejected before reaching storage.

    The message is meant to be shown to the caller as-is.
    """


class QuerySpecError(ValidationError):
    """A QuerySpec (or one of its parts) is malformed."""


class FilterValidationError(ValidationError):
    """A filter references a field or operator the resource does not allow."""

    def __init__(self, field: str, operator: str, allowed_fields: list[str], message: str) -> None:
        super().__init__(message)
        self.field = field
        self.operator = operator
        self.allowed_fields = list(allowed_fields)
        self.message = message


class NotFoundError(ClubDataError, LookupError):
    """An entity required by an operation does not exist."""


class StorageUnavailableError(ClubDataError):
    """The storage backend failed or timed out."""


class SchemaMismatchError(ClubDataError):
    """A stored item does not match the shape expected for its type."""

    def __init__(self, model: str, key: tuple[str | None, str | None], detail: str) -> None:
        super().__init__(f"Item {key[0]}/{key[1]} does not match {model}: {detail}")
        self.model = model
        self.key = key
        self.detail = detail


class ConflictError(ClubDataError):
    """A conditional write lost against a concurrent writer."""


class UnauthenticatedError(ClubDataError):
    """No current user could be resolved."""
