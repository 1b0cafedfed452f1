"""DynamoDB table client used by every storage-backed component.

The client is built once by the process bootstrap (``TableClient.from_config``)
and handed to data sources and repositories; nothing here is created on
import. Every boto3 failure is translated into the club-data error taxonomy:
conditional-check failures become ``ConflictError``, everything else
(including timeouts) becomes ``StorageUnavailableError``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

import boto3
import structlog
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from club_data.config import Config
from club_data.errors import ConflictError, StorageUnavailableError

logger = structlog.get_logger()

BATCH_WRITE_SIZE = 25
MAX_UNPROCESSED_RETRIES = 5

_TRANSACT_ACTIONS = {"put": "Put", "update": "Update", "delete": "Delete", "check": "ConditionCheck"}

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_storable(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_storable(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_to_storable(v) for v in value]
    return value


def _from_stored(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_stored(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_from_stored(v) for v in value]
    return value


def serialize(item: dict[str, Any]) -> dict[str, Any]:
    """Convert a plain item into DynamoDB attribute values."""
    return {k: _serializer.serialize(v) for k, v in _to_storable(item).items()}


def deserialize(item: dict[str, Any]) -> dict[str, Any]:
    """Convert DynamoDB attribute values into a plain item."""
    return {k: _from_stored(_deserializer.deserialize(v)) for k, v in item.items()}


@dataclass(frozen=True)
class WriteOp:
    """One write inside a transaction.

    ``require_absent`` conditions the write on the key not existing yet;
    ``expect`` conditions it on attributes currently holding the given values.
    """

    action: Literal["put", "update", "delete", "check"]
    key: tuple[str, str]
    item: dict[str, Any] | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    require_absent: bool = False
    expect: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def put(cls, item: dict[str, Any], require_absent: bool = False) -> "WriteOp":
        return cls("put", (item["PK"], item["SK"]), item=item, require_absent=require_absent)

    @classmethod
    def update(cls, pk: str, sk: str, changes: dict[str, Any], expect: dict[str, Any] | None = None) -> "WriteOp":
        return cls("update", (pk, sk), changes=changes, expect=expect or {})

    @classmethod
    def delete(cls, pk: str, sk: str, expect: dict[str, Any] | None = None) -> "WriteOp":
        return cls("delete", (pk, sk), expect=expect or {})

    @classmethod
    def check(cls, pk: str, sk: str, expect: dict[str, Any]) -> "WriteOp":
        return cls("check", (pk, sk), expect=expect)


@dataclass
class ScanPage:
    items: list[dict[str, Any]]
    last_key: dict[str, Any] | None = None


class _Expression:
    """Accumulates placeholder names and values for one request."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}

    def name(self, attribute: str) -> str:
        placeholder = f"#n{len(self.names)}"
        self.names[placeholder] = attribute
        return placeholder

    def value(self, value: Any) -> str:
        placeholder = f":v{len(self.values)}"
        self.values[placeholder] = value
        return placeholder

    def condition(self, require_absent: bool, expect: dict[str, Any]) -> str | None:
        parts = []
        if require_absent:
            parts.append(f"attribute_not_exists({self.name('PK')})")
        for attribute, expected in expect.items():
            parts.append(f"{self.name(attribute)} = {self.value(expected)}")
        return " AND ".join(parts) or None

    def update(self, changes: dict[str, Any]) -> str:
        assignments = [f"{self.name(k)} = {self.value(v)}" for k, v in changes.items()]
        return "SET " + ", ".join(assignments)

    def apply(self, request: dict[str, Any]) -> dict[str, Any]:
        if self.names:
            request["ExpressionAttributeNames"] = self.names
        if self.values:
            request["ExpressionAttributeValues"] = serialize(self.values)
        return request


def _is_conditional_failure(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    code = error.get("Code")
    if code == "ConditionalCheckFailedException":
        return True
    if code == "TransactionCanceledException":
        reasons = exc.response.get("CancellationReasons") or []
        if reasons:
            return any(r.get("Code") == "ConditionalCheckFailed" for r in reasons)
        return "ConditionalCheckFailed" in str(error.get("Message", ""))
    return False


class TableClient:
    """Thin typed wrapper over the low-level DynamoDB client for one table."""

    def __init__(self, client: Any, table_name: str) -> None:
        """Initialize table client.

        Args:
            client: boto3 DynamoDB client
            table_name: Name of the single table holding every item
        """
        self.client = client
        self.table_name = table_name

    @classmethod
    def from_config(cls, config: Config) -> "TableClient":
        """Build the boto3 client from configuration.

        Per-call timeouts are applied at the client boundary; a timeout surfaces
        as ``StorageUnavailableError`` like any other backend failure.
        """
        timeout = config.get_float("dynamodb.timeout", 5.0)
        boto_config = BotoConfig(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": config.get_int("dynamodb.max_attempts", 3), "mode": "standard"},
        )
        kwargs: dict[str, Any] = {"region_name": config.get("dynamodb.region"), "config": boto_config}

        endpoint = config.get("dynamodb.endpoint")
        if endpoint:
            logger.info("Using local DynamoDB endpoint", endpoint=endpoint)
            kwargs.update(endpoint_url=endpoint, aws_access_key_id="local", aws_secret_access_key="local")

        table_name = config.get("dynamodb.table")
        logger.debug("Creating DynamoDB client", table=table_name, region=kwargs["region_name"])
        return cls(boto3.client("dynamodb", **kwargs), table_name)

    def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return getattr(self.client, operation)(**kwargs)
        except ClientError as e:
            if _is_conditional_failure(e):
                logger.debug("Conditional write rejected", operation=operation)
                raise ConflictError(f"{operation} condition failed") from e
            logger.error("DynamoDB request failed", operation=operation, table=self.table_name, error=str(e))
            raise StorageUnavailableError(f"Storage request {operation} failed") from e
        except BotoCoreError as e:
            logger.error("DynamoDB unreachable", operation=operation, table=self.table_name, error=str(e))
            raise StorageUnavailableError(f"Storage request {operation} failed") from e

    def _key(self, pk: str, sk: str) -> dict[str, Any]:
        return serialize({"PK": pk, "SK": sk})

    def get(self, pk: str, sk: str) -> dict[str, Any] | None:
        """Read one item by its full key."""
        response = self._call("get_item", TableName=self.table_name, Key=self._key(pk, sk))
        item = response.get("Item")
        return deserialize(item) if item else None

    def put(self, item: dict[str, Any], require_absent: bool = False) -> None:
        """Write one item, optionally only if its key does not exist yet."""
        expression = _Expression()
        request: dict[str, Any] = {"TableName": self.table_name, "Item": serialize(item)}
        condition = expression.condition(require_absent, {})
        if condition:
            request["ConditionExpression"] = condition
        self._call("put_item", **expression.apply(request))

    def update(
        self, pk: str, sk: str, changes: dict[str, Any], expect: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Set attributes on an existing item and return the new item."""
        expression = _Expression()
        request: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": self._key(pk, sk),
            "UpdateExpression": expression.update(changes),
            "ReturnValues": "ALL_NEW",
        }
        # An update without expectations must not create the item.
        condition = expression.condition(False, expect or {}) or f"attribute_exists({expression.name('PK')})"
        request["ConditionExpression"] = condition
        response = self._call("update_item", **expression.apply(request))
        return deserialize(response.get("Attributes") or {})

    def delete(self, pk: str, sk: str, expect: dict[str, Any] | None = None) -> None:
        expression = _Expression()
        request: dict[str, Any] = {"TableName": self.table_name, "Key": self._key(pk, sk)}
        condition = expression.condition(False, expect or {})
        if condition:
            request["ConditionExpression"] = condition
        self._call("delete_item", **expression.apply(request))

    def query(self, pk: str, sk_prefix: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        """Read items of one partition, optionally restricted to a sort-key prefix.

        Follows continuation keys until the partition (or ``limit``) is exhausted.
        """
        expression = _Expression()
        key_condition = f"{expression.name('PK')} = {expression.value(pk)}"
        if sk_prefix:
            key_condition += f" AND begins_with({expression.name('SK')}, {expression.value(sk_prefix)})"

        items: list[dict[str, Any]] = []
        start_key = None
        while True:
            request: dict[str, Any] = {"TableName": self.table_name, "KeyConditionExpression": key_condition}
            if limit is not None:
                request["Limit"] = limit - len(items)
            if start_key:
                request["ExclusiveStartKey"] = start_key
            response = self._call("query", **expression.apply(request))
            items.extend(deserialize(i) for i in response.get("Items", []))
            start_key = response.get("LastEvaluatedKey")
            if not start_key or (limit is not None and len(items) >= limit):
                break

        logger.debug("Queried partition", pk=pk, sk_prefix=sk_prefix, count=len(items))
        return items

    def scan(
        self,
        filter_expression: str | None = None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
        limit: int | None = None,
        start_key: dict[str, Any] | None = None,
    ) -> ScanPage:
        """Run one scan request and return a single page.

        ``limit`` bounds the number of items the backend evaluates, not the
        number that survive the filter.
        """
        request: dict[str, Any] = {"TableName": self.table_name}
        if filter_expression:
            request["FilterExpression"] = filter_expression
        if names:
            request["ExpressionAttributeNames"] = names
        if values:
            request["ExpressionAttributeValues"] = serialize(values)
        if limit is not None:
            request["Limit"] = limit
        if start_key:
            request["ExclusiveStartKey"] = serialize(start_key)

        response = self._call("scan", **request)
        last_key = response.get("LastEvaluatedKey")
        return ScanPage(
            items=[deserialize(i) for i in response.get("Items", [])],
            last_key=deserialize(last_key) if last_key else None,
        )

    def transact_write(self, ops: list[WriteOp]) -> None:
        """Apply several writes atomically; any failed condition cancels all of them."""
        transact_items = []
        for op in ops:
            expression = _Expression()
            condition = expression.condition(op.require_absent, op.expect)
            if op.action == "put":
                entry: dict[str, Any] = {"TableName": self.table_name, "Item": serialize(op.item or {})}
            else:
                entry = {"TableName": self.table_name, "Key": self._key(*op.key)}
            if op.action == "update":
                entry["UpdateExpression"] = expression.update(op.changes)
                condition = condition or f"attribute_exists({expression.name('PK')})"
            if condition:
                entry["ConditionExpression"] = condition
            transact_items.append({_TRANSACT_ACTIONS[op.action]: expression.apply(entry)})

        logger.debug("Writing transaction", count=len(transact_items))
        self._call("transact_write_items", TransactItems=transact_items)

    def batch_put(self, items: list[dict[str, Any]]) -> None:
        """Write many items without conditions, in chunks of 25."""
        for start in range(0, len(items), BATCH_WRITE_SIZE):
            chunk = items[start : start + BATCH_WRITE_SIZE]
            request_items = {self.table_name: [{"PutRequest": {"Item": serialize(i)}} for i in chunk]}
            for _ in range(MAX_UNPROCESSED_RETRIES):
                response = self._call("batch_write_item", RequestItems=request_items)
                request_items = response.get("UnprocessedItems") or {}
                if not request_items:
                    break
            else:
                logger.error("Batch write left unprocessed items", table=self.table_name)
                raise StorageUnavailableError("Batch write did not complete")
