"""Shared fixtures: an in-process stand-in for the DynamoDB table client."""

import copy
import random
import threading
from typing import Any

import pytest

from club_data.cli import configure_logging
from club_data.entities import EntityStore
from club_data.errors import ConflictError
from club_data.graph import GraphStore
from club_data.outreach import OutreachStore
from club_data.storage import ScanPage, WriteOp


class FakeTableClient:
    """Mock table client keeping items in a dict.

    Conditional writes and transactions are evaluated under one lock, which
    gives them the same all-or-nothing behaviour as the real table. Scans only
    honour the entity-type guard (``:pkPrefix`` / ``:meta``), not arbitrary
    filter expressions.
    """

    def __init__(self) -> None:
        """Initialize fake table."""
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.lock = threading.Lock()
        self.transactions: list[list[WriteOp]] = []

    def _matches(self, key: tuple[str, str], expect: dict[str, Any]) -> bool:
        current = self.items.get(key)
        return current is not None and all(current.get(k) == v for k, v in expect.items())

    def _check(self, op: WriteOp) -> None:
        if op.require_absent and op.key in self.items:
            raise ConflictError(f"{op.action} condition failed")
        if op.expect and not self._matches(op.key, op.expect):
            raise ConflictError(f"{op.action} condition failed")
        if op.action == "update" and not op.expect and op.key not in self.items:
            raise ConflictError("update condition failed")

    def _apply(self, op: WriteOp) -> None:
        if op.action == "put":
            self.items[op.key] = copy.deepcopy(op.item or {})
        elif op.action == "update":
            self.items[op.key].update(copy.deepcopy(op.changes))
        elif op.action == "delete":
            self.items.pop(op.key, None)

    def get(self, pk: str, sk: str) -> dict[str, Any] | None:
        with self.lock:
            item = self.items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    def put(self, item: dict[str, Any], require_absent: bool = False) -> None:
        self.transact_write([WriteOp.put(item, require_absent=require_absent)])

    def update(
        self, pk: str, sk: str, changes: dict[str, Any], expect: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.transact_write([WriteOp.update(pk, sk, changes, expect=expect)])
        return self.get(pk, sk) or {}

    def delete(self, pk: str, sk: str, expect: dict[str, Any] | None = None) -> None:
        self.transact_write([WriteOp.delete(pk, sk, expect=expect)])

    def query(self, pk: str, sk_prefix: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        with self.lock:
            items = [
                copy.deepcopy(item)
                for (item_pk, item_sk), item in sorted(self.items.items())
                if item_pk == pk and (sk_prefix is None or item_sk.startswith(sk_prefix))
            ]
        return items[:limit] if limit is not None else items

    def scan(
        self,
        filter_expression: str | None = None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
        limit: int | None = None,
        start_key: dict[str, Any] | None = None,
    ) -> ScanPage:
        values = values or {}
        with self.lock:
            keys = sorted(self.items)
            if start_key:
                keys = [k for k in keys if k > (start_key["PK"], start_key["SK"])]
            evaluated = keys[:limit] if limit is not None else keys
            items = [copy.deepcopy(self.items[k]) for k in evaluated]

        if ":pkPrefix" in values:
            items = [i for i in items if i["PK"].startswith(values[":pkPrefix"]) and i["SK"] == values[":meta"]]
        last_key = None
        if limit is not None and len(keys) > limit:
            last_key = {"PK": evaluated[-1][0], "SK": evaluated[-1][1]}
        return ScanPage(items=items, last_key=last_key)

    def transact_write(self, ops: list[WriteOp]) -> None:
        with self.lock:
            for op in ops:
                self._check(op)
            for op in ops:
                self._apply(op)
            self.transactions.append(list(ops))

    def batch_put(self, items: list[dict[str, Any]]) -> None:
        with self.lock:
            for item in items:
                self.items[(item["PK"], item["SK"])] = copy.deepcopy(item)


@pytest.fixture(autouse=True)
def _quiet_logging() -> None:
    """Apply the CLI entry point's default logging level, as ``main`` does."""
    configure_logging("critical")


@pytest.fixture
def table() -> FakeTableClient:
    return FakeTableClient()


@pytest.fixture
def graph(table: FakeTableClient) -> GraphStore:
    return GraphStore(table)


@pytest.fixture
def entities(table: FakeTableClient) -> EntityStore:
    return EntityStore(table)


@pytest.fixture
def outreach(table: FakeTableClient) -> OutreachStore:
    return OutreachStore(table, rng=random.Random(7))
