"""Tests for the data source registry."""

from unittest.mock import MagicMock

import pytest

from club_data.datasources import InMemoryDataSource, ScanDataSource
from club_data.entities import EntityStore
from club_data.models import FilterCondition, FilterOp, QuerySpec
from club_data.registry import DataSourceRegistry, build_default_registry


def test_register_and_get() -> None:
    """Test that factories are called on every get."""
    registry = DataSourceRegistry()
    factory = MagicMock(side_effect=lambda: InMemoryDataSource(lambda: []))
    registry.register("things", factory)

    assert isinstance(registry.get("things"), InMemoryDataSource)
    registry.get("things")
    assert factory.call_count == 2
    assert registry.resources() == ["things"]


def test_unknown_resource_lists_registered_ones() -> None:
    """Test the hint in the KeyError."""
    registry = DataSourceRegistry()
    registry.register("users", MagicMock())
    with pytest.raises(KeyError, match="Registered resources: users"):
        registry.get("widgets")

    registry.clear()
    assert registry.resources() == []


def test_default_registry_wiring(table) -> None:
    """Test which resources are scanned and which are loaded in memory."""
    registry = build_default_registry(table)

    assert registry.resources() == ["groups", "locations", "pages", "roles", "users"]
    assert isinstance(registry.get("users"), ScanDataSource)
    for resource in ("groups", "locations", "pages", "roles"):
        assert isinstance(registry.get(resource), InMemoryDataSource)


def test_default_locations_source_reads_the_table(table) -> None:
    """Test an in-memory resource end to end over the table."""
    entities = EntityStore(table)
    entities.create_location("Main Hall", "NYC-1", location_id="l1")
    entities.create_location("Annex", "NYC-2", location_id="l2")

    locations = build_default_registry(table).get("locations")
    result = locations.query(QuerySpec(filters=[FilterCondition(field="name", op=FilterOp.CONTAINS, value="hall")]))

    assert [loc.location_id for loc in result.items] == ["l1"]
    assert result.total_count == 1
    assert locations.get_by_id("l2").name == "Annex"
