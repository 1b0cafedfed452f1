"""Tests for bidirectional edges."""

import pytest

from club_data.errors import ConflictError
from club_data.graph import GraphStore
from club_data.keys import KeyType
from club_data.models import Direction


def test_link_writes_both_directions_in_one_transaction(graph: GraphStore, table) -> None:
    """Test that a link is stored from both sides atomically."""
    graph.add_user_to_location("u1", "l1")

    assert ("USER#u1", "LOCATION#l1") in table.items
    assert ("LOCATION#l1", "USER#u1") in table.items
    assert len(table.transactions) == 1
    assert len(table.transactions[0]) == 2
    assert table.items[("USER#u1", "LOCATION#l1")]["direction"] == "forward"
    assert table.items[("LOCATION#l1", "USER#u1")]["direction"] == "reverse"


def test_neighbors_from_either_side(graph: GraphStore) -> None:
    """Test lookups in both directions."""
    graph.add_user_to_group("u1", "g1", location_id="l1")
    graph.add_user_to_group("u2", "g1")
    graph.add_user_to_location("u1", "l1")

    assert graph.groups_for_user("u1") == ["g1"]
    assert sorted(graph.members_of_group("g1")) == ["u1", "u2"]
    assert graph.locations_for_user("u1") == ["l1"]
    assert graph.users_for_location("l1") == ["u1"]

    edge = graph.neighbors(KeyType.USER, "u1", KeyType.GROUP)[0]
    assert edge.direction == Direction.FORWARD
    assert edge.attributes["locationId"] == "l1"


def test_duplicate_link_is_a_conflict(graph: GraphStore, table) -> None:
    """Test that a relationship cannot be created twice."""
    graph.assign_role_to_group("g1", "admin")
    with pytest.raises(ConflictError, match="already exists"):
        graph.assign_role_to_group("g1", "admin")
    assert graph.roles_for_group("g1") == ["admin"]


def test_unlink_removes_both_directions(graph: GraphStore, table) -> None:
    """Test that unlink deletes forward and reverse edges."""
    graph.add_user_to_location("u1", "l1")
    graph.unlink(KeyType.USER, "u1", KeyType.LOCATION, "l1")

    assert graph.locations_for_user("u1") == []
    assert graph.users_for_location("l1") == []
    assert table.items == {}


def test_role_page_permission_keeps_actions_on_role_side(graph: GraphStore, table) -> None:
    """Test the asymmetric attributes of role -> page edges."""
    graph.set_role_page_permission("lead", "reports", actions=["view", "export"])

    assert graph.pages_for_role("lead") == ["reports"]
    assert table.items[("ROLE#lead", "PAGE#reports")]["actions"] == ["view", "export"]
    assert "actions" not in table.items[("PAGE#reports", "ROLE#lead")]


def test_neighbors_only_return_the_requested_type(graph: GraphStore) -> None:
    """Test that prefix queries do not leak other edge types."""
    graph.add_user_to_location("u1", "l1")
    graph.add_user_to_group("u1", "g1")
    assert graph.neighbor_ids(KeyType.USER, "u1", KeyType.LOCATION) == ["l1"]
