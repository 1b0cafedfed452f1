"""Relationship commands for club-data CLI.

Entities are addressed by their keys, e.g. ``USER#42`` or ``LOCATION#7``.
"""

from cyclopts import App

from club_data.keys import KeyType, parse_key

edge_app = App(name="edge", help="Manage relationships between entities")


@edge_app.command
def add(source: str, *targets: str) -> None:
    """Link a source entity to target entities, in both directions."""
    from club_data.cli import get_graph

    graph = get_graph()
    source_type, source_id = parse_key(source)
    for target in targets:
        target_type, target_id = parse_key(target)
        graph.link(source_type, source_id, target_type, target_id)
    print(f"Added {len(targets)} edge(s) from {source}")


@edge_app.command
def remove(source: str, *targets: str) -> None:
    """Remove links between a source entity and target entities."""
    from club_data.cli import get_graph

    graph = get_graph()
    source_type, source_id = parse_key(source)
    for target in targets:
        target_type, target_id = parse_key(target)
        graph.unlink(source_type, source_id, target_type, target_id)
    print(f"Removed {len(targets)} edge(s) from {source}")


@edge_app.command(name="list")
def list_edges(entity: str, type: str) -> None:
    """List the edges of one type stored under an entity.

    Args:
        entity: Entity key, e.g. USER#42
        type: Edge type, e.g. LOCATION
    """
    from club_data.cli import get_graph

    source_type, source_id = parse_key(entity)
    edges = get_graph().neighbors(source_type, source_id, KeyType(type.upper()))

    if not edges:
        print(f"No {type.upper()} edges found for {entity}")
        return

    print(f"{type.upper()} edges of {entity}:\n")
    for edge in edges:
        print(f"  {entity} --[{edge.direction.value}]--> {edge.target_type.value}#{edge.target_id}")
