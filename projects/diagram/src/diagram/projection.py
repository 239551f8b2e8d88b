"""Projection of a schema snapshot onto a node and edge graph.

The edge list is always recomputed from the tables, one edge per join id, so
the graph can never drift from the model it was drawn from.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from schema.joins import is_self_join, iter_owned_joins, locate_join

if TYPE_CHECKING:
    from diagram.schema_types import EdgeSchema, GraphSchema, Marker, NodeSchema
    from schema.joins import JoinLocation
    from schema.types import JoinSchema, JoinType, Layout, Position, Snapshot


def default_position(index: int) -> Position:
    """Position for a table without a stored one, staggered by table index."""
    return {"x": (index + 1) * 10, "y": (index + 1) * 10}


def type_markers(join_type: JoinType) -> tuple[Marker, Marker]:
    """Markers read straight off the join type, source end first."""
    start, _, end = join_type.split("-")
    return ("many" if start == "many" else "one", "many" if end == "many" else "one")


def configured_markers(join_type: JoinType) -> tuple[Marker, Marker]:
    """Markers of a foreign-key edge, referencing end first.

    The referencing table is the "many" side unless the join is one-to-one.
    """
    if join_type == "one-to-one":
        return "one", "one"
    return "many", "one"


def join_edge(location: JoinLocation) -> EdgeSchema:
    """Build the edge for the owning copy of a join."""
    join = location.join
    target = join["target"]
    if target is None:
        msg = f"Join {join['id']} has no target to draw"
        raise ValueError(msg)
    markers = (
        configured_markers(join["type"])
        if location.configured
        else type_markers(join["type"])
    )
    return {
        "id": join["id"],
        "kind": "loop" if is_self_join(join) else "relation",
        "source": join["source"],
        "target": target["table"],
        "source_column": location.column_id,
        "target_column": target["column"],
        "label": join["type"],
        "marker_start": markers[0],
        "marker_end": markers[1],
        "configured": location.configured,
    }


def project_edges(snapshot: Snapshot) -> list[EdgeSchema]:
    """One edge per distinct join id."""
    edges: dict[str, EdgeSchema] = {}
    for location in iter_owned_joins(snapshot["tables"]):
        edges.setdefault(location.join["id"], join_edge(location))
    return list(edges.values())


def project(snapshot: Snapshot, layout: Layout) -> GraphSchema:
    """Draw the snapshot as nodes placed by the layout, and their edges."""
    nodes: list[NodeSchema] = [
        {
            "id": table["id"],
            "type": "table",
            "position": layout.get(table["id"], default_position(index)),
            "data": table,
        }
        for index, table in enumerate(snapshot["tables"])
    ]
    return {"nodes": nodes, "edges": project_edges(snapshot)}


def edge_join(snapshot: Snapshot, edge_id: str) -> JoinSchema | None:
    """Resolve a selected edge to the owning copy of its join."""
    location = locate_join(snapshot, edge_id)
    return location.join if location else None
