"""TypedDict schemas for the projected graph and the events it emits."""

from typing import Literal, TypedDict

from schema.types import JoinType, Position, TableSchema

type Marker = Literal["one", "many"]

type EdgeKind = Literal["relation", "loop"]


class NodeSchema(TypedDict):
    """A table drawn as a graph node."""

    id: str  # Table id
    type: Literal["table"]
    position: Position
    data: TableSchema


class EdgeSchema(TypedDict):
    """A join drawn as a graph edge."""

    id: str  # Join id
    kind: EdgeKind
    source: str  # Referencing (or connecting) table id
    target: str  # Referenced table id
    source_column: str | None  # Foreign-key column, None while unconfigured
    target_column: str | None
    label: JoinType
    marker_start: Marker  # Marker at the source end
    marker_end: Marker  # Marker at the target end
    configured: bool


class GraphSchema(TypedDict):
    """Root schema of the projected graph."""

    nodes: list[NodeSchema]
    edges: list[EdgeSchema]


# Gestures reported back by the rendering layer


class ConnectEvent(TypedDict):
    """Two table handles were joined by the user."""

    kind: Literal["connect"]
    source: str
    target: str
    target_column: str | None


class DisconnectEvent(TypedDict):
    """An edge was deleted by the user."""

    kind: Literal["disconnect"]
    edge_id: str


class SelectEvent(TypedDict):
    """An edge was selected for editing."""

    kind: Literal["select"]
    edge_id: str


class MoveEvent(TypedDict):
    """A node was dragged to a new position."""

    kind: Literal["move"]
    node_id: str
    position: Position


type GraphEvent = ConnectEvent | DisconnectEvent | SelectEvent | MoveEvent
