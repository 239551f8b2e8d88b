"""Canvas orchestration: graph gestures in, validated snapshots out.

The canvas is the only holder of the live snapshot. Every edit produces a
complete candidate snapshot that is checked against the model invariants before
it replaces the live one, so observers never see a half applied edit.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from schema.errors import InvalidIntent, InvariantViolation, SynthesisFailure
from schema.invariants import check_snapshot
from schema.mutations import (
    connect,
    create_table,
    delete_join,
    delete_table,
    duplicate_table,
    empty_snapshot,
    get_table,
)
from schema.session import EditSession

from diagram.projection import default_position, edge_join, project
from diagram.settings import DEFAULT_SETTINGS, Settings

if TYPE_CHECKING:
    from schema.types import Layout, Position, Snapshot, TableSchema

    from diagram.schema_types import GraphEvent, GraphSchema

logger = getLogger(__name__)

type Edit = Callable[[Snapshot], Snapshot]
type Listener = Callable[[Snapshot], None]

NEW_TABLE_POSITION: Position = {"x": 10, "y": 10}


def _midpoint(first: Position, second: Position) -> Position:
    return {"x": (first["x"] + second["x"]) / 2, "y": (first["y"] + second["y"]) / 2}


@dataclass
class Canvas:
    """Live snapshot, its layout and the edit session behind one diagram."""

    snapshot: Snapshot = field(default_factory=empty_snapshot)
    layout: Layout = field(default_factory=dict)
    settings: Settings = field(default_factory=lambda: {**DEFAULT_SETTINGS})
    session: EditSession = field(default_factory=EditSession)
    listeners: list[Listener] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Align the session with the configured primary key type."""
        self.session.primary_key_type = self.settings["primary_key_type"]

    @property
    def graph(self) -> GraphSchema:
        """The current snapshot projected onto nodes and edges."""
        return project(self.snapshot, self.layout)

    def subscribe(self, listener: Listener) -> None:
        """Call listener with every snapshot that replaces the live one."""
        self.listeners.append(listener)

    def _place(self, table: TableSchema, index: int) -> Position:
        """Position for a table that appeared without one.

        A table referencing two placed tables, such as a junction table, sits
        halfway between them.
        """
        anchors = [
            self.layout[join["target"]["table"]]
            for column in table["columns"]
            if (join := column["foreign_key"]) is not None
            and join["target"] is not None
            and join["target"]["table"] in self.layout
        ]
        if len(anchors) >= 2:  # noqa: PLR2004
            return _midpoint(anchors[0], anchors[1])
        return default_position(index)

    def _settle_layout(self, placements: Layout) -> None:
        """Forget removed tables and place new ones."""
        live = {table["id"] for table in self.snapshot["tables"]}
        layout = {key: pos for key, pos in self.layout.items() if key in live}
        layout.update(placements)
        self.layout = layout
        for index, table in enumerate(self.snapshot["tables"]):
            if table["id"] not in self.layout:
                self.layout[table["id"]] = self._place(table, index)

    def _commit(self, candidate: Snapshot, placements: Layout | None = None) -> bool:
        """Replace the live snapshot if the candidate holds every invariant."""
        if candidate is self.snapshot:
            return False
        if violations := check_snapshot(candidate):
            for violation in violations:
                logger.error("Discarded edit: %s", violation)
            return False
        self.snapshot = candidate
        self._settle_layout(placements or {})
        for listener in self.listeners:
            listener(candidate)
        return True

    def apply(self, edit: Edit) -> bool:
        """Run an edit against the live snapshot and commit its result.

        Edits naming something that no longer exists are ignored. A failed
        junction synthesis becomes a notice on the session.
        """
        try:
            candidate = edit(self.snapshot)
        except InvalidIntent as e:
            logger.debug("Ignored edit: %s", e)
            return False
        except SynthesisFailure as e:
            logger.warning("Junction synthesis failed: %s", e)
            self.session.notify("error", str(e))
            return False
        except InvariantViolation as e:
            logger.error("Rejected edit on an inconsistent snapshot: %s", e)
            return False
        return self._commit(candidate)

    def replace(self, snapshot: Snapshot, layout: Layout | None = None) -> bool:
        """Swap in a whole snapshot, as after an import or a parse-back."""
        return self._commit(snapshot, layout)

    def add_table(self, name: str | None = None) -> str | None:
        """Create a table at the default position and return its id."""
        candidate, table = create_table(
            self.snapshot,
            name or f"Entity_{len(self.snapshot['tables'])}",
            primary_key_type=self.settings["primary_key_type"],
        )
        if not self._commit(candidate, {table["id"]: {**NEW_TABLE_POSITION}}):
            return None
        return table["id"]

    def remove_table(self, table_id: str) -> bool:
        """Delete a table and the joins it takes part in."""
        if self.session.editing_column and self.session.editing_column["table_id"] == table_id:
            self.session.editing_column = None
        return self.apply(lambda snapshot: delete_table(snapshot, table_id))

    def copy_table(self, table_id: str) -> str | None:
        """Duplicate a table next to the original and return the copy's id."""
        try:
            candidate, copy = duplicate_table(self.snapshot, table_id)
        except InvalidIntent as e:
            logger.debug("Ignored edit: %s", e)
            return None
        offset = self.settings["position_offset"]
        origin = self.layout.get(table_id, NEW_TABLE_POSITION)
        placement: Position = {"x": origin["x"] + offset, "y": origin["y"] + offset}
        if not self._commit(candidate, {copy["id"]: placement}):
            return None
        return copy["id"]

    def edit_column(self, table_id: str, column_id: str) -> None:
        """Open a column in the edit session."""
        try:
            self.session.open_column(self.snapshot, table_id, column_id)
        except InvalidIntent as e:
            logger.debug("Ignored column selection: %s", e)

    def commit_column(self) -> bool:
        """Commit the staged column edit."""
        return self.apply(self.session.commit_column)

    def commit_join(self) -> bool:
        """Commit the staged join edit."""
        return self.apply(self.session.commit_join)

    def handle(self, event: GraphEvent) -> bool:
        """Translate a gesture from the rendering layer into an edit."""
        match event["kind"]:
            case "connect":
                return self.apply(
                    lambda snapshot: connect(
                        snapshot,
                        event["source"],
                        event["target"],
                        event["target_column"],
                    )[0],
                )
            case "disconnect":
                if (
                    self.session.editing_join
                    and self.session.editing_join["id"] == event["edge_id"]
                ):
                    self.session.open_join(None)
                return self.apply(lambda snapshot: delete_join(snapshot, event["edge_id"]))
            case "select":
                join = edge_join(self.snapshot, event["edge_id"])
                if join is None:
                    logger.debug("Ignored selection of unknown edge %s", event["edge_id"])
                    return False
                self.session.open_join(join)
                return True
            case "move":
                try:
                    get_table(self.snapshot, event["node_id"])
                except InvalidIntent as e:
                    logger.debug("Ignored move: %s", e)
                    return False
                self.layout[event["node_id"]] = event["position"]
                return True
        msg = f"Unknown graph event: {event['kind']}"
        raise ValueError(msg)
