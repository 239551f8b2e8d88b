"""Selection and edit session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Literal, Unpack

from schema.errors import InvalidIntent, SynthesisFailure
from schema.joins import find_column, locate_join
from schema.mutations import (
    JoinSettings,
    PrimaryKeyType,
    configure_join,
    get_table,
    update_column,
)

if TYPE_CHECKING:
    from schema.defaults import ColumnOverrides
    from schema.types import ColumnSchema, JoinSchema, Snapshot

logger = getLogger(__name__)

type NoticeLevel = Literal["info", "warning", "error"]


@dataclass(frozen=True)
class Notice:
    """A user visible, non-fatal message."""

    level: NoticeLevel
    message: str


@dataclass
class EditSession:
    """The column and join currently open for editing.

    Staged edits live here until they are committed against a snapshot. Both an
    editing column and an editing join may be open at the same time.
    """

    editing_column: ColumnSchema | None = None
    editing_join: JoinSchema | None = None
    primary_key_type: PrimaryKeyType = "uuid"
    notices: list[Notice] = field(default_factory=list)

    def notify(self, level: NoticeLevel, message: str) -> None:
        """Record a notice for the user."""
        self.notices.append(Notice(level, message))

    def drain_notices(self) -> list[Notice]:
        """Return and clear the pending notices."""
        notices, self.notices = self.notices, []
        return notices

    def open_column(self, snapshot: Snapshot, table_id: str, column_id: str) -> None:
        """Load a column for editing."""
        column = find_column(get_table(snapshot, table_id), column_id)
        if column is None:
            msg = f"Unknown column {column_id} in table {table_id}"
            raise InvalidIntent(msg)
        self.editing_column = column

    def open_join(self, join: JoinSchema | None) -> None:
        """Load a join for editing, or close the join editor with None."""
        self.editing_join = join

    def close(self) -> None:
        """Close both editors, dropping staged edits."""
        self.editing_column = None
        self.editing_join = None

    def stage_column(self, **changes: Unpack[ColumnOverrides]) -> None:
        """Stage changes to the column being edited."""
        if self.editing_column is None:
            msg = "No column is being edited"
            raise InvalidIntent(msg)
        changes.pop("id", None)
        self.editing_column = {**self.editing_column, **changes}

    def stage_join(self, **changes: Unpack[JoinSettings]) -> None:
        """Stage changes to the join being edited."""
        if self.editing_join is None:
            msg = "No join is being edited"
            raise InvalidIntent(msg)
        self.editing_join = {**self.editing_join, **changes}

    def commit_column(self, snapshot: Snapshot) -> Snapshot:
        """Merge the staged column into its table."""
        if self.editing_column is None:
            return snapshot
        updated = update_column(snapshot, self.editing_column)
        table = get_table(updated, self.editing_column["table_id"])
        self.editing_column = find_column(table, self.editing_column["id"])
        return updated

    def commit_join(self, snapshot: Snapshot) -> Snapshot:
        """Configure the staged join.

        On success the join editor closes and the foreign-key column that now
        carries the join is opened for editing. A failed junction synthesis is
        reported as a notice and leaves the snapshot as it was.
        """
        join = self.editing_join
        if join is None:
            return snapshot

        settings: JoinSettings = {
            "type": join["type"],
            "on_delete": join["on_delete"],
            "on_update": join["on_update"],
            "through": join["through"],
            "join_column": join["join_column"],
            "inverse_column": join["inverse_column"],
        }
        stored = locate_join(snapshot, join["id"])
        if (
            stored is not None
            and join["target"] is not None
            and join["target"] != stored.join["target"]
        ):
            settings["target"] = join["target"]

        try:
            updated = configure_join(
                snapshot,
                join["id"],
                settings,
                primary_key_type=self.primary_key_type,
            )
        except SynthesisFailure as e:
            logger.warning("Junction synthesis failed: %s", e)
            self.notify("error", str(e))
            return snapshot

        self.editing_join = None
        location = locate_join(updated, join["id"])
        if location is not None and location.column_id is not None:
            self.open_column(updated, location.table_id, location.column_id)
        return updated
