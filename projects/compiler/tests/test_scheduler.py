"""Tests for debounced, last-snapshot-wins compiler calls."""

import asyncio
import threading

from compiler import CompileTask, SQLAlchemyCompiler, schema_to_sqlalchemy
from schema import CompilerError, EditSession, create_table, empty_snapshot
from schema.types import Layout, Snapshot


class CountingCompiler:
    """Compiler that reports how many tables it saw."""

    def __init__(self, *, fail: bool = False) -> None:
        """Optionally fail every call."""
        self.fail = fail
        self.seen: list[Snapshot] = []

    def serialize(self, snapshot: Snapshot) -> str:
        """Describe the snapshot."""
        if self.fail:
            msg = "boom"
            raise CompilerError(msg)
        self.seen.append(snapshot)
        return f"{len(snapshot['tables'])} tables"

    def parse(self, source: str) -> Snapshot:
        """Unused."""
        raise NotImplementedError(source)


class GatedCompiler(CountingCompiler):
    """Compiler whose first call blocks until released."""

    def __init__(self) -> None:
        """Set up the gate."""
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def serialize(self, snapshot: Snapshot) -> str:
        """Block on the first call only."""
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            self.release.wait(timeout=5)
        return super().serialize(snapshot)


def snapshot_with(count: int) -> Snapshot:
    """Snapshot holding the given number of tables."""
    snapshot = empty_snapshot()
    for index in range(count):
        snapshot, _ = create_table(snapshot, f"T{index}")
    return snapshot


def test_burst_is_compiled_once() -> None:
    """Only the last snapshot of a burst reaches the compiler."""
    compiler = CountingCompiler()

    async def scenario() -> tuple[CompileTask, str | None]:
        task = CompileTask(compiler, debounce_seconds=0.01)
        for count in (1, 2, 3):
            task.submit(snapshot_with(count))
        return task, await task.settle()

    task, output = asyncio.run(scenario())

    assert output == "3 tables"
    assert task.calls == 1
    assert len(compiler.seen) == 1
    assert task.applied_generation == 3


def test_stale_result_is_discarded() -> None:
    """A result arriving after a newer submission is never applied."""
    compiler = GatedCompiler()

    async def scenario() -> str | None:
        task = CompileTask(compiler, debounce_seconds=0)
        task.submit(snapshot_with(1))
        while not compiler.started.is_set():
            await asyncio.sleep(0.001)
        task.submit(snapshot_with(2))
        compiler.release.set()
        return await task.settle()

    assert asyncio.run(scenario()) == "2 tables"
    assert compiler.calls == 2


def test_failure_keeps_last_output() -> None:
    """A failing call leaves the last good output and adds a notice."""
    session = EditSession()

    async def scenario() -> str | None:
        task = CompileTask(CountingCompiler(), debounce_seconds=0, session=session)
        task.submit(snapshot_with(1))
        await task.settle()
        task.compiler = CountingCompiler(fail=True)
        task.submit(snapshot_with(2))
        return await task.settle()

    assert asyncio.run(scenario()) == "1 tables"
    notices = session.drain_notices()
    assert [(n.level, n.message) for n in notices] == [("error", "boom")]


def test_source_edits_are_reconciled() -> None:
    """Edited source is parsed, reconciled and handed back with positions."""
    previous, user = create_table(empty_snapshot(), "User")
    layout: Layout = {user["id"]: {"x": 40, "y": 40}}
    source = schema_to_sqlalchemy(previous).replace(
        "class User(Base):",
        "class User(Base):\n    email: Mapped[str] = mapped_column(String(80))\n",
    )
    applied: list[tuple[Snapshot, Layout]] = []

    async def scenario() -> None:
        task = CompileTask(SQLAlchemyCompiler(), debounce_seconds=0)
        task.submit_source(
            source,
            previous,
            layout,
            lambda snapshot, positions: applied.append((snapshot, positions)),
        )
        await task.settle()

    asyncio.run(scenario())

    assert len(applied) == 1
    snapshot, positions = applied[0]
    table = snapshot["tables"][0]
    assert table["id"] == user["id"]
    assert [col["name"] for col in table["columns"]] == ["email", "id"]
    assert table["columns"][1]["id"] == user["columns"][0]["id"]
    assert positions == layout


def test_invalid_source_becomes_notice() -> None:
    """Source that fails validation is reported and nothing is applied."""
    session = EditSession()
    applied: list[Snapshot] = []

    async def scenario() -> None:
        task = CompileTask(SQLAlchemyCompiler(), debounce_seconds=0, session=session)
        task.submit_source(
            "class Broken(:",
            empty_snapshot(),
            {},
            lambda snapshot, _: applied.append(snapshot),
        )
        await task.settle()

    asyncio.run(scenario())

    assert applied == []
    assert [n.level for n in session.drain_notices()] == ["error"]


class BrokenCompiler(CountingCompiler):
    """Compiler with a bug outside the compiler error contract."""

    def serialize(self, snapshot: Snapshot) -> str:
        """Fail like a programming error would."""
        raise KeyError(len(snapshot["tables"]))


def test_unexpected_failures_become_notices() -> None:
    """Errors outside CompilerError are reported instead of escaping the task."""
    session = EditSession()
    applied: list[Snapshot] = []

    async def scenario() -> str | None:
        task = CompileTask(CountingCompiler(), debounce_seconds=0, session=session)
        task.submit(snapshot_with(1))
        await task.settle()
        task.compiler = BrokenCompiler()
        task.submit(snapshot_with(2))
        await task.settle()
        task.submit_source(
            "source",
            empty_snapshot(),
            {},
            lambda snapshot, _: applied.append(snapshot),
        )
        return await task.settle()

    assert asyncio.run(scenario()) == "1 tables"
    assert applied == []
    notices = session.drain_notices()
    assert [n.level for n in notices] == ["error", "error"]
    assert all(n.message.startswith("Unexpected compiler failure") for n in notices)
