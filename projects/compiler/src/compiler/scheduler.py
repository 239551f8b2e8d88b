"""Debounced, last-snapshot-wins compiler calls.

Every submitted snapshot or source text bumps a generation counter. A call is
only issued once no newer submission arrived during the quiescence window, and
its result is only applied while its generation is still the newest one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from logging import getLogger
from typing import TYPE_CHECKING, Any

from schema.errors import CompilerError
from schema.session import EditSession

from compiler.reconcile import reconcile

if TYPE_CHECKING:
    from schema.types import Layout, Snapshot

    from compiler.main import Compiler

logger = getLogger(__name__)

type SnapshotSink = Callable[[Snapshot, Layout], object]


class CompileTask:
    """Keeps generated source in step with a stream of snapshots."""

    def __init__(
        self,
        compiler: Compiler,
        *,
        debounce_seconds: float = 0.5,
        session: EditSession | None = None,
    ) -> None:
        """Wrap a compiler, reporting failures to the edit session."""
        self.compiler = compiler
        self.debounce_seconds = debounce_seconds
        self.session = session or EditSession()
        self.generation = 0
        self.applied_generation = 0
        self.output: str | None = None  # Last good generated source
        self.calls = 0
        self._tasks: set[asyncio.Task[None]] = set()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> int:
        """Run a call in the background and return its generation."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return self.generation

    def _is_current(self, generation: int) -> bool:
        """Check that no newer submission arrived."""
        return generation == self.generation

    def _fail(self, error: Exception) -> None:
        """Keep the last good output and tell the user, without retrying."""
        if not isinstance(error, CompilerError):
            logger.error("Unexpected compiler failure", exc_info=error)
            msg = f"Unexpected compiler failure: {error}"
            error = CompilerError(msg)
        logger.warning("Compiler call failed: %s", error)
        self.session.notify("error", str(error))

    def submit(self, snapshot: Snapshot) -> int:
        """Schedule serialization of a snapshot and return its generation.

        Must be called from within a running event loop.
        """
        self.generation += 1

        async def run(generation: int) -> None:
            await asyncio.sleep(self.debounce_seconds)
            if not self._is_current(generation):
                logger.debug("Skipped superseded generation %d", generation)
                return
            self.calls += 1
            try:
                source = await asyncio.to_thread(self.compiler.serialize, snapshot)
            except Exception as e:  # noqa: BLE001
                if self._is_current(generation):
                    self._fail(e)
                return
            if not self._is_current(generation):
                logger.debug("Discarded stale output of generation %d", generation)
                return
            self.output = source
            self.applied_generation = generation

        return self._spawn(run(self.generation))

    def submit_source(
        self,
        source: str,
        previous: Snapshot,
        layout: Layout,
        apply: SnapshotSink,
    ) -> int:
        """Schedule a parse-back of edited source and return its generation.

        The reconciled snapshot is handed to ``apply`` unless a newer snapshot
        or source text was submitted while the parse was in flight.
        """
        self.generation += 1

        async def run(generation: int) -> None:
            await asyncio.sleep(self.debounce_seconds)
            if not self._is_current(generation):
                logger.debug("Skipped superseded generation %d", generation)
                return
            self.calls += 1
            try:
                parsed = await asyncio.to_thread(self.compiler.parse, source)
            except Exception as e:  # noqa: BLE001
                if self._is_current(generation):
                    self._fail(e)
                return
            if not self._is_current(generation):
                logger.debug("Discarded stale parse of generation %d", generation)
                return
            try:
                snapshot, positions = reconcile(previous, parsed, layout)
            except Exception as e:  # noqa: BLE001
                self._fail(e)
                return
            self.output = source
            self.applied_generation = generation
            apply(snapshot, positions)

        return self._spawn(run(self.generation))

    async def settle(self) -> str | None:
        """Wait for every scheduled call and return the last good output."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self.output
