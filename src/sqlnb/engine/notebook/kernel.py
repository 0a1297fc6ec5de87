"""Execution kernel: run a notebook's cells in declared order.

One failing cell never stops the run; its failure is recorded on the
``RunState`` and the next cell executes. The ``after_cell`` callback is
awaited after every cell, before the next one starts, so consumers see
results strictly in catalog order.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

from sqlnb.engine.errors import CancellationError, CellExecutionError

from .catalog import Cell, CellCatalog

logger = logging.getLogger("sqlnb.kernel")

SUCCESSFUL = "successful"
FAILED = "failed"

RUNNING = "running"
COMPLETED = "completed"
ABORTED = "aborted"


class CancelToken(Protocol):
    """Anything with ``is_set()``: threading.Event and asyncio.Event both qualify."""

    def is_set(self) -> bool: ...


@dataclass
class CellResult:
    """Outcome of executing one cell."""

    cell_name: str
    index: int
    status: str  # "successful" or "failed"
    artifact: Any = None
    error: CellExecutionError | None = None
    duration_ms: int = 0

    @property
    def successful(self) -> bool:
        return self.status == SUCCESSFUL


AfterCell = Callable[[str, CellResult], Optional[Awaitable[None]]]


@dataclass
class RunState:
    """Ephemeral state of one ``Kernel.run`` invocation."""

    notebook: str
    cells: list[Cell]
    after_cell: AfterCell | None = None
    results: dict[str, CellResult] = field(default_factory=dict)
    cursor: int = 0
    status: str = RUNNING
    duration_ms: int = 0

    @property
    def failed(self) -> list[CellResult]:
        return [r for r in self.results.values() if r.status == FAILED]

    @property
    def successful(self) -> list[CellResult]:
        return [r for r in self.results.values() if r.status == SUCCESSFUL]

    @property
    def remaining(self) -> list[Cell]:
        return self.cells[self.cursor:]

    def raise_if_aborted(self) -> None:
        if self.status == ABORTED:
            pending = ", ".join(c.name for c in self.remaining) or "none"
            raise CancellationError(
                f"Notebook {self.notebook!r} aborted before cells: {pending}",
                partial=self,
            )


class Kernel:
    """Runs the eligible cells of a catalog against a notebook instance."""

    def __init__(self, catalog: CellCatalog) -> None:
        self.catalog = catalog

    async def run(
        self,
        instance: Any,
        after_cell: AfterCell | None = None,
        cancel: CancelToken | None = None,
        timeout: float | None = None,
    ) -> RunState:
        """Execute every eligible cell sequentially.

        Args:
            instance: Notebook instance passed to each cell's operation.
            after_cell: Called as ``after_cell(cell_name, result)`` after each
                cell; awaited if it returns an awaitable. Exceptions propagate.
            cancel: Checked between cells; once set, remaining cells are skipped.
            timeout: Seconds from run start after which remaining cells are skipped.

        Returns:
            The RunState, with status "completed" or "aborted".
        """
        state = RunState(
            notebook=self.catalog.name,
            cells=self.catalog.eligible(),
            after_cell=after_cell,
        )
        start = time.perf_counter()
        deadline = time.monotonic() + timeout if timeout is not None else None

        while state.cursor < len(state.cells):
            if _should_stop(cancel, deadline):
                state.status = ABORTED
                logger.warning(
                    "%s: aborted with %d cell(s) not run",
                    state.notebook, len(state.remaining),
                )
                break

            cell = state.cells[state.cursor]
            result = await self._execute(cell, instance, state.cursor)
            state.results[cell.name] = result
            state.cursor += 1

            if after_cell is not None:
                outcome = after_cell(cell.name, result)
                if inspect.isawaitable(outcome):
                    await outcome
        else:
            state.status = COMPLETED

        state.duration_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(
            "%s: %s, %d ok, %d failed (%dms)",
            state.notebook, state.status, len(state.successful), len(state.failed), state.duration_ms,
        )
        return state

    async def _execute(self, cell: Cell, instance: Any, index: int) -> CellResult:
        start = time.perf_counter()
        try:
            artifact = cell.operation(instance)
            if inspect.isawaitable(artifact):
                artifact = await artifact
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            error = CellExecutionError(self.catalog.name, cell.name, e)
            logger.warning("%s", error)
            return CellResult(cell.name, index, FAILED, error=error, duration_ms=duration_ms)

        duration_ms = int((time.perf_counter() - start) * 1000)
        return CellResult(cell.name, index, SUCCESSFUL, artifact=artifact, duration_ms=duration_ms)


def _should_stop(cancel: CancelToken | None, deadline: float | None) -> bool:
    if cancel is not None and cancel.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline
