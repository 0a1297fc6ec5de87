"""Compose every notebook into one persistence pass.

The orchestrator runs notebook kernels, turns each successful storable cell
into an idempotent upsert and returns the whole lot as a ``StatementBatch``.
It never executes SQL itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Sequence

from rich.console import Console

from sqlnb.engine.diagram import DiagramOptions, plantuml_ie
from sqlnb.engine.errors import CancellationError, CatalogError
from sqlnb.engine.hashing import git_blob_hash
from sqlnb.engine.notebook import ABORTED, AfterCell, CellResult
from sqlnb.engine.notebook.kernel import CancelToken
from sqlnb.engine.persistence import (
    Statement,
    StatementBatch,
    sqlpage_upsert_statement,
    upsert_statement,
)
from sqlnb.engine.schema import SQLPAGE_FILES
from sqlnb.notebooks import (
    ORCHESTRABLE_NOTEBOOKS,
    ConstructionSqlNotebook,
    SQLPageNotebook,
    SqlNotebook,
    SqlNotebookHelpers,
)

console = Console(stderr=True)
logger = logging.getLogger("sqlnb.orchestrator")

ORCHESTRATOR_NOTEBOOK = "orchestrator"
INFO_SCHEMA_DIAGRAM_CELL = "info_schema_diagram"
PLANTUML_KERNEL = "PlantUML"


@dataclass(frozen=True)
class IntrospectedCell:
    notebook: str
    cell: str
    is_idempotent: bool
    store_in_db: bool
    kernel_id: str = "SQL"
    description: str = ""


class SqlNotebooksOrchestrator:
    """Owns one instance of each notebook and materializes their cells.

    Args:
        helpers: Shared helpers passed to every notebook.
        notebooks: Notebook classes to orchestrate, in materialization order.
            Defaults to every orchestrable notebook.
    """

    def __init__(
        self,
        helpers: SqlNotebookHelpers | None = None,
        notebooks: Sequence[type[SqlNotebook]] | None = None,
        quiet: bool = False,
    ) -> None:
        self.helpers = helpers or SqlNotebookHelpers()
        classes = ORCHESTRABLE_NOTEBOOKS if notebooks is None else notebooks
        self.notebooks: list[SqlNotebook] = [cls(self.helpers) for cls in classes]
        self.quiet = quiet

        names = [nb.name for nb in self.notebooks]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise CatalogError(f"Notebook names must be unique, repeated: {', '.join(duplicates)}")

    def notebook(self, name: str) -> SqlNotebook:
        for nb in self.notebooks:
            if nb.name == name:
                return nb
        raise KeyError(name)

    @property
    def stored_notebooks(self) -> list[SqlNotebook]:
        """Notebooks with at least one cell persisted to code_notebook_cell."""
        return [nb for nb in self.notebooks if nb.catalog.stores_in_db()]

    def introspected_cells(self) -> list[IntrospectedCell]:
        return [
            IntrospectedCell(
                notebook=nb.name,
                cell=cell.name,
                is_idempotent=cell.is_idempotent,
                store_in_db=cell.store_in_db,
                kernel_id=cell.kernel_id,
                description=cell.description,
            )
            for nb in self.notebooks
            for cell in nb.catalog.eligible()
        ]

    def separator(self, cell: str) -> str:
        return f"\n---\n--- Cell: {cell}\n---\n"

    def info_schema_diagram(self, options: DiagramOptions | None = None) -> str:
        return plantuml_ie((t.graph_entity() for t in self.helpers.tables), options)

    def info_schema_diagram_statement(self) -> Statement:
        return upsert_statement(
            ORCHESTRATOR_NOTEBOOK,
            INFO_SCHEMA_DIAGRAM_CELL,
            self.info_schema_diagram(),
            PLANTUML_KERNEL,
            cell_id=self.helpers.new_id(),
            description="Information schema entity diagram",
        )

    def bootstrap_sql(self) -> str:
        """DDL and seed rows the store needs before a batch can be applied."""
        construction = ConstructionSqlNotebook(self.helpers)
        return "\n\n".join([
            construction.bootstrap_ddl(),
            construction.bootstrap_seed_dml(),
            SQLPAGE_FILES.create_ddl(),
        ])

    def _store_cell(self, batch: StatementBatch, order: int, notebook: SqlNotebook) -> AfterCell:
        catalog = notebook.catalog

        def after_cell(cell_name: str, result: CellResult) -> None:
            cell = catalog[cell_name]
            if not result.successful:
                batch.record_failure(catalog.name, cell_name, result.error or "unknown error")
                return
            if not cell.store_in_db:
                return
            batch.append(
                upsert_statement(
                    catalog.name,
                    cell_name,
                    result.artifact,
                    cell.kernel_id,
                    cell_id=self.helpers.new_id(),
                    description=cell.description or None,
                ),
                order=(order, result.index),
            )

        return after_cell

    def _report(self, notebook: SqlNotebook, status: str, ok: int, failed: int, duration_ms: int) -> None:
        if self.quiet:
            return
        label = f"[bold]{notebook.name}[/bold]"
        if status == ABORTED:
            console.print(f"  [yellow]abort[/yellow] {label} ({ok} cells, {duration_ms}ms)")
        elif failed:
            console.print(f"  [red]fail[/red]  {label} ({ok} ok, {failed} failed, {duration_ms}ms)")
        else:
            console.print(f"  [green]done[/green]  {label} ({ok} cells, {duration_ms}ms)")

    async def materialize(
        self,
        parallel: bool = False,
        max_workers: int = 4,
        cancel: CancelToken | None = None,
        timeout: float | None = None,
    ) -> StatementBatch:
        """Run every stored notebook and collect its cells' upserts.

        Statements come back in notebook order, then cell order, whether or
        not notebooks ran concurrently. The information-schema diagram is
        appended last.

        Args:
            parallel: Run notebook kernels concurrently.
            max_workers: Upper bound on concurrently running notebooks.
            cancel: Checked between cells of every notebook.
            timeout: Seconds for the whole pass.

        Raises:
            CancellationError: When cancelled or timed out. ``partial`` holds
                the batch built so far.
        """
        batch = StatementBatch()
        deadline = time.monotonic() + timeout if timeout is not None else None
        aborted: list[str] = []
        notebooks = self.stored_notebooks

        def remaining() -> float | None:
            if deadline is None:
                return None
            return max(0.0, deadline - time.monotonic())

        async def run_one(order: int, notebook: SqlNotebook) -> None:
            state = await notebook.kernel().run(
                notebook,
                after_cell=self._store_cell(batch, order, notebook),
                cancel=cancel,
                timeout=remaining(),
            )
            self._report(notebook, state.status, len(state.successful), len(state.failed), state.duration_ms)
            if state.status == ABORTED:
                aborted.append(notebook.name)

        if parallel and len(notebooks) > 1:
            semaphore = asyncio.Semaphore(max(1, max_workers))

            async def bounded(order: int, notebook: SqlNotebook) -> None:
                async with semaphore:
                    await run_one(order, notebook)

            await _run_all_or_cancel([bounded(i, nb) for i, nb in enumerate(notebooks)])
        else:
            for i, nb in enumerate(notebooks):
                await run_one(i, nb)
                if aborted:
                    break

        if aborted:
            raise CancellationError(
                f"Materialization aborted in notebook(s): {', '.join(sorted(aborted))}",
                partial=batch,
            )

        batch.append(self.info_schema_diagram_statement(), order=(len(notebooks),))
        for failure in batch.failures:
            logger.warning("%s.%s not stored: %s", failure.notebook, failure.cell, failure.error)
        return batch

    async def materialize_sqlpage(self, cancel: CancelToken | None = None) -> StatementBatch:
        """``sqlpage_files`` DDL followed by one upsert per successful page."""
        notebook = SQLPageNotebook(self.helpers)
        batch = StatementBatch()
        ddl = SQLPAGE_FILES.create_ddl()
        batch.append(Statement("sqlpage", SQLPAGE_FILES.name, "SQL", git_blob_hash(ddl), ddl), order=(0,))

        def after_cell(cell_name: str, result: CellResult) -> None:
            if result.successful:
                batch.append(sqlpage_upsert_statement(cell_name, result.artifact), order=(1, result.index))
            else:
                batch.record_failure(notebook.name, cell_name, result.error or "unknown error")

        state = await notebook.kernel().run(notebook, after_cell=after_cell, cancel=cancel)
        self._report(notebook, state.status, len(state.successful), len(state.failed), state.duration_ms)
        if state.status == ABORTED:
            raise CancellationError("SQLPage materialization aborted", partial=batch)
        return batch


async def _run_all_or_cancel(coros: list[Awaitable[None]]) -> None:
    """Await every coroutine; on the first error cancel the rest and re-raise it.

    Siblings are awaited after cancellation so no kernel outlives the call.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in tasks:
        if task in done and task.exception() is not None:
            raise task.exception()
