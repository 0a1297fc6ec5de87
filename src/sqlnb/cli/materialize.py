"""Generation commands: materialize, diagram, frontmatter."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from sqlnb.cli import _load_config, _orchestrator, app, console, err_console


def _print_failures(failures) -> None:
    table = Table(title="Failed cells")
    table.add_column("Notebook", style="bold")
    table.add_column("Cell")
    table.add_column("Error", style="red")
    for failure in failures:
        table.add_row(failure.notebook, failure.cell, failure.error)
    err_console.print(table)


@app.command()
def materialize(
    out: Annotated[Optional[Path], typer.Option("--out", "-o", help="Write the SQL script to this file")] = None,
    apply: Annotated[bool, typer.Option("--apply", help="Execute against the configured DuckDB database")] = False,
    parallel: Annotated[Optional[bool], typer.Option("--parallel/--sequential", help="Run notebooks concurrently")] = None,
    workers: Annotated[Optional[int], typer.Option("--workers", "-w", help="Max concurrently running notebooks")] = None,
    timeout: Annotated[Optional[float], typer.Option("--timeout", help="Abort after this many seconds")] = None,
    sqlpage: Annotated[Optional[bool], typer.Option("--sqlpage/--no-sqlpage", help="Include SQLPage pages")] = None,
    bootstrap: Annotated[bool, typer.Option("--bootstrap/--no-bootstrap", help="Prefix the store DDL and seed rows")] = True,
    db: Annotated[Optional[Path], typer.Option("--db", "-d", help="DuckDB database (default: from project.yml)")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Run every notebook and emit (or apply) the idempotent upserts that store its cells."""
    from sqlnb.engine.database import connect, ensure_store, execute_batch
    from sqlnb.engine.errors import CancellationError

    config = _load_config(project_dir, env, db)
    orchestrator = _orchestrator(config)
    settings = config.materialize
    include_pages = config.sqlpage.enabled if sqlpage is None else sqlpage

    try:
        batch = asyncio.run(orchestrator.materialize(
            parallel=settings.parallel if parallel is None else parallel,
            max_workers=workers or settings.max_workers,
            timeout=timeout if timeout is not None else settings.timeout,
        ))
        pages = asyncio.run(orchestrator.materialize_sqlpage()) if include_pages else None
    except CancellationError as e:
        err_console.print(f"[red]Aborted:[/red] {e}")
        raise typer.Exit(1)

    if apply:
        conn = connect(config.db_path)
        try:
            ensure_store(conn, orchestrator.bootstrap_sql())
            count = execute_batch(conn, batch)
            if pages is not None:
                count += execute_batch(conn, pages)
        except Exception as e:
            err_console.print(f"[red]Apply failed:[/red] {e}")
            raise typer.Exit(1)
        finally:
            conn.close()
        err_console.print(f"[green]Applied {count} statement(s) to {config.db_path}[/green]")
    else:
        parts = []
        if bootstrap:
            parts.append(orchestrator.bootstrap_sql())
        parts.append(batch.sql())
        if pages is not None:
            parts.append(pages.sql())
        script = "\n\n".join(parts) + "\n"
        if out:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(script)
            err_console.print(f"[green]Wrote {len(batch) + len(pages or ())} statement(s) to {out}[/green]")
        else:
            typer.echo(script, nl=False)

    failed = batch.failures + (pages.failures if pages is not None else [])
    if failed:
        _print_failures(failed)
        raise typer.Exit(1)


@app.command()
def diagram(
    out: Annotated[Optional[Path], typer.Option("--out", "-o", help="Write the diagram to this file")] = None,
) -> None:
    """Print the PlantUML information-schema diagram."""
    from sqlnb.engine.orchestrator import SqlNotebooksOrchestrator

    content = SqlNotebooksOrchestrator(quiet=True).info_schema_diagram()
    if out:
        out.write_text(content + "\n")
        console.print(f"[green]Diagram written to {out}[/green]")
    else:
        typer.echo(content)


@app.command()
def frontmatter(
    engine: Annotated[str, typer.Option("--engine", help="Database CLI used by the pipeline stages")] = "duckdb",
    db: Annotated[Optional[Path], typer.Option("--db", "-d", help="DuckDB database (default: from project.yml)")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Parse YAML front matter of stored markdown content and write it back."""
    from sqlnb.engine.errors import PipelineStageError
    from sqlnb.notebooks import PolyglotSqlNotebook, SqlNotebookHelpers

    config = _load_config(project_dir, env, db)
    if not config.db_path.exists():
        err_console.print(f"[yellow]No database found at {config.db_path}[/yellow]")
        raise typer.Exit(1)

    binary = config.pipeline.duckdb_binary if engine == "duckdb" else engine
    notebook = PolyglotSqlNotebook(SqlNotebookHelpers())
    pipeline = notebook.frontmatter_mutation_pipeline(
        config.db_path, duckdb_binary=binary, timeout=config.pipeline.stage_timeout,
    )
    try:
        result = asyncio.run(pipeline.run())
    except PipelineStageError as e:
        err_console.print(f"[red]Pipeline failed:[/red] {e}")
        raise typer.Exit(1)

    candidates = len(result.stages[0].rows or [])
    console.print(f"[green]done[/green]  {candidates} front-matter candidate(s) processed")
