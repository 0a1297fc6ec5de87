"""Notebook inspection commands: notebooks ls, notebooks cat."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from sqlnb.cli import _load_config, _orchestrator, app, console, err_console

notebooks_app = typer.Typer(name="notebooks", help="Notebooks maintenance utilities.", no_args_is_help=True)
app.add_typer(notebooks_app)


@notebooks_app.command("ls")
def notebooks_ls(
    migratable: Annotated[bool, typer.Option("--migratable", "-m", help="Only idempotent SQL cells that are stored")] = False,
    db: Annotated[Optional[Path], typer.Option("--db", "-d", help="DuckDB database (default: from project.yml)")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """List every notebook cell, with its stored hash when the database has one."""
    from sqlnb.engine.database import connect, list_notebook_cells

    config = _load_config(project_dir, env, db)
    cells = _orchestrator(config, quiet=True).introspected_cells()
    if migratable:
        cells = [c for c in cells if c.is_idempotent and c.store_in_db and c.kernel_id == "SQL"]

    stored: dict[tuple[str, str], str] = {}
    if config.db_path.exists():
        conn = connect(config.db_path, read_only=True)
        try:
            stored = {(row[0], row[1]): row[3] for row in list_notebook_cells(conn)}
        except Exception as e:
            err_console.print(f"[yellow]Could not read stored cells:[/yellow] {e}")
        finally:
            conn.close()

    table = Table(title="Notebooks")
    table.add_column("Notebook", style="bold")
    table.add_column("Cell")
    table.add_column("Kernel")
    table.add_column("Idempotent")
    table.add_column("Stored")
    table.add_column("Hash", style="dim")
    for c in cells:
        content_hash = stored.get((c.notebook, c.cell))
        table.add_row(
            c.notebook,
            c.cell,
            c.kernel_id,
            "[green]yes[/green]" if c.is_idempotent else "[yellow]no[/yellow]",
            "yes" if c.store_in_db else "no",
            content_hash[:12] if content_hash else "",
        )
    console.print(table)
    console.print(f"[dim]{len(cells)} cells[/dim]")


@notebooks_app.command("cat")
def notebooks_cat(
    notebook: Annotated[Optional[list[str]], typer.Option("--notebook", "-n", help="Notebook name (include % for LIKE otherwise =)")] = None,
    cell: Annotated[Optional[list[str]], typer.Option("--cell", "-c", help="Cell name (include % for LIKE otherwise =)")] = None,
    seps: Annotated[bool, typer.Option("--seps", "-s", help="Add separators before each cell")] = False,
    db: Annotated[Optional[Path], typer.Option("--db", "-d", help="DuckDB database (default: from project.yml)")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Print stored cell code from the database."""
    from sqlnb.engine.database import connect, select_notebook_cells

    config = _load_config(project_dir, env, db)
    if not config.db_path.exists():
        err_console.print(f"[yellow]No database found at {config.db_path}. Run [bold]sqlnb materialize --apply[/bold] first.[/yellow]")
        raise typer.Exit(1)

    orchestrator = _orchestrator(config, quiet=True)
    conn = connect(config.db_path, read_only=True)
    try:
        rows = select_notebook_cells(conn, notebook or [], cell or [])
    except Exception as e:
        err_console.print(f"[red]Query error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        conn.close()

    if not rows:
        err_console.print("[yellow]No matching cells.[/yellow]")
        raise typer.Exit(1)

    for _notebook_name, cell_name, code in rows:
        if seps:
            typer.echo(orchestrator.separator(cell_name))
        typer.echo(code)
