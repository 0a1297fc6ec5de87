"""CLI interface for sqlnb.

The Typer app and shared helpers live here; each module registers its commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

app = typer.Typer(
    name="sqlnb",
    help="Content-addressed SQL notebooks stored inside the database.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Content-addressed SQL notebooks stored inside the database."""
    from sqlnb import setup_logging

    setup_logging("DEBUG" if verbose else "WARNING")


def _load_config(project_dir: Path | None = None, env: str | None = None, db: Path | None = None):
    """Load project config; ``db`` overrides the configured database path."""
    from sqlnb.config import DatabaseConfig, load_project

    config = load_project(project_dir or Path.cwd(), env=env)
    if db is not None:
        config.database = DatabaseConfig(path=str(db))
    return config


def _orchestrator(config, quiet: bool = False):
    from sqlnb.engine.orchestrator import SqlNotebooksOrchestrator
    from sqlnb.notebooks import SqlNotebookHelpers

    helpers = SqlNotebookHelpers.with_extensions(config.materialize.extensions)
    return SqlNotebooksOrchestrator(helpers, quiet=quiet)


# Import submodules so they register their commands on `app`.
from sqlnb.cli import materialize  # noqa: E402, F401
from sqlnb.cli import notebooks  # noqa: E402, F401
