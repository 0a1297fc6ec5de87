"""DuckDB connection management and the SQL executor boundary.

Only the CLI and tests execute SQL; the engine just generates it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import duckdb

from sqlnb.engine.persistence import CODE_NOTEBOOK_CELL, Statement, StatementBatch
from sqlnb.engine.utils import iter_sql_statements

logger = logging.getLogger("sqlnb.database")


def connect(db_path: str | Path, read_only: bool = False) -> duckdb.DuckDBPyConnection:
    """Open a DuckDB connection to the given path (``:memory:`` is allowed)."""
    db_path = str(db_path)
    if db_path != ":memory:" and not read_only:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(db_path, read_only=read_only)


def execute_batch(
    conn: duckdb.DuckDBPyConnection,
    sql: str | StatementBatch | Iterable[Statement],
) -> int:
    """Execute generated SQL one statement at a time.

    Accepts a script (split by ``iter_sql_statements``) or generated statements.
    Returns the number of statements executed. The first failing statement
    raises ``duckdb.Error``; earlier statements stay applied.
    """
    if isinstance(sql, str):
        pieces = iter_sql_statements(sql)
    else:
        pieces = (s.sql for s in sql)

    executed = 0
    for piece in pieces:
        conn.execute(piece)
        executed += 1
    logger.debug("Executed %d statement(s)", executed)
    return executed


def ensure_store(conn: duckdb.DuckDBPyConnection, bootstrap_sql: str) -> None:
    """Create the notebook store tables and seed rows if they don't exist."""
    execute_batch(conn, bootstrap_sql)


def list_notebook_cells(conn: duckdb.DuckDBPyConnection) -> list[tuple]:
    """(notebook_name, cell_name, notebook_kernel_id, interpretable_code_hash, updated_at) rows."""
    return conn.execute(f"""
        SELECT notebook_name, cell_name, notebook_kernel_id, interpretable_code_hash,
               COALESCE(updated_at, created_at) AS updated_at
        FROM {CODE_NOTEBOOK_CELL}
        ORDER BY notebook_name, cell_name
    """).fetchall()


def select_notebook_cells(
    conn: duckdb.DuckDBPyConnection,
    notebooks: list[str],
    cells: list[str],
) -> list[tuple[str, str, str]]:
    """Stored ``(notebook_name, cell_name, interpretable_code)`` matching any pattern.

    Patterns containing ``%`` match with LIKE, others with equality. An empty
    list matches everything.
    """
    clauses: list[str] = []
    params: list[str] = []
    for column, patterns in (("notebook_name", notebooks), ("cell_name", cells)):
        if not patterns:
            continue
        ors = []
        for pattern in patterns:
            ors.append(f"{column} LIKE ?" if "%" in pattern else f"{column} = ?")
            params.append(pattern)
        clauses.append("(" + " OR ".join(ors) + ")")

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return conn.execute(f"""
        SELECT notebook_name, cell_name, interpretable_code
        FROM {CODE_NOTEBOOK_CELL}
        {where}
        ORDER BY notebook_name, cell_name
    """, params).fetchall()
