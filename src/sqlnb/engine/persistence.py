"""Content-addressable persistence of notebook cell artifacts.

Every artifact is hashed (git blob convention) and written with an
``INSERT ... ON CONFLICT DO UPDATE ... WHERE hash changed`` statement, so:

- re-emitting byte-identical code is a no-op at the storage layer;
- any byte change updates code, hash, kernel and ``updated_at`` and appends
  one entry to the row's ``activity_log``;
- there is never more than one row per ``(notebook_name, cell_name)``.

Nothing here opens a database connection. Statements are generated text for
an external executor.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator

from sqlnb.engine.errors import CellExecutionError, PersistenceEncodingError
from sqlnb.engine.hashing import git_blob_hash
from sqlnb.engine.utils import quote_literal

logger = logging.getLogger("sqlnb.persistence")

CODE_NOTEBOOK_CELL = "code_notebook_cell"
SQLPAGE_FILES = "sqlpage_files"


@dataclass(frozen=True)
class Statement:
    """One generated SQL statement plus the identity of what it persists."""

    notebook: str
    cell: str
    kernel_id: str
    content_hash: str
    sql: str

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True)
class CellFailure:
    notebook: str
    cell: str
    error: str


@dataclass
class StatementBatch:
    """Append-only, thread-safe accumulator of generated statements.

    Statements may be appended from concurrently running notebooks; each is
    tagged with an order key so ``statements`` is deterministic regardless of
    completion order.
    """

    _items: list[tuple[tuple[int, ...], int, Statement]] = field(default_factory=list)
    _failures: list[CellFailure] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def append(self, statement: Statement, order: tuple[int, ...] = ()) -> None:
        with self._lock:
            self._items.append((order, len(self._items), statement))

    def record_failure(self, notebook: str, cell: str, error: BaseException | str) -> None:
        message = str(error.cause) if isinstance(error, CellExecutionError) else str(error)
        with self._lock:
            self._failures.append(CellFailure(notebook, cell, message))

    @property
    def statements(self) -> list[Statement]:
        with self._lock:
            items = sorted(self._items, key=lambda item: (item[0], item[1]))
        return [statement for _, _, statement in items]

    @property
    def failures(self) -> list[CellFailure]:
        with self._lock:
            return list(self._failures)

    def sql(self) -> str:
        """The whole batch as one script, statements separated by blank lines."""
        return "\n\n".join(_terminated(s.sql) for s in self.statements)

    def __iter__(self) -> Iterator[Statement]:
        return iter(self.statements)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _terminated(sql: str) -> str:
    sql = sql.rstrip()
    return sql if sql.endswith(";") else sql + ";"


def non_text_placeholder(cell: str, artifact: Any, origin: str = "store_notebook_cells") -> str:
    """Descriptive artifact stored in place of a cell result that is not text."""
    return f'-- {origin}: cell "{cell}" did not return SQL (found: {type(artifact).__name__})'


def artifact_text(cell: str, artifact: Any, origin: str = "store_notebook_cells") -> str:
    if isinstance(artifact, str):
        return artifact
    logger.warning("Cell %s returned %s instead of text", cell, type(artifact).__name__)
    return non_text_placeholder(cell, artifact, origin)


def hashed_artifact(cell: str, artifact: Any, origin: str = "store_notebook_cells") -> tuple[str, str]:
    """Return ``(text, content_hash)``, degrading unencodable text to a placeholder."""
    text = artifact_text(cell, artifact, origin)
    try:
        return text, git_blob_hash(text)
    except PersistenceEncodingError as e:
        logger.warning("Cell %s artifact could not be encoded: %s", cell, e)
        text = f'-- {origin}: cell "{cell}" artifact could not be encoded ({e})'
        return text, git_blob_hash(text)


def activity_log_append_sql() -> str:
    """SQL expression appending ``{previous_hash, hash, at}`` to a JSON array column.

    Built with plain string functions. Timestamps use ``now()``: inside
    ``DO UPDATE SET`` DuckDB binds a bare ``CURRENT_TIMESTAMP`` as a column
    name. Right-hand sides of ``DO UPDATE SET`` see the pre-update row, so
    ``interpretable_code_hash`` here is the previous hash.
    """
    return (
        "CASE WHEN activity_log IS NULL OR activity_log = '[]' THEN '['"
        " ELSE substr(activity_log, 1, length(activity_log) - 1) || ',' END"
        " || '{\"previous_hash\":\"' || interpretable_code_hash"
        " || '\",\"hash\":\"' || EXCLUDED.interpretable_code_hash"
        " || '\",\"at\":\"' || CAST(now() AS VARCHAR) || '\"}]'"
    )


def upsert_statement(
    notebook: str,
    cell: str,
    artifact: Any,
    kernel_id: str = "SQL",
    *,
    cell_id: str | None = None,
    description: str | None = None,
    table: str = CODE_NOTEBOOK_CELL,
) -> Statement:
    """Build the idempotent upsert persisting one cell's artifact.

    Args:
        notebook: Notebook name (first part of the record identity).
        cell: Cell name (second part).
        artifact: The cell's result. Non-text values are replaced by a
            placeholder naming the cell and the unexpected type.
        kernel_id: Interpreter of the artifact, e.g. "SQL" or "PlantUML".
        cell_id: Row id for a newly inserted record (uuid4 when omitted).
        description: Optional human description stored with the cell.
        table: Target table name.
    """
    code, content_hash = hashed_artifact(cell, artifact)
    row_id = cell_id or str(uuid.uuid4())
    sql = (
        f"INSERT INTO {table} (code_notebook_cell_id, notebook_kernel_id, notebook_name, cell_name,"
        f" description, interpretable_code, interpretable_code_hash, activity_log)\n"
        f"VALUES ({quote_literal(row_id)}, {quote_literal(kernel_id)}, {quote_literal(notebook)},"
        f" {quote_literal(cell)}, {quote_literal(description)}, {quote_literal(code)},"
        f" {quote_literal(content_hash)}, '[]')\n"
        f"ON CONFLICT (notebook_name, cell_name) DO UPDATE SET\n"
        f"    interpretable_code = EXCLUDED.interpretable_code,\n"
        f"    interpretable_code_hash = EXCLUDED.interpretable_code_hash,\n"
        f"    notebook_kernel_id = EXCLUDED.notebook_kernel_id,\n"
        f"    updated_at = now(),\n"
        f"    activity_log = {activity_log_append_sql()}\n"
        f"WHERE interpretable_code_hash <> EXCLUDED.interpretable_code_hash;"
    )
    return Statement(notebook, cell, kernel_id, content_hash, sql)


def sqlpage_alert(cell: str, artifact: Any) -> str:
    """SQLPage page shown instead of a page cell that did not return text."""
    found = type(artifact).__name__
    return (
        "SELECT 'alert' AS component,\n"
        "       'SQLPageNotebook materialization issue' AS title,\n"
        f"       {quote_literal(f'SQLPageNotebook cell {cell!r} did not return SQL (found: {found})')}"
        " AS description;"
    )


def sqlpage_upsert_statement(path: str, contents: Any, table: str = SQLPAGE_FILES) -> Statement:
    """Upsert one page into the path-keyed ``sqlpage_files`` store.

    Unchanged contents leave the row (and its ``last_modified``) untouched.
    """
    text = contents if isinstance(contents, str) else sqlpage_alert(path, contents)
    text, content_hash = hashed_artifact(path, text, origin="sqlpage")
    sql = (
        f"INSERT INTO {table} (path, contents, last_modified)\n"
        f"VALUES ({quote_literal(path)}, {quote_literal(text)}, now())\n"
        f"ON CONFLICT (path) DO UPDATE SET\n"
        f"    contents = EXCLUDED.contents,\n"
        f"    last_modified = now()\n"
        f"WHERE contents <> EXCLUDED.contents;"
    )
    return Statement("sqlpage", path, "SQL", content_hash, sql)
