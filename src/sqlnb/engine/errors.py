"""Exception types raised by the sqlnb engine."""

from __future__ import annotations


class SqlnbError(Exception):
    """Base class for all sqlnb errors."""


class CatalogError(SqlnbError):
    """A notebook's cell catalog is invalid (duplicate or empty cell names)."""


class CellExecutionError(SqlnbError):
    """A single cell's operation raised.

    Recorded on the failed ``CellResult``; the run continues with the next cell.
    """

    def __init__(self, notebook: str, cell: str, cause: BaseException) -> None:
        self.notebook = notebook
        self.cell = cell
        self.cause = cause
        super().__init__(f"{notebook}.{cell} failed: {type(cause).__name__}: {cause}")


class PersistenceEncodingError(SqlnbError):
    """An artifact could not be encoded for hashing or storage."""


class PipelineStageError(SqlnbError):
    """An external process stage exited abnormally or produced undecodable output."""

    def __init__(
        self,
        stage_index: int,
        stage_name: str,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.stage_index = stage_index
        self.stage_name = stage_name
        self.returncode = returncode
        self.stderr = stderr
        detail = f"stage {stage_index} ({stage_name}) {message}"
        if stderr.strip():
            detail += f": {stderr.strip()}"
        super().__init__(detail)


class CancellationError(SqlnbError):
    """A run was aborted by caller-requested cancellation or timeout.

    ``partial`` carries whatever completed before the abort (a ``RunState``
    from the kernel or a ``StatementBatch`` from the orchestrator).
    """

    def __init__(self, message: str, partial: object | None = None) -> None:
        self.partial = partial
        super().__init__(message)
