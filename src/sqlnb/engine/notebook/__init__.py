"""Notebook execution engine.

A notebook is a class whose ``catalog`` lists its cells explicitly, in order.
The kernel walks that catalog against an instance and reports per-cell
outcomes:

    from sqlnb.engine.notebook import Cell, CellCatalog, Kernel
"""

from __future__ import annotations

from .catalog import Cell, CellCatalog
from .kernel import (
    ABORTED,
    COMPLETED,
    FAILED,
    SUCCESSFUL,
    AfterCell,
    CellResult,
    Kernel,
    RunState,
)

__all__ = [
    "ABORTED",
    "COMPLETED",
    "FAILED",
    "SUCCESSFUL",
    "AfterCell",
    "Cell",
    "CellCatalog",
    "CellResult",
    "Kernel",
    "RunState",
]
