"""Cell catalog: the explicit, ordered list of operations a notebook exposes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Sequence

from sqlnb.engine.errors import CatalogError


@dataclass(frozen=True)
class Cell:
    """A single named operation belonging to a notebook.

    ``operation`` is called with the notebook instance and may return a value
    or an awaitable.
    """

    name: str
    operation: Callable[[Any], Any]
    is_idempotent: bool = True
    store_in_db: bool = True
    disregard: bool = False
    kernel_id: str = "SQL"
    description: str = ""


class CellCatalog:
    """Ordered registration table of cells for one notebook.

    Declaration order is preserved: diagrams, documentation and SQLPage
    navigation all depend on it.
    """

    def __init__(self, name: str, cells: Sequence[Cell]) -> None:
        if not name:
            raise CatalogError("Notebook name must not be empty")
        seen: set[str] = set()
        for cell in cells:
            if not cell.name:
                raise CatalogError(f"Notebook {name!r} has a cell with an empty name")
            if cell.name in seen:
                raise CatalogError(f"Notebook {name!r} registers cell {cell.name!r} more than once")
            seen.add(cell.name)
        self.name = name
        self._cells: tuple[Cell, ...] = tuple(cells)
        self._by_name = {cell.name: cell for cell in self._cells}

    @property
    def cells(self) -> tuple[Cell, ...]:
        """Every registered cell, including disregarded ones."""
        return self._cells

    def eligible(self) -> list[Cell]:
        """Cells the kernel will run, in declaration order."""
        return [cell for cell in self._cells if not cell.disregard]

    def storable(self) -> list[Cell]:
        return [cell for cell in self.eligible() if cell.store_in_db]

    def stores_in_db(self) -> bool:
        """True if any eligible cell is persisted to the code_notebook_cell store."""
        return bool(self.storable())

    def names(self) -> list[str]:
        return [cell.name for cell in self.eligible()]

    def __getitem__(self, name: str) -> Cell:
        return self._by_name[name]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Cell]:
        return iter(self.eligible())

    def __len__(self) -> int:
        return len(self.eligible())

    def __repr__(self) -> str:
        return f"CellCatalog({self.name!r}, cells={self.names()!r})"
