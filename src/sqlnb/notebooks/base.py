"""Base class for SQL notebooks."""

from __future__ import annotations

from typing import ClassVar

from sqlnb.engine.notebook import CellCatalog, Kernel

from .helpers import SqlNotebookHelpers


class SqlNotebook:
    """A notebook is a class with an explicit ``catalog`` of cells.

    Subclasses define their cell operations as methods and register them at
    the end of the class body::

        class MutationSqlNotebook(SqlNotebook):
            def mime_types_seed_dml(self):
                ...

            catalog = CellCatalog("mutation", [
                Cell("mime_types_seed_dml", mime_types_seed_dml),
            ])
    """

    catalog: ClassVar[CellCatalog]

    def __init__(self, helpers: SqlNotebookHelpers | None = None) -> None:
        self.helpers = helpers or SqlNotebookHelpers()

    @property
    def name(self) -> str:
        return self.catalog.name

    @classmethod
    def kernel(cls) -> Kernel:
        return Kernel(cls.catalog)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
