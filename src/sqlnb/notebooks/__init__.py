"""Concrete SQL notebooks."""

from __future__ import annotations

from .assurance import AssuranceSqlNotebook
from .base import SqlNotebook
from .construction import ConstructionSqlNotebook
from .helpers import SqlNotebookHelpers
from .mutation import MutationSqlNotebook
from .polyglot import PolyglotSqlNotebook
from .query import QuerySqlNotebook
from .sqlpage import SQLPageNotebook

# Declaration order is materialization order.
ORCHESTRABLE_NOTEBOOKS: tuple[type[SqlNotebook], ...] = (
    ConstructionSqlNotebook,
    MutationSqlNotebook,
    QuerySqlNotebook,
    PolyglotSqlNotebook,
    AssuranceSqlNotebook,
)

__all__ = [
    "ORCHESTRABLE_NOTEBOOKS",
    "AssuranceSqlNotebook",
    "ConstructionSqlNotebook",
    "MutationSqlNotebook",
    "PolyglotSqlNotebook",
    "QuerySqlNotebook",
    "SQLPageNotebook",
    "SqlNotebook",
    "SqlNotebookHelpers",
]
