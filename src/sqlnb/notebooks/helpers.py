"""Shared building blocks handed to every notebook instance."""

from __future__ import annotations

import uuid
from typing import Callable

from sqlnb.engine import schema
from sqlnb.engine.utils import CURRENT_TIMESTAMP, SqlExpr, validate_identifier

ExtensionLoader = Callable[[str], str]


def no_extension_loader(extension: str) -> str:
    return f"-- load_extension_sql not provided to load '{extension}'"


def duckdb_extension_loader(extension: str) -> str:
    validate_identifier(extension, "extension name")
    return f"INSTALL {extension};\nLOAD {extension};"


def _new_uuid() -> str:
    return str(uuid.uuid4())


class SqlNotebookHelpers:
    """Table models, id generation and engine expressions used by notebook cells.

    Args:
        extension_loader: Renders the SQL that loads an engine extension.
            Defaults to a comment so generated SQL stays runnable without
            extensions installed.
        new_id: Factory for application-generated row ids.
    """

    on_conflict_do_nothing = "ON CONFLICT DO NOTHING"
    sql_engine_now = CURRENT_TIMESTAMP
    sql_engine_new_id = SqlExpr("CAST(uuid() AS TEXT)")

    def __init__(
        self,
        extension_loader: ExtensionLoader | None = None,
        new_id: Callable[[], str] | None = None,
    ) -> None:
        self.extension_loader = extension_loader or no_extension_loader
        self.new_id = new_id or _new_uuid
        self.code_notebook_tables = schema.CODE_NOTEBOOK_TABLES
        self.service_tables = schema.SERVICE_TABLES

    @classmethod
    def with_extensions(cls, extensions: list[str], **kwargs) -> SqlNotebookHelpers:
        """Helpers whose loader emits INSTALL/LOAD only for the listed extensions."""
        allowed = set(extensions)

        def loader(extension: str) -> str:
            if extension in allowed:
                return duckdb_extension_loader(extension)
            return no_extension_loader(extension)

        return cls(extension_loader=loader, **kwargs)

    @property
    def tables(self) -> tuple[schema.Table, ...]:
        return (*self.code_notebook_tables, *self.service_tables)

    def load_extension_sql(self, extension: str) -> str:
        return self.extension_loader(extension)

    def view_ddl(self, name: str, select_sql: str) -> str:
        """Drop-and-create view DDL, so re-running it replaces the definition."""
        validate_identifier(name, "view name")
        return f"DROP VIEW IF EXISTS {name};\nCREATE VIEW {name} AS\n{select_sql.strip().rstrip(';')};"
