"""Shared SQL text helpers for the sqlnb engine layer."""

from __future__ import annotations

import re
from typing import Iterator

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(value: str, label: str = "identifier") -> str:
    """Validate that a value is a safe, unquoted SQL identifier.

    Table and column names are interpolated into generated DDL/DML, so they
    are checked here once instead of being quoted everywhere.
    """
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"Invalid {label}: {value!r} (must match [A-Za-z_][A-Za-z0-9_]*)")
    return value


def quote_literal(value: str | None) -> str:
    """Render a Python string as a single-quoted SQL literal (NULL for None)."""
    if value is None:
        return "NULL"
    return "'" + value.replace("'", "''") + "'"


def sql_value(value: object) -> str:
    """Render a Python scalar as SQL text.

    ``SqlExpr`` values are emitted verbatim so engine expressions such as
    ``CURRENT_TIMESTAMP`` can be mixed with literals.
    """
    if isinstance(value, SqlExpr):
        return value.sql
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    return quote_literal(str(value))


class SqlExpr:
    """Raw SQL expression that must not be quoted."""

    __slots__ = ("sql",)

    def __init__(self, sql: str) -> None:
        self.sql = sql

    def __repr__(self) -> str:
        return f"SqlExpr({self.sql!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SqlExpr) and other.sql == self.sql

    def __hash__(self) -> int:
        return hash(self.sql)


CURRENT_TIMESTAMP = SqlExpr("CURRENT_TIMESTAMP")


def iter_sql_statements(script: str) -> Iterator[str]:
    """Yield the executable statements of a generated script.

    Splits on top-level semicolons. Semicolons inside '...' literals,
    "..." identifiers, ``--`` line comments and ``/* */`` block comments do
    not split. Pieces holding only comments and whitespace are dropped, so
    a commented-out extension load never reaches the engine.
    """
    start = 0
    i = 0
    n = len(script)
    has_sql = False
    while i < n:
        ch = script[i]
        if ch in ("'", '"'):
            has_sql = True
            i += 1
            while i < n:
                if script[i] == ch:
                    if i + 1 < n and script[i + 1] == ch:  # doubled quote escape
                        i += 2
                        continue
                    break
                i += 1
        elif script.startswith("--", i):
            end = script.find("\n", i)
            i = n - 1 if end == -1 else end
        elif script.startswith("/*", i):
            end = script.find("*/", i + 2)
            i = n - 1 if end == -1 else end + 1
        elif ch == ";":
            if has_sql:
                yield script[start:i].strip()
            start = i + 1
            has_sql = False
        elif not ch.isspace():
            has_sql = True
        i += 1
    if has_sql:
        yield script[start:].strip()
