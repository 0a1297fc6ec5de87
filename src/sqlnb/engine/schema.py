"""Table models for the notebook store and the content-walk service tables.

Tables are plain data. ``Table.create_ddl()`` renders idempotent DDL for
DuckDB (``CREATE TABLE IF NOT EXISTS``) and ``Table.graph_entity()`` feeds the
information-schema diagram. Column references are drawn in diagrams but not
emitted as FOREIGN KEY constraints: DuckDB rejects updates to referenced rows,
and cells are updated in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlnb.engine.diagram import EntityAttribute, EntityDefinition, Relation
from sqlnb.engine.utils import sql_value, validate_identifier


@dataclass(frozen=True)
class Column:
    name: str
    type: str = "TEXT"
    primary_key: bool = False
    nullable: bool = True
    default: str | None = None  # raw SQL expression
    references: str | None = None  # "table.column"
    description: str = ""

    def ddl(self) -> str:
        parts = [self.name, self.type]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...]
    unique: tuple[tuple[str, ...], ...] = ()
    indexes: tuple[tuple[str, ...], ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        validate_identifier(self.name, "table name")
        seen = set()
        for col in self.columns:
            validate_identifier(col.name, "column name")
            if col.name in seen:
                raise ValueError(f"Table {self.name!r} declares column {col.name!r} twice")
            seen.add(col.name)
        for group in (*self.unique, *self.indexes):
            for name in group:
                if name not in seen:
                    raise ValueError(f"Table {self.name!r} has no column {name!r}")

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        for col in self.columns:
            if col.name == name:
                return col
        raise KeyError(f"{self.name}.{name}")

    def create_ddl(self) -> str:
        body = [f"    {col.ddl()}" for col in self.columns]
        body.extend(f"    UNIQUE({', '.join(group)})" for group in self.unique)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n" + ",\n".join(body) + "\n);"

    def index_ddl(self) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS idx_{self.name}__{'__'.join(group)}"
            f" ON {self.name} ({', '.join(group)});"
            for group in self.indexes
        ]

    def insert_dml(
        self,
        values: Mapping[str, Any],
        on_conflict: str | None = None,
    ) -> str:
        """Render a single-row INSERT. Values go through ``sql_value``."""
        for name in values:
            if name not in self.column_names:
                raise KeyError(f"{self.name}.{name}")
        columns = ", ".join(values)
        rendered = ", ".join(sql_value(v) for v in values.values())
        sql = f"INSERT INTO {self.name} ({columns}) VALUES ({rendered})"
        if on_conflict:
            sql += f" {on_conflict}"
        return sql + ";"

    def graph_entity(self) -> EntityDefinition:
        attributes = tuple(
            EntityAttribute(
                name=c.name,
                type=c.type,
                primary_key=c.primary_key,
                required=c.primary_key or not c.nullable,
                description=c.description,
            )
            for c in self.columns
        )
        relations = []
        for c in self.columns:
            if c.references:
                target, _, target_column = c.references.partition(".")
                relations.append(Relation(self.name, c.name, target, target_column))
        return EntityDefinition(self.name, attributes, tuple(relations))


def _id(name: str) -> Column:
    return Column(name, "TEXT", primary_key=True)


def _housekeeping() -> tuple[Column, ...]:
    return (
        Column("created_at", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
        Column("created_by", "TEXT", default="'UNKNOWN'"),
        Column("updated_at", "TIMESTAMP"),
        Column("updated_by", "TEXT"),
        Column("activity_log", "TEXT"),
    )


CODE_NOTEBOOK_KERNEL = Table(
    "code_notebook_kernel",
    (
        _id("code_notebook_kernel_id"),
        Column("kernel_name", nullable=False),
        Column("description"),
        Column("mime_type"),
        Column("file_extn"),
        Column("elaboration", description="JSON"),
        Column("governance", description="JSON"),
        *_housekeeping(),
    ),
    unique=(("kernel_name",),),
    description="Interpreters that can run a stored cell (SQL, PlantUML, ...).",
)

CODE_NOTEBOOK_CELL = Table(
    "code_notebook_cell",
    (
        _id("code_notebook_cell_id"),
        Column("notebook_kernel_id", nullable=False,
               references="code_notebook_kernel.code_notebook_kernel_id"),
        Column("notebook_name", nullable=False),
        Column("cell_name", nullable=False),
        Column("cell_governance", description="JSON"),
        Column("interpretable_code", nullable=False),
        Column("interpretable_code_hash", nullable=False),
        Column("description"),
        Column("arguments", description="JSON"),
        *_housekeeping(),
    ),
    unique=(("notebook_name", "cell_name"),),
    description="One row per notebook cell; code is replaced only when its hash changes.",
)

CODE_NOTEBOOK_STATE = Table(
    "code_notebook_state",
    (
        _id("code_notebook_state_id"),
        Column("code_notebook_cell_id", nullable=False,
               references="code_notebook_cell.code_notebook_cell_id"),
        Column("from_state", nullable=False),
        Column("to_state", nullable=False),
        Column("transition_result", description="JSON"),
        Column("transition_reason"),
        Column("transitioned_at", "TIMESTAMP"),
        Column("elaboration", description="JSON"),
        *_housekeeping(),
    ),
    unique=(("code_notebook_cell_id", "from_state", "to_state"),),
    description="Execution history of stored cells (e.g. migrations applied).",
)

SQLPAGE_FILES = Table(
    "sqlpage_files",
    (
        Column("path", "TEXT", primary_key=True),
        Column("contents", "TEXT", nullable=False),
        Column("last_modified", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
    ),
    description="SQLPage pages served straight from the database.",
)

DEVICE = Table(
    "device",
    (
        _id("device_id"),
        Column("name", nullable=False),
        Column("boundary", nullable=False),
        Column("device_elaboration", description="JSON"),
        *_housekeeping(),
    ),
    unique=(("name", "boundary"),),
)

MIME_TYPE = Table(
    "mime_type",
    (
        _id("mime_type_id"),
        Column("name", nullable=False),
        Column("description", nullable=False),
        Column("file_extn", nullable=False),
        *_housekeeping(),
    ),
    unique=(("name", "file_extn"),),
)

FS_CONTENT_WALK_SESSION = Table(
    "fs_content_walk_session",
    (
        _id("fs_content_walk_session_id"),
        Column("device_id", nullable=False, references="device.device_id"),
        Column("walk_started_at", "TIMESTAMP", nullable=False),
        Column("walk_finished_at", "TIMESTAMP"),
        Column("max_fileio_read_bytes", "INTEGER"),
        Column("ignore_paths_regex"),
        Column("blobs_regex"),
        Column("digests_regex"),
        Column("elaboration", description="JSON"),
        *_housekeeping(),
    ),
    unique=(("device_id", "walk_started_at"),),
)

FS_CONTENT_WALK_PATH = Table(
    "fs_content_walk_path",
    (
        _id("fs_content_walk_path_id"),
        Column("walk_session_id", nullable=False,
               references="fs_content_walk_session.fs_content_walk_session_id"),
        Column("root_path", nullable=False),
        *_housekeeping(),
    ),
    unique=(("walk_session_id", "root_path"),),
)

FS_CONTENT = Table(
    "fs_content",
    (
        _id("fs_content_id"),
        Column("walk_session_id", nullable=False,
               references="fs_content_walk_session.fs_content_walk_session_id"),
        Column("walk_path_id", nullable=False,
               references="fs_content_walk_path.fs_content_walk_path_id"),
        Column("file_path", nullable=False),
        Column("content_digest", nullable=False),
        Column("content"),
        Column("file_bytes", "BIGINT"),
        Column("file_extn"),
        Column("file_mode", "INTEGER"),
        Column("file_mtime", "BIGINT", description="unix epoch seconds"),
        Column("frontmatter", description="JSON"),
        Column("content_fm_body_attrs", description="JSON"),
        *_housekeeping(),
    ),
    unique=(("content_digest", "file_path"),),
    indexes=(("file_extn",),),
)

FS_CONTENT_WALK_PATH_ENTRY = Table(
    "fs_content_walk_path_entry",
    (
        _id("fs_content_walk_path_entry_id"),
        Column("walk_session_id", nullable=False,
               references="fs_content_walk_session.fs_content_walk_session_id"),
        Column("walk_path_id", nullable=False,
               references="fs_content_walk_path.fs_content_walk_path_id"),
        Column("fs_content_id", references="fs_content.fs_content_id"),
        Column("file_path_abs", nullable=False),
        Column("file_path_rel_parent", nullable=False),
        Column("file_path_rel", nullable=False),
        Column("file_basename", nullable=False),
        Column("file_extn"),
        *_housekeeping(),
    ),
    indexes=(("walk_path_id",), ("fs_content_id",)),
)

CODE_NOTEBOOK_TABLES: tuple[Table, ...] = (
    CODE_NOTEBOOK_KERNEL,
    CODE_NOTEBOOK_CELL,
    CODE_NOTEBOOK_STATE,
)

SERVICE_TABLES: tuple[Table, ...] = (
    DEVICE,
    MIME_TYPE,
    FS_CONTENT_WALK_SESSION,
    FS_CONTENT_WALK_PATH,
    FS_CONTENT,
    FS_CONTENT_WALK_PATH_ENTRY,
)


def tables_ddl(tables: Iterable[Table]) -> str:
    """CREATE TABLE statements followed by every table's indexes."""
    tables = list(tables)
    parts = [t.create_ddl() for t in tables]
    indexes = [ddl for t in tables for ddl in t.index_ddl()]
    if indexes:
        parts.append("\n".join(indexes))
    return "\n\n".join(parts)
