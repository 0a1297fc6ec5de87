"""SQLPage pages stored in ``sqlpage_files``; each cell name is the page path."""

from __future__ import annotations

from sqlnb.engine.notebook import Cell, CellCatalog

from .base import SqlNotebook
from .helpers import SqlNotebookHelpers
from .query import QuerySqlNotebook

NAV_LINKS = (
    ("Content Walk Session Statistics", "fsc-walk-session-stats.sql", "green"),
    ("MIME Types", "mime-types.sql", "blue"),
    ("Stored SQL Notebooks", "notebooks.sql", "blue"),
    ("Information Schema", "info-schema.sql", "blue"),
)


class SQLPageNotebook(SqlNotebook):

    def __init__(self, helpers: SqlNotebookHelpers | None = None) -> None:
        super().__init__(helpers)
        self.query = QuerySqlNotebook(self.helpers)

    def index_sql(self) -> str:
        lines = [
            "SELECT 'list' AS component,",
            "       'Get started: where to go from here ?' AS title,",
            "       'Here are some useful links to get you started with SQLPage.' AS description;",
        ]
        for title, link, color in NAV_LINKS:
            lines.append(
                f"SELECT '{title}' AS title, '{link}' AS link, '{color}' AS color, 'download' AS icon;"
            )
        return "\n".join(lines)

    def fsc_walk_session_stats_sql(self) -> str:
        return (
            "SELECT 'table' AS component, 1 AS search, 1 AS sort;\n"
            "SELECT walk_datetime, file_extn, total_count, with_content, with_frontmatter, average_size\n"
            "  FROM fs_content_walk_session_stats;"
        )

    def mime_types_sql(self) -> str:
        return (
            "SELECT 'table' AS component, 1 AS search, 1 AS sort;\n"
            "SELECT name, file_extn, description FROM mime_type;"
        )

    def notebooks_sql(self) -> str:
        return (
            "SELECT 'table' AS component, 'Cell' AS markdown, 1 AS search, 1 AS sort;\n"
            "SELECT notebook_name,\n"
            "       '[' || cell_name || '](notebook-cell.sql?notebook=' || notebook_name"
            " || '&cell=' || cell_name || ')' AS Cell\n"
            "  FROM code_notebook_cell;"
        )

    def notebook_cell_sql(self) -> str:
        return (
            "SELECT 'text' AS component,\n"
            "       $notebook || '.' || $cell AS title,\n"
            "       '```sql' || chr(10) || interpretable_code || chr(10) || '```' AS contents_md\n"
            "  FROM code_notebook_cell\n"
            " WHERE notebook_name = $notebook\n"
            "   AND cell_name = $cell;"
        )

    def info_schema_sql(self) -> str:
        return (
            "SELECT 'text' AS component,\n"
            "       'Information Schema' AS title,\n"
            "       (SELECT string_agg(markdown_output, chr(10) ORDER BY section, object_name, row_num)\n"
            f"          FROM (\n{self.query.info_schema_markdown_rows()}\n          ) AS doc) AS contents_md;"
        )

    def disregarded_sql(self) -> str:
        return "this should be disregarded and not included in SQLPage (might be a support function)"

    catalog = CellCatalog("sqlpage", [
        Cell("index.sql", index_sql, store_in_db=False),
        Cell("fsc-walk-session-stats.sql", fsc_walk_session_stats_sql, store_in_db=False),
        Cell("mime-types.sql", mime_types_sql, store_in_db=False),
        Cell("notebooks.sql", notebooks_sql, store_in_db=False),
        Cell("notebook-cell.sql", notebook_cell_sql, store_in_db=False),
        Cell("info-schema.sql", info_schema_sql, store_in_db=False),
        Cell("disregarded.sql", disregarded_sql, store_in_db=False, disregard=True),
    ])
