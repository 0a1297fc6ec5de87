"""Stateless DQL that documents the database from its own catalog."""

from __future__ import annotations

from sqlnb.engine.notebook import Cell, CellCatalog

from .base import SqlNotebook

PRIMARY_KEY_COLUMNS_SQL = """\
SELECT table_name, unnest(constraint_column_names) AS column_name
  FROM duckdb_constraints()
 WHERE constraint_type = 'PRIMARY KEY'"""

INFO_SCHEMA_SQL = f"""\
SELECT c.table_name AS table_name,
       c.ordinal_position AS column_id,
       c.column_name AS column_name,
       c.data_type AS "type",
       c.is_nullable = 'NO' AS "notnull",
       c.column_default AS default_value,
       pk.column_name IS NOT NULL AS primary_key
  FROM information_schema.columns AS c
  JOIN information_schema.tables AS t
    ON t.table_schema = c.table_schema AND t.table_name = c.table_name
  LEFT JOIN ({PRIMARY_KEY_COLUMNS_SQL}) AS pk
    ON pk.table_name = c.table_name AND pk.column_name = c.column_name
 WHERE t.table_type = 'BASE TABLE'
   AND c.table_schema = 'main'
 ORDER BY c.table_name, c.ordinal_position;"""

# Columns: section, object_name, row_num, markdown_output. Sorting on the first
# three yields the document in reading order.
INFO_SCHEMA_MARKDOWN_ROWS_SQL = f"""\
WITH table_rows AS (
    SELECT 1 AS section,
           c.table_name AS object_name,
           c.ordinal_position AS row_num,
           CASE WHEN c.ordinal_position = 1
                THEN chr(10) || '### `' || c.table_name || '` Table' || chr(10)
                     || '| PK | Column | Type | Req? | Default |' || chr(10)
                     || '| -- | ------ | ---- | ---- | ------- |' || chr(10)
                ELSE ''
           END
           || '| ' || CASE WHEN pk.column_name IS NOT NULL THEN '*' ELSE '' END
           || ' | ' || c.column_name
           || ' | ' || c.data_type
           || ' | ' || CASE WHEN c.is_nullable = 'NO' THEN '*' ELSE '' END
           || ' | ' || COALESCE(c.column_default, '') || ' |' AS markdown_output
      FROM information_schema.columns AS c
      JOIN information_schema.tables AS t
        ON t.table_schema = c.table_schema AND t.table_name = c.table_name
      LEFT JOIN ({PRIMARY_KEY_COLUMNS_SQL}) AS pk
        ON pk.table_name = c.table_name AND pk.column_name = c.column_name
     WHERE t.table_type = 'BASE TABLE'
       AND c.table_schema = 'main'
),
view_rows AS (
    SELECT 3 AS section,
           c.table_name AS object_name,
           c.ordinal_position AS row_num,
           '| ' || c.table_name || ' | ' || c.column_name || ' | ' || c.data_type || ' |' AS markdown_output
      FROM information_schema.columns AS c
      JOIN information_schema.tables AS t
        ON t.table_schema = c.table_schema AND t.table_name = c.table_name
     WHERE t.table_type = 'VIEW'
       AND c.table_schema = 'main'
),
index_rows AS (
    SELECT 5 AS section,
           table_name AS object_name,
           0 AS row_num,
           '| ' || table_name || ' | ' || index_name || ' |' AS markdown_output
      FROM duckdb_indexes()
     WHERE schema_name = 'main'
),
headings(section, object_name, row_num, markdown_output) AS (
    VALUES (0, '', 0, '## Tables'),
           (2, '', 0, ''),
           (2, '', 1, '## Views'),
           (2, '', 2, '| View | Column | Type |'),
           (2, '', 3, '| ---- | ------ | ---- |'),
           (4, '', 0, ''),
           (4, '', 1, '## Indexes'),
           (4, '', 2, '| Table | Index |'),
           (4, '', 3, '| ----- | ----- |')
)
SELECT section, object_name, row_num, markdown_output FROM headings
UNION ALL SELECT * FROM table_rows
UNION ALL SELECT * FROM view_rows
UNION ALL SELECT * FROM index_rows"""

# osquery auto-table-construction config: one entry per table, keyed by table
# name. SET VARIABLE osquery_atc_path to point osquery at the database file.
OSQUERY_ATCS_SQL = """\
WITH table_columns AS (
    SELECT c.table_name AS table_name,
           string_agg(c.column_name, ', ' ORDER BY c.ordinal_position) AS column_names_for_select,
           to_json(list(c.column_name ORDER BY c.ordinal_position)) AS column_names_for_atc_json
      FROM information_schema.columns AS c
      JOIN information_schema.tables AS t
        ON t.table_schema = c.table_schema AND t.table_name = c.table_name
     WHERE t.table_type = 'BASE TABLE'
       AND c.table_schema = 'main'
  GROUP BY c.table_name
),
target AS (
    SELECT COALESCE(getvariable('osquery_atc_path'), 'SQLNB_STATEDB_PATH') AS path
),
table_query AS (
    SELECT table_name,
           'SELECT ' || column_names_for_select || ' FROM ' || table_name AS query,
           column_names_for_atc_json
      FROM table_columns
)
SELECT json_object('auto_table_construction',
           json_group_object(
               table_name,
               json_object(
                   'query', query,
                   'columns', column_names_for_atc_json,
                   'path', path
               )
           )
       ) AS osquery_auto_table_construction
  FROM table_query, target;"""

HTML_EXTENSION = "html0"


class QuerySqlNotebook(SqlNotebook):
    """Queries that can be stored and re-run as-is against the database."""

    def info_schema_markdown_rows(self) -> str:
        """Unordered markdown rows plus their sort keys (not a cell)."""
        return INFO_SCHEMA_MARKDOWN_ROWS_SQL

    def info_schema(self) -> str:
        return INFO_SCHEMA_SQL

    def info_schema_markdown(self) -> str:
        return (
            "SELECT markdown_output AS info_schema_markdown\n"
            f"  FROM (\n{self.info_schema_markdown_rows()}\n  ) AS doc\n"
            " ORDER BY section, object_name, row_num;"
        )

    def info_schema_osquery_atcs(self) -> str:
        return OSQUERY_ATCS_SQL

    def html_anchors(self) -> str:
        """Label and href of every anchor in stored HTML content."""
        return f"""\
{self.helpers.load_extension_sql(HTML_EXTENSION)}

WITH html_content AS (
    SELECT fs_content_id, content, content_digest, file_path, file_extn
      FROM fs_content
     WHERE file_extn = '.html'
),
html AS (
    SELECT file_path,
           text AS label,
           html_attribute_get(html, 'a', 'href') AS href
      FROM html_content, html_each(html_content.content, 'a')
)
SELECT * FROM html;"""

    def html_head_meta(self) -> str:
        """``<head><meta name=... content=...>`` pairs of stored HTML content."""
        return f"""\
{self.helpers.load_extension_sql(HTML_EXTENSION)}

WITH html_content AS (
    SELECT fs_content_id, content, content_digest, file_path, file_extn
      FROM fs_content
     WHERE file_extn = '.html'
),
html AS (
    SELECT file_path,
           html_attribute_get(html, 'meta', 'name') AS key,
           html_attribute_get(html, 'meta', 'content') AS value,
           html
      FROM html_content, html_each(html_content.content, 'head meta')
)
SELECT * FROM html WHERE key IS NOT NULL;"""

    catalog = CellCatalog("query", [
        Cell("info_schema", info_schema, description="Columns of every table"),
        Cell("info_schema_markdown", info_schema_markdown,
             description="Tables, views and indexes as markdown lines"),
        Cell("info_schema_osquery_atcs", info_schema_osquery_atcs,
             description="osquery auto-table-construction config for every table"),
        Cell("html_anchors", html_anchors, description="Anchors in stored HTML files"),
        Cell("html_head_meta", html_head_meta, description="Head meta tags in stored HTML files"),
    ])
