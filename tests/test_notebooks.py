"""Tests for the concrete notebooks: their catalogs and that their SQL runs on DuckDB."""

from __future__ import annotations

import json
import typing

import duckdb
import pytest

from sqlnb.engine.database import execute_batch
from sqlnb.engine.schema import SQLPAGE_FILES
from sqlnb.notebooks import (
    ORCHESTRABLE_NOTEBOOKS,
    AssuranceSqlNotebook,
    ConstructionSqlNotebook,
    MutationSqlNotebook,
    PolyglotSqlNotebook,
    QuerySqlNotebook,
    SQLPageNotebook,
    SqlNotebookHelpers,
)


@pytest.fixture
def helpers():
    return SqlNotebookHelpers()


@pytest.fixture
def built_db(helpers):
    """In-memory DuckDB with every table and view the construction notebook defines."""
    conn = duckdb.connect(":memory:")
    nb = ConstructionSqlNotebook(helpers)
    for cell in nb.catalog:
        execute_batch(conn, cell.operation(nb))
    execute_batch(conn, SQLPAGE_FILES.create_ddl())
    yield conn
    conn.close()


class TestCatalogs:
    def test_notebook_names(self):
        assert [cls.catalog.name for cls in ORCHESTRABLE_NOTEBOOKS] == [
            "construction", "mutation", "query", "polyglot", "assurance",
        ]
        assert SQLPageNotebook.catalog.name == "sqlpage"

    def test_construction_cells(self):
        catalog = ConstructionSqlNotebook.catalog
        assert catalog.names() == [
            "bootstrap_ddl",
            "bootstrap_seed_dml",
            "initial_ddl",
            "fs_content_walk_session_stats_view_ddl",
        ]
        assert not catalog["bootstrap_ddl"].is_idempotent
        assert not catalog["initial_ddl"].is_idempotent
        assert catalog["bootstrap_seed_dml"].is_idempotent

    def test_polyglot_and_sqlpage_not_stored(self):
        assert not PolyglotSqlNotebook.catalog.stores_in_db()
        assert not SQLPageNotebook.catalog.stores_in_db()

    def test_sqlpage_paths(self):
        assert SQLPageNotebook.catalog.names() == [
            "index.sql",
            "fsc-walk-session-stats.sql",
            "mime-types.sql",
            "notebooks.sql",
            "notebook-cell.sql",
            "info-schema.sql",
        ]
        assert SQLPageNotebook.catalog["disregarded.sql"].disregard


class TestConstruction:
    def test_builds_on_duckdb(self, built_db):
        tables = {r[0] for r in built_db.execute(
            "SELECT table_name FROM information_schema.tables WHERE table_type = 'BASE TABLE'"
        ).fetchall()}
        assert {"code_notebook_kernel", "code_notebook_cell", "code_notebook_state",
                "device", "mime_type", "fs_content", "fs_content_walk_path_entry"} <= tables
        assert built_db.execute("SELECT COUNT(*) FROM fs_content_walk_session_stats").fetchone() == (0,)

    def test_kernel_seed_is_repeatable(self, built_db, helpers):
        nb = ConstructionSqlNotebook(helpers)
        execute_batch(built_db, nb.bootstrap_seed_dml())
        kernels = built_db.execute(
            "SELECT code_notebook_kernel_id FROM code_notebook_kernel ORDER BY 1"
        ).fetchall()
        assert kernels == [("PlantUML",), ("SQL",)]

    def test_stats_view_replaced_on_rerun(self, built_db, helpers):
        nb = ConstructionSqlNotebook(helpers)
        execute_batch(built_db, nb.fs_content_walk_session_stats_view_ddl())
        built_db.execute("""
            INSERT INTO device (device_id, name, boundary) VALUES ('d1', 'host', 'lab');
            INSERT INTO fs_content_walk_session (fs_content_walk_session_id, device_id, walk_started_at, walk_finished_at)
                VALUES ('s1', 'd1', TIMESTAMP '2024-01-01 10:00:00', TIMESTAMP '2024-01-01 10:00:05');
            INSERT INTO fs_content_walk_path (fs_content_walk_path_id, walk_session_id, root_path) VALUES ('p1', 's1', '/docs');
            INSERT INTO fs_content (fs_content_id, walk_session_id, walk_path_id, file_path, content_digest, content, file_bytes, file_extn, file_mtime)
                VALUES ('c1', 's1', 'p1', '/docs/a.md', 'x', '# a', 3, '.md', 1700000000);
            INSERT INTO fs_content_walk_path_entry (fs_content_walk_path_entry_id, walk_session_id, walk_path_id, fs_content_id,
                file_path_abs, file_path_rel_parent, file_path_rel, file_basename, file_extn)
                VALUES ('e1', 's1', 'p1', 'c1', '/docs/a.md', '/docs', 'a.md', 'a.md', '.md');
        """)
        rows = built_db.execute(
            "SELECT file_extn, total_count, with_content FROM fs_content_walk_session_stats ORDER BY file_extn"
        ).fetchall()
        assert rows == [(".md", 1, 1), ("ALL", 1, 1)]


class TestQueryAndAssurance:
    def test_info_schema_runs(self, built_db, helpers):
        rows = built_db.execute(QuerySqlNotebook(helpers).info_schema()).fetchall()
        by_column = {(r[0], r[2]): r for r in rows}
        cell_id = by_column[("code_notebook_cell", "code_notebook_cell_id")]
        assert cell_id[6] is True
        assert by_column[("code_notebook_cell", "cell_name")][6] is False

    def test_info_schema_markdown_runs(self, built_db, helpers):
        lines = [r[0] for r in built_db.execute(QuerySqlNotebook(helpers).info_schema_markdown()).fetchall()]
        assert lines[0] == "## Tables"
        text = "\n".join(lines)
        assert "### `code_notebook_cell` Table" in text
        assert "## Views" in text
        assert "fs_content_walk_session_stats" in text

    def test_osquery_atcs_runs(self, built_db, helpers):
        (config,) = built_db.execute(QuerySqlNotebook(helpers).info_schema_osquery_atcs()).fetchone()
        tables = json.loads(config)["auto_table_construction"]
        kernel = tables["code_notebook_kernel"]
        assert kernel["query"].startswith("SELECT code_notebook_kernel_id, kernel_name, ")
        assert kernel["query"].endswith(" FROM code_notebook_kernel")
        assert kernel["columns"][:2] == ["code_notebook_kernel_id", "kernel_name"]
        assert kernel["path"] == "SQLNB_STATEDB_PATH"
        assert "fs_content" in tables

    def test_osquery_atcs_path_variable(self, built_db, helpers):
        built_db.execute("SET VARIABLE osquery_atc_path = '/var/lib/state.duckdb'")
        (config,) = built_db.execute(QuerySqlNotebook(helpers).info_schema_osquery_atcs()).fetchone()
        assert json.loads(config)["auto_table_construction"]["device"]["path"] == "/var/lib/state.duckdb"

    def test_html_cells_load_extension_through_helpers(self, helpers):
        query = QuerySqlNotebook(helpers)
        for sql in (query.html_anchors(), query.html_head_meta()):
            assert sql.startswith("-- load_extension_sql not provided to load 'html0'")
            assert "FROM fs_content" in sql
        assert "html_each(html_content.content, 'head meta')" in query.html_head_meta()

        configured = QuerySqlNotebook(SqlNotebookHelpers.with_extensions(["html0"]))
        assert configured.html_anchors().startswith("INSTALL html0;\nLOAD html0;")

    def test_assurance_reports_tap(self, built_db, helpers):
        rows = [r[0] for r in built_db.execute(AssuranceSqlNotebook(helpers).test1()).fetchall()]
        assert rows == [
            "1..2",
            "ok 1 - code_notebook_cell table exists",
            "ok 2 - one stored row per notebook cell",
        ]


class TestMutation:
    def test_extension_loading_is_commented_by_default(self, helpers):
        sql = MutationSqlNotebook(helpers).mime_types_seed_dml()
        assert "-- load_extension_sql not provided to load 'httpfs'" in sql
        assert "INSERT INTO mime_type" in sql
        assert "'application/typescript'" in sql

    def test_configured_extension_is_loaded(self):
        helpers = SqlNotebookHelpers.with_extensions(["httpfs"])
        sql = MutationSqlNotebook(helpers).mime_types_seed_dml()
        assert "INSTALL httpfs;\nLOAD httpfs;" in sql


class TestSqlPage:
    def test_info_schema_page_runs(self, built_db, helpers):
        row = built_db.execute(SQLPageNotebook(helpers).info_schema_sql()).fetchone()
        component, title, contents = row
        assert component == "text"
        assert title == "Information Schema"
        assert contents.startswith("## Tables")

    def test_index_links_every_page(self, helpers):
        index = SQLPageNotebook(helpers).index_sql()
        for path in ("fsc-walk-session-stats.sql", "mime-types.sql", "notebooks.sql", "info-schema.sql"):
            assert f"'{path}' AS link" in index


class TestPolyglot:
    def test_candidates_query_runs(self, built_db, helpers):
        assert built_db.execute(PolyglotSqlNotebook(helpers).frontmatter_candidates_sql()).fetchall() == []

    def test_mutation_pipeline_stages(self, helpers, tmp_path):
        db = tmp_path / "state.duckdb"
        pipeline = PolyglotSqlNotebook(helpers).frontmatter_mutation_pipeline(db, duckdb_binary="/opt/duckdb", timeout=5)
        select, update = pipeline.stages
        assert select.label == "select"
        assert select.output == "json"
        assert list(select.command[:3]) == ["/opt/duckdb", "-json", str(db)]
        assert update.command == ["/opt/duckdb", str(db)]
        assert update.transform is not None
        assert update.timeout == 5


def test_sqlpage_notebook_shares_typed_helpers(helpers):
    hints = typing.get_type_hints(SQLPageNotebook.__init__)
    assert hints["helpers"] == (SqlNotebookHelpers | None)
    page = SQLPageNotebook(helpers)
    assert page.query.helpers is helpers
