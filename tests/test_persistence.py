"""Tests for content hashing and the idempotent cell upserts."""

from __future__ import annotations

import hashlib
import json
import threading

import duckdb
import pytest

from sqlnb.engine import schema
from sqlnb.engine.errors import CellExecutionError, PersistenceEncodingError
from sqlnb.engine.hashing import blob_header, encode_artifact, git_blob_hash
from sqlnb.engine.persistence import (
    Statement,
    StatementBatch,
    non_text_placeholder,
    sqlpage_upsert_statement,
    upsert_statement,
)


@pytest.fixture
def store():
    conn = duckdb.connect(":memory:")
    conn.execute(schema.CODE_NOTEBOOK_CELL.create_ddl())
    conn.execute(schema.SQLPAGE_FILES.create_ddl())
    yield conn
    conn.close()


def _rows(conn):
    return conn.execute("""
        SELECT notebook_name, cell_name, interpretable_code, interpretable_code_hash,
               notebook_kernel_id, updated_at, activity_log
        FROM code_notebook_cell
        ORDER BY notebook_name, cell_name
    """).fetchall()


class TestHashing:
    def test_matches_git_blob_hash(self):
        # git hash-object for a file containing exactly "hello"
        assert git_blob_hash("hello") == "b6fc4c620b67d95f953a5c1c1230aaab5db5a1b0"

    def test_empty_content(self):
        assert git_blob_hash("") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"

    def test_header_uses_byte_length(self):
        text = "héllo"
        assert blob_header(len(encode_artifact(text))) == b"blob 6\x00"
        expected = hashlib.sha1(b"blob 6\x00" + text.encode("utf-8")).hexdigest()
        assert git_blob_hash(text) == expected

    def test_str_and_bytes_agree(self):
        assert git_blob_hash("SELECT 1;") == git_blob_hash(b"SELECT 1;")

    def test_single_byte_change_changes_hash(self):
        assert git_blob_hash("INSERT X") != git_blob_hash("INSERT Y")
        assert len(git_blob_hash("INSERT X")) == 40

    def test_unencodable_text(self):
        with pytest.raises(PersistenceEncodingError):
            git_blob_hash("bad \ud800 surrogate")


class TestUpsertStatement:
    def test_mutation_scenario(self):
        batch = StatementBatch()
        batch.append(upsert_statement("mutation", "seedA", "INSERT X"), order=(0, 0))
        batch.append(upsert_statement("mutation", "seedB", "INSERT Y"), order=(0, 1))

        statements = batch.statements
        assert [(s.notebook, s.cell, s.kernel_id) for s in statements] == [
            ("mutation", "seedA", "SQL"),
            ("mutation", "seedB", "SQL"),
        ]
        assert statements[0].content_hash == git_blob_hash("INSERT X")
        assert statements[1].content_hash == git_blob_hash("INSERT Y")
        assert "'INSERT X'" in statements[0].sql
        assert "ON CONFLICT (notebook_name, cell_name) DO UPDATE SET" in statements[0].sql
        assert "WHERE interpretable_code_hash <> EXCLUDED.interpretable_code_hash" in statements[0].sql

    def test_quotes_are_escaped(self):
        stmt = upsert_statement("nb", "cell", "SELECT 'it''s';")
        assert "'SELECT ''it''''s'';'" in stmt.sql

    def test_non_text_artifact_becomes_placeholder(self):
        stmt = upsert_statement("nb", "numbers", 42)
        placeholder = non_text_placeholder("numbers", 42)
        assert "did not return SQL (found: int)" in placeholder
        assert stmt.content_hash == git_blob_hash(placeholder)

    def test_unencodable_artifact_degrades(self):
        stmt = upsert_statement("nb", "bad", "SELECT '\ud800';")
        assert "could not be encoded" in stmt.sql
        assert len(stmt.content_hash) == 40

    def test_explicit_id_and_kernel(self):
        stmt = upsert_statement("orchestrator", "diagram", "@startuml\n@enduml", "PlantUML", cell_id="fixed-id")
        assert "'fixed-id'" in stmt.sql
        assert "'PlantUML'" in stmt.sql
        assert stmt.kernel_id == "PlantUML"


class TestApplyToDuckDB:
    def test_rerun_is_a_no_op(self, store):
        store.execute(upsert_statement("mutation", "seedA", "INSERT X").sql)
        first = _rows(store)
        store.execute(upsert_statement("mutation", "seedA", "INSERT X").sql)
        second = _rows(store)

        assert first == second
        assert len(second) == 1
        _, _, code, code_hash, kernel, updated_at, log = second[0]
        assert code == "INSERT X"
        assert code_hash == git_blob_hash("INSERT X")
        assert kernel == "SQL"
        assert updated_at is None
        assert json.loads(log) == []

    def test_change_updates_row_and_logs_once(self, store):
        store.execute(upsert_statement("mutation", "seedA", "INSERT X").sql)
        store.execute(upsert_statement("mutation", "seedB", "INSERT Y").sql)
        store.execute(upsert_statement("mutation", "seedA", "INSERT X2").sql)

        rows = {r[1]: r for r in _rows(store)}
        assert len(rows) == 2

        _, _, code, code_hash, _, updated_at, log = rows["seedA"]
        assert code == "INSERT X2"
        assert code_hash == git_blob_hash("INSERT X2")
        assert updated_at is not None
        entries = json.loads(log)
        assert len(entries) == 1
        assert entries[0]["previous_hash"] == git_blob_hash("INSERT X")
        assert entries[0]["hash"] == git_blob_hash("INSERT X2")

        # untouched sibling
        assert rows["seedB"][5] is None
        assert json.loads(rows["seedB"][6]) == []

    def test_second_change_appends(self, store):
        for code in ("v1", "v2", "v2", "v3"):
            store.execute(upsert_statement("nb", "cell", code).sql)
        (row,) = _rows(store)
        entries = json.loads(row[6])
        assert [e["hash"] for e in entries] == [git_blob_hash("v2"), git_blob_hash("v3")]

    def test_kernel_change_follows_code_change(self, store):
        store.execute(upsert_statement("nb", "cell", "A", "SQL").sql)
        store.execute(upsert_statement("nb", "cell", "B", "PlantUML").sql)
        (row,) = _rows(store)
        assert row[4] == "PlantUML"

    def test_sqlpage_upsert(self, store):
        store.execute(sqlpage_upsert_statement("index.sql", "SELECT 1;").sql)
        store.execute(sqlpage_upsert_statement("index.sql", "SELECT 1;").sql)
        store.execute(sqlpage_upsert_statement("index.sql", "SELECT 2;").sql)
        rows = store.execute("SELECT path, contents FROM sqlpage_files").fetchall()
        assert rows == [("index.sql", "SELECT 2;")]

    def test_update_clause_binds_timestamps(self, store):
        stmt = upsert_statement("mutation", "seedA", "INSERT X")
        update_clause = stmt.sql.split("DO UPDATE SET", 1)[1]
        assert "CURRENT_TIMESTAMP" not in update_clause

        store.execute(stmt.sql)
        store.execute(upsert_statement("mutation", "seedA", "INSERT X2").sql)
        (row,) = _rows(store)
        assert row[2] == "INSERT X2"
        assert row[5] is not None
        assert json.loads(row[6])[0]["at"]

    def test_sqlpage_change_touches_last_modified(self, store):
        store.execute(sqlpage_upsert_statement("index.sql", "SELECT 1;").sql)
        store.execute("UPDATE sqlpage_files SET last_modified = TIMESTAMP '2000-01-01 00:00:00'")
        store.execute(sqlpage_upsert_statement("index.sql", "SELECT 1;").sql)
        (unchanged,) = store.execute("SELECT CAST(last_modified AS VARCHAR) FROM sqlpage_files").fetchone()
        assert unchanged.startswith("2000-01-01")

        store.execute(sqlpage_upsert_statement("index.sql", "SELECT 2;").sql)
        (changed,) = store.execute("SELECT CAST(last_modified AS VARCHAR) FROM sqlpage_files").fetchone()
        assert not changed.startswith("2000-01-01")

    def test_sqlpage_non_text_becomes_alert_page(self, store):
        stmt = sqlpage_upsert_statement("bad-item.sql", {"not": "sql"})
        store.execute(stmt.sql)
        (contents,) = store.execute("SELECT contents FROM sqlpage_files").fetchone()
        assert "'alert' AS component" in contents
        assert "bad-item.sql" in contents
        assert "found: dict" in contents


class TestStatementBatch:
    def test_orders_by_key_not_arrival(self):
        batch = StatementBatch()
        batch.append(Statement("b", "x", "SQL", "h2", "SELECT 2"), order=(1, 0))
        batch.append(Statement("a", "y", "SQL", "h1", "SELECT 1"), order=(0, 0))
        batch.append(Statement("z", "last", "SQL", "h3", "SELECT 3;"), order=(2,))
        assert [s.sql for s in batch] == ["SELECT 1", "SELECT 2", "SELECT 3;"]
        assert batch.sql() == "SELECT 1;\n\nSELECT 2;\n\nSELECT 3;"
        assert len(batch) == 3

    def test_concurrent_appends(self):
        batch = StatementBatch()

        def worker(n):
            for i in range(50):
                batch.append(Statement("nb", f"{n}-{i}", "SQL", "h", "SELECT 1"), order=(n, i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        cells = [s.cell for s in batch.statements]
        assert len(cells) == 200
        assert cells[:2] == ["0-0", "0-1"]
        assert cells[-1] == "3-49"

    def test_record_failure_unwraps_cell_error(self):
        batch = StatementBatch()
        batch.record_failure("nb", "cell", CellExecutionError("nb", "cell", KeyError("k")))
        batch.record_failure("nb", "other", "plain message")
        assert [(f.cell, f.error) for f in batch.failures] == [("cell", "'k'"), ("other", "plain message")]
