"""Tests for the multi-stage process pipeline."""

from __future__ import annotations

import json
import sys

import pytest

from sqlnb.engine.errors import PipelineStageError
from sqlnb.engine.pipeline import (
    DONE,
    FAILED,
    IDLE,
    JSON_ROWS,
    ProcessPipeline,
    Stage,
    decode_rows,
    encode_stdin,
    run_pipeline,
)
from sqlnb.notebooks.polyglot import frontmatter_update_sql

PY = sys.executable

ECHO_STDIN = "import sys; sys.stdout.write(sys.stdin.read())"
UPPER_STDIN = "import sys; sys.stdout.write(sys.stdin.read().upper())"


def emit_json(rows) -> list[str]:
    return [PY, "-c", f"import sys; sys.stdout.write({json.dumps(json.dumps(rows))})"]


class TestDecoding:
    def test_decode_rows(self):
        assert decode_rows(b'[{"a": 1}, {"a": 2}]') == [{"a": 1}, {"a": 2}]

    def test_empty_output_is_no_rows(self):
        assert decode_rows(b"") == []
        assert decode_rows(b"  \n") == []

    def test_rejects_non_rows(self):
        with pytest.raises(ValueError):
            decode_rows(b"[1, 2, 3]")
        with pytest.raises(ValueError):
            decode_rows(b"not json")

    def test_encode_stdin(self):
        assert encode_stdin(None) == b""
        assert encode_stdin("abc") == b"abc"
        assert encode_stdin(b"abc") == b"abc"
        assert encode_stdin(iter(["a", b"b", "c"])) == b"abc"


class TestStage:
    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            Stage([])

    def test_unknown_output_rejected(self):
        with pytest.raises(ValueError):
            Stage(["true"], output="xml")

    def test_label_defaults_to_program_name(self):
        assert Stage(["/usr/bin/duckdb", "x.db"]).label == "duckdb"
        assert Stage(["duckdb"], name="select").label == "select"


class TestProcessPipeline:
    @pytest.mark.asyncio
    async def test_single_stage_with_input(self):
        result = await run_pipeline([Stage([PY, "-c", ECHO_STDIN], input="hello")])
        assert result.stdout == b"hello"
        assert result.final.returncode == 0

    @pytest.mark.asyncio
    async def test_raw_output_forwarded(self):
        pipeline = ProcessPipeline([
            Stage([PY, "-c", ECHO_STDIN], input="select 1;"),
            Stage([PY, "-c", UPPER_STDIN]),
        ])
        assert pipeline.state == IDLE
        result = await pipeline.run()
        assert result.stdout == b"SELECT 1;"
        assert pipeline.state == DONE
        assert [s.index for s in result.stages] == [0, 1]

    @pytest.mark.asyncio
    async def test_json_rows_transformed(self):
        rows = [{"id": "a", "n": 1}, {"id": "b", "n": 2}]

        def to_sql(decoded):
            assert decoded == rows
            for row in decoded:
                yield f"UPDATE t SET n = {row['n'] * 10} WHERE id = '{row['id']}';\n"

        result = await ProcessPipeline([
            Stage(emit_json(rows), name="select", output=JSON_ROWS),
            Stage([PY, "-c", ECHO_STDIN], name="update", transform=to_sql),
        ]).run()

        assert result.stages[0].rows == rows
        assert result.stdout.decode() == (
            "UPDATE t SET n = 10 WHERE id = 'a';\n"
            "UPDATE t SET n = 20 WHERE id = 'b';\n"
        )

    @pytest.mark.asyncio
    async def test_raw_transform_receives_bytes(self):
        result = await ProcessPipeline([
            Stage([PY, "-c", ECHO_STDIN], input="abc"),
            Stage([PY, "-c", ECHO_STDIN], transform=lambda raw: raw[::-1]),
        ]).run()
        assert result.stdout == b"cba"

    @pytest.mark.asyncio
    async def test_failing_stage_short_circuits(self, tmp_path):
        marker = tmp_path / "ran"
        pipeline = ProcessPipeline([
            Stage([PY, "-c", "import sys; sys.stderr.write('no such table'); sys.exit(3)"], name="select"),
            Stage([PY, "-c", f"open({str(marker)!r}, 'w').write('x')"], name="update"),
        ])
        with pytest.raises(PipelineStageError) as exc_info:
            await pipeline.run()

        err = exc_info.value
        assert err.stage_index == 0
        assert err.stage_name == "select"
        assert err.returncode == 3
        assert "no such table" in err.stderr
        assert "stage 0 (select)" in str(err)
        assert not marker.exists()
        assert pipeline.state == FAILED

    @pytest.mark.asyncio
    async def test_undecodable_json_fails_stage(self):
        with pytest.raises(PipelineStageError, match="not JSON rows"):
            await run_pipeline([
                Stage([PY, "-c", "print('plain text')"], name="select", output=JSON_ROWS),
                Stage([PY, "-c", ECHO_STDIN]),
            ])

    @pytest.mark.asyncio
    async def test_transform_error_names_receiving_stage(self):
        def broken(_rows):
            raise KeyError("content")

        with pytest.raises(PipelineStageError) as exc_info:
            await run_pipeline([
                Stage(emit_json([{"id": 1}]), output=JSON_ROWS),
                Stage([PY, "-c", ECHO_STDIN], name="update", transform=broken),
            ])
        assert exc_info.value.stage_index == 1
        assert exc_info.value.stage_name == "update"

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with pytest.raises(PipelineStageError, match="could not be started"):
            await run_pipeline([Stage(["definitely-not-a-real-binary-sqlnb"])])

    @pytest.mark.asyncio
    async def test_timeout_kills_stage(self):
        with pytest.raises(PipelineStageError, match="timed out"):
            await run_pipeline([Stage([PY, "-c", "import time; time.sleep(30)"], timeout=0.5)])

    @pytest.mark.asyncio
    async def test_pipeline_runs_once(self):
        pipeline = ProcessPipeline([Stage([PY, "-c", "pass"])])
        await pipeline.run()
        with pytest.raises(RuntimeError):
            await pipeline.run()

    @pytest.mark.asyncio
    async def test_env_and_cwd(self, tmp_path):
        result = await run_pipeline([
            Stage(
                [PY, "-c", "import os; print(os.environ['SQLNB_TEST_VALUE'], os.getcwd())"],
                env={"SQLNB_TEST_VALUE": "forty-two"},
                cwd=tmp_path,
            ),
        ])
        value, cwd = result.stdout.decode().split()
        assert value == "forty-two"
        assert cwd.endswith(tmp_path.name)


class TestFrontmatterEnrichment:
    @pytest.mark.asyncio
    async def test_only_rows_with_front_matter_become_updates(self):
        rows = [
            {"fs_content_id": "fm1", "content": "---\ntitle: Hello\ntags: [a, b]\n---\n# Body\n"},
            {"fs_content_id": "plain", "content": "# No front matter here\n"},
        ]
        result = await run_pipeline([
            Stage(emit_json(rows), name="select", output=JSON_ROWS),
            Stage([PY, "-c", ECHO_STDIN], name="update", transform=frontmatter_update_sql),
        ])
        sql = result.stdout.decode()
        assert sql.count("UPDATE fs_content SET") == 1
        assert "WHERE fs_content_id = 'fm1';" in sql
        assert "plain" not in sql
        assert '"title": "Hello"' in sql

    @pytest.mark.asyncio
    async def test_no_candidates_sends_empty_stdin(self):
        result = await run_pipeline([
            Stage(emit_json([]), name="select", output=JSON_ROWS),
            Stage([PY, "-c", ECHO_STDIN], name="update", transform=frontmatter_update_sql),
        ])
        assert result.stdout == b""
