"""Multi-stage external process pipeline.

Stages run one after another. Stage ``i``'s stdout becomes stage ``i+1``'s
stdin, either unchanged or passed through the receiving stage's
``transform``. When the producing stage declares ``output="json"`` its stdout
is decoded into a list of row dicts first, which is what the transform sees::

    Stage(["duckdb", "-json", db, "-c", select_sql], output="json")
        -> transform(rows) yields UPDATE statements
        -> Stage(["duckdb", db])

The first stage to exit non-zero (or whose output cannot be decoded) fails the
whole pipeline with ``PipelineStageError``; later stages are never spawned.
Every spawned process is reaped on every exit path.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence, Union

from sqlnb.engine.errors import PipelineStageError

logger = logging.getLogger("sqlnb.pipeline")

RAW = "raw"
JSON_ROWS = "json"

IDLE = "idle"
RUNNING = "running"
DONE = "done"
FAILED = "failed"

StdinPayload = Union[str, bytes, Iterable[Union[str, bytes]], None]
Transform = Callable[[Any], StdinPayload]


@dataclass
class Stage:
    """One external command in a pipeline."""

    command: Sequence[str]
    name: str | None = None
    output: str = RAW  # "raw" bytes or "json" rows
    transform: Transform | None = None  # applied to the previous stage's output
    input: str | bytes | None = None  # stdin for the first stage
    cwd: str | Path | None = None
    env: dict[str, str] | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("Stage command must not be empty")
        if self.output not in (RAW, JSON_ROWS):
            raise ValueError(f"Unknown stage output mode: {self.output!r} (expected 'raw' or 'json')")

    @property
    def label(self) -> str:
        return self.name or Path(str(self.command[0])).name


@dataclass
class StageResult:
    index: int
    name: str
    returncode: int
    stdout: bytes
    stderr: bytes
    rows: list[dict[str, Any]] | None = None
    duration_ms: int = 0


@dataclass
class PipelineResult:
    stages: list[StageResult] = field(default_factory=list)

    @property
    def final(self) -> StageResult:
        return self.stages[-1]

    @property
    def stdout(self) -> bytes:
        return self.final.stdout

    @property
    def rows(self) -> list[dict[str, Any]] | None:
        return self.final.rows


def decode_rows(stdout: bytes) -> list[dict[str, Any]]:
    """Decode a JSON array of row objects (``duckdb -json`` / ``sqlite3 --json``).

    An empty stdout means an empty result set. Raises ValueError when the
    output is not a JSON array of objects.
    """
    text = stdout.decode("utf-8").strip()
    if not text:
        return []
    rows = json.loads(text)
    if isinstance(rows, dict):
        rows = [rows]
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValueError("expected a JSON array of objects")
    return rows


def encode_stdin(payload: StdinPayload) -> bytes:
    """Flatten a transform's return value into bytes for the next stage's stdin."""
    if payload is None:
        return b""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return b"".join(
        chunk if isinstance(chunk, bytes) else str(chunk).encode("utf-8")
        for chunk in payload
    )


class ProcessPipeline:
    """An ordered chain of stages run as one unit."""

    def __init__(self, stages: Sequence[Stage] = ()) -> None:
        self.stages: list[Stage] = list(stages)
        self.state = IDLE
        self.current: int | None = None

    def pipe(self, stage: Stage) -> ProcessPipeline:
        """Append a stage; returns self for chaining."""
        self.stages.append(stage)
        return self

    async def run(self) -> PipelineResult:
        if not self.stages:
            raise ValueError("A pipeline needs at least one stage")
        if self.state != IDLE:
            raise RuntimeError(f"Pipeline already {self.state}")

        result = PipelineResult()
        stdin: bytes | None = _as_bytes(self.stages[0].input)
        try:
            for index, stage in enumerate(self.stages):
                if index > 0:
                    stdin = self._feed(index, stage, result.stages[-1], self.stages[index - 1])
                self.state = RUNNING
                self.current = index
                stage_result = await self._run_stage(index, stage, stdin)
                result.stages.append(stage_result)
        except BaseException:
            self.state = FAILED
            raise
        self.state = DONE
        self.current = None
        return result

    def _feed(self, index: int, stage: Stage, previous: StageResult, producer: Stage) -> bytes:
        if stage.transform is None:
            return previous.stdout
        payload: Any = previous.rows if producer.output == JSON_ROWS else previous.stdout
        try:
            return encode_stdin(stage.transform(payload))
        except Exception as e:
            raise PipelineStageError(
                index, stage.label, f"input transform failed: {type(e).__name__}: {e}",
            ) from e

    async def _run_stage(self, index: int, stage: Stage, stdin: bytes | None) -> StageResult:
        label = stage.label
        logger.debug("stage %d (%s): %s", index, label, " ".join(map(str, stage.command)))
        start = time.perf_counter()

        env = {**os.environ, **stage.env} if stage.env else None
        try:
            proc = await asyncio.create_subprocess_exec(
                *map(str, stage.command),
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(stage.cwd) if stage.cwd is not None else None,
                env=env,
            )
        except OSError as e:
            raise PipelineStageError(index, label, f"could not be started ({e})") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=stage.timeout)
        except asyncio.TimeoutError as e:
            raise PipelineStageError(index, label, f"timed out after {stage.timeout}s") from e
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        duration_ms = int((time.perf_counter() - start) * 1000)
        stderr_text = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise PipelineStageError(
                index, label, f"exited with status {proc.returncode}",
                returncode=proc.returncode, stderr=stderr_text,
            )

        rows = None
        if stage.output == JSON_ROWS:
            try:
                rows = decode_rows(stdout)
            except ValueError as e:
                raise PipelineStageError(
                    index, label, f"produced output that is not JSON rows ({e})",
                    returncode=proc.returncode, stderr=stderr_text,
                ) from e

        logger.debug("stage %d (%s) done in %dms", index, label, duration_ms)
        return StageResult(index, label, proc.returncode, stdout, stderr, rows, duration_ms)


def _as_bytes(value: str | bytes | None) -> bytes | None:
    if value is None:
        return None
    return value if isinstance(value, bytes) else value.encode("utf-8")


async def run_pipeline(stages: Sequence[Stage]) -> PipelineResult:
    """Convenience wrapper: build and run a pipeline in one call."""
    return await ProcessPipeline(stages).run()
