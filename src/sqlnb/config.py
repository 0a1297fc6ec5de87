"""Project configuration: project.yml parsing and defaults."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

STATEDB_PATH_ENV = "SQLNB_STATEDB_PATH"


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    path: str = "sqlnb.duckdb"


class MaterializeConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    parallel: bool = False
    max_workers: int = 4
    timeout: float | None = None  # seconds for the whole pass
    extensions: list[str] = Field(default_factory=list)  # DuckDB extensions cells may load


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    duckdb_binary: str = "duckdb"
    stage_timeout: float | None = 300.0


class SqlPageConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    enabled: bool = True


class EnvironmentConfig(BaseModel):
    """Per-environment overrides (e.g. dev, prod)."""
    model_config = ConfigDict(extra="ignore")
    database: dict[str, Any] = Field(default_factory=dict)


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = "default"
    description: str = ""
    log_level: str = "INFO"
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    materialize: MaterializeConfig = Field(default_factory=MaterializeConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    sqlpage: SqlPageConfig = Field(default_factory=SqlPageConfig)
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)
    active_environment: str | None = None
    project_dir: Path = Field(default_factory=Path.cwd)

    @property
    def db_path(self) -> Path:
        path = Path(self.database.path)
        return path if path.is_absolute() else self.project_dir / path


def _expand_env_vars(value: Any) -> Any:
    """Expand ${ENV_VAR} references in string values."""
    if isinstance(value, str):
        return re.sub(
            r"\$\{(\w+)\}",
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    return value


def load_project(project_dir: Path | None = None, env: str | None = None) -> ProjectConfig:
    """Load project.yml from the given directory (or cwd).

    A missing file yields defaults. ``SQLNB_STATEDB_PATH`` overrides the
    database path after environment overrides are applied.

    Args:
        project_dir: Path to the project directory.
        env: Environment name to activate (e.g. "dev", "prod").
             If environments are defined and env is None, defaults to "dev".
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    config_path = project_dir / "project.yml"

    raw: dict[str, Any] = {}
    if config_path.exists():
        raw = yaml.safe_load(config_path.read_text()) or {}
        raw = _expand_env_vars(raw)

    database = DatabaseConfig(**(raw.get("database") or {}))
    materialize = MaterializeConfig(**(raw.get("materialize") or {}))
    pipeline = PipelineConfig(**(raw.get("pipeline") or {}))
    sqlpage = SqlPageConfig(**(raw.get("sqlpage") or {}))

    environments: dict[str, EnvironmentConfig] = {}
    for env_name, env_raw in (raw.get("environments") or {}).items():
        environments[env_name] = EnvironmentConfig(database=(env_raw or {}).get("database", {}))

    active_env = env
    if environments and active_env is None:
        active_env = "dev" if "dev" in environments else None
    if active_env and active_env in environments:
        env_cfg = environments[active_env]
        if "path" in env_cfg.database:
            database = DatabaseConfig(path=env_cfg.database["path"])

    override = os.environ.get(STATEDB_PATH_ENV)
    if override:
        database = DatabaseConfig(path=override)

    return ProjectConfig(
        name=raw.get("name", "default"),
        description=raw.get("description", ""),
        log_level=raw.get("log_level", "INFO"),
        database=database,
        materialize=materialize,
        pipeline=pipeline,
        sqlpage=sqlpage,
        environments=environments,
        active_environment=active_env,
        project_dir=project_dir,
    )
