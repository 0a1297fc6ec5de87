"""DDL and seed data that build the notebook store and the service tables."""

from __future__ import annotations

from sqlnb.engine.notebook import Cell, CellCatalog
from sqlnb.engine.schema import CODE_NOTEBOOK_KERNEL, tables_ddl

from .base import SqlNotebook

KERNELS = (
    {
        "code_notebook_kernel_id": "SQL",
        "kernel_name": "Dialect-independent ANSI SQL",
        "mime_type": "application/sql",
        "file_extn": ".sql",
    },
    {
        "code_notebook_kernel_id": "PlantUML",
        "kernel_name": "PlantUML ER Diagram",
        "mime_type": "text/vnd.plantuml",
        "file_extn": ".puml",
    },
)

WALK_SESSION_STATS_SQL = """\
WITH summary AS (
    SELECT
        CAST(fcws.walk_started_at AS TEXT) AS walk_datetime,
        CAST(fcws.walk_finished_at - fcws.walk_started_at AS TEXT) AS walk_duration,
        COALESCE(fcwpe.file_extn, '') AS file_extn,
        fcwp.root_path AS root_path,
        COUNT(fcwpe.fs_content_id) AS total_count,
        SUM(CASE WHEN fsc.content IS NOT NULL THEN 1 ELSE 0 END) AS with_content,
        SUM(CASE WHEN fsc.frontmatter IS NOT NULL THEN 1 ELSE 0 END) AS with_frontmatter,
        AVG(fsc.file_bytes) AS average_size,
        CAST(to_timestamp(MIN(fsc.file_mtime)) AS TEXT) AS oldest,
        CAST(to_timestamp(MAX(fsc.file_mtime)) AS TEXT) AS youngest
    FROM fs_content_walk_session AS fcws
    LEFT JOIN fs_content_walk_path AS fcwp
        ON fcws.fs_content_walk_session_id = fcwp.walk_session_id
    LEFT JOIN fs_content_walk_path_entry AS fcwpe
        ON fcwp.fs_content_walk_path_id = fcwpe.walk_path_id
    LEFT JOIN fs_content AS fsc
        ON fcwpe.fs_content_id = fsc.fs_content_id
    GROUP BY fcws.walk_started_at, fcws.walk_finished_at, fcwpe.file_extn, fcwp.root_path
    UNION ALL
    SELECT
        CAST(fcws.walk_started_at AS TEXT) AS walk_datetime,
        CAST(fcws.walk_finished_at - fcws.walk_started_at AS TEXT) AS walk_duration,
        'ALL' AS file_extn,
        fcwp.root_path AS root_path,
        COUNT(fcwpe.fs_content_id) AS total_count,
        SUM(CASE WHEN fsc.content IS NOT NULL THEN 1 ELSE 0 END) AS with_content,
        SUM(CASE WHEN fsc.frontmatter IS NOT NULL THEN 1 ELSE 0 END) AS with_frontmatter,
        AVG(fsc.file_bytes) AS average_size,
        CAST(to_timestamp(MIN(fsc.file_mtime)) AS TEXT) AS oldest,
        CAST(to_timestamp(MAX(fsc.file_mtime)) AS TEXT) AS youngest
    FROM fs_content_walk_session AS fcws
    LEFT JOIN fs_content_walk_path AS fcwp
        ON fcws.fs_content_walk_session_id = fcwp.walk_session_id
    LEFT JOIN fs_content_walk_path_entry AS fcwpe
        ON fcwp.fs_content_walk_path_id = fcwpe.walk_path_id
    LEFT JOIN fs_content AS fsc
        ON fcwpe.fs_content_id = fsc.fs_content_id
    GROUP BY fcws.walk_started_at, fcws.walk_finished_at, fcwp.root_path
)
SELECT
    walk_datetime,
    walk_duration,
    file_extn,
    root_path,
    total_count,
    with_content,
    with_frontmatter,
    CAST(ROUND(average_size) AS INTEGER) AS average_size,
    oldest,
    youngest
FROM summary
ORDER BY walk_datetime, file_extn
"""


class ConstructionSqlNotebook(SqlNotebook):
    """DDL for the notebook store and the content-walk tables, plus seed rows."""

    def bootstrap_ddl(self) -> str:
        return tables_ddl(self.helpers.code_notebook_tables)

    def bootstrap_seed_dml(self) -> str:
        now = self.helpers.sql_engine_now
        return "\n".join(
            CODE_NOTEBOOK_KERNEL.insert_dml(
                {**kernel, "created_at": now},
                on_conflict=self.helpers.on_conflict_do_nothing,
            )
            for kernel in KERNELS
        )

    def initial_ddl(self) -> str:
        return tables_ddl(self.helpers.service_tables)

    def fs_content_walk_session_stats_view_ddl(self) -> str:
        return self.helpers.view_ddl("fs_content_walk_session_stats", WALK_SESSION_STATS_SQL)

    catalog = CellCatalog("construction", [
        Cell("bootstrap_ddl", bootstrap_ddl, is_idempotent=False,
             description="Notebook store tables"),
        Cell("bootstrap_seed_dml", bootstrap_seed_dml,
             description="Known notebook kernels"),
        Cell("initial_ddl", initial_ddl, is_idempotent=False,
             description="Content-walk service tables"),
        Cell("fs_content_walk_session_stats_view_ddl", fs_content_walk_session_stats_view_ddl,
             description="Per-session walk statistics view"),
    ])
