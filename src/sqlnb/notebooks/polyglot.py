"""Work the database cannot do alone: SQL combined with external processes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator

import yaml

from sqlnb.engine import frontmatter
from sqlnb.engine.notebook import Cell, CellCatalog
from sqlnb.engine.pipeline import JSON_ROWS, ProcessPipeline, Stage
from sqlnb.engine.utils import quote_literal

from .base import SqlNotebook

logger = logging.getLogger("sqlnb.notebooks.polyglot")

FRONTMATTER_CANDIDATES_SQL = """\
SELECT fs_content_id, content
  FROM fs_content
 WHERE (file_extn = '.md' OR file_extn = '.mdx')
   AND content IS NOT NULL
   AND content_fm_body_attrs IS NULL
   AND frontmatter IS NULL;"""


def frontmatter_update_sql(rows: Iterable[dict[str, Any]]) -> Iterator[str]:
    """Yield one UPDATE per row whose content carries YAML front matter.

    Rows without front matter are skipped silently. Rows whose front matter
    does not parse are skipped with a warning.
    """
    for row in rows:
        content = row.get("content")
        if not frontmatter.has_front_matter(content):
            continue
        try:
            parsed = frontmatter.extract(content)
        except (ValueError, yaml.YAMLError) as e:
            logger.warning("Skipping fs_content %s: unreadable front matter (%s)", row.get("fs_content_id"), e)
            continue
        yield (
            "UPDATE fs_content SET\n"
            f"    frontmatter = {quote_literal(parsed.attrs_json())},\n"
            f"    content_fm_body_attrs = {quote_literal(parsed.to_json())}\n"
            f"WHERE fs_content_id = {quote_literal(str(row['fs_content_id']))};\n"
        )


class PolyglotSqlNotebook(SqlNotebook):
    """Cells here need an orchestrating process, so none are stored."""

    def frontmatter_candidates_sql(self) -> str:
        return FRONTMATTER_CANDIDATES_SQL

    def frontmatter_mutation_pipeline(
        self,
        db_path: str | Path,
        duckdb_binary: str = "duckdb",
        timeout: float | None = None,
    ) -> ProcessPipeline:
        """Find front-matter candidates and write their parsed attributes back.

        Stage ``select`` reads candidate rows as JSON without side effects;
        stage ``update`` receives the generated UPDATE statements on stdin.
        """
        db = str(db_path)
        return ProcessPipeline([
            Stage(
                [duckdb_binary, "-json", db, "-c", self.frontmatter_candidates_sql()],
                name="select",
                output=JSON_ROWS,
                timeout=timeout,
            ),
            Stage(
                [duckdb_binary, db],
                name="update",
                transform=frontmatter_update_sql,
                timeout=timeout,
            ),
        ])

    catalog = CellCatalog("polyglot", [
        Cell("frontmatter_candidates_sql", frontmatter_candidates_sql, store_in_db=False,
             description="Markdown rows whose front matter is not parsed yet"),
    ])
