"""Stateless test cases that report in TAP (Test Anything Protocol) format."""

from __future__ import annotations

from sqlnb.engine.notebook import Cell, CellCatalog

from .base import SqlNotebook


class AssuranceSqlNotebook(SqlNotebook):

    def test1(self) -> str:
        return """\
WITH test_plan AS (
    SELECT 0 AS seq, '1..2' AS tap_output
),
test1 AS (
    SELECT 1 AS seq,
           CASE WHEN EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = 'code_notebook_cell')
                THEN 'ok 1 - code_notebook_cell table exists'
                ELSE 'not ok 1 - code_notebook_cell table is missing'
           END AS tap_output
),
test2 AS (
    SELECT 2 AS seq,
           CASE WHEN (SELECT COUNT(*) FROM (
                          SELECT notebook_name, cell_name
                            FROM code_notebook_cell
                        GROUP BY notebook_name, cell_name
                          HAVING COUNT(*) > 1)) = 0
                THEN 'ok 2 - one stored row per notebook cell'
                ELSE 'not ok 2 - duplicate notebook cells stored'
           END AS tap_output
)
SELECT tap_output
  FROM (SELECT * FROM test_plan UNION ALL SELECT * FROM test1 UNION ALL SELECT * FROM test2)
 ORDER BY seq;"""

    catalog = CellCatalog("assurance", [
        Cell("test1", test1, description="Notebook store sanity checks"),
    ])
