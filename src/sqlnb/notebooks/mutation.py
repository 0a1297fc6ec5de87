"""Stateful DML: seed and update table data."""

from __future__ import annotations

from sqlnb.engine.notebook import Cell, CellCatalog
from sqlnb.engine.schema import MIME_TYPE

from .base import SqlNotebook

MIME_DATA_URL = "https://raw.githubusercontent.com/patrickmccallum/mimetype-io/master/src/mimeData.json"

# Types the walker emits that the public MIME list does not carry.
LOCAL_MIME_TYPES = (
    {"name": "application/typescript", "file_extn": ".ts", "description": "Typescript source"},
    {"name": "text/x-python", "file_extn": ".py", "description": "Python source"},
)


class MutationSqlNotebook(SqlNotebook):

    def mime_types_seed_dml(self) -> str:
        h = self.helpers
        local = "\n".join(
            MIME_TYPE.insert_dml(
                {"mime_type_id": h.sql_engine_new_id, **row},
                on_conflict=h.on_conflict_do_nothing,
            )
            for row in LOCAL_MIME_TYPES
        )
        return f"""\
{h.load_extension_sql("httpfs")}

-- {MIME_DATA_URL} is an array of
--   {{"name": <mime type>, "description": <text>, "types": [<extension>, ...], "alternatives": [...]}}
-- flattened here into one mime_type row per (name, extension).
INSERT INTO mime_type (mime_type_id, name, description, file_extn)
SELECT CAST(uuid() AS TEXT), name, description, file_extn
  FROM (
      SELECT resource.name AS name,
             COALESCE(resource.description, '') AS description,
             unnest(resource.types) AS file_extn
        FROM read_json_auto('{MIME_DATA_URL}') AS resource
  )
ON CONFLICT DO NOTHING;

{local}"""

    catalog = CellCatalog("mutation", [
        Cell("mime_types_seed_dml", mime_types_seed_dml, description="MIME types by file extension"),
    ])
