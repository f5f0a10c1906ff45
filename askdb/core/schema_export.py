"""Build the detailed-schema asset from a live database's information_schema"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

DETAILED_SCHEMA_QUERY = """
SELECT
    c.table_schema,
    c.table_name,
    c.column_name,
    c.data_type,
    c.is_nullable,
    (
        SELECT CASE
            WHEN bool_or(tc.constraint_type = 'PRIMARY KEY') THEN 'primary'
            WHEN bool_or(tc.constraint_type = 'FOREIGN KEY') THEN 'foreign'
            WHEN bool_or(tc.constraint_type = 'UNIQUE') THEN 'unique'
        END
        FROM information_schema.key_column_usage kcu
        JOIN information_schema.table_constraints tc
          ON tc.constraint_name = kcu.constraint_name
         AND tc.constraint_schema = kcu.constraint_schema
        WHERE kcu.table_schema = c.table_schema
          AND kcu.table_name = c.table_name
          AND kcu.column_name = c.column_name
    ) AS key_role
FROM information_schema.columns c
JOIN information_schema.tables t
  ON t.table_schema = c.table_schema
 AND t.table_name = c.table_name
WHERE c.table_schema = ANY($1::text[])
  AND t.table_type = 'BASE TABLE'
ORDER BY c.table_schema, c.table_name, c.ordinal_position
"""


def rows_to_schema_entries(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Group ordered column rows into asset entries, one per (schema, table)."""
    entries: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        key = (row["table_schema"], row["table_name"])
        entry = entries.get(key)
        if entry is None:
            entry = {"schema": row["table_schema"], "table": row["table_name"], "columns": []}
            entries[key] = entry
        entry["columns"].append(
            {
                "name": row["column_name"],
                "type": row["data_type"],
                "nullable": str(row["is_nullable"]).upper() == "YES",
                "key_role": row["key_role"],
            }
        )
    return list(entries.values())


async def fetch_detailed_schema(conn, schemas: Sequence[str]) -> List[Dict[str, Any]]:
    rows = await conn.fetch(DETAILED_SCHEMA_QUERY, list(schemas))
    return rows_to_schema_entries(rows)
