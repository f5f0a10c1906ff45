#!/usr/bin/env python3
"""
Export the detailed-schema asset from the query database.
Run this after the query database schema changes, then restart the API.
"""
import argparse
import asyncio
import json
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from askdb.config import settings
from askdb.core.schema_export import fetch_detailed_schema
from askdb.core.sql_exec import create_query_db_pool


async def export_schema(schemas: list[str], output: Path) -> int:
    pool = await create_query_db_pool()
    try:
        async with pool.acquire() as conn:
            entries = await fetch_detailed_schema(conn, schemas)
    finally:
        await pool.close()

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(entries, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return len(entries)


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--schemas",
        default="public",
        help="Comma-separated schemas to export (default: public)",
    )
    parser.add_argument(
        "--output",
        default=settings.detailed_schema_path,
        help=f"Output path (default: {settings.detailed_schema_path})",
    )
    args = parser.parse_args()

    schemas = [s.strip() for s in args.schemas.split(",") if s.strip()]
    count = asyncio.run(export_schema(schemas, Path(args.output)))
    print(f"Exported {count} tables from {', '.join(schemas)} to {args.output}")


if __name__ == "__main__":
    main()
