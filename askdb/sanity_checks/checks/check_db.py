from __future__ import annotations

import asyncio
import traceback
from typing import Any

import asyncpg

from askdb.config import settings
from askdb.sanity_checks.result import SanityCheckResult


async def check_query_db(pool: asyncpg.Pool, *, timeout_seconds: float = 10.0) -> SanityCheckResult:
    """Query database connection test: SELECT 1 and server version."""
    name = "query_db"

    async def _run() -> dict[str, Any]:
        async with pool.acquire() as conn:
            probe = await conn.fetchval("SELECT 1")
            version = await conn.fetchval("SELECT version()")
        if probe != 1:
            raise RuntimeError(f"Unexpected probe result: {probe!r}")
        return {
            "host": f"{settings.query_db_host}:{settings.query_db_port}",
            "database": settings.query_db_name,
            "version": str(version),
        }

    try:
        data = await asyncio.wait_for(_run(), timeout=timeout_seconds)
        return SanityCheckResult(name=name, ok=True, detail="OK", data=data)
    except Exception as exc:
        return SanityCheckResult(
            name=name,
            ok=False,
            detail="Query database connection failed",
            data={
                "host": f"{settings.query_db_host}:{settings.query_db_port}",
                "database": settings.query_db_name,
            },
            error=repr(exc) + "\n" + traceback.format_exc(),
        )
