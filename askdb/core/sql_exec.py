"""SQL execution against the query database"""
import asyncio
from typing import Any, Dict, List, Optional

import asyncpg

from askdb.config import settings


class SQLExecutionError(Exception):
    """Raised when SQL execution fails"""
    pass


class SQLExecutor:
    """Run read-only queries on an asyncpg pool"""

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        timeout: Optional[float] = None,
        max_rows: Optional[int] = None,
    ):
        self.pool = pool
        self.timeout = float(timeout if timeout is not None else settings.sql_timeout_seconds)
        self.max_rows = int(max_rows if max_rows is not None else settings.sql_max_rows)

    async def fetch_rows(self, sql: str) -> List[Dict[str, Any]]:
        """
        Execute a query inside a read-only transaction.

        Returns rows as column -> value mappings.
        Raises SQLExecutionError on timeout, database error or too many rows.
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction(readonly=True):
                    records = await asyncio.wait_for(conn.fetch(sql), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise SQLExecutionError(
                f"Query execution timeout after {self.timeout} seconds"
            )
        except asyncpg.PostgresError as e:
            raise SQLExecutionError(f"Database error: {str(e)}")
        except Exception as e:
            raise SQLExecutionError(f"Execution failed: {str(e)}")

        if len(records) > self.max_rows:
            raise SQLExecutionError(
                f"Query returned too many rows: {len(records)} (max: {self.max_rows})"
            )
        return [dict(record) for record in records]


async def create_query_db_pool() -> asyncpg.Pool:
    ssl_mode = settings.query_db_ssl if settings.query_db_ssl != "disable" else False
    return await asyncpg.create_pool(
        host=settings.query_db_host,
        port=settings.query_db_port,
        database=settings.query_db_name,
        user=settings.query_db_user,
        password=settings.query_db_password,
        ssl=ssl_mode,
        min_size=settings.query_db_pool_min_size,
        max_size=max(1, settings.query_db_pool_max_size),
    )
