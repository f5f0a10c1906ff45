"""SQL execution gate: allow-list + timing + result normalization"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from askdb.core.sql_exec import SQLExecutionError
from askdb.core.sql_guard import SQLGuard, SQLValidationError
from askdb.smart_logger import SmartLogger


class RowFetcher(Protocol):
    async def fetch_rows(self, sql: str) -> List[Dict[str, Any]]: ...


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    duration_ms: float
    rows: Optional[List[Dict[str, Any]]] = None
    row_count: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self, row_limit: Optional[int] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "duration_ms": self.duration_ms,
        }
        if self.rows is not None:
            rows = self.rows
            if row_limit is not None and len(rows) > row_limit:
                rows = rows[:row_limit]
                payload["truncated"] = True
            payload["rows"] = rows
            payload["row_count"] = self.row_count
        if self.error is not None:
            payload["error"] = self.error
        return payload


class SQLExecutionGate:
    """
    The only path from the agent to the query database.

    Rejected statements never reach the executor. Accepted ones are timed and
    every outcome, including executor failures, comes back as an
    ExecutionResult so callers never need exception handling.
    """

    def __init__(self, executor: RowFetcher, guard: Optional[SQLGuard] = None):
        self.executor = executor
        self.guard = guard or SQLGuard()

    async def execute_query(self, sql: str) -> ExecutionResult:
        try:
            validated_sql, _ = self.guard.validate(sql)
        except SQLValidationError as exc:
            SmartLogger.log(
                "WARNING",
                "sql.gate.rejected",
                category="sql.gate",
                params={"sql": sql, "reason": str(exc)},
                max_inline_chars=0,
            )
            return ExecutionResult(success=False, duration_ms=0.0, error=str(exc))

        start = time.perf_counter()
        try:
            rows = await self.executor.fetch_rows(validated_sql)
        except SQLExecutionError as exc:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            SmartLogger.log(
                "WARNING",
                "sql.gate.failed",
                category="sql.gate",
                params={"sql": validated_sql, "error": str(exc), "duration_ms": duration_ms},
                max_inline_chars=0,
            )
            return ExecutionResult(success=False, duration_ms=duration_ms, error=str(exc))

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        SmartLogger.log(
            "INFO",
            "sql.gate.executed",
            category="sql.gate",
            params={"row_count": len(rows), "duration_ms": duration_ms},
        )
        return ExecutionResult(
            success=True,
            duration_ms=duration_ms,
            rows=rows,
            row_count=len(rows),
        )
