# python -m pytest askdb/tests/core/test_sql_gate.py -v

from typing import Any, Dict, List

import asyncpg
import pytest

from askdb.core.sql_exec import SQLExecutionError, SQLExecutor
from askdb.core.sql_gate import ExecutionResult, SQLExecutionGate
from askdb.core.sql_guard import SQLGuard


class FakeExecutor:
    def __init__(self, rows: List[Dict[str, Any]] = None, error: Exception = None):
        self.rows = rows if rows is not None else []
        self.error = error
        self.calls: List[str] = []

    async def fetch_rows(self, sql: str) -> List[Dict[str, Any]]:
        self.calls.append(sql)
        if self.error is not None:
            raise self.error
        return self.rows


@pytest.mark.asyncio
async def test_select_is_executed_and_timed():
    executor = FakeExecutor(rows=[{"id": 1}, {"id": 2}])
    gate = SQLExecutionGate(executor, guard=SQLGuard(parser_guard=True))

    result = await gate.execute_query("  SELECT id FROM orders  ")

    assert result.success
    assert result.rows == [{"id": 1}, {"id": 2}]
    assert result.row_count == 2
    assert result.error is None
    assert result.duration_ms >= 0
    assert executor.calls == ["SELECT id FROM orders"]


@pytest.mark.asyncio
async def test_destructive_statement_is_not_dispatched():
    executor = FakeExecutor()
    gate = SQLExecutionGate(executor, guard=SQLGuard(parser_guard=True))

    result = await gate.execute_query("DROP TABLE orders")

    assert not result.success
    assert result.duration_ms == 0.0
    assert result.rows is None
    assert "Only SELECT queries are allowed" in result.error
    assert executor.calls == []


@pytest.mark.asyncio
async def test_executor_failure_is_normalized():
    executor = FakeExecutor(error=SQLExecutionError("Query execution timeout after 30.0 seconds"))
    gate = SQLExecutionGate(executor, guard=SQLGuard(parser_guard=False))

    result = await gate.execute_query("SELECT pg_sleep(60)")

    assert not result.success
    assert result.error == "Query execution timeout after 30.0 seconds"
    assert result.rows is None
    assert result.duration_ms >= 0


def test_to_dict_truncates_rows_but_keeps_count():
    result = ExecutionResult(
        success=True,
        duration_ms=3.5,
        rows=[{"id": 1}, {"id": 2}, {"id": 3}],
        row_count=3,
    )

    payload = result.to_dict(row_limit=2)

    assert payload["rows"] == [{"id": 1}, {"id": 2}]
    assert payload["row_count"] == 3
    assert payload["truncated"] is True
    assert "error" not in payload


def test_to_dict_without_limit_keeps_every_row():
    result = ExecutionResult(success=True, duration_ms=1.0, rows=[{"id": 1}], row_count=1)

    assert result.to_dict() == {"success": True, "duration_ms": 1.0, "rows": [{"id": 1}], "row_count": 1}


def test_to_dict_for_rejection():
    result = ExecutionResult(success=False, duration_ms=0.0, error="Empty SQL statement")

    assert result.to_dict(row_limit=10) == {
        "success": False,
        "duration_ms": 0.0,
        "error": "Empty SQL statement",
    }


class _AsyncContext:
    def __init__(self, value=None):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FailingConnection:
    def __init__(self, error: Exception):
        self.error = error

    def transaction(self, readonly: bool = False):
        return _AsyncContext()

    async def fetch(self, sql: str):
        raise self.error


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    def acquire(self):
        return _AsyncContext(self.conn)


@pytest.mark.asyncio
async def test_untokenizable_statement_is_rejected_as_result():
    executor = FakeExecutor()
    gate = SQLExecutionGate(executor, guard=SQLGuard(parser_guard=True))

    result = await gate.execute_query("SELECT 'abc")

    assert not result.success
    assert "Failed to parse SQL" in result.error
    assert executor.calls == []


@pytest.mark.asyncio
async def test_client_side_driver_error_is_normalized():
    pool = FakePool(FailingConnection(asyncpg.exceptions.InternalClientError("cache lookup failed")))
    gate = SQLExecutionGate(SQLExecutor(pool, timeout=5, max_rows=100), guard=SQLGuard(parser_guard=False))

    result = await gate.execute_query("SELECT 1")

    assert not result.success
    assert result.error == "Execution failed: cache lookup failed"
    assert result.rows is None
