"""Dependency wiring for FastAPI"""
from typing import Optional

import asyncpg
from fastapi import HTTPException, Request

from askdb.agent.llm_client import LangChainLLMClient, RetryingLLMClient
from askdb.agent.orchestrator import Orchestrator, OrchestratorConfig
from askdb.config import settings
from askdb.core.llm_factory import create_chat_model
from askdb.core.schema_repository import SchemaRepository
from askdb.core.sql_exec import SQLExecutor, create_query_db_pool
from askdb.core.sql_gate import SQLExecutionGate


class QueryDatabase:
    """Query database pool manager"""

    def __init__(self):
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> asyncpg.Pool:
        if self.pool is None:
            self.pool = await create_query_db_pool()
        return self.pool

    async def close(self):
        if self.pool is not None:
            await self.pool.close()
            self.pool = None


# Global instances
query_db = QueryDatabase()
schema_repository = SchemaRepository(settings.worldview_map_path, settings.detailed_schema_path)


def build_orchestrator(pool: asyncpg.Pool) -> Orchestrator:
    """The single place where the orchestrator and its collaborators are assembled."""
    llm_client = RetryingLLMClient(
        LangChainLLMClient(lambda generation: create_chat_model(generation, purpose="orchestrator")),
        attempts=settings.llm_retry_attempts,
        initial_delay_seconds=settings.llm_retry_initial_delay_seconds,
    )
    return Orchestrator(
        llm_client=llm_client,
        schema_repository=schema_repository,
        sql_gate=SQLExecutionGate(SQLExecutor(pool)),
        config=OrchestratorConfig.from_settings(),
    )


def get_orchestrator(request: Request) -> Orchestrator:
    """FastAPI dependency for the orchestrator built at startup"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator is not initialized")
    return orchestrator
