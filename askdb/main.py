"""FastAPI main application"""
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from askdb.config import settings
from askdb.deps import build_orchestrator, query_db, schema_repository
from askdb.routers import ask
from askdb.sanity_checks.runner import run_startup_sanity_checks_or_raise
from askdb.smart_logger import SmartLogger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Missing or malformed assets abort startup (SchemaAssetError).
    schema_repository.load()

    pool = await query_db.connect()
    try:
        if settings.startup_sanity_checks_enabled:
            await run_startup_sanity_checks_or_raise(pool)
        app.state.orchestrator = build_orchestrator(pool)
    except Exception:
        await query_db.close()
        raise

    SmartLogger.log(
        "INFO",
        "main.lifespan.started",
        category="main.lifespan",
        params={
            "llm": f"{settings.llm_provider}:{settings.llm_model}",
            "query_db": f"{settings.query_db_host}:{settings.query_db_port}/{settings.query_db_name}",
            "tables": len(schema_repository.table_names()),
            "max_turns": settings.agent_max_turns,
        },
        max_inline_chars=0,
    )

    yield

    app.state.orchestrator = None
    await query_db.close()
    SmartLogger.log("INFO", "main.lifespan.stopped", category="main.lifespan")


app = FastAPI(
    title="AskDB Agent API",
    description="""
    Natural-language database questions answered by a bounded tool-calling agent.

    The model starts from a compact worldview map, asks for detailed table
    schemas only when it needs them, runs read-only SQL, and returns a strict
    JSON answer, a clarifying question, or a typed failure.

    ## Workflow
    1. Ask a question: `POST /text2sql/ask`
    2. Continue the conversation by sending back the returned `history`
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ask.router, prefix="/text2sql")


@app.get("/")
async def root():
    return {
        "message": "AskDB Agent API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    try:
        if not schema_repository.is_loaded:
            raise RuntimeError("Schema assets are not loaded")
        if query_db.pool is None:
            raise RuntimeError("Query database pool is not connected")
        async with query_db.pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {
            "status": "healthy",
            "query_db": "connected",
            "config": {
                "llm_provider": settings.llm_provider,
                "llm_model": settings.llm_model,
                "max_turns": settings.agent_max_turns,
                "tables": len(schema_repository.table_names()),
            },
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "askdb.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
