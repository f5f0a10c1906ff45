from __future__ import annotations

import asyncio
import traceback

from langchain_core.messages import HumanMessage, SystemMessage

from askdb.config import settings
from askdb.core.llm_factory import GenerationConfig, create_chat_model
from askdb.sanity_checks.result import SanityCheckResult


async def check_llm(*, timeout_seconds: float = 20.0) -> SanityCheckResult:
    """
    LLM connectivity check through the same factory the orchestrator uses,
    with JSON mode off and a small output budget.
    """
    name = "llm"

    async def _run() -> str:
        llm = create_chat_model(
            GenerationConfig(temperature=0, max_output_tokens=128, force_json_output=False),
            purpose="startup_sanity_check",
        )
        resp = await llm.ainvoke(
            [
                SystemMessage(content="Return exactly: OK"),
                HumanMessage(content="Say OK"),
            ]
        )
        return str(getattr(resp, "content", "") or "").strip()

    try:
        text = await asyncio.wait_for(_run(), timeout=timeout_seconds)
    except Exception as exc:
        return SanityCheckResult(
            name=name,
            ok=False,
            detail="LLM sanity check failed",
            data={"llm_provider": settings.llm_provider, "llm_model": settings.llm_model},
            error=repr(exc) + "\n" + traceback.format_exc(),
        )

    return SanityCheckResult(
        name=name,
        ok=True,
        detail="OK",
        data={
            "llm_provider": settings.llm_provider,
            "llm_model": settings.llm_model,
            "chat_response": text[:50],
        },
    )
