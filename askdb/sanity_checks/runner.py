from __future__ import annotations

from typing import List

import asyncpg

from askdb.sanity_checks.checks.check_db import check_query_db
from askdb.sanity_checks.checks.check_llm import check_llm
from askdb.sanity_checks.result import SanityCheckResult
from askdb.smart_logger import SmartLogger


async def run_startup_sanity_checks_or_raise(pool: asyncpg.Pool) -> List[SanityCheckResult]:
    """
    Run startup sanity checks.

    Raises:
        RuntimeError: if any check fails.
    """
    results = [
        await check_query_db(pool),
        await check_llm(),
    ]

    for r in results:
        SmartLogger.log(
            "INFO" if r.ok else "ERROR",
            f"startup.sanity.{r.name}." + ("ok" if r.ok else "fail"),
            category="startup.sanity",
            params=r.to_log_params(),
            max_inline_chars=0,
        )

    failed = [r.name for r in results if not r.ok]
    if failed:
        SmartLogger.log(
            "CRITICAL",
            "startup.sanity.failed",
            category="startup.sanity",
            params={"failed": failed},
            max_inline_chars=0,
        )
        raise RuntimeError(f"Startup sanity checks failed: {', '.join(failed)}")

    SmartLogger.log("INFO", "startup.sanity.passed", category="startup.sanity")
    return results
