"""
Startup sanity checks (fail-fast).

Lightweight runtime checks that validate the query database and the LLM
provider during FastAPI startup.
"""
