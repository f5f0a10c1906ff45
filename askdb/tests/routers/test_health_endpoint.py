# python -m pytest askdb/tests/routers/test_health_endpoint.py -v

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from askdb import main
from askdb.core.schema_repository import SchemaRepository
from askdb.deps import query_db


DATA_DIR = Path(__file__).resolve().parents[3] / "data"


class _AsyncContext:
    def __init__(self, value):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeConnection:
    async def fetchval(self, sql):
        return 1


class FakePool:
    def acquire(self):
        return _AsyncContext(FakeConnection())


@pytest.fixture
def client():
    return TestClient(main.app)


def test_health_reports_unloaded_schema(client, monkeypatch):
    monkeypatch.setattr(
        main, "schema_repository", SchemaRepository(DATA_DIR / "missing.json", DATA_DIR / "missing.json")
    )
    monkeypatch.setattr(query_db, "pool", FakePool())

    body = client.get("/health").json()

    assert body["status"] == "unhealthy"
    assert body["error"] == "Schema assets are not loaded"


def test_health_reports_loaded_schema(client, monkeypatch):
    repo = SchemaRepository(DATA_DIR / "worldview_map.json", DATA_DIR / "detailed_schema.json")
    repo.load()
    monkeypatch.setattr(main, "schema_repository", repo)
    monkeypatch.setattr(query_db, "pool", FakePool())

    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["config"]["tables"] == len(repo.table_names())
