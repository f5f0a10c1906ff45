# python -m pytest askdb/tests/routers/test_ask_router.py -v

from typing import Any, List

import pytest
from fastapi.testclient import TestClient

from askdb.agent.llm_client import LLMTransportError
from askdb.agent.results import (
    ClarificationNeeded,
    FinalAnswer,
    MaxTurnsExceeded,
    ProtocolError,
    RunStats,
)
from askdb.agent.turns import ConversationTurn, ToolResult
from askdb.deps import get_orchestrator
from askdb.main import app


class StubOrchestrator:
    def __init__(self, result: Any = None, error: Exception = None):
        self.result = result
        self.error = error
        self.calls: List[Any] = []

    async def run(self, question, prior_history=()):
        self.calls.append((question, list(prior_history)))
        if self.error is not None:
            raise self.error
        return self.result


HISTORY = (
    ConversationTurn(role="user", content="Question: top customers"),
    ConversationTurn.tool_result("execute_sql", {"sql": "SELECT 1"}, {"success": True}),
    ConversationTurn(role="model", content='{"status": "final_response"}'),
)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(orchestrator: StubOrchestrator) -> StubOrchestrator:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return orchestrator


def test_final_answer(client):
    _use(
        StubOrchestrator(
            FinalAnswer(
                analysis={"status": "final_response", "analysis": "Acme leads"},
                history=HISTORY,
                stats=RunStats(llm_calls=2, tool_dispatches=1, rejected_tool_calls=0),
            )
        )
    )

    response = client.post("/text2sql/ask", json={"question": "Top customers?"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "final_answer"
    assert body["analysis"]["analysis"] == "Acme leads"
    assert body["stats"] == {"llm_calls": 2, "tool_dispatches": 1, "rejected_tool_calls": 0}
    assert body["history"][1] == {
        "role": "user",
        "content": {"tool": "execute_sql", "arguments": {"sql": "SELECT 1"}, "payload": '{"success": true}'},
    }
    assert body["history"][2] == {"role": "model", "content": '{"status": "final_response"}'}


def test_clarification_needed(client):
    _use(StubOrchestrator(ClarificationNeeded(question="Which year?", history=HISTORY[:1])))

    body = client.post("/text2sql/ask", json={"question": "Sales?"}).json()

    assert body["status"] == "clarification_needed"
    assert body["question"] == "Which year?"
    assert body["analysis"] is None


def test_max_turns_exceeded(client):
    _use(StubOrchestrator(MaxTurnsExceeded(last_text="still working", history=HISTORY[:1])))

    body = client.post("/text2sql/ask", json={"question": "Sales?"}).json()

    assert body["status"] == "max_turns_exceeded"
    assert body["last_text"] == "still working"


def test_protocol_error(client):
    _use(StubOrchestrator(ProtocolError(reason="non-JSON final response", raw="Acme.", history=HISTORY[:1])))

    body = client.post("/text2sql/ask", json={"question": "Sales?"}).json()

    assert body["status"] == "protocol_error"
    assert body["reason"] == "non-JSON final response"
    assert body["raw"] == "Acme."


def test_prior_history_is_passed_to_the_orchestrator(client):
    stub = _use(StubOrchestrator(ClarificationNeeded(question="Which year?")))

    response = client.post(
        "/text2sql/ask",
        json={
            "question": "  Last year  ",
            "prior_history": [
                {"role": "user", "content": "Sales?"},
                {
                    "role": "user",
                    "content": {"tool": "get_detailed_schema", "arguments": {"tables": ["orders"]}, "payload": "[]"},
                },
                {"role": "model", "content": "Which year?"},
            ],
        },
    )

    assert response.status_code == 200
    question, prior = stub.calls[0]
    assert question == "Last year"
    assert prior[0] == ConversationTurn(role="user", content="Sales?")
    assert prior[1].content == ToolResult(
        tool="get_detailed_schema", arguments={"tables": ["orders"]}, payload="[]"
    )
    assert prior[2] == ConversationTurn(role="model", content="Which year?")


def test_transport_error_maps_to_bad_gateway(client):
    _use(StubOrchestrator(error=LLMTransportError("quota exhausted", status_code=429)))

    response = client.post("/text2sql/ask", json={"question": "Sales?"})

    assert response.status_code == 502
    assert response.json()["detail"]["status_code"] == 429


def test_blank_question_is_rejected(client):
    stub = _use(StubOrchestrator(ClarificationNeeded(question="?")))

    response = client.post("/text2sql/ask", json={"question": "   "})

    assert response.status_code == 422
    assert stub.calls == []


def test_unknown_role_is_rejected(client):
    _use(StubOrchestrator(ClarificationNeeded(question="?")))

    response = client.post(
        "/text2sql/ask",
        json={"question": "Sales?", "prior_history": [{"role": "tool", "content": "x"}]},
    )

    assert response.status_code == 422


def test_orchestrator_not_initialized(client):
    response = client.post("/text2sql/ask", json={"question": "Sales?"})

    assert response.status_code == 503
