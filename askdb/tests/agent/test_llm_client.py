# python -m pytest askdb/tests/agent/test_llm_client.py -v

from typing import Any, List

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from askdb.agent.llm_client import (
    LangChainLLMClient,
    LLMRequest,
    LLMTransportError,
    parse_ai_message,
    to_langchain_messages,
)
from askdb.agent.tools import default_registry
from askdb.agent.turns import ConversationTurn
from askdb.core.llm_factory import GenerationConfig


class FakeChatModel:
    """Minimal stand-in for a LangChain chat model."""

    def __init__(self, reply: Any = None, error: Exception = None):
        self.reply = reply
        self.error = error
        self.bound_tools: List[Any] = []
        self.invocations: List[Any] = []

    def bind_tools(self, tools):
        self.bound_tools.append(tools)
        return self

    async def ainvoke(self, messages):
        self.invocations.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


class UpstreamError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def _request(*turns: ConversationTurn, generation: GenerationConfig = None) -> LLMRequest:
    return LLMRequest(
        system_instruction="You are a data analyst.",
        history=tuple(turns) or (ConversationTurn(role="user", content="Question: hi"),),
        tools=default_registry.declarations,
        generation=generation or GenerationConfig(),
    )


def test_parse_text_and_tool_call() -> None:
    message = AIMessage(
        content="Let me look at the schema.",
        tool_calls=[
            {"name": "get_detailed_schema", "args": {"tables": ["orders"], "reason": "x"}, "id": "c1"}
        ],
    )

    response = parse_ai_message(message)

    assert response.text == "Let me look at the schema."
    assert response.first_tool_call.name == "get_detailed_schema"
    assert response.first_tool_call.arguments == {"tables": ["orders"], "reason": "x"}


def test_parse_only_first_tool_call_is_exposed() -> None:
    message = AIMessage(
        content="",
        tool_calls=[
            {"name": "execute_sql", "args": {"sql": "SELECT 1"}, "id": "c1"},
            {"name": "execute_sql", "args": {"sql": "SELECT 2"}, "id": "c2"},
        ],
    )

    response = parse_ai_message(message)

    assert response.first_tool_call.arguments == {"sql": "SELECT 1"}
    assert response.text == ""


def test_parse_concatenates_text_blocks() -> None:
    message = AIMessage(content=[{"type": "text", "text": '{"status": '}, {"type": "text", "text": '"ok"}'}])

    response = parse_ai_message(message)

    assert response.text == '{"status": "ok"}'
    assert response.first_tool_call is None


def test_parse_invalid_tool_call_keeps_name_without_arguments() -> None:
    message = AIMessage(
        content="",
        invalid_tool_calls=[{"name": "execute_sql", "args": "{not json", "id": "c1", "error": "bad json"}],
    )

    response = parse_ai_message(message)

    assert response.first_tool_call.name == "execute_sql"
    assert response.first_tool_call.arguments == {}


def test_history_to_messages() -> None:
    history = (
        ConversationTurn(role="user", content="Question: top customers"),
        ConversationTurn.tool_result("execute_sql", {"sql": "SELECT 1"}, {"success": True}),
        ConversationTurn(role="model", content='{"status": "final_response"}'),
        ConversationTurn(role="system", content="Note"),
    )

    messages = to_langchain_messages("system prompt", history)

    assert [type(m) for m in messages] == [SystemMessage, HumanMessage, HumanMessage, AIMessage, HumanMessage]
    assert messages[0].content == "system prompt"
    assert messages[2].content.startswith('Result of tool call execute_sql({"sql": "SELECT 1"}):')
    assert messages[2].content.endswith('{"success": true}')
    assert messages[4].content == "[system] Note"


@pytest.mark.asyncio
async def test_generate_binds_tools_and_parses_reply() -> None:
    model = FakeChatModel(reply=AIMessage(content='{"status": "final_response"}'))
    client = LangChainLLMClient(lambda generation: model)

    response = await client.generate(_request())

    assert response.text == '{"status": "final_response"}'
    assert [tool["name"] for tool in model.bound_tools[0]] == [
        "get_detailed_schema",
        "execute_sql",
        "ask_clarifying_question",
        "refine_query",
    ]
    assert isinstance(model.invocations[0][0], SystemMessage)


@pytest.mark.asyncio
async def test_model_is_built_once_per_generation_config() -> None:
    built: List[GenerationConfig] = []

    def factory(generation: GenerationConfig) -> FakeChatModel:
        built.append(generation)
        return FakeChatModel(reply=AIMessage(content="{}"))

    client = LangChainLLMClient(factory)
    await client.generate(_request())
    await client.generate(_request())
    await client.generate(_request(generation=GenerationConfig(temperature=0.0)))

    assert len(built) == 2


@pytest.mark.asyncio
async def test_upstream_error_becomes_transport_error() -> None:
    model = FakeChatModel(error=UpstreamError("Service Unavailable", status_code=503))
    client = LangChainLLMClient(lambda generation: model)

    with pytest.raises(LLMTransportError) as excinfo:
        await client.generate(_request())

    assert excinfo.value.status_code == 503
    assert excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, UpstreamError)


@pytest.mark.asyncio
async def test_status_code_is_read_from_message() -> None:
    model = FakeChatModel(error=RuntimeError("400 Bad Request: invalid argument"))
    client = LangChainLLMClient(lambda generation: model)

    with pytest.raises(LLMTransportError) as excinfo:
        await client.generate(_request())

    assert excinfo.value.status_code == 400
    assert not excinfo.value.retryable


def test_retryable_status_codes() -> None:
    assert LLMTransportError("connection reset").retryable
    assert LLMTransportError("rate limited", status_code=429).retryable
    assert LLMTransportError("server error", status_code=500).retryable
    assert not LLMTransportError("forbidden", status_code=403).retryable
