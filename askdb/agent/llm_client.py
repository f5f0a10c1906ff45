"""
Transport layer between the orchestrator and the LLM inference service.

LangChainLLMClient speaks to a LangChain chat model; RetryingLLMClient wraps
any client with exponential backoff. The orchestrator only sees the
LLMClient protocol, so a retried-but-successful call is still one turn.
"""
from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from askdb.agent.tools import ToolDeclaration
from askdb.agent.turns import ConversationTurn, LLMResponse, ResponsePart, ToolInvocation, ToolResult
from askdb.core.llm_factory import GenerationConfig
from askdb.smart_logger import SmartLogger


class LLMTransportError(Exception):
    """The LLM service could not be reached or answered with a non-success status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        # No status means the request never got an HTTP answer (connection error).
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


@dataclass(frozen=True)
class LLMRequest:
    system_instruction: str
    history: Tuple[ConversationTurn, ...]
    tools: Tuple[ToolDeclaration, ...]
    generation: GenerationConfig


class LLMClient(Protocol):
    async def generate(self, request: LLMRequest) -> LLMResponse: ...


_STATUS_IN_MESSAGE = re.compile(r"\b(4\d\d|5\d\d)\b")


def _status_code_of(exc: BaseException) -> Optional[int]:
    current: Optional[BaseException] = exc
    while current is not None:
        for attr in ("status_code", "code"):
            value = getattr(current, attr, None)
            if isinstance(value, int):
                return value
        response = getattr(current, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
        current = current.__cause__
    match = _STATUS_IN_MESSAGE.search(str(exc))
    return int(match.group(1)) if match else None


def _render_tool_result(result: ToolResult) -> str:
    arguments = json.dumps(dict(result.arguments), ensure_ascii=False, default=str)
    return f"Result of tool call {result.tool}({arguments}):\n{result.payload}"


def to_langchain_messages(
    system_instruction: str,
    history: Tuple[ConversationTurn, ...],
) -> List[BaseMessage]:
    messages: List[BaseMessage] = [SystemMessage(content=system_instruction)]
    for turn in history:
        if isinstance(turn.content, ToolResult):
            messages.append(HumanMessage(content=_render_tool_result(turn.content)))
        elif turn.role == "model":
            messages.append(AIMessage(content=turn.content))
        elif turn.role == "system":
            # Providers accept a single leading system message only.
            messages.append(HumanMessage(content=f"[system] {turn.content}"))
        else:
            messages.append(HumanMessage(content=turn.content))
    return messages


def parse_ai_message(message: Any) -> LLMResponse:
    parts: List[ResponsePart] = []

    content = getattr(message, "content", "")
    if isinstance(content, str):
        if content:
            parts.append(ResponsePart(text=content))
    elif isinstance(content, list):
        for item in content:
            if isinstance(item, str):
                if item:
                    parts.append(ResponsePart(text=item))
            elif isinstance(item, dict) and item.get("type", "text") == "text" and item.get("text"):
                parts.append(ResponsePart(text=str(item["text"])))

    for call in getattr(message, "tool_calls", None) or []:
        parts.append(
            ResponsePart(
                function_call=ToolInvocation(name=call.get("name") or "", arguments=call.get("args") or {})
            )
        )
    # Calls whose arguments the provider could not decode; validation rejects them later.
    for call in getattr(message, "invalid_tool_calls", None) or []:
        parts.append(
            ResponsePart(
                function_call=ToolInvocation(name=call.get("name") or "", arguments={})
            )
        )
    return LLMResponse(parts=tuple(parts))


class LangChainLLMClient:
    def __init__(self, model_factory: Callable[[GenerationConfig], Any]):
        self._model_factory = model_factory
        self._models: Dict[GenerationConfig, Any] = {}

    def _model_for(self, generation: GenerationConfig) -> Any:
        model = self._models.get(generation)
        if model is None:
            model = self._model_factory(generation)
            self._models[generation] = model
        return model

    async def generate(self, request: LLMRequest) -> LLMResponse:
        model = self._model_for(request.generation)
        bound = model.bind_tools([tool.to_function_declaration() for tool in request.tools])
        messages = to_langchain_messages(request.system_instruction, request.history)
        try:
            reply = await bound.ainvoke(messages)
        except Exception as exc:
            status_code = _status_code_of(exc)
            raise LLMTransportError(
                f"LLM request failed (status={status_code}): {exc}", status_code=status_code
            ) from exc
        return parse_ai_message(reply)


class RetryingLLMClient:
    """Retries retryable transport errors with exponential backoff."""

    def __init__(
        self,
        inner: LLMClient,
        *,
        attempts: int = 3,
        initial_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.inner = inner
        self.attempts = max(1, int(attempts))
        self.initial_delay_seconds = float(initial_delay_seconds)
        self._sleep = sleep

    async def generate(self, request: LLMRequest) -> LLMResponse:
        delay = self.initial_delay_seconds
        for attempt in range(1, self.attempts):
            try:
                return await self.inner.generate(request)
            except LLMTransportError as exc:
                if not exc.retryable:
                    raise
                SmartLogger.log(
                    "WARNING",
                    "agent.llm.retry",
                    category="agent.llm",
                    params={
                        "attempt": attempt,
                        "status_code": exc.status_code,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                    max_inline_chars=0,
                )
                await self._sleep(delay)
                delay *= 2
        return await self.inner.generate(request)
