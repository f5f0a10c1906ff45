"""
Bounded tool-calling loop between the controller and the LLM.

One run answers one question:

    seed history (worldview + question)
    repeat at most max_turns times:
        send system instruction + history + tool declarations
        tool call    -> validate, dispatch, append one result turn, continue
        clarifying   -> stop with ClarificationNeeded
        plain text   -> stop with FinalAnswer (strict JSON) or ProtocolError
    out of turns     -> MaxTurnsExceeded

Only LLMTransportError escapes run(); every other anomaly is returned as a
result variant. History is append-only and built fresh for every run.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from askdb.agent.llm_client import LLMClient, LLMRequest
from askdb.agent.prompts import get_prompt_text
from askdb.agent.results import (
    ClarificationNeeded,
    FinalAnswer,
    MaxTurnsExceeded,
    OrchestrationResult,
    ProtocolError,
    RunStats,
)
from askdb.agent.tools import (
    ASK_CLARIFYING_QUESTION,
    EXECUTE_SQL,
    GET_DETAILED_SCHEMA,
    REFINE_QUERY,
    ToolArgumentError,
    ToolRegistry,
    default_registry,
)
from askdb.agent.turns import ConversationTurn
from askdb.config import settings
from askdb.core.llm_factory import GenerationConfig
from askdb.core.schema_repository import SchemaRepository
from askdb.core.sql_gate import SQLExecutionGate
from askdb.smart_logger import SmartLogger

NON_JSON_FINAL_RESPONSE = "non-JSON final response"

REFINE_INSTRUCTION = (
    "Restart planning for the new question. Schema details already fetched in this "
    "conversation remain valid."
)


@dataclass(frozen=True)
class OrchestratorConfig:
    max_turns: int = 6
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    tool_result_row_limit: Optional[int] = 50
    system_instruction: str = field(
        default_factory=lambda: get_prompt_text("system_instruction.txt")
    )
    first_turn_instruction: str = field(
        default_factory=lambda: get_prompt_text("first_turn_instruction.txt").strip()
    )
    follow_up_instruction: str = field(
        default_factory=lambda: get_prompt_text("follow_up_instruction.txt").strip()
    )

    def __post_init__(self) -> None:
        if self.max_turns < 1:
            raise ValueError("max_turns must be at least 1")

    @classmethod
    def from_settings(cls) -> "OrchestratorConfig":
        return cls(
            max_turns=settings.agent_max_turns,
            generation=GenerationConfig.from_settings(),
            tool_result_row_limit=settings.tool_result_row_limit,
        )


@dataclass
class _RunCounters:
    llm_calls: int = 0
    tool_dispatches: int = 0
    rejected_tool_calls: int = 0

    def freeze(self) -> RunStats:
        return RunStats(
            llm_calls=self.llm_calls,
            tool_dispatches=self.tool_dispatches,
            rejected_tool_calls=self.rejected_tool_calls,
        )


class Orchestrator:
    def __init__(
        self,
        llm_client: LLMClient,
        schema_repository: SchemaRepository,
        sql_gate: SQLExecutionGate,
        config: Optional[OrchestratorConfig] = None,
        registry: ToolRegistry = default_registry,
    ):
        self.llm_client = llm_client
        self.schema_repository = schema_repository
        self.sql_gate = sql_gate
        self.config = config or OrchestratorConfig()
        self.registry = registry

    def _seed_turn(self, question: str, *, is_first: bool) -> ConversationTurn:
        worldview = json.dumps(self.schema_repository.get_worldview(), ensure_ascii=False)
        instruction = (
            self.config.first_turn_instruction if is_first else self.config.follow_up_instruction
        )
        return ConversationTurn(
            role="user",
            content=f"Worldview Map: {worldview}\n\n{instruction}\n\nQuestion: {question}",
        )

    def _build_request(self, history: List[ConversationTurn]) -> LLMRequest:
        return LLMRequest(
            system_instruction=self.config.system_instruction,
            history=tuple(history),
            tools=self.registry.declarations,
            generation=self.config.generation,
        )

    async def run(
        self,
        question: str,
        prior_history: Sequence[ConversationTurn] = (),
    ) -> OrchestrationResult:
        if not question or not question.strip():
            raise ValueError("question must be a non-empty string")

        history: List[ConversationTurn] = list(prior_history)
        history.append(self._seed_turn(question, is_first=not history))
        counters = _RunCounters()
        last_text = ""

        while counters.llm_calls < self.config.max_turns:
            response = await self.llm_client.generate(self._build_request(history))
            counters.llm_calls += 1
            last_text = response.text

            invocation = response.first_tool_call
            if invocation is None:
                return self._finish_with_text(last_text, history, counters)

            SmartLogger.log(
                "INFO",
                "agent.orchestrator.tool_call",
                category="agent.orchestrator",
                params={
                    "turn": counters.llm_calls,
                    "tool": invocation.name,
                    "arguments": dict(invocation.arguments),
                },
                max_inline_chars=500,
            )

            try:
                arguments = self.registry.validate(invocation)
            except ToolArgumentError as exc:
                counters.rejected_tool_calls += 1
                history.append(
                    ConversationTurn.tool_result(invocation.name, invocation.arguments, {"error": str(exc)})
                )
                continue

            if invocation.name == ASK_CLARIFYING_QUESTION:
                history.append(ConversationTurn(role="model", content=arguments.question))
                return ClarificationNeeded(
                    question=arguments.question,
                    history=tuple(history),
                    stats=counters.freeze(),
                )

            result = await self._dispatch(invocation.name, arguments)
            counters.tool_dispatches += 1
            history.append(
                ConversationTurn.tool_result(invocation.name, arguments.model_dump(), result)
            )

        SmartLogger.log(
            "WARNING",
            "agent.orchestrator.max_turns_exceeded",
            category="agent.orchestrator",
            params={"max_turns": self.config.max_turns, "tool_dispatches": counters.tool_dispatches},
        )
        # Pure tool-call turns carry no text; report the latest turn instead.
        last_text = last_text or history[-1].text
        return MaxTurnsExceeded(last_text=last_text, history=tuple(history), stats=counters.freeze())

    def _finish_with_text(
        self,
        text: str,
        history: List[ConversationTurn],
        counters: _RunCounters,
    ) -> OrchestrationResult:
        try:
            analysis = json.loads(text)
        except json.JSONDecodeError:
            SmartLogger.log(
                "WARNING",
                "agent.orchestrator.protocol_error",
                category="agent.orchestrator",
                params={"reason": NON_JSON_FINAL_RESPONSE, "raw": text},
                max_inline_chars=0,
            )
            return ProtocolError(
                reason=NON_JSON_FINAL_RESPONSE,
                raw=text,
                history=tuple(history),
                stats=counters.freeze(),
            )

        history.append(ConversationTurn(role="model", content=text))
        SmartLogger.log(
            "INFO",
            "agent.orchestrator.final_answer",
            category="agent.orchestrator",
            params={"llm_calls": counters.llm_calls, "tool_dispatches": counters.tool_dispatches},
        )
        return FinalAnswer(analysis=analysis, history=tuple(history), stats=counters.freeze())

    async def _dispatch(self, tool_name: str, arguments: Any) -> Any:
        if tool_name == GET_DETAILED_SCHEMA:
            entries = self.schema_repository.get_detailed_schema(arguments.tables)
            return [entry.to_dict() for entry in entries]

        if tool_name == EXECUTE_SQL:
            result = await self.sql_gate.execute_query(arguments.sql)
            return result.to_dict(row_limit=self.config.tool_result_row_limit)

        if tool_name == REFINE_QUERY:
            refined: Dict[str, Any] = {
                "status": "refined",
                "new_question": arguments.new_question,
                "instruction": REFINE_INSTRUCTION,
            }
            return refined

        return {"error": f"No handler for tool: {tool_name}"}
