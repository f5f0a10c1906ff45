"""Outcome of one orchestration run. Exactly one variant is returned per question."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Tuple, Union

from askdb.agent.turns import ConversationTurn


@dataclass(frozen=True)
class RunStats:
    llm_calls: int = 0
    tool_dispatches: int = 0
    rejected_tool_calls: int = 0


@dataclass(frozen=True)
class FinalAnswer:
    analysis: Any
    history: Tuple[ConversationTurn, ...] = ()
    stats: RunStats = field(default_factory=RunStats)
    status = "final_answer"


@dataclass(frozen=True)
class ClarificationNeeded:
    question: str
    history: Tuple[ConversationTurn, ...] = ()
    stats: RunStats = field(default_factory=RunStats)
    status = "clarification_needed"


@dataclass(frozen=True)
class MaxTurnsExceeded:
    last_text: str
    history: Tuple[ConversationTurn, ...] = ()
    stats: RunStats = field(default_factory=RunStats)
    status = "max_turns_exceeded"


@dataclass(frozen=True)
class ProtocolError:
    reason: str
    raw: str
    history: Tuple[ConversationTurn, ...] = ()
    stats: RunStats = field(default_factory=RunStats)
    status = "protocol_error"


OrchestrationResult = Union[FinalAnswer, ClarificationNeeded, MaxTurnsExceeded, ProtocolError]
