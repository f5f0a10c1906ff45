"""POST /ask: natural-language question -> orchestration result"""
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from askdb.agent.llm_client import LLMTransportError
from askdb.agent.orchestrator import Orchestrator
from askdb.agent.results import (
    ClarificationNeeded,
    FinalAnswer,
    MaxTurnsExceeded,
    OrchestrationResult,
    ProtocolError,
)
from askdb.agent.turns import ConversationTurn, ToolResult
from askdb.deps import get_orchestrator
from askdb.smart_logger import SmartLogger


router = APIRouter(prefix="/ask", tags=["Agent"])


class ToolResultModel(BaseModel):
    tool: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    payload: str


class ConversationTurnModel(BaseModel):
    role: Literal["user", "model", "system"]
    content: Union[str, ToolResultModel]


class RunStatsModel(BaseModel):
    llm_calls: int
    tool_dispatches: int
    rejected_tool_calls: int


class AskRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question: str = Field(..., min_length=1, description="Natural language question")
    prior_history: List[ConversationTurnModel] = Field(
        default_factory=list, description="History returned by the previous /ask call"
    )


class AskResponse(BaseModel):
    status: Literal["final_answer", "clarification_needed", "max_turns_exceeded", "protocol_error"]
    analysis: Optional[Any] = None
    question: Optional[str] = None
    last_text: Optional[str] = None
    reason: Optional[str] = None
    raw: Optional[str] = None
    history: List[ConversationTurnModel]
    stats: RunStatsModel


def _turn_from_model(model: ConversationTurnModel) -> ConversationTurn:
    if isinstance(model.content, ToolResultModel):
        content: Union[str, ToolResult] = ToolResult(
            tool=model.content.tool,
            arguments=model.content.arguments,
            payload=model.content.payload,
        )
    else:
        content = model.content
    return ConversationTurn(role=model.role, content=content)


def _turn_to_model(turn: ConversationTurn) -> ConversationTurnModel:
    if isinstance(turn.content, ToolResult):
        return ConversationTurnModel(role=turn.role, content=ToolResultModel(**turn.content.to_dict()))
    return ConversationTurnModel(role=turn.role, content=turn.content)


def _result_to_response(result: OrchestrationResult) -> AskResponse:
    fields: Dict[str, Any] = {}
    if isinstance(result, FinalAnswer):
        fields["analysis"] = result.analysis
    elif isinstance(result, ClarificationNeeded):
        fields["question"] = result.question
    elif isinstance(result, MaxTurnsExceeded):
        fields["last_text"] = result.last_text
    elif isinstance(result, ProtocolError):
        fields["reason"] = result.reason
        fields["raw"] = result.raw

    return AskResponse(
        status=result.status,
        history=[_turn_to_model(turn) for turn in result.history],
        stats=RunStatsModel(
            llm_calls=result.stats.llm_calls,
            tool_dispatches=result.stats.tool_dispatches,
            rejected_tool_calls=result.stats.rejected_tool_calls,
        ),
        **fields,
    )


@router.post("", response_model=AskResponse)
async def ask_question(
    request: AskRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Answer a database question with the tool-calling agent.

    A clarification request or a max-turns result is not a final answer; the
    `status` field tells them apart. Send the returned `history` back as
    `prior_history` to continue the conversation.
    """
    prior_history = [_turn_from_model(turn) for turn in request.prior_history]
    try:
        result = await orchestrator.run(request.question, prior_history)
    except LLMTransportError as e:
        SmartLogger.log(
            "ERROR",
            "router.ask.llm_transport_error",
            category="router.ask",
            params={"error": str(e), "status_code": e.status_code},
        )
        raise HTTPException(
            status_code=502,
            detail={"message": f"LLM service error: {str(e)}", "status_code": e.status_code},
        )

    SmartLogger.log(
        "INFO",
        "router.ask.done",
        category="router.ask",
        params={"status": result.status, "llm_calls": result.stats.llm_calls},
    )
    return _result_to_response(result)
