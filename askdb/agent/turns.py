from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

TurnRole = Literal["user", "model", "system"]


@dataclass(frozen=True)
class ToolResult:
    """Structured content of a turn that reports a dispatched tool call."""

    tool: str
    arguments: Mapping[str, Any]
    payload: str

    def to_dict(self) -> Dict[str, Any]:
        return {"tool": self.tool, "arguments": dict(self.arguments), "payload": self.payload}


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    content: Union[str, ToolResult]

    @property
    def text(self) -> str:
        if isinstance(self.content, ToolResult):
            return self.content.payload
        return self.content

    @classmethod
    def tool_result(cls, tool: str, arguments: Mapping[str, Any], result: Any) -> "ConversationTurn":
        payload = json.dumps(result, ensure_ascii=False, default=str)
        return cls(role="user", content=ToolResult(tool=tool, arguments=dict(arguments), payload=payload))


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call requested by the model; unvalidated until checked by the registry."""

    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponsePart:
    text: Optional[str] = None
    function_call: Optional[ToolInvocation] = None


@dataclass(frozen=True)
class LLMResponse:
    parts: Tuple[ResponsePart, ...] = ()

    @property
    def first_tool_call(self) -> Optional[ToolInvocation]:
        for part in self.parts:
            if part.function_call is not None:
                return part.function_call
        return None

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.text)
