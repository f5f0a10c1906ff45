"""
Tool contracts offered to the model.

The same declarations are sent with every LLM request and used to validate
the calls that come back.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from askdb.agent.turns import ToolInvocation

GET_DETAILED_SCHEMA = "get_detailed_schema"
EXECUTE_SQL = "execute_sql"
ASK_CLARIFYING_QUESTION = "ask_clarifying_question"
REFINE_QUERY = "refine_query"


class ToolArgumentError(Exception):
    """A tool call's arguments do not match its declaration"""


class _ToolArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class GetDetailedSchemaArgs(_ToolArguments):
    tables: List[str] = Field(min_length=1)
    reason: str


class ExecuteSqlArgs(_ToolArguments):
    sql: str = Field(min_length=1)


class AskClarifyingQuestionArgs(_ToolArguments):
    question: str = Field(min_length=1)


class RefineQueryArgs(_ToolArguments):
    new_question: str = Field(min_length=1)


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    argument_schema: Dict[str, Any]
    result_schema: Dict[str, Any]
    arguments_model: Type[_ToolArguments]

    def to_function_declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.argument_schema,
        }


_SCHEMA_ENTRY_RESULT = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "schema": {"type": "string"},
            "table": {"type": "string"},
            "columns": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "type": {"type": "string"},
                        "nullable": {"type": "boolean"},
                        "key_role": {"type": "string", "nullable": True},
                    },
                },
            },
        },
    },
}

_EXECUTION_RESULT = {
    "type": "object",
    "properties": {
        "success": {"type": "boolean"},
        "rows": {"type": "array", "items": {"type": "object"}},
        "row_count": {"type": "integer"},
        "duration_ms": {"type": "number"},
        "truncated": {"type": "boolean"},
        "error": {"type": "string"},
    },
    "required": ["success", "duration_ms"],
}


TOOL_DECLARATIONS: Tuple[ToolDeclaration, ...] = (
    ToolDeclaration(
        name=GET_DETAILED_SCHEMA,
        description=(
            "Use this tool to request the detailed schema (including all columns, types, and keys) "
            "for specific tables when you need more information to construct a query. Only request "
            "details for tables you have identified as relevant from the worldview map."
        ),
        argument_schema={
            "type": "object",
            "properties": {
                "tables": {
                    "type": "array",
                    "description": "An array of table names for which you need the detailed schema.",
                    "items": {"type": "string"},
                },
                "reason": {
                    "type": "string",
                    "description": (
                        "A brief explanation of why you need the details for these tables "
                        "and what you plan to do with them."
                    ),
                },
            },
            "required": ["tables", "reason"],
        },
        result_schema=_SCHEMA_ENTRY_RESULT,
        arguments_model=GetDetailedSchemaArgs,
    ),
    ToolDeclaration(
        name=EXECUTE_SQL,
        description=(
            "Use this tool to execute a SQL query against the database. "
            "This should be one of the last steps."
        ),
        argument_schema={
            "type": "object",
            "properties": {
                "sql": {"type": "string", "description": "The PostgreSQL query to execute."},
            },
            "required": ["sql"],
        },
        result_schema=_EXECUTION_RESULT,
        arguments_model=ExecuteSqlArgs,
    ),
    ToolDeclaration(
        name=ASK_CLARIFYING_QUESTION,
        description=(
            "Use this tool when the user's request is ambiguous or too broad. "
            "Ask a specific question to get the information needed to proceed."
        ),
        argument_schema={
            "type": "object",
            "properties": {
                "question": {
                    "type": "string",
                    "description": "The specific question to ask the user for clarification.",
                },
            },
            "required": ["question"],
        },
        result_schema={"type": "null"},
        arguments_model=AskClarifyingQuestionArgs,
    ),
    ToolDeclaration(
        name=REFINE_QUERY,
        description=(
            "Use this tool when the initial results are incomplete or suggest a better query is "
            "needed. This will restart the planning process with a more specific goal."
        ),
        argument_schema={
            "type": "object",
            "properties": {
                "new_question": {
                    "type": "string",
                    "description": (
                        "A new, more specific question that will be used to restart the analysis loop."
                    ),
                },
            },
            "required": ["new_question"],
        },
        result_schema={
            "type": "object",
            "properties": {
                "status": {"type": "string"},
                "new_question": {"type": "string"},
                "instruction": {"type": "string"},
            },
        },
        arguments_model=RefineQueryArgs,
    ),
)


class ToolRegistry:
    """Read-only lookup over a fixed, ordered set of declarations."""

    def __init__(self, declarations: Tuple[ToolDeclaration, ...] = TOOL_DECLARATIONS):
        self._declarations = tuple(declarations)
        self._by_name = {d.name: d for d in self._declarations}

    @property
    def declarations(self) -> Tuple[ToolDeclaration, ...]:
        return self._declarations

    def by_name(self, name: str) -> Optional[ToolDeclaration]:
        return self._by_name.get(name)

    def validate(self, invocation: ToolInvocation) -> _ToolArguments:
        declaration = self.by_name(invocation.name)
        if declaration is None:
            raise ToolArgumentError(f"Unknown tool: {invocation.name}")
        try:
            return declaration.arguments_model.model_validate(dict(invocation.arguments or {}))
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ToolArgumentError(f"Invalid arguments for {invocation.name}: {details}")


default_registry = ToolRegistry()
