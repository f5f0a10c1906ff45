"""
Core LLM factory.

All chat-model construction goes through create_chat_model(), driven by:
- settings.llm_provider ("google" or "openai"; alias "gemini" -> "google")
- settings.llm_model
- a GenerationConfig carrying the sampling parameters of the agent protocol
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Union

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from askdb.config import settings
from askdb.smart_logger import SmartLogger

LLMProvider = Literal["google", "openai"]
ChatModel = Union[ChatGoogleGenerativeAI, ChatOpenAI]


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.2
    max_output_tokens: int = 2048
    top_p: float = 0.95
    top_k: int = 40
    force_json_output: bool = True

    @classmethod
    def from_settings(cls) -> "GenerationConfig":
        return cls(
            temperature=settings.llm_temperature,
            max_output_tokens=settings.llm_max_output_tokens,
            top_p=settings.llm_top_p,
            top_k=settings.llm_top_k,
            force_json_output=settings.llm_force_json_output,
        )


def _normalize_provider(value: str) -> LLMProvider:
    v = (value or "").strip().lower()
    if v in {"google", "gemini", "genai"}:
        return "google"
    if v == "openai":
        return "openai"
    raise ValueError(
        "Unsupported llm_provider={!r}. Allowed: 'google' (alias: 'gemini'), 'openai'.".format(value)
    )


def _filter_init_kwargs(cls: type, kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """
    Pass only the kwargs the installed LangChain model class accepts.
    """
    model_fields = getattr(cls, "model_fields", None)
    if isinstance(model_fields, dict) and model_fields:
        allowed = set(model_fields.keys())
        return {k: v for k, v in kwargs.items() if k in allowed and v is not None}

    sig = inspect.signature(cls.__init__)
    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return {k: v for k, v in kwargs.items() if v is not None}
    allowed = set(sig.parameters.keys())
    return {k: v for k, v in kwargs.items() if k in allowed and v is not None}


def _require_api_key(*, provider: LLMProvider) -> str:
    if provider == "openai":
        key = (settings.openai_api_key or "").strip()
        if not key or key.lower() == "dummy":
            raise ValueError("OPENAI_API_KEY is missing (llm_provider=openai)")
        return key
    key = (settings.google_api_key or "").strip()
    if not key or key.lower() == "dummy":
        raise ValueError("GOOGLE_API_KEY is missing (llm_provider=google)")
    return key


def create_chat_model(
    generation: GenerationConfig,
    *,
    purpose: str,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> ChatModel:
    """
    Build a LangChain chat model for one generation config.

    Provider-level retries are disabled (max_retries=0): retry/backoff is
    owned by RetryingLLMClient so that one protocol turn maps to one
    logical call.
    """
    prov = _normalize_provider(provider or settings.llm_provider)
    mdl = (model or settings.llm_model or "").strip()
    if not mdl:
        raise ValueError("llm_model is empty")
    api_key = _require_api_key(provider=prov)

    if prov == "openai":
        raw_kwargs: Dict[str, Any] = {
            # ChatOpenAI field names differ from its init aliases across versions;
            # pass both and let _filter_init_kwargs keep the accepted ones.
            "model": mdl,
            "model_name": mdl,
            "api_key": api_key,
            "openai_api_key": api_key,
            "temperature": float(generation.temperature),
            "top_p": float(generation.top_p),
            "max_tokens": int(generation.max_output_tokens),
            "max_retries": 0,
        }
        if generation.force_json_output:
            raw_kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        llm: ChatModel = ChatOpenAI(**_filter_init_kwargs(ChatOpenAI, raw_kwargs))
    else:
        raw_kwargs = {
            "model": mdl,
            "google_api_key": api_key,
            "temperature": float(generation.temperature),
            "top_p": float(generation.top_p),
            "top_k": int(generation.top_k),
            "max_output_tokens": int(generation.max_output_tokens),
            "max_retries": 0,
            "response_mime_type": "application/json" if generation.force_json_output else None,
        }
        llm = ChatGoogleGenerativeAI(**_filter_init_kwargs(ChatGoogleGenerativeAI, raw_kwargs))

    SmartLogger.log(
        "INFO",
        "core.llm.created",
        category="agent.llm",
        params={"provider": prov, "model": mdl, "purpose": purpose},
    )
    return llm
