"""LLM client helpers (OpenAI / Ollama chat models) and untrusted-response parsing."""
from __future__ import annotations

import json
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from .config import settings
from .models import ChatMessage, GroundingSource
from .observability import traced_span


@dataclass(slots=True)
class LLMReply:
    text: str
    sources: list[GroundingSource] = field(default_factory=list)


class StructuredLLM(Protocol):
    async def generate(self, prompt: str, schema: dict[str, Any] | None = None, system: str | None = None) -> LLMReply:
        ...

    async def chat(self, history: Sequence[ChatMessage], system: str) -> str:
        ...


@dataclass(frozen=True, slots=True)
class JsonParse:
    ok: bool
    value: Any = None
    error: str | None = None


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.splitlines()
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()
    elif cleaned.endswith("```"):
        cleaned = cleaned[:-3].strip()
    return cleaned


def parse_model_json(text: str) -> JsonParse:
    """Sanitize model output (fence markers, whitespace) then parse it as JSON."""

    cleaned = strip_code_fences(text or "")
    try:
        return JsonParse(ok=True, value=json.loads(cleaned))
    except json.JSONDecodeError as exc:
        return JsonParse(ok=False, error=f"{exc.msg} at line {exc.lineno} column {exc.colno}")


def message_text(message: BaseMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    # LangChain >=0.2 may return a list of parts
    return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in message.content)


def grounding_sources(message: BaseMessage) -> list[GroundingSource]:
    metadata = getattr(message, "response_metadata", None) or {}
    grounding = metadata.get("grounding_metadata") or {}
    sources: list[GroundingSource] = []
    for chunk in grounding.get("grounding_chunks") or []:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        web = web or {}
        sources.append(GroundingSource(uri=web.get("uri") or "#", title=web.get("title") or "Unknown Source"))
    return sources


class LLMService:
    """Wraps the chat model used for quiz generation, grading, chat and recommendations."""

    def __init__(self) -> None:
        if settings.model.llm_provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY is not set but llm_provider=openai")
            openai_kwargs = {
                "model": settings.model.llm_model,
                "temperature": settings.model.temperature,
                "max_retries": settings.model.max_retries,
                "max_tokens": settings.model.max_output_tokens,
                "api_key": api_key,
            }
            if settings.model.openai_api_base:
                openai_kwargs["base_url"] = settings.model.openai_api_base

            self.llm = ChatOpenAI(**openai_kwargs)
        else:
            self.llm = ChatOllama(
                model=settings.model.llm_model,
                base_url=settings.model.llm_base_url,
                temperature=settings.model.temperature,
                num_predict=settings.model.max_output_tokens,
            )
        self.structured_prompt = ChatPromptTemplate.from_messages(
            [
                ("system", "{system}"),
                ("human", "{prompt}"),
            ]
        )

    async def generate(self, prompt: str, schema: dict[str, Any] | None = None, system: str | None = None) -> LLMReply:
        instructions = system or "You are a helpful academic assistant. Output only what is asked."
        runnable = self.llm
        if schema is not None:
            instructions += (
                "\n\nRespond with JSON only, no prose and no markdown. "
                f"The response must conform to this JSON schema:\n{json.dumps(schema)}"
            )
            if isinstance(self.llm, ChatOllama):
                runnable = self.llm.bind(format=schema)
        messages = self.structured_prompt.format_messages(system=instructions, prompt=prompt)
        with traced_span("llm.generate", operation="generate"):
            response = await runnable.ainvoke(messages)
        return LLMReply(text=message_text(response), sources=grounding_sources(response))

    async def chat(self, history: Sequence[ChatMessage], system: str) -> str:
        messages: list[BaseMessage] = [SystemMessage(content=system)]
        for message in history:
            if message.role == "user":
                messages.append(HumanMessage(content=message.text))
            else:
                messages.append(AIMessage(content=message.text))
        with traced_span("llm.chat", operation="chat"):
            response = await self.llm.ainvoke(messages)
        return message_text(response)


@lru_cache
def get_llm_service() -> LLMService:
    return LLMService()
