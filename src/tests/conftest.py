import asyncio
import json

import pytest

from studyloop.errors import ExtractionFailed
from studyloop.extraction import ExtractedText
from studyloop.llm import LLMReply
from studyloop.persistence import MemoryStore
from studyloop.windowing import format_page_tagged_text


def make_pages(count: int, words: int = 30) -> list[str]:
    return [" ".join(f"p{page}w{idx}" for idx in range(words)) for page in range(1, count + 1)]


def mcq_payload(n: int) -> list[dict]:
    return [
        {
            "questionText": f"Question {i}?",
            "topic": "Kinematics" if i % 2 else "Forces",
            "options": [
                {"text": f"right {i}", "isCorrect": True},
                {"text": f"wrong {i}", "isCorrect": False},
                {"text": f"other {i}", "isCorrect": False},
            ],
            "explanation": "Because.",
        }
        for i in range(n)
    ]


class FakeExtractor:
    """Returns preset pages; ``gate`` holds extraction open until set."""

    def __init__(self, pages=None, fail: bool = False, gate: asyncio.Event | None = None):
        self.pages = pages if pages is not None else make_pages(3)
        self.fail = fail
        self.gate = gate
        self.calls = 0

    async def extract(self, raw_handle, on_progress):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ExtractionFailed("corrupt file")
        for idx in range(len(self.pages)):
            on_progress((idx + 1) / len(self.pages))
        return ExtractedText(text=format_page_tagged_text(self.pages), page_count=len(self.pages))


class FakeLLM:
    def __init__(self, replies=None, chat_reply: str = "Inertia is resistance to change (p. 1).", error=None):
        self.replies = [r if isinstance(r, str) else json.dumps(r) for r in (replies or [])]
        self.chat_reply = chat_reply
        self.error = error
        self.calls: list[tuple[str, dict | None, str | None]] = []
        self.chat_calls: list[tuple[list, str]] = []
        self.chat_gate: asyncio.Event | None = None

    async def generate(self, prompt, schema=None, system=None):
        self.calls.append((prompt, schema, system))
        if self.error is not None:
            raise self.error
        return LLMReply(text=self.replies.pop(0))

    async def chat(self, history, system):
        self.chat_calls.append((list(history), system))
        if self.chat_gate is not None:
            await self.chat_gate.wait()
        if self.error is not None:
            raise self.error
        return self.chat_reply


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
