"""Free-form question answering over the active document, one transcript per document."""
from __future__ import annotations

import logging

from .config import settings
from .errors import ChatBusy, NoActiveDocument
from .llm import StructuredLLM
from .models import ChatMessage
from .persistence import ChatTranscriptStore
from .registry import DocumentRegistry

logger = logging.getLogger(__name__)

APP_NAME = "StudyLoop"
ERROR_REPLY = "Sorry, I encountered an error. Please try again."

SYSTEM_PROMPT = """You are an expert teaching assistant for school students. Your name is {app_name}.
Answer the user's questions based on the provided textbook context. Be encouraging and clear.
When you use information from the text, you MUST cite the page number and provide a short, direct quote.
Format citations like this: (p. 23, "...quote...").
If the answer is not in the provided context, state that clearly and do not make up information.

Textbook Context:
\"\"\"
{context}
\"\"\""""


class ChatService:
    def __init__(
        self,
        registry: DocumentRegistry,
        transcripts: ChatTranscriptStore,
        llm: StructuredLLM,
        context_chars: int | None = None,
    ) -> None:
        self.registry = registry
        self.transcripts = transcripts
        self.llm = llm
        self.context_chars = settings.quiz.chat_context_chars if context_chars is None else context_chars
        self._pending: set[str] = set()

    def _identity(self, identity: str | None) -> str:
        identity = identity or self.registry.active_identity
        if identity is None or identity not in self.registry:
            raise NoActiveDocument()
        return identity

    def history(self, identity: str | None = None) -> list[ChatMessage]:
        return self.transcripts.load(self._identity(identity))

    def is_responding(self, identity: str | None = None) -> bool:
        return self._identity(identity) in self._pending

    def clear(self, identity: str | None = None) -> None:
        identity = self._identity(identity)
        if identity in self._pending:
            raise ChatBusy(identity)
        self.transcripts.save(identity, [])

    async def send(self, text: str, identity: str | None = None) -> list[ChatMessage]:
        """Append ``text`` and the model's reply; returns the updated transcript."""

        identity = self._identity(identity)
        if identity in self._pending:
            raise ChatBusy(identity)
        if not text.strip():
            return self.transcripts.load(identity)

        self._pending.add(identity)
        try:
            messages = self.transcripts.load(identity)
            messages.append(ChatMessage(role="user", text=text))
            self.transcripts.save(identity, messages)

            document = self.registry.get(identity)
            context = document.page_tagged_text[: self.context_chars] if document else ""
            system = SYSTEM_PROMPT.format(app_name=APP_NAME, context=context)
            try:
                reply = await self.llm.chat(messages, system)
            except Exception as exc:  # noqa: BLE001 - a failed reply becomes an apology in the transcript
                logger.error("Error getting chat response for %s: %s", identity, exc)
                reply = ERROR_REPLY
            messages.append(ChatMessage(role="model", text=reply or ERROR_REPLY))
            self.transcripts.save(identity, messages)
            return messages
        finally:
            self._pending.discard(identity)
