"""Keyed session storage for chat transcripts and quiz-attempt history."""
from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from .models import ChatMessage, QuizAttempt

logger = logging.getLogger(__name__)

ATTEMPTS_KEY = "quizAttempts"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """One file per key under ``root``. Reads and writes are best-effort."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        slug = _UNSAFE_CHARS.sub("_", key)[:80]
        return self.root / f"{slug}-{digest}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("Could not read %s: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            logger.error("Could not save %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Could not delete %s: %s", key, exc)


def chat_history_key(identity: str) -> str:
    return f"chatHistory_{identity}"


class ChatTranscriptStore:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load(self, identity: str) -> list[ChatMessage]:
        raw = self.store.get(chat_history_key(identity))
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Could not load chat history for %s", identity)
            return []
        if not isinstance(payload, list):
            return []
        return [ChatMessage.from_dict(item) for item in payload if isinstance(item, dict)]

    def save(self, identity: str, messages: Sequence[ChatMessage]) -> None:
        key = chat_history_key(identity)
        if not messages:
            self.store.delete(key)
            return
        self.store.set(key, json.dumps([m.to_dict() for m in messages], ensure_ascii=False))


class AttemptLog:
    """Global append-only list of quiz attempts, read once at construction."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._attempts: list[QuizAttempt] = self._load()

    def _load(self) -> list[QuizAttempt]:
        raw = self.store.get(ATTEMPTS_KEY)
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Could not load quiz attempts: %s", exc)
            return []
        if not isinstance(payload, list):
            logger.error("Could not load quiz attempts: expected a list, got %s", type(payload).__name__)
            return []

        attempts: list[QuizAttempt] = []
        for idx, item in enumerate(payload):
            try:
                attempts.append(QuizAttempt.from_dict(item))
            except (AttributeError, TypeError, KeyError, ValueError) as exc:
                logger.error("Skipping stored quiz attempt %d: %s", idx, exc)
        return attempts

    @property
    def attempts(self) -> tuple[QuizAttempt, ...]:
        return tuple(self._attempts)

    def for_document(self, identity: str) -> list[QuizAttempt]:
        return [attempt for attempt in self._attempts if attempt.document_identity == identity]

    def append(self, attempt: QuizAttempt) -> None:
        self._attempts.append(attempt)
        self.store.set(ATTEMPTS_KEY, json.dumps([a.to_dict() for a in self._attempts], ensure_ascii=False))

    def clear(self) -> None:
        self._attempts = []
        self.store.delete(ATTEMPTS_KEY)

    def __len__(self) -> int:
        return len(self._attempts)
