"""FastAPI server exposing documents, quizzes, chat and video recommendations."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from .chat import ChatService
from .config import settings
from .errors import (
    ChatBusy,
    DocumentLoading,
    DuplicateDocument,
    ExtractionFailed,
    GenerationMalformed,
    GradingMalformed,
    InsufficientContent,
    InvalidRange,
    NoActiveDocument,
    RangeNotFound,
    StudyLoopError,
)
from .extraction import PagedTextExtractor
from .llm import LLMReply, StructuredLLM, get_llm_service
from .models import ChatMessage, Difficulty, QuestionType, question_from_dict, question_to_dict
from .persistence import AttemptLog, ChatTranscriptStore, JsonFileStore, KeyValueStore
from .quiz import QuizService, summarize_attempts
from .recommendations import RecommendationService
from .registry import DocumentRegistry
from .verification import ResourceProbe
from .windowing import page_window

ERROR_STATUS: dict[type[StudyLoopError], int] = {
    DuplicateDocument: 409,
    DocumentLoading: 409,
    ChatBusy: 409,
    NoActiveDocument: 404,
    ExtractionFailed: 422,
    InvalidRange: 422,
    RangeNotFound: 422,
    InsufficientContent: 422,
    GenerationMalformed: 502,
    GradingMalformed: 502,
}


class DeferredLLM:
    """Resolves the configured chat model on first use so the app can start without credentials."""

    async def generate(self, prompt: str, schema: dict[str, Any] | None = None, system: str | None = None) -> LLMReply:
        return await get_llm_service().generate(prompt, schema, system)

    async def chat(self, history: Sequence[ChatMessage], system: str) -> str:
        return await get_llm_service().chat(history, system)


class QuizRequest(BaseModel):
    start: int = Field(default=1, description="First page, 1-based")
    end: int = Field(default=settings.quiz.default_page_span, description="Last page, inclusive")
    question_type: QuestionType = Field(default=QuestionType.MCQ)
    count: int = Field(default=settings.quiz.default_questions, ge=1, le=50)
    difficulty: Difficulty = Field(default=Difficulty.MEDIUM)


class GradeRequest(BaseModel):
    questions: list[dict[str, Any]]
    user_answers: list[str]


class ChatRequest(BaseModel):
    message: str = Field(..., description="User message")


class RecommendationRequest(BaseModel):
    start: int | None = None
    end: int | None = None


def create_app(
    registry: DocumentRegistry | None = None,
    llm: StructuredLLM | None = None,
    store: KeyValueStore | None = None,
    probe: ResourceProbe | None = None,
) -> FastAPI:
    app = FastAPI(title="StudyLoop", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if registry is None:
        registry = DocumentRegistry(PagedTextExtractor())
    if llm is None:
        llm = DeferredLLM()
    if store is None:
        store = JsonFileStore(settings.paths.session_dir)
    attempts = AttemptLog(store)
    quiz_service = QuizService(registry, llm, attempts)
    chat_service = ChatService(registry, ChatTranscriptStore(store), llm)
    recommendation_service = RecommendationService(llm, probe)
    app.state.registry = registry
    app.state.attempts = attempts
    if settings.observability.enable_prometheus:
        app.mount("/metrics", make_asgi_app())

    @app.exception_handler(StudyLoopError)
    async def handle_domain_error(request: Request, exc: StudyLoopError) -> JSONResponse:
        status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 400)
        return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": str(exc)})

    def document_view() -> dict:
        return {
            "documents": [{"name": d.identity, "pages": d.page_count} for d in registry.documents],
            "active": registry.active_identity,
            "loading": registry.loading,
            "progress": registry.progress,
        }

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/documents", status_code=201)
    async def upload(file: UploadFile = File(...)) -> dict:  # noqa: B008
        identity = Path(file.filename or "").name
        if not identity:
            raise HTTPException(status_code=400, detail="Uploaded file has no name")
        if identity in registry:
            registry.activate(identity)
            raise DuplicateDocument(identity)
        if registry.is_loading(identity):
            raise DocumentLoading(identity)
        destination = settings.paths.uploads_dir / identity
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(await file.read())
        try:
            document = await registry.add(identity, destination)
        except ExtractionFailed:
            destination.unlink(missing_ok=True)
            raise
        return {"name": document.identity, "pages": document.page_count}

    @app.get("/documents")
    def list_documents() -> dict:
        return document_view()

    @app.post("/documents/{identity}/activate")
    def activate(identity: str) -> dict:
        if not registry.activate(identity):
            raise HTTPException(status_code=404, detail=f"Unknown document: {identity}")
        return document_view()

    @app.delete("/documents/{identity}")
    def remove(identity: str) -> dict:
        registry.remove(identity)
        return document_view()

    @app.get("/documents/active/pages")
    def pages(start: int = 1, end: int = 1) -> dict:
        document = registry.active
        if document is None:
            raise NoActiveDocument()
        return {"name": document.identity, "start": start, "end": end, "text": page_window(document, start, end)}

    @app.post("/quiz")
    async def generate(payload: QuizRequest) -> dict:
        questions = await quiz_service.generate(
            payload.start, payload.end, payload.question_type, payload.count, payload.difficulty
        )
        return {"questions": [question_to_dict(q) for q in questions]}

    @app.post("/quiz/grade")
    async def grade(payload: GradeRequest) -> dict:
        try:
            questions = [question_from_dict(q) for q in payload.questions]
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f"Invalid question: {exc}") from exc
        attempt = await quiz_service.submit(questions, payload.user_answers)
        return attempt.to_dict()

    @app.get("/attempts")
    def list_attempts() -> list[dict]:
        return [attempt.to_dict() for attempt in attempts.attempts]

    @app.delete("/attempts", status_code=204)
    def clear_attempts() -> None:
        attempts.clear()

    @app.get("/attempts/summary")
    def attempt_summary() -> dict:
        summary = summarize_attempts(attempts.attempts)
        return {
            "attempts": summary.attempts,
            "overallPercent": summary.overall_percent,
            "topicPercent": summary.topic_percent,
            "strengths": summary.strengths,
            "weaknesses": summary.weaknesses,
            "recent": [attempt.to_dict() for attempt in summary.recent],
        }

    @app.get("/chat")
    def chat_history() -> list[dict]:
        return [m.to_dict() for m in chat_service.history()]

    @app.post("/chat")
    async def chat(payload: ChatRequest) -> list[dict]:
        messages = await chat_service.send(payload.message)
        return [m.to_dict() for m in messages]

    @app.delete("/chat", status_code=204)
    def clear_chat() -> None:
        chat_service.clear()

    @app.post("/recommendations")
    async def recommendations(payload: RecommendationRequest | None = None) -> dict:
        document = registry.active
        if document is None:
            raise NoActiveDocument()
        context = document.page_tagged_text
        if payload and payload.start is not None and payload.end is not None:
            context = page_window(document, payload.start, payload.end)
        outcome = await recommendation_service.recommend(context)
        return {
            "recommendations": [item.to_dict() for item in outcome.confirmed],
            "sources": [asdict(source) for source in outcome.sources],
            "candidates": outcome.candidates,
            "noneConfirmed": outcome.none_confirmed,
        }

    return app


app = create_app()

__all__ = ["app", "create_app"]
