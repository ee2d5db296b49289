"""Core domain models for the study assistant."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Union


class QuestionType(str, Enum):
    MCQ = "MCQ"
    SAQ = "SAQ"
    LAQ = "LAQ"

    @property
    def label(self) -> str:
        return {
            QuestionType.MCQ: "Multiple Choice Questions",
            QuestionType.SAQ: "Short Answer Questions",
            QuestionType.LAQ: "Long Answer Questions",
        }[self]


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


@dataclass(frozen=True, slots=True)
class Document:
    identity: str
    raw_handle: Path | bytes = field(repr=False)
    page_tagged_text: str = field(repr=False)
    page_count: int


@dataclass(frozen=True, slots=True)
class MCQOption:
    text: str
    is_correct: bool


@dataclass(frozen=True, slots=True)
class MultipleChoiceQuestion:
    question_text: str
    topic: str
    options: list[MCQOption]
    explanation: str
    type: Literal[QuestionType.MCQ] = QuestionType.MCQ


@dataclass(frozen=True, slots=True)
class ShortAnswerQuestion:
    question_text: str
    topic: str
    answer: str
    explanation: str
    type: Literal[QuestionType.SAQ] = QuestionType.SAQ


@dataclass(frozen=True, slots=True)
class LongAnswerQuestion:
    question_text: str
    topic: str
    answer: str
    explanation: str
    type: Literal[QuestionType.LAQ] = QuestionType.LAQ


QuizQuestion = Union[MultipleChoiceQuestion, ShortAnswerQuestion, LongAnswerQuestion]


def question_to_dict(question: QuizQuestion) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": question.type.value,
        "questionText": question.question_text,
        "topic": question.topic,
        "explanation": question.explanation,
    }
    match question:
        case MultipleChoiceQuestion(options=options):
            payload["options"] = [{"text": o.text, "isCorrect": o.is_correct} for o in options]
        case ShortAnswerQuestion(answer=answer) | LongAnswerQuestion(answer=answer):
            payload["answer"] = answer
        case _:
            raise TypeError(f"Unknown question variant: {question!r}")
    return payload


def question_from_dict(payload: dict[str, Any], question_type: QuestionType | str | None = None) -> QuizQuestion:
    """Build a typed question; ``question_type`` overrides any ``type`` key in the payload."""

    kind = QuestionType(question_type or payload.get("type"))
    question_text = _as_text(payload.get("questionText"))
    topic = _as_text(payload.get("topic")) or "General"
    explanation = _as_text(payload.get("explanation"))
    match kind:
        case QuestionType.MCQ:
            raw_options = payload.get("options")
            options = [
                MCQOption(text=_as_text(item.get("text")), is_correct=_as_bool(item.get("isCorrect")))
                for item in (raw_options if isinstance(raw_options, list) else [])
                if isinstance(item, dict)
            ]
            return MultipleChoiceQuestion(question_text, topic, options, explanation)
        case QuestionType.SAQ:
            return ShortAnswerQuestion(question_text, topic, _as_text(payload.get("answer")), explanation)
        case QuestionType.LAQ:
            return LongAnswerQuestion(question_text, topic, _as_text(payload.get("answer")), explanation)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


@dataclass(frozen=True, slots=True)
class GradedResult:
    score: float
    feedback: str

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "feedback": self.feedback}


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    id: str
    document_identity: str
    questions: list[QuizQuestion]
    user_answers: list[str]
    score: float
    total: int
    date: int
    graded_results: list[GradedResult]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "documentIdentity": self.document_identity,
            "questions": [question_to_dict(q) for q in self.questions],
            "userAnswers": list(self.user_answers),
            "score": self.score,
            "total": self.total,
            "date": self.date,
            "gradedResults": [r.to_dict() for r in self.graded_results],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> QuizAttempt:
        return cls(
            id=str(payload["id"]),
            document_identity=str(payload.get("documentIdentity", "")),
            questions=[question_from_dict(q) for q in payload.get("questions", []) if isinstance(q, dict)],
            user_answers=[str(a) for a in payload.get("userAnswers", [])],
            score=float(payload.get("score", 0)),
            total=int(payload.get("total", 0)),
            date=int(payload.get("date", 0)),
            graded_results=[
                GradedResult(score=float(r.get("score", 0)), feedback=str(r.get("feedback", "")))
                for r in payload.get("gradedResults", [])
                if isinstance(r, dict)
            ],
        )


@dataclass(slots=True)
class YouTubeRecommendation:
    title: str
    description: str
    youtube_url: str
    is_valid: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "youtubeUrl": self.youtube_url,
            "isValid": self.is_valid,
        }


@dataclass(frozen=True, slots=True)
class GroundingSource:
    uri: str
    title: str


@dataclass(slots=True)
class VerificationOutcome:
    confirmed: list[YouTubeRecommendation]
    sources: list[GroundingSource]
    candidates: int

    @property
    def none_confirmed(self) -> bool:
        return not self.confirmed


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Literal["user", "model"]
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "text": self.text}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ChatMessage:
        role = "model" if payload.get("role") == "model" else "user"
        return cls(role=role, text=str(payload.get("text", "")))


@dataclass(slots=True)
class AttemptSummary:
    attempts: int
    overall_percent: float
    topic_percent: dict[str, float]
    strengths: list[str]
    weaknesses: list[str]
    recent: list[QuizAttempt]
