"""Rubric grading of quiz answers through a single batched model call."""
from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from .errors import GradingMalformed
from .llm import StructuredLLM, parse_model_json
from .models import (
    GradedResult,
    LongAnswerQuestion,
    MultipleChoiceQuestion,
    QuestionType,
    QuizQuestion,
    ShortAnswerQuestion,
)
from .observability import record_malformed

logger = logging.getLogger(__name__)

NOT_ANSWERED = "Not answered"
NO_FEEDBACK = "No feedback provided."
RUBRIC_SCORES = (0.0, 0.5, 1.0)

GRADING_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "score": {"type": "number", "description": "Score from 0, 0.5, or 1 based on the rubric."},
            "feedback": {"type": "string", "description": "Constructive feedback for the user."},
        },
        "required": ["score", "feedback"],
    },
}

GRADING_PROMPT = """You are a strict but fair teaching assistant. Your task is to grade a student's answers for a quiz. For each question, compare the user's answer with the provided correct answer.

Provide a score for each question based on the following rubric:
- 1: The user's answer is fully correct and captures all key points of the correct answer. For MCQs, this means the correct option was chosen.
- 0.5: The user's answer is partially correct but misses some key points or contains minor inaccuracies. This only applies to Short and Long Answer questions.
- 0: The user's answer is incorrect, unanswered, or completely misses the point.

Also, provide brief, constructive feedback for each answer, explaining why it received the score it did.
Return exactly one result per question, in the same order.

Here are the questions and answers to grade:
{tasks}
"""


def correct_answer(question: QuizQuestion) -> str | None:
    match question:
        case MultipleChoiceQuestion(options=options):
            return next((option.text for option in options if option.is_correct), None)
        case ShortAnswerQuestion(answer=answer) | LongAnswerQuestion(answer=answer):
            return answer
        case _:
            raise TypeError(f"Unknown question variant: {question!r}")


def _is_answered(answer: str | None) -> bool:
    return bool(answer and answer.strip())


def build_grading_tasks(questions: Sequence[QuizQuestion], user_answers: Sequence[str]) -> list[dict[str, Any]]:
    tasks = []
    for idx, question in enumerate(questions):
        answer = user_answers[idx] if idx < len(user_answers) else ""
        tasks.append(
            {
                "questionType": question.type.label,
                "question": question.question_text,
                "correctAnswer": correct_answer(question),
                "userAnswer": answer if _is_answered(answer) else NOT_ANSWERED,
            }
        )
    return tasks


def coerce_score(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        score = float(str(value).strip())
    except ValueError:
        return 0.0
    if score != score:  # NaN
        return 0.0
    score = min(1.0, max(0.0, score))
    return min(RUBRIC_SCORES, key=lambda allowed: abs(allowed - score))


def coerce_feedback(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return NO_FEEDBACK


def parse_grades(raw_text: str, questions: Sequence[QuizQuestion], user_answers: Sequence[str]) -> list[GradedResult]:
    """Validate the grading response; per-item faults are coerced, a wrong shape voids the batch."""

    parsed = parse_model_json(raw_text)
    if not parsed.ok:
        record_malformed("grading")
        raise GradingMalformed(f"The AI returned an invalid response that could not be parsed ({parsed.error}).")
    if not isinstance(parsed.value, list) or len(parsed.value) != len(questions):
        record_malformed("grading")
        got = len(parsed.value) if isinstance(parsed.value, list) else type(parsed.value).__name__
        raise GradingMalformed(
            f"The AI returned a response with an unexpected format (expected {len(questions)} results, got {got})."
        )

    results: list[GradedResult] = []
    for idx, (question, item) in enumerate(zip(questions, parsed.value)):
        item = item if isinstance(item, dict) else {}
        score = coerce_score(item.get("score"))
        answer = user_answers[idx] if idx < len(user_answers) else ""
        if not _is_answered(answer):
            score = 0.0
        elif question.type is QuestionType.MCQ and score != 1.0:
            score = 0.0
        results.append(GradedResult(score=score, feedback=coerce_feedback(item.get("feedback"))))
    return results


async def grade_answers(
    llm: StructuredLLM,
    questions: Sequence[QuizQuestion],
    user_answers: Sequence[str],
) -> list[GradedResult]:
    tasks = build_grading_tasks(questions, user_answers)
    prompt = GRADING_PROMPT.format(tasks=json.dumps(tasks, indent=2))
    try:
        reply = await llm.generate(prompt, GRADING_SCHEMA)
    except Exception as exc:  # noqa: BLE001 - provider/network failures surface as a malformed grading
        logger.error("Error grading answers: %s", exc)
        raise GradingMalformed("Failed to grade answers. The model might have returned an invalid response.") from exc
    return parse_grades(reply.text, questions, user_answers)


def aggregate(results: Sequence[GradedResult]) -> tuple[float, int]:
    return sum(result.score for result in results), len(results)
