"""Quiz session flow: window the active document, generate, grade, record the attempt."""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime, timezone

from .config import settings
from .errors import NoActiveDocument
from .generation import generate_quiz
from .grading import aggregate, grade_answers
from .llm import StructuredLLM
from .models import AttemptSummary, Difficulty, QuestionType, QuizAttempt, QuizQuestion
from .persistence import AttemptLog
from .registry import DocumentRegistry
from .windowing import page_window, require_content

logger = logging.getLogger(__name__)

STRENGTH_THRESHOLD = 75.0
WEAKNESS_THRESHOLD = 50.0


class QuizService:
    def __init__(
        self,
        registry: DocumentRegistry,
        llm: StructuredLLM,
        attempts: AttemptLog,
        min_context_chars: int | None = None,
    ) -> None:
        self.registry = registry
        self.llm = llm
        self.attempts = attempts
        self.min_context_chars = settings.quiz.min_context_chars if min_context_chars is None else min_context_chars

    def context(self, start: int, end: int) -> str:
        document = self.registry.active
        if document is None:
            raise NoActiveDocument()
        window = page_window(document, start, end)
        return require_content(window, self.min_context_chars)

    async def generate(
        self,
        start: int,
        end: int,
        question_type: QuestionType = QuestionType.MCQ,
        count: int | None = None,
        difficulty: Difficulty = Difficulty.MEDIUM,
    ) -> list[QuizQuestion]:
        context = self.context(start, end)
        if count is None:
            count = settings.quiz.default_questions
        return await generate_quiz(self.llm, context, question_type, count, difficulty)

    async def submit(self, questions: Sequence[QuizQuestion], user_answers: Sequence[str]) -> QuizAttempt:
        identity = self.registry.active_identity
        if identity is None:
            raise NoActiveDocument()
        answers = [user_answers[i] if i < len(user_answers) else "" for i in range(len(questions))]
        results = await grade_answers(self.llm, questions, answers)
        score, total = aggregate(results)
        now = datetime.now(tz=timezone.utc)
        attempt = QuizAttempt(
            id=now.isoformat(),
            document_identity=identity,
            questions=list(questions),
            user_answers=answers,
            score=score,
            total=total,
            date=int(time.time() * 1000),
            graded_results=results,
        )
        self.attempts.append(attempt)
        logger.info("Recorded attempt %s for %s: %.1f/%d", attempt.id, identity, score, total)
        return attempt


def summarize_attempts(attempts: Sequence[QuizAttempt], recent: int = 5) -> AttemptSummary:
    scored = [a for a in attempts if a.total]
    overall = sum(a.score / a.total for a in scored) / len(scored) * 100 if scored else 0.0

    totals: dict[str, list[float]] = defaultdict(lambda: [0.0, 0])
    for attempt in attempts:
        for idx, question in enumerate(attempt.questions):
            score = attempt.graded_results[idx].score if idx < len(attempt.graded_results) else 0.0
            totals[question.topic][0] += score
            totals[question.topic][1] += 1
    topic_percent = {topic: total / count * 100 for topic, (total, count) in totals.items()}

    return AttemptSummary(
        attempts=len(attempts),
        overall_percent=overall,
        topic_percent=topic_percent,
        strengths=[t for t, pct in topic_percent.items() if pct >= STRENGTH_THRESHOLD],
        weaknesses=[t for t, pct in topic_percent.items() if pct < WEAKNESS_THRESHOLD],
        recent=list(reversed(attempts))[:recent],
    )
