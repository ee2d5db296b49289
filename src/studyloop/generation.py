"""Quiz generation: prompt + schema out, validated typed questions back."""
from __future__ import annotations

import logging
from typing import Any

from .errors import GenerationMalformed
from .llm import StructuredLLM, parse_model_json
from .models import Difficulty, MultipleChoiceQuestion, QuestionType, QuizQuestion, question_from_dict
from .observability import record_malformed

logger = logging.getLogger(__name__)

_BASE_PROPERTIES: dict[str, Any] = {
    "questionText": {"type": "string", "description": "The question text."},
    "topic": {"type": "string", "description": 'The topic of the question, e.g., "Kinematics".'},
}


def question_schema(question_type: QuestionType) -> dict[str, Any]:
    match question_type:
        case QuestionType.MCQ:
            return {
                "type": "object",
                "properties": {
                    **_BASE_PROPERTIES,
                    "options": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "text": {"type": "string", "description": "The option text."},
                                "isCorrect": {
                                    "type": "boolean",
                                    "description": "Whether this option is the correct answer.",
                                },
                            },
                            "required": ["text", "isCorrect"],
                        },
                    },
                    "explanation": {"type": "string", "description": "Detailed explanation for the correct answer."},
                },
                "required": ["questionText", "topic", "options", "explanation"],
            }
        case QuestionType.SAQ | QuestionType.LAQ:
            return {
                "type": "object",
                "properties": {
                    **_BASE_PROPERTIES,
                    "answer": {"type": "string", "description": "The correct answer or model answer."},
                    "explanation": {
                        "type": "string",
                        "description": "Detailed explanation or breakdown of the answer.",
                    },
                },
                "required": ["questionText", "topic", "answer", "explanation"],
            }
    raise ValueError(f"Unsupported question type: {question_type!r}")


def quiz_schema(question_type: QuestionType) -> dict[str, Any]:
    return {"type": "array", "items": question_schema(question_type)}


def build_quiz_prompt(context: str, question_type: QuestionType, count: int, difficulty: Difficulty) -> str:
    return (
        f"Based on the following text content from a textbook, generate {count} {question_type.label} "
        f"of {difficulty.value} difficulty. Ensure questions are relevant to the provided text.\n\n"
        f'Text Content:\n"""\n{context}\n"""'
    )


def _usable(question: QuizQuestion) -> bool:
    if isinstance(question, MultipleChoiceQuestion):
        correct = sum(1 for option in question.options if option.is_correct)
        return bool(question.question_text) and len(question.options) >= 2 and correct == 1
    return bool(question.question_text)


def parse_questions(raw_text: str, question_type: QuestionType) -> list[QuizQuestion]:
    """Validate a raw model response into typed questions of ``question_type``.

    The array itself must parse; individual unusable items (non-objects, MCQs
    without exactly one correct option) are dropped. Fewer or more items than
    requested are accepted as-is, but an empty result is not.
    """

    parsed = parse_model_json(raw_text)
    if not parsed.ok:
        record_malformed("generation")
        raise GenerationMalformed(f"The model returned an invalid quiz response ({parsed.error}).")
    if not isinstance(parsed.value, list):
        record_malformed("generation")
        raise GenerationMalformed("The model returned a quiz that is not a list of questions.")

    questions: list[QuizQuestion] = []
    for idx, item in enumerate(parsed.value):
        if not isinstance(item, dict):
            logger.warning("Dropping quiz item %d: not an object", idx)
            continue
        question = question_from_dict(item, question_type)
        if not _usable(question):
            logger.warning("Dropping quiz item %d: failed %s validation", idx, question_type.value)
            continue
        questions.append(question)

    if not questions:
        record_malformed("generation")
        raise GenerationMalformed("The model did not return any usable questions.")
    return questions


async def generate_quiz(
    llm: StructuredLLM,
    context: str,
    question_type: QuestionType,
    count: int,
    difficulty: Difficulty = Difficulty.MEDIUM,
) -> list[QuizQuestion]:
    prompt = build_quiz_prompt(context, question_type, count, difficulty)
    try:
        reply = await llm.generate(prompt, quiz_schema(question_type))
    except Exception as exc:  # noqa: BLE001 - provider/network failures surface as a malformed generation
        logger.error("Error generating quiz: %s", exc)
        raise GenerationMalformed("Failed to generate quiz. The model might have returned an invalid response.") from exc
    questions = parse_questions(reply.text, question_type)
    logger.info("Generated %d/%d %s questions", len(questions), count, question_type.value)
    return questions
