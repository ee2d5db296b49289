import asyncio
import json

import pytest

from conftest import FakeLLM
from studyloop.errors import GradingMalformed
from studyloop.grading import (
    NO_FEEDBACK,
    NOT_ANSWERED,
    aggregate,
    build_grading_tasks,
    coerce_score,
    correct_answer,
    grade_answers,
    parse_grades,
)
from studyloop.models import LongAnswerQuestion, MCQOption, MultipleChoiceQuestion, ShortAnswerQuestion

MCQ = MultipleChoiceQuestion(
    "Unit of force?",
    "Forces",
    [MCQOption("Joule", False), MCQOption("Newton", True), MCQOption("Watt", False)],
    "F = ma",
)
SAQ = ShortAnswerQuestion("Define inertia.", "Laws of motion", "Resistance to change in motion", "...")
LAQ = LongAnswerQuestion("Explain Newton's third law.", "Laws of motion", "Equal and opposite reactions", "...")


def test_correct_answer_is_derived_locally():
    assert correct_answer(MCQ) == "Newton"
    assert correct_answer(SAQ) == "Resistance to change in motion"
    assert correct_answer(LAQ) == "Equal and opposite reactions"


def test_tasks_mark_unanswered_questions():
    tasks = build_grading_tasks([MCQ, SAQ], ["Newton", "  "])
    assert tasks[0]["correctAnswer"] == "Newton"
    assert tasks[1]["userAnswer"] == NOT_ANSWERED
    assert tasks[1]["questionType"] == "Short Answer Questions"


def test_wrong_length_is_malformed():
    raw = json.dumps([{"score": 1, "feedback": "ok"}])
    with pytest.raises(GradingMalformed):
        parse_grades(raw, [MCQ, SAQ], ["Newton", "x"])


def test_unparsable_response_is_malformed():
    with pytest.raises(GradingMalformed):
        parse_grades("I think the student did well", [MCQ], ["Newton"])


def test_score_and_feedback_coercion():
    raw = json.dumps([{"score": "1"}, {"feedback": "missing score"}, {"score": "half", "feedback": "odd"}])
    results = parse_grades(raw, [SAQ, SAQ, SAQ], ["a", "b", "c"])
    assert [r.score for r in results] == [1.0, 0.0, 0.0]
    assert results[0].feedback == NO_FEEDBACK
    assert results[1].feedback == "missing score"


def test_fenced_response_and_partial_credit():
    raw = "```json\n" + json.dumps([{"score": 0.5, "feedback": "partly"}, {"score": 0.5, "feedback": "?"}]) + "\n```"
    results = parse_grades(raw, [LAQ, MCQ], ["some of it", "Joule"])
    assert results[0].score == 0.5
    assert results[1].score == 0.0


def test_coerce_score_bounds():
    assert coerce_score(None) == 0.0
    assert coerce_score(True) == 0.0
    assert coerce_score("0.5") == 0.5
    assert coerce_score(3) == 1.0
    assert coerce_score(-1) == 0.0
    assert coerce_score(float("nan")) == 0.0


def test_batched_grading_with_one_unanswered_question():
    questions = [MCQ, SAQ, LAQ, SAQ]
    answers = ["Newton", "Resistance to motion change", "", "no idea"]
    llm = FakeLLM(
        [
            [
                {"score": 1, "feedback": "Correct."},
                {"score": 1, "feedback": "Good."},
                {"score": 1, "feedback": "Hallucinated credit."},
                {"score": 0, "feedback": "Incorrect."},
            ]
        ]
    )
    results = asyncio.run(grade_answers(llm, questions, answers))
    assert len(results) == 4
    assert results[2].score == 0.0
    score, total = aggregate(results)
    assert total == 4
    assert score == sum(r.score for r in results) == 2.0
    prompt, schema, _ = llm.calls[0]
    assert NOT_ANSWERED in prompt
    assert schema["items"]["required"] == ["score", "feedback"]


def test_provider_failure_is_malformed():
    with pytest.raises(GradingMalformed):
        asyncio.run(grade_answers(FakeLLM(error=TimeoutError()), [MCQ], ["Newton"]))


def test_scores_snap_to_rubric_values():
    assert coerce_score(0.7) == 0.5
    assert coerce_score("0.8") == 1.0
    assert coerce_score(0.2) == 0.0
    assert coerce_score(float("inf")) == 1.0
    raw = json.dumps([{"score": 0.7, "feedback": "mostly"}, {"score": 0.4, "feedback": "some"}])
    results = parse_grades(raw, [SAQ, LAQ], ["a", "b"])
    assert [r.score for r in results] == [0.5, 0.5]
