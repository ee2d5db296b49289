"""Typer CLI for paging, quizzing, chatting and finding videos for a document."""
from __future__ import annotations

import asyncio
from pathlib import Path

import typer
import uvicorn

from .chat import ChatService
from .config import settings
from .errors import StudyLoopError
from .grading import correct_answer
from .llm import get_llm_service
from .models import Difficulty, MultipleChoiceQuestion, QuestionType, QuizQuestion
from .persistence import AttemptLog, ChatTranscriptStore, JsonFileStore
from .quiz import QuizService, summarize_attempts
from .recommendations import RecommendationService
from .registry import DocumentRegistry
from .windowing import page_window

app = typer.Typer(help="CLI for the StudyLoop document study assistant")
OPTION_LETTERS = "ABCDEFGH"


async def _open(path: Path) -> DocumentRegistry:
    registry = DocumentRegistry()
    await registry.add(path.name, path)
    return registry


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except StudyLoopError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _print_question(idx: int, question: QuizQuestion) -> None:
    typer.echo(f"\n{idx}. [{question.topic}] {question.question_text}")
    if isinstance(question, MultipleChoiceQuestion):
        for letter, option in zip(OPTION_LETTERS, question.options):
            typer.echo(f"   {letter}) {option.text}")


def _read_answer(question: QuizQuestion) -> str:
    answer = typer.prompt("Your answer", default="", show_default=False)
    if isinstance(question, MultipleChoiceQuestion) and len(answer.strip()) == 1:
        pick = OPTION_LETTERS.find(answer.strip().upper())
        if 0 <= pick < len(question.options):
            return question.options[pick].text
    return answer


@app.command()
def pages(path: Path, start: int = 1, end: int = 1) -> None:
    """Print the page-tagged text for a page range."""

    async def main() -> None:
        registry = await _open(path)
        typer.echo(page_window(registry.active, start, end))

    _run(main())


@app.command()
def quiz(
    path: Path,
    start: int = 1,
    end: int = settings.quiz.default_page_span,
    question_type: QuestionType = QuestionType.MCQ,
    count: int = settings.quiz.default_questions,
    difficulty: Difficulty = Difficulty.MEDIUM,
    take: bool = typer.Option(False, help="Answer the questions interactively and grade them"),
) -> None:
    """Generate a quiz from a page range, optionally taking and grading it."""

    async def main() -> None:
        registry = await _open(path)
        service = QuizService(registry, get_llm_service(), AttemptLog(JsonFileStore(settings.paths.session_dir)))
        questions = await service.generate(start, end, question_type, count, difficulty)
        answers: list[str] = []
        for idx, question in enumerate(questions, start=1):
            _print_question(idx, question)
            if take:
                answers.append(_read_answer(question))
            else:
                typer.echo(f"   Answer: {correct_answer(question)}")
        if not take:
            return
        attempt = await service.submit(questions, answers)
        for idx, result in enumerate(attempt.graded_results, start=1):
            typer.echo(f"{idx}. {result.score:g} - {result.feedback}")
        typer.echo(f"Score: {attempt.score:g}/{attempt.total}")

    _run(main())


@app.command()
def ask(path: Path, question: str) -> None:
    """Ask a question about a document; the exchange is kept in its chat history."""

    async def main() -> None:
        registry = await _open(path)
        transcripts = ChatTranscriptStore(JsonFileStore(settings.paths.session_dir))
        messages = await ChatService(registry, transcripts, get_llm_service()).send(question)
        typer.echo(messages[-1].text)

    _run(main())


@app.command()
def videos(path: Path, start: int = 0, end: int = 0) -> None:
    """Suggest videos for a document (or a page range) and print only the verified ones."""

    async def main() -> None:
        registry = await _open(path)
        document = registry.active
        context = page_window(document, start, end) if start and end else document.page_tagged_text
        outcome = await RecommendationService(get_llm_service()).recommend(context)
        if outcome.none_confirmed:
            typer.echo(f"None of the {outcome.candidates} suggested videos could be verified.")
            return
        for item in outcome.confirmed:
            typer.echo(f"- {item.title}\n  {item.youtube_url}\n  {item.description}")
        for source in outcome.sources:
            typer.echo(f"source: {source.title} ({source.uri})")

    _run(main())


@app.command()
def attempts(clear: bool = typer.Option(False, help="Delete the whole attempt history")) -> None:
    """Show quiz progress across all documents."""

    log = AttemptLog(JsonFileStore(settings.paths.session_dir))
    if clear:
        log.clear()
        typer.echo("Attempt history cleared")
        return
    summary = summarize_attempts(log.attempts)
    typer.echo(f"Quizzes taken: {summary.attempts}  overall: {summary.overall_percent:.1f}%")
    typer.echo(f"Strengths: {', '.join(summary.strengths) or '-'}")
    typer.echo(f"Weaknesses: {', '.join(summary.weaknesses) or '-'}")
    for attempt in summary.recent:
        typer.echo(f"{attempt.id}  {attempt.document_identity}  {attempt.score:g}/{attempt.total}")


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the HTTP API."""

    uvicorn.run("studyloop.server:app", host=host, port=port)


if __name__ == "__main__":
    app()
