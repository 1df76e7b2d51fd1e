"""
Exam Grader CLI Application.

Provides a command-line interface for grading one exam answer with an
LLM provider and for checking which providers are configured.
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from exam_grader.config import Provider, get_settings
from exam_grader.grading import GradingEngine, GradingOutcome, LLMError
from exam_grader.grading.prompt_builder import format_number
from exam_grader.logging_config import configure_logging
from exam_grader.models import GradingRequest
from exam_grader.question_bank import (
    QuestionBankError,
    extract_booklist_section,
    extract_note_section,
    find_question,
    load_questions,
)

# Create Typer app
app = typer.Typer(
    name="exam-grader",
    help="LLM-assisted grading for free-text exam answers",
    add_completion=False,
)

console = Console()


@app.command()
def grade(
    questions_file: Annotated[Path, typer.Argument(help="Question set JSON file")],
    question_id: Annotated[str, typer.Argument(help="Identifier of the question answered")],
    answer_file: Annotated[Path, typer.Argument(help="Path to the answer text file")],
    provider: Annotated[
        str,
        typer.Option("--provider", "-p", help="openai, google or claude"),
    ] = "openai",
    model: Annotated[
        Optional[str],
        typer.Option("--model", "-m", help="Model name (provider default if omitted)"),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", help="API key (falls back to the environment)"),
    ] = None,
    notes: Annotated[
        Optional[Path],
        typer.Option("--notes", "-n", help="Study notes Markdown with booklist section"),
    ] = None,
    elapsed: Annotated[
        Optional[float],
        typer.Option("--elapsed", help="Seconds spent answering"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result and raw reply as JSON"),
    ] = False,
    show_raw: Annotated[
        bool,
        typer.Option("--raw", help="Also show the raw model reply"),
    ] = False,
) -> None:
    """
    Grade an answer to one question.

    Exactly one provider call is made. Credential and provider failures are
    reported and exit with status 1.
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    try:
        questions = load_questions(questions_file)
        question = find_question(questions, question_id)
        if question is None:
            console.print(f"[red]Error:[/red] Question not found: {question_id}")
            raise typer.Exit(1)

        if not answer_file.exists():
            console.print(f"[red]Error:[/red] Answer file not found: {answer_file}")
            raise typer.Exit(1)
        answer = answer_file.read_text(encoding="utf-8")

        notes_snippet = booklist_snippet = None
        if notes is not None:
            if not notes.exists():
                console.print(f"[red]Error:[/red] Notes file not found: {notes}")
                raise typer.Exit(1)
            notes_md = notes.read_text(encoding="utf-8")
            notes_snippet = extract_note_section(notes_md, question.note_heading)
            booklist_snippet = extract_booklist_section(notes_md)

        request = GradingRequest(
            question=question,
            answer=answer,
            provider=provider,
            model=model,
            api_key=api_key,
            elapsed_seconds=elapsed,
            notes_snippet=notes_snippet,
            booklist_snippet=booklist_snippet,
        )

        engine = GradingEngine(settings)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(
                f"Grading with {request.provider.value}... (this may take a moment)",
                total=None,
            )
            outcome = engine.grade_answer(request)

    except QuestionBankError as e:
        console.print(f"[red]Question Bank Error:[/red] {e}")
        raise typer.Exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid Request:[/red] {e.errors()[0]['msg']}")
        raise typer.Exit(1)
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(outcome.to_json_dict(), ensure_ascii=False, indent=2))
        return

    _display_results(outcome, show_raw)


@app.command()
def health() -> None:
    """
    Show which providers have a key in the environment.

    Makes no network calls.
    """
    settings = get_settings()
    console.print("[bold]Exam Grader Health Check[/bold]\n")

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Env Key")
    table.add_column("Default Model")

    for provider in Provider:
        has_key = settings.api_key_for(provider) is not None
        table.add_row(
            provider.value,
            "[green]✓[/green]" if has_key else "[dim]-[/dim]",
            settings.default_model_for(provider),
        )

    console.print(table)
    console.print(f"\nSubject: {settings.exam_subject}")
    console.print(f"Response Language: {settings.response_language}")


def _display_results(outcome: GradingOutcome, show_raw: bool = False) -> None:
    """Display grading results in panels and a feedback table."""
    result = outcome.result

    score_color = "green" if result.percentage_score >= 70 else "yellow" if result.percentage_score >= 50 else "red"
    console.print(
        Panel(
            f"[{score_color}][bold]{format_number(result.score)} / {format_number(result.max_score)}[/bold] "
            f"({result.percentage_score:.1f}%)[/{score_color}]",
            title="Score",
        )
    )

    if outcome.fallback:
        console.print("[yellow]⚠ The model reply could not be parsed; try grading again.[/yellow]")

    console.print(Panel(Text(result.rationale or "-"), title="Rationale"))

    table = Table(title="Feedback", show_lines=True)
    table.add_column("Section", style="cyan")
    table.add_column("Items")
    for title, items in (
        ("Strengths", result.strengths),
        ("Missing Points", result.missing_points),
        ("Improvements", result.improvements),
        ("Suggested Outline", result.suggested_outline),
        ("Booklist Topics", result.booklist_alignment.topics),
        ("References to Review", result.booklist_alignment.refs_to_review),
    ):
        if items:
            table.add_row(title, Text("\n".join(f"• {item}" for item in items)))
    if table.row_count:
        console.print(table)

    drill = result.next_drill
    if drill.prompt:
        console.print(
            Panel(
                Text.assemble(
                    drill.prompt,
                    "\n\n",
                    (f"Timebox: {format_number(drill.timebox_minutes)} minutes", "dim"),
                ),
                title="Next Drill",
            )
        )

    if show_raw:
        console.print(Panel(Text(outcome.raw), title="Raw Reply"))


if __name__ == "__main__":
    app()
