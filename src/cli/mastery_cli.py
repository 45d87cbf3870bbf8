"""
Typer CLI for objective mastery tracking.

Commands:
    mastery evaluate FILE           - Evaluate an attempt history stored as JSON
    mastery evaluate FILE --json    - Same, printing the result as JSON
    mastery progress STUDENT COURSE - Show stored objective progress
    mastery db init                 - Create database tables

Attempt files hold a JSON list, most recent attempt first:
    [
        {"question_format": "short_answer", "was_correct": true,
         "evaluation": {"reasoning_quality_score": 2, "has_major_mistake": false}},
        {"question_format": "multiple_choice", "was_correct": true}
    ]
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path

import typer
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from config import Settings, get_settings
from src.core.mastery import (
    Attempt,
    MasteryResult,
    MasteryStatus,
    ShortAnswerEvaluation,
    evaluate_objective_mastery,
)

app = typer.Typer(
    help="Objective mastery CLI: evaluate attempt histories and inspect student progress",
    no_args_is_help=True,
)
db_app = typer.Typer(help="Database management", no_args_is_help=True)
app.add_typer(db_app, name="db")

console = Console()


# ========================================
# Input Models
# ========================================


class EvaluationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reasoning_quality_score: int = Field(..., alias="reasoningQualityScore", ge=0, le=2)
    has_major_mistake: bool = Field(..., alias="hasMajorMistake")
    evaluation_notes: str | None = Field(None, alias="evaluationNotes")


class AttemptPayload(BaseModel):
    """One attempt as read from an attempt file (snake_case or camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    question_format: str = Field(..., alias="questionFormat", min_length=1)
    was_correct: bool = Field(..., alias="wasCorrect")
    evaluation: EvaluationPayload | None = None
    attempted_at: datetime | None = Field(None, alias="attemptedAt")

    def to_attempt(self) -> Attempt:
        evaluation = None
        if self.evaluation is not None:
            evaluation = ShortAnswerEvaluation(
                reasoning_quality_score=self.evaluation.reasoning_quality_score,
                has_major_mistake=self.evaluation.has_major_mistake,
                evaluation_notes=self.evaluation.evaluation_notes,
            )
        return Attempt(
            question_format=self.question_format,
            was_correct=self.was_correct,
            evaluation=evaluation,
            attempted_at=self.attempted_at,
        )


_ATTEMPT_LIST = TypeAdapter(list[AttemptPayload])


def load_attempts(path: Path) -> list[Attempt]:
    """
    Read and validate an attempt file.

    Raises:
        ValidationError: If the file is not a valid JSON list of attempts
    """
    payloads = _ATTEMPT_LIST.validate_json(path.read_bytes())
    return [payload.to_attempt() for payload in payloads]


# ========================================
# Rendering
# ========================================


def render_result(result: MasteryResult) -> None:
    status = result.status
    formats = ", ".join(sorted(result.distinct_formats_correct)) or "-"

    table = Table(show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Current streak", str(result.streak_count))
    table.add_row("Formats answered correctly", formats)
    table.add_row("Recent major mistake", "yes" if result.has_recent_major_mistake else "no")
    table.add_row("Reasoning quality ok", "yes" if result.reasoning_quality_satisfied else "no")

    console.print(
        Panel(
            f"{result.explanation}\n\n[bold]Next:[/bold] {result.recommendation}",
            title=f"[{status.color}]{status.display_name}[/{status.color}]",
            border_style=status.color,
        )
    )
    console.print(table)


# ========================================
# Commands
# ========================================


@app.command()
def evaluate(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Attempt file (JSON)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Evaluate mastery of one objective from an attempt history file."""
    try:
        attempts = load_attempts(path)
    except ValidationError as e:
        console.print(f"[red]Invalid attempt file {path}:[/red]\n{escape(str(e))}")
        raise typer.Exit(code=1)

    logger.debug(f"Loaded {len(attempts)} attempts from {path}")
    result = evaluate_objective_mastery(attempts)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        render_result(result)


@app.command()
def progress(
    student_id: str = typer.Argument(..., help="Student ID"),
    course_id: str = typer.Argument(..., help="Course ID"),
):
    """Show a student's objective progress for a course."""
    from src.db.repository import SqlAlchemyMasteryRepository
    from src.learning.mastery_service import MasteryService

    service = MasteryService(SqlAlchemyMasteryRepository())
    try:
        modules = service.student_progress(student_id, course_id)
    except SQLAlchemyError as e:
        logger.error(f"Progress query failed: {e}")
        console.print(f"[red]Could not load progress:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if not modules:
        console.print(f"[yellow]No modules found for course {course_id}[/yellow]")
        return

    for module in modules:
        if not module.objectives_defined:
            console.print(f"[dim]{module.module_name}: objectives not generated yet[/dim]")
            continue

        table = Table(title=module.module_name, show_header=True)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Objective", style="cyan")
        table.add_column("Status")
        table.add_column("Correct", justify="right")
        table.add_column("Mastery %", justify="right")

        for obj in module.objectives:
            status = MasteryStatus(obj.status)
            table.add_row(
                str(obj.objective_index + 1),
                obj.objective_text,
                f"[{status.color}]{status.display_name}[/{status.color}]",
                f"{obj.correct_count}/{obj.total_count}",
                f"{obj.mastery_percentage}%",
            )
        console.print(table)

    summary = service.analytics_summary(student_id, course_id)
    console.print(
        f"\n[bold]Mastered:[/bold] {summary.mastered_objectives}/{summary.total_objectives} "
        f"objectives ({summary.mastery_percentage}%)"
    )


@db_app.command("init")
def db_init():
    """Create database tables."""
    from src.db.database import init_db

    try:
        init_db()
    except SQLAlchemyError as e:
        console.print(f"[red]Database initialization failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print("[green]Database tables initialized[/green]")


# =============================================================================
# Entry Point
# =============================================================================


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr (and the log file, when configured)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB", retention=5)


def run() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    run()
