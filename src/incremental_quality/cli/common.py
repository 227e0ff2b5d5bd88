"""Shared CLI utilities and constants."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, FloatPrompt, Prompt

from incremental_quality.core.config import get_settings
from incremental_quality.core.exceptions import CheckpointError
from incremental_quality.core.logging import configure_logging
from incremental_quality.hitl import HITLAnswer, HITLQuestion, QuestionType, render_question
from incremental_quality.pipeline import WorkflowState, load_checkpoint

# Load .env file from current directory
load_dotenv()

# Shared console instance
console = Console()

# Common type aliases for typer options
CheckpointArg = Annotated[
    Path,
    typer.Argument(
        help="Path to a checkpoint file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]

JsonFlag = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output as JSON for scripting",
    ),
]

LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR); default from INCQ_LOG_LEVEL",
    ),
]

JsonLogsFlag = Annotated[
    bool,
    typer.Option(
        "--json-logs",
        help="Emit JSON logs instead of console output",
    ),
]

SkipHitlFlag = Annotated[
    bool,
    typer.Option(
        "--skip-hitl",
        help="Auto-approve review-required rules instead of asking",
    ),
]

QuietFlag = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress progress output",
    ),
]


def setup_logging(log_level: str | None = None, json_logs: bool = False) -> None:
    """Configure structured logging from CLI flags, falling back to settings."""
    settings = get_settings()
    log_format = "json" if json_logs else settings.log_format
    configure_logging(
        log_level=log_level or settings.log_level,
        log_format=log_format,
        show_timestamps=log_format == "json",
        color=log_format == "console",
    )


def open_checkpoint(path: Path) -> WorkflowState:
    """Load a checkpoint or exit with an error message."""
    try:
        return load_checkpoint(path)
    except CheckpointError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e


class ConsoleAnswerProvider:
    """Asks HITL questions on the terminal with rich prompts.

    An empty answer selects the recommended option, or the default value
    for input questions.
    """

    def __init__(self, answered_by: str = "user"):
        self.answered_by = answered_by

    async def answer(self, question: HITLQuestion) -> HITLAnswer | None:
        return await asyncio.to_thread(self._ask, question)

    def _ask(self, question: HITLQuestion) -> HITLAnswer | None:
        console.print()
        console.print(Panel(render_question(question), title=question.rule_id, expand=False))

        if question.type == QuestionType.NUMERIC_INPUT:
            default = question.default_value
            if default is None:
                number = FloatPrompt.ask("Value", console=console)
            else:
                number = FloatPrompt.ask("Value", default=float(default), console=console)
            return HITLAnswer(
                question_id=question.id, numeric_value=number, answered_by=self.answered_by
            )
        if question.type == QuestionType.TEXT_INPUT:
            default = "" if question.default_value is None else str(question.default_value)
            text = Prompt.ask("Value", default=default, console=console)
            if not text:
                return None
            return HITLAnswer(
                question_id=question.id, text_value=text, answered_by=self.answered_by
            )

        keys = [option.key for option in question.options]
        if not keys:
            return None
        if question.type == QuestionType.YES_NO:
            agreed = Confirm.ask(
                question.question,
                default=question.recommended_option != keys[-1],
                console=console,
            )
            return HITLAnswer(
                question_id=question.id, boolean_value=agreed, answered_by=self.answered_by
            )

        choice = Prompt.ask(
            "Choose an option",
            choices=keys,
            default=question.recommended_option or keys[0],
            console=console,
        )
        notes = Prompt.ask("Notes (optional)", default="", console=console)
        return HITLAnswer(
            question_id=question.id,
            selected_option_key=choice,
            answered_by=self.answered_by,
            notes=notes or None,
        )
