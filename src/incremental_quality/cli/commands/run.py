"""Run and resume commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from incremental_quality.cli.commands.status import print_summary
from incremental_quality.cli.common import (
    CheckpointArg,
    ConsoleAnswerProvider,
    JsonLogsFlag,
    LogLevelOption,
    QuietFlag,
    SkipHitlFlag,
    console,
    open_checkpoint,
    setup_logging,
)
from incremental_quality.core.config import get_settings
from incremental_quality.core.exceptions import IncrementalQualityError
from incremental_quality.pipeline import (
    IncrementalWorkflow,
    ProgressUpdate,
    WorkflowConfig,
    WorkflowState,
    latest_checkpoint,
)


def run(
    dataset: Annotated[
        Path,
        typer.Argument(
            help="Path to the CSV dataset",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    skip_hitl: SkipHitlFlag = False,
    auto_approve: Annotated[
        bool,
        typer.Option(
            "--auto-approve",
            help="Approve remaining rules when the stage-4 confidence meets the threshold",
        ),
    ] = False,
    checkpoint_dir: Annotated[
        Path | None,
        typer.Option(
            "--checkpoint-dir",
            help="Directory for checkpoints (default: INCQ_CHECKPOINT_DIR)",
        ),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option(
            "--output-dir",
            "-o",
            help="Directory for the cleaned dataset and report (default: INCQ_OUTPUT_DIR)",
        ),
    ] = None,
    seed: Annotated[
        int | None,
        typer.Option(
            "--seed",
            help="Sampling seed (default: INCQ_RANDOM_SEED)",
        ),
    ] = None,
    strategy: Annotated[
        str,
        typer.Option(
            "--strategy",
            help="Sampling strategy (adaptive, random or stratified)",
        ),
    ] = "adaptive",
    stratify_column: Annotated[
        str | None,
        typer.Option(
            "--stratify-column",
            help="Label column for stratified or adaptive sampling",
        ),
    ] = None,
    no_checkpoints: Annotated[
        bool,
        typer.Option(
            "--no-checkpoints",
            help="Do not write checkpoints",
        ),
    ] = False,
    no_report: Annotated[
        bool,
        typer.Option(
            "--no-report",
            help="Skip the markdown report (metadata and decision log are still written)",
        ),
    ] = False,
    log_level: LogLevelOption = None,
    json_logs: JsonLogsFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Run the incremental workflow on a dataset.

    Examples:

        incq run data.csv

        incq run data.csv --skip-hitl --auto-approve

        incq run data.csv --strategy stratified --stratify-column label

        incq run data.csv --json-logs --log-level DEBUG
    """
    setup_logging(log_level, json_logs)
    settings = get_settings()

    try:
        config = WorkflowConfig(
            skip_hitl=skip_hitl,
            enable_auto_approval=auto_approve,
            enable_checkpoints=not no_checkpoints,
            generate_report=not no_report,
            checkpoint_dir=checkpoint_dir or settings.checkpoint_dir,
            output_dir=output_dir or settings.output_dir,
            random_seed=settings.random_seed if seed is None else seed,
            sampling_strategy=strategy,
            stratify_column=stratify_column,
        )
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    workflow = _build_workflow(skip_hitl)
    state = _execute(
        lambda: workflow.start(dataset, config, progress=None if quiet else _print_progress),
        config.checkpoint_dir if config.enable_checkpoints else None,
    )
    if not quiet:
        print_summary(state)


def resume(
    checkpoint: CheckpointArg,
    skip_hitl: SkipHitlFlag = False,
    log_level: LogLevelOption = None,
    json_logs: JsonLogsFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Resume a workflow from a checkpoint.

    Examples:

        incq resume ./checkpoints/checkpoint-<session>-hitl_decision.json
    """
    setup_logging(log_level, json_logs)

    saved = open_checkpoint(checkpoint)
    if skip_hitl:
        saved.config.skip_hitl = True

    workflow = _build_workflow(saved.config.skip_hitl)
    state = _execute(
        lambda: workflow.resume(saved, progress=None if quiet else _print_progress),
        saved.config.checkpoint_dir,
    )
    if not quiet:
        print_summary(state)


def _build_workflow(skip_hitl: bool) -> IncrementalWorkflow:
    provider = None if skip_hitl else ConsoleAnswerProvider()
    return IncrementalWorkflow(answer_provider=provider)


def _execute(
    start: Callable[[], Awaitable[WorkflowState]],
    checkpoint_dir: Path | None,
) -> WorkflowState:
    async def _main() -> WorkflowState:
        return await start()

    try:
        return asyncio.run(_main())
    except IncrementalQualityError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if e.__cause__ is not None:
            console.print(f"[red]Cause: {escape(str(e.__cause__))}[/red]")
        raise typer.Exit(1) from e
    except KeyboardInterrupt as e:
        console.print("\n[yellow]Interrupted.[/yellow]")
        if checkpoint_dir is not None:
            latest = latest_checkpoint(checkpoint_dir)
            if latest is not None:
                console.print(f"Resume with: incq resume {latest}")
        raise typer.Exit(1) from e


def _print_progress(update: ProgressUpdate) -> None:
    if update.percentage == 0.0:
        console.print(f"[cyan]>[/cyan] {update.message}")
        return
    converged = " (converged)" if update.has_converged else ""
    console.print(
        f"[green]✓[/green] {update.message} "
        f"[dim]rules={update.rules_discovered} "
        f"confidence={update.confidence_score:.1%}{converged}[/dim]"
    )
