"""Status command - show workflow state from a checkpoint."""

from __future__ import annotations

import json
from typing import Any

from rich.table import Table as RichTable

from incremental_quality.cli.common import CheckpointArg, JsonFlag, console, open_checkpoint
from incremental_quality.hitl import DecisionLogger, DecisionSummary
from incremental_quality.pipeline import WorkflowState


def status(
    checkpoint: CheckpointArg,
    json_output: JsonFlag = False,
) -> None:
    """Show the state stored in a checkpoint.

    Examples:

        incq status ./checkpoints/checkpoint-<session>-hitl_decision.json

        incq status ./checkpoints/checkpoint-<session>-completed.json --json
    """
    state = open_checkpoint(checkpoint)
    if json_output:
        console.print_json(json.dumps(state_summary(state)))
    else:
        print_summary(state)


def decision_summary(state: WorkflowState) -> DecisionSummary:
    """Aggregate the review decisions stored in a checkpoint."""
    decision_log = DecisionLogger()
    decision_log.restore(state.session_id, state.decisions)
    return decision_log.summary(state.session_id)


def state_summary(state: WorkflowState) -> dict[str, Any]:
    """Compact, JSON-friendly view of a workflow state."""
    return {
        "session_id": state.session_id,
        "dataset_path": state.dataset_path,
        "current_stage": state.current_stage.value,
        "total_records": state.total_records,
        "discovered_rules": len(state.discovered_rules),
        "approved_rules": len(state.approved_rules),
        "confidence_score": state.confidence_score,
        "has_converged": state.has_converged,
        "decisions": len(state.decisions),
        "decision_summary": decision_summary(state).model_dump(mode="json"),
        "output_path": state.output_path,
        "deliverables": (
            state.deliverables.model_dump(mode="json") if state.deliverables else None
        ),
        "started_at": state.started_at.isoformat(),
        "completed_at": state.completed_at.isoformat() if state.completed_at else None,
        "stages": [
            {
                "stage": result.stage.value,
                "sample_size": result.sample_size,
                "sample_ratio": result.sample_ratio,
                "rules_discovered": len(result.rules_discovered),
                "duration_seconds": result.duration_seconds,
                "notes": result.notes,
            }
            for result in sorted(state.completed_stages.values(), key=lambda r: r.stage.number)
        ],
    }


def print_summary(state: WorkflowState) -> None:
    """Print a workflow state with Rich tables."""
    console.print("\n[bold]Incremental Quality Workflow[/bold]")
    console.print("=" * 60)
    console.print(f"Session: {state.session_id}")
    console.print(f"Dataset: {state.dataset_path} ({state.total_records:,} records)")
    console.print(f"Stage: {state.current_stage.value}")

    if state.completed_stages:
        table = RichTable(title="Stages")
        table.add_column("Stage", style="cyan")
        table.add_column("Sample", justify="right")
        table.add_column("Ratio", justify="right")
        table.add_column("New rules", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Notes")
        for result in sorted(state.completed_stages.values(), key=lambda r: r.stage.number):
            table.add_row(
                result.stage.value,
                f"{result.sample_size:,}",
                f"{result.sample_ratio:.1%}",
                str(len(result.rules_discovered)),
                f"{result.duration_seconds:.2f}s",
                result.notes,
            )
        console.print(table)

    console.print()
    console.print("[bold]Summary[/bold]")
    console.print("-" * 60)
    console.print(f"  Rules discovered: {len(state.discovered_rules)}")
    console.print(f"  [green]Approved:[/green] {len(state.approved_rules)}")
    console.print(f"  Confidence: {state.confidence_score:.2%}")
    converged = "[green]yes[/green]" if state.has_converged else "[yellow]no[/yellow]"
    console.print(f"  Converged: {converged}")
    summary = decision_summary(state)
    console.print(
        f"  HITL decisions: {summary.total_decisions} "
        f"({summary.approved} approved, {summary.rejected} rejected)"
    )
    asked = summary.followed_recommendations + summary.overridden_recommendations
    if asked:
        console.print(
            f"  Followed recommendations: {summary.followed_recommendations}/{asked} "
            f"({summary.recommendation_follow_rate:.0%})"
        )
    if summary.action_distribution:
        actions = ", ".join(f"{k}={v}" for k, v in sorted(summary.action_distribution.items()))
        console.print(f"  Actions: {actions}")
    if state.output_path:
        console.print(f"  Output: {state.output_path}")
    if state.deliverables is not None:
        if state.deliverables.report_path:
            console.print(f"  Report: {state.deliverables.report_path}")
        console.print(f"  Metadata: {state.deliverables.metadata_path}")
        console.print(f"  Decision log: {state.deliverables.decisions_path}")
    for note in state.notes:
        console.print(f"  [dim]{note}[/dim]")
