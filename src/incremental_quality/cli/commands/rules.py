"""Rules command - list rules stored in a checkpoint."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table as RichTable

from incremental_quality.cli.common import CheckpointArg, console, open_checkpoint


def rules(
    checkpoint: CheckpointArg,
    approved: Annotated[
        bool,
        typer.Option(
            "--approved",
            help="Show only approved rules",
        ),
    ] = False,
) -> None:
    """List discovered (or approved) rules.

    Examples:

        incq rules ./checkpoints/checkpoint-<session>-completed.json

        incq rules ./checkpoints/checkpoint-<session>-completed.json --approved
    """
    state = open_checkpoint(checkpoint)
    selected = state.approved_rules if approved else state.discovered_rules

    if not selected:
        console.print("[yellow]No rules found[/yellow]")
        return

    table = RichTable(title="Approved rules" if approved else "Discovered rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Columns")
    table.add_column("Severity")
    table.add_column("Priority", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Affected", justify="right")
    table.add_column("Review")
    table.add_column("Approved by")

    for rule in selected:
        table.add_row(
            rule.rule_type.value,
            ", ".join(rule.column_names),
            rule.severity.value,
            str(rule.priority),
            f"{rule.confidence:.1%}",
            f"{rule.affected_rows} ({rule.affected_percentage:.1%})",
            "required" if rule.requires_hitl else "auto",
            rule.approved_by or "[dim]-[/dim]",
        )
    console.print(table)
