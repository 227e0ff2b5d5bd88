"""Main CLI application entry point."""

from __future__ import annotations

import typer

from incremental_quality.cli.commands import rules, run, status

app = typer.Typer(
    name="incq",
    help="Incremental data-quality rule discovery with human review.",
    no_args_is_help=True,
)

# Register commands
app.command()(run.run)
app.command()(run.resume)
app.command()(status.status)
app.command()(rules.rules)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
