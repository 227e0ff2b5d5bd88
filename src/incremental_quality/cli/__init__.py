"""Command-line interface."""

from incremental_quality.cli.main import app, main

__all__ = ["app", "main"]
