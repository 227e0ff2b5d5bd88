"""Shared models."""

from incremental_quality.core.models.base import Result, Severity, clamp_unit

__all__ = [
    "Result",
    "Severity",
    "clamp_unit",
]
