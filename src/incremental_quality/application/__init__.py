"""Bulk application of approved rules."""

from incremental_quality.application.applier import (
    APPLICATION_ORDER,
    DataFrameRuleApplier,
    RuleApplier,
    format_number,
    write_output,
)
from incremental_quality.application.models import BulkApplicationResult, RuleApplicationResult

__all__ = [
    "APPLICATION_ORDER",
    "BulkApplicationResult",
    "DataFrameRuleApplier",
    "RuleApplicationResult",
    "RuleApplier",
    "format_number",
    "write_output",
]
