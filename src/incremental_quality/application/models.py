"""Rule application models.

- RuleApplicationResult: Outcome of applying one rule
- BulkApplicationResult: Outcome of a full application pass
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from incremental_quality.discovery.models import RuleType


class RuleApplicationResult(BaseModel):
    """Outcome of applying one rule to the dataset."""

    rule_id: str
    rule_type: RuleType
    column_names: list[str] = Field(default_factory=list)
    success: bool
    skipped: bool = False
    action: str | None = None
    rows_affected: int = 0
    error: str | None = None
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def status(self) -> str:
        if not self.success:
            return "failed"
        return "skipped" if self.skipped else "applied"

    def describe(self) -> str:
        """One-line outcome, as recorded in stage notes."""
        if not self.success:
            return f"{self.rule_id}: failed ({self.error})"
        if self.skipped:
            return f"{self.rule_id}: skipped ({self.message})"
        text = f"{self.rule_id}: applied ({self.rows_affected} rows)"
        if self.details.get("unconverted"):
            text += f", {self.details['unconverted']} values left unconverted"
        return text


class BulkApplicationResult(BaseModel):
    """Outcome of applying approved rules to the full dataset."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    results: list[RuleApplicationResult] = Field(default_factory=list)
    rows_before: int = 0
    rows_after: int = 0
    stopped_early: bool = False
    duration_seconds: float = 0.0
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Cleaned data, None when the applier produces no frame
    frame: pd.DataFrame | None = Field(default=None, exclude=True)

    @property
    def applied_count(self) -> int:
        return sum(1 for r in self.results if r.success and not r.skipped)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.success and r.skipped)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success(self) -> bool:
        """True when no rule failed."""
        return self.failed_count == 0 and not self.stopped_early

    @property
    def is_partial(self) -> bool:
        """Some rules applied and some failed."""
        return self.failed_count > 0 and self.applied_count > 0

    @property
    def failed_rules(self) -> list[RuleApplicationResult]:
        return [r for r in self.results if not r.success]
