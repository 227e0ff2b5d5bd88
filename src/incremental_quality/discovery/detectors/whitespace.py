"""Whitespace detector: leading/trailing whitespace and repeated spaces."""

from __future__ import annotations

import re

import pandas as pd

from incremental_quality.analysis.statistics import is_blank
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.models import DetectedPattern, PatternType

_REPEATED_WHITESPACE = re.compile(r"\s{2,}")


def has_whitespace_issue(value: object) -> bool:
    """Non-blank value with surrounding or repeated whitespace."""
    if is_blank(value) or not isinstance(value, str):
        return False
    return value.strip() != value or _REPEATED_WHITESPACE.search(value) is not None


class WhitespaceDetector(PatternDetector):
    detector_id = "whitespace_issue"
    pattern_type = PatternType.WHITESPACE_ISSUE
    description = "Detects leading, trailing or repeated whitespace"

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        values = column.tolist()
        total = len(values)
        affected = [v for v in values if has_whitespace_issue(v)]
        if not self.meets_threshold(len(affected), total):
            return []

        return [
            self.create_pattern(
                column_name=column_name,
                description=f"{len(affected)} values with extra whitespace",
                severity=Severity.LOW,
                occurrences=len(affected),
                total=total,
                confidence=1.0,
                examples=[f"'{v}'" for v in dict.fromkeys(affected)],
                suggested_fix="Trim and collapse multiple spaces",
            )
        ]
