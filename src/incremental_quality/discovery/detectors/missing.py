"""Missing value detector.

Counts nulls, blank strings and textual missing indicators ("N/A", "null",
"-", ...). Indicators are matched trimmed and case-insensitively.
"""

from __future__ import annotations

from collections import Counter

import pandas as pd

from incremental_quality.analysis.statistics import is_blank, is_missing
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.models import DetectedPattern, PatternType

HIGH_SEVERITY_RATIO = 0.10


def _representation(value: object) -> str:
    if value is None or (isinstance(value, float) and value != value):
        return "<null>"
    if is_blank(value):
        return "<empty>"
    return str(value).strip()


class MissingValueDetector(PatternDetector):
    """Detector for missing values.

    Formula: confidence = 1 - missing_ratio
    Severity: High above 10% missing, otherwise Medium
    """

    detector_id = "missing_value"
    pattern_type = PatternType.MISSING_VALUE
    description = "Detects nulls, blanks and textual missing-value indicators"

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        values = column.tolist()
        total = len(values)
        indicators = self.config.missing_indicator_set

        representations = Counter(
            _representation(v) for v in values if is_missing(v, indicators)
        )
        missing = sum(representations.values())
        if not self.meets_threshold(missing, total):
            return []

        ratio = missing / total
        examples = [rep for rep, _ in representations.most_common(3)]
        severity = Severity.HIGH if ratio > HIGH_SEVERITY_RATIO else Severity.MEDIUM

        return [
            self.create_pattern(
                column_name=column_name,
                description=f"{ratio:.1%} missing values ({', '.join(examples)})",
                severity=severity,
                occurrences=missing,
                total=total,
                confidence=1.0 - ratio,
                examples=examples,
                suggested_fix="impute or drop",
                details={"representations": dict(representations)},
            )
        ]
