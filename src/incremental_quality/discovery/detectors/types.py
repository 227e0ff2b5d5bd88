"""Type inconsistency detector.

Classifies each value as missing (blank or a missing indicator), numeric
(parses as a finite number, grouped or comma-decimal notation included) or
text, and flags columns where neither numbers nor text clearly dominate.
"""

from __future__ import annotations

import pandas as pd

from incremental_quality.analysis.statistics import is_missing
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.detectors.formats import number_format_kind
from incremental_quality.discovery.models import DetectedPattern, PatternType

MIXED_LOWER = 0.1
MIXED_UPPER = 0.9


class TypeInconsistencyDetector(PatternDetector):
    """Detector for columns mixing numeric and text values.

    Flagged when 0.1 < numeric_ratio < 0.9 over present values.
    Formula: confidence = max(numeric_ratio, 1 - numeric_ratio)
    """

    detector_id = "type_inconsistency"
    pattern_type = PatternType.TYPE_INCONSISTENCY
    description = "Detects columns mixing numeric and text values"

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        values = column.tolist()
        total = len(values)
        indicators = self.config.missing_indicator_set

        numeric: list[str] = []
        text: list[str] = []
        for value in values:
            if is_missing(value, indicators):
                continue
            if number_format_kind(str(value)) is not None:
                numeric.append(str(value))
            else:
                text.append(str(value))

        non_empty = len(numeric) + len(text)
        if non_empty == 0:
            return []

        ratio = len(numeric) / non_empty
        if not MIXED_LOWER < ratio < MIXED_UPPER:
            return []

        minority = min(len(numeric), len(text))
        if not self.meets_threshold(minority, total):
            return []

        majority = "numeric" if len(numeric) >= len(text) else "text"
        minority_values = text if majority == "numeric" else numeric

        return [
            self.create_pattern(
                column_name=column_name,
                description=(
                    f"Mixed types: {len(numeric)} numeric and {len(text)} text values "
                    f"({ratio:.1%} numeric)"
                ),
                severity=Severity.HIGH,
                occurrences=minority,
                total=total,
                confidence=max(ratio, 1.0 - ratio),
                examples=list(dict.fromkeys(minority_values)),
                suggested_fix=f"Convert to {majority} or split into separate columns",
                details={
                    "numeric_count": len(numeric),
                    "text_count": len(text),
                    "numeric_ratio": ratio,
                    "majority_type": majority,
                },
            )
        ]
