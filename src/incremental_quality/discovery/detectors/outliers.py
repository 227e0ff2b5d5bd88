"""Statistical outlier detector.

Uses the z-score rule on the numeric values of a column: a value is an
outlier when |v - mean| > k * stddev (population stddev, k = 3 by default).
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from incremental_quality.analysis.statistics import numeric_values
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.models import DetectedPattern, PatternType

MIN_STD_DEV = 0.001
HIGH_SEVERITY_RATIO = 0.05


class OutlierDetector(PatternDetector):
    """Detector for numeric outliers.

    Requires at least outlier_min_values numeric values.
    Formula: confidence = 1 - outlier_ratio
    Severity: High above 5% outliers, otherwise Medium
    """

    detector_id = "outlier_anomaly"
    pattern_type = PatternType.OUTLIER_ANOMALY
    description = "Detects numeric values far from the column mean"

    def is_applicable(self, column: pd.Series) -> bool:
        return len(numeric_values(column.tolist())) >= self.config.outlier_min_values

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        total = len(column)
        numbers = np.asarray(numeric_values(column.tolist()), dtype=float)
        if numbers.size < self.config.outlier_min_values:
            return []

        mean = float(numbers.mean())
        std = float(numbers.std())
        if std < MIN_STD_DEV:
            return []

        k = self.config.outlier_std_threshold
        lower, upper = mean - k * std, mean + k * std
        outliers = numbers[np.abs(numbers - mean) > k * std]
        count = int(outliers.size)
        if not self.meets_threshold(count, total):
            return []

        ratio = count / total
        severity = Severity.HIGH if ratio > HIGH_SEVERITY_RATIO else Severity.MEDIUM

        return [
            self.create_pattern(
                column_name=column_name,
                description=(
                    f"{count} outliers beyond {k:g} standard deviations "
                    f"(observed range {numbers.min():g} to {numbers.max():g}, "
                    f"expected {lower:.2f} to {upper:.2f})"
                ),
                severity=severity,
                occurrences=count,
                total=total,
                confidence=1.0 - ratio,
                examples=[f"{v:g}" for v in outliers],
                suggested_fix="Remove, cap, or transform outliers after review",
                details={
                    "mean": mean,
                    "std_dev": std,
                    "lower_bound": lower,
                    "upper_bound": upper,
                    "std_threshold": k,
                },
            )
        ]
