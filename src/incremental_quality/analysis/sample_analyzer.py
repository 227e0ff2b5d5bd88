"""Sample analyzer.

Profiles every column of a stage sample: inferred kind, missing counts,
numeric or categorical statistics, quality issues and recommendations,
plus a sample-level quality score.
"""

from __future__ import annotations

import time
from collections.abc import Iterable

import pandas as pd

from incremental_quality.analysis.statistics import (
    CategoricalStats,
    ColumnAnalysis,
    ColumnKind,
    NumericStats,
    QualityIssue,
    SampleAnalysis,
    analyze_categorical,
    analyze_numeric,
    is_missing,
    parse_number,
)
from incremental_quality.core.config import DEFAULT_MISSING_INDICATORS
from incremental_quality.core.logging import get_logger, record_columns_analyzed
from incremental_quality.core.models.base import Severity

logger = get_logger(__name__)

# Share of non-missing values that must parse for a column to count as numeric
NUMERIC_KIND_THRESHOLD = 0.9


class SampleAnalyzer:
    """Statistical profile of a sample DataFrame."""

    def __init__(self, missing_indicators: Iterable[str] | None = None):
        indicators = DEFAULT_MISSING_INDICATORS if missing_indicators is None else missing_indicators
        self.missing_indicators = frozenset(v.strip().lower() for v in indicators)

    def analyze(
        self,
        sample: pd.DataFrame,
        stage_number: int,
        sample_ratio: float = 1.0,
    ) -> SampleAnalysis:
        """Analyze every column of a sample.

        Args:
            sample: Sample frame (raw string values, None for nulls)
            stage_number: Workflow stage the sample belongs to
            sample_ratio: Share of the dataset the sample represents

        Returns:
            SampleAnalysis with per-column analyses and quality score
        """
        start = time.time()
        logger.info(
            "sample_analysis_started",
            stage=stage_number,
            rows=len(sample),
            columns=len(sample.columns),
        )

        columns = [
            self.analyze_column(sample[name], str(name), index)
            for index, name in enumerate(sample.columns)
        ]

        analysis = SampleAnalysis(
            stage_number=stage_number,
            sample_ratio=sample_ratio,
            row_count=len(sample),
            column_count=len(sample.columns),
            columns=columns,
            quality_score=self.quality_score(columns),
            estimated_memory_bytes=int(sample.memory_usage(deep=True).sum()),
        )

        record_columns_analyzed(len(columns))
        logger.info(
            "sample_analysis_completed",
            stage=stage_number,
            quality_score=round(analysis.quality_score, 4),
            issues=len(analysis.all_quality_issues),
            duration_seconds=round(time.time() - start, 3),
        )
        return analysis

    def analyze_column(self, column: pd.Series, name: str, index: int) -> ColumnAnalysis:
        """Analyze one column."""
        values = column.tolist()
        present = [v for v in values if not is_missing(v, self.missing_indicators)]
        null_count = len(values) - len(present)

        parsed = [parse_number(v) for v in present]
        numbers = [p for p in parsed if p is not None]

        numeric_stats: NumericStats | None = None
        categorical_stats: CategoricalStats | None = None
        if not present:
            kind = ColumnKind.EMPTY
        elif len(numbers) / len(present) >= NUMERIC_KIND_THRESHOLD:
            kind = ColumnKind.NUMERIC
            numeric_stats = analyze_numeric(numbers)
        else:
            kind = ColumnKind.TEXT
            categorical_stats = analyze_categorical(present)

        issues = _detect_quality_issues(
            name, len(values), null_count, numeric_stats, categorical_stats
        )
        recommendations = _recommend(
            kind, len(values), null_count, numeric_stats, categorical_stats
        )

        return ColumnAnalysis(
            name=name,
            index=index,
            kind=kind,
            total_count=len(values),
            non_null_count=len(present),
            null_count=null_count,
            numeric_stats=numeric_stats,
            categorical_stats=categorical_stats,
            quality_issues=issues,
            recommendations=recommendations,
        )

    @staticmethod
    def quality_score(columns: list[ColumnAnalysis]) -> float:
        """Mean per-column score; missing values and severe issues are penalised."""
        if not columns:
            return 0.0

        total = 0.0
        for col in columns:
            missing_penalty = col.missing_percentage / 100.0 * 0.5
            severe = sum(1 for i in col.quality_issues if i.severity.rank >= Severity.HIGH.rank)
            issue_penalty = min(severe * 0.2, 0.4)
            total += max(1.0 - missing_penalty - issue_penalty, 0.0)
        return total / len(columns)

    @staticmethod
    def has_converged(
        previous: SampleAnalysis,
        current: SampleAnalysis,
        threshold: float = 0.01,
    ) -> bool:
        """Whether column statistics stopped moving between two samples.

        Compares numeric means and standard deviations and categorical
        entropies column by column; converged when the mean relative change
        is below the threshold. False when nothing is comparable.
        """
        changes: list[float] = []
        for prev_col, curr_col in zip(previous.columns, current.columns, strict=False):
            prev_num, curr_num = prev_col.numeric_stats, curr_col.numeric_stats
            if prev_num is not None and curr_num is not None:
                changes.append(
                    abs(prev_num.mean - curr_num.mean) / max(abs(prev_num.mean), 1.0)
                )
                changes.append(
                    abs(prev_num.std_dev - curr_num.std_dev) / max(prev_num.std_dev, 1.0)
                )

            prev_cat, curr_cat = prev_col.categorical_stats, curr_col.categorical_stats
            if prev_cat is not None and curr_cat is not None:
                changes.append(
                    abs(prev_cat.entropy - curr_cat.entropy) / max(prev_cat.entropy, 1.0)
                )

        if not changes:
            return False

        mean_change = sum(changes) / len(changes)
        converged = mean_change < threshold
        logger.debug(
            "statistics_convergence_check",
            mean_change=round(mean_change, 6),
            threshold=threshold,
            converged=converged,
        )
        return converged


def _detect_quality_issues(
    name: str,
    total: int,
    null_count: int,
    numeric_stats: NumericStats | None,
    categorical_stats: CategoricalStats | None,
) -> list[QualityIssue]:
    issues: list[QualityIssue] = []
    missing_pct = null_count / total * 100.0 if total else 0.0

    if missing_pct > 50:
        issues.append(
            QualityIssue(
                column_name=name,
                issue_type="high_missing_values",
                severity=Severity.HIGH,
                description=f"{missing_pct:.1f}% missing values",
                suggested_fix="Consider dropping this column or imputing values",
            )
        )
    elif missing_pct > 20:
        issues.append(
            QualityIssue(
                column_name=name,
                issue_type="moderate_missing_values",
                severity=Severity.MEDIUM,
                description=f"{missing_pct:.1f}% missing values",
                suggested_fix="Consider an imputation strategy (mean, median, mode)",
            )
        )

    if numeric_stats is not None and numeric_stats.outlier_percentage > 5:
        issues.append(
            QualityIssue(
                column_name=name,
                issue_type="high_outliers",
                severity=Severity.MEDIUM,
                description=f"{numeric_stats.outlier_percentage:.1f}% outliers detected",
                suggested_fix="Review outliers; they may be errors or genuine extreme values",
            )
        )

    if categorical_stats is not None and categorical_stats.is_high_cardinality:
        issues.append(
            QualityIssue(
                column_name=name,
                issue_type="high_cardinality",
                severity=Severity.LOW,
                description=f"High cardinality: {categorical_stats.unique_count} unique values",
                suggested_fix="Consider target encoding or embedding instead of one-hot encoding",
            )
        )

    return issues


def _recommend(
    kind: ColumnKind,
    total: int,
    null_count: int,
    numeric_stats: NumericStats | None,
    categorical_stats: CategoricalStats | None,
) -> list[str]:
    recommendations: list[str] = []

    if null_count > 0 and total > 0:
        if null_count / total > 0.5:
            recommendations.append("Drop column due to excessive missing values")
        elif kind == ColumnKind.NUMERIC:
            recommendations.append("Fill missing numeric values with median")
        else:
            recommendations.append("Fill missing categorical values with mode or 'Unknown'")

    if categorical_stats is not None:
        if categorical_stats.is_low_cardinality:
            recommendations.append("Apply one-hot encoding")
        elif categorical_stats.is_high_cardinality:
            recommendations.append("Apply target encoding or embedding")
        elif categorical_stats.is_likely_identifier:
            recommendations.append("Drop column - likely an identifier with no predictive value")

    if numeric_stats is not None and numeric_stats.outlier_count > 0:
        recommendations.append("Review outliers and consider clipping or transformation")

    return recommendations
