"""Statistical Analysis Models.

Pydantic models produced by the sample analyzer:
- NumericStats: Descriptive statistics for numeric columns
- CategoricalStats: Frequency statistics for text columns
- ValueCount: Frequency count for top values
- QualityIssue: A column-level quality finding
- ColumnAnalysis: Everything known about one column of a sample
- SampleAnalysis: Analysis of one stage's sample
- SampleAnalysisSummary: Compact, checkpoint-friendly view of a SampleAnalysis
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from incremental_quality.core.models.base import Severity


class ColumnKind(str, Enum):
    """Kind inferred from a column's raw values."""

    NUMERIC = "numeric"
    TEXT = "text"
    EMPTY = "empty"


class NumericStats(BaseModel):
    """Statistics for numeric columns."""

    count: int = 0
    mean: float = 0.0
    median: float = 0.0
    mode: float | None = None
    variance: float = 0.0
    std_dev: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    skewness: float | None = None
    kurtosis: float | None = None
    outlier_count: int = 0
    total: float = 0.0
    percentiles: dict[str, float] = Field(default_factory=dict)

    @property
    def outlier_percentage(self) -> float:
        """IQR outliers as a percentage of values (0-100)."""
        return self.outlier_count / self.count * 100.0 if self.count else 0.0


class ValueCount(BaseModel):
    """A value with its count."""

    value: str
    count: int
    percentage: float


class CategoricalStats(BaseModel):
    """Statistics for text columns."""

    count: int = 0
    unique_count: int = 0
    top_values: list[ValueCount] = Field(default_factory=list)
    entropy: float = 0.0
    cardinality_ratio: float = 0.0

    @property
    def mode(self) -> str | None:
        return self.top_values[0].value if self.top_values else None

    @property
    def is_likely_identifier(self) -> bool:
        return self.cardinality_ratio > 0.95

    @property
    def is_low_cardinality(self) -> bool:
        return self.unique_count < 20 and self.cardinality_ratio < 0.1

    @property
    def is_high_cardinality(self) -> bool:
        return self.unique_count > 100 or self.cardinality_ratio > 0.5


class QualityIssue(BaseModel):
    """A quality finding attached to one column."""

    column_name: str
    issue_type: str
    severity: Severity
    description: str
    suggested_fix: str = ""


class ColumnAnalysis(BaseModel):
    """Analysis of a single column within a sample."""

    name: str
    index: int
    kind: ColumnKind
    total_count: int
    non_null_count: int
    null_count: int
    numeric_stats: NumericStats | None = None
    categorical_stats: CategoricalStats | None = None
    quality_issues: list[QualityIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def missing_percentage(self) -> float:
        """Missing values as a percentage (0-100)."""
        return self.null_count / self.total_count * 100.0 if self.total_count else 0.0


class SampleAnalysisSummary(BaseModel):
    """Compact analysis summary stored with each stage result."""

    row_count: int
    column_count: int
    quality_score: float
    numeric_columns: int
    categorical_columns: int
    columns_with_missing: int
    missing_percentage: float
    issue_count: int


class SampleAnalysis(BaseModel):
    """Statistical analysis of one stage's sample."""

    stage_number: int
    sample_ratio: float
    row_count: int
    column_count: int
    columns: list[ColumnAnalysis] = Field(default_factory=list)
    quality_score: float = 0.0
    estimated_memory_bytes: int = 0
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def column(self, name: str) -> ColumnAnalysis | None:
        """Look up a column analysis by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @property
    def numeric_column_count(self) -> int:
        return sum(1 for c in self.columns if c.numeric_stats is not None)

    @property
    def categorical_column_count(self) -> int:
        return sum(1 for c in self.columns if c.categorical_stats is not None)

    @property
    def columns_with_missing(self) -> int:
        return sum(1 for c in self.columns if c.null_count > 0)

    @property
    def missing_percentage(self) -> float:
        """Missing cells over all cells (0-100)."""
        cells = sum(c.total_count for c in self.columns)
        missing = sum(c.null_count for c in self.columns)
        return missing / cells * 100.0 if cells else 0.0

    @property
    def all_quality_issues(self) -> list[QualityIssue]:
        """Every column issue, most severe first."""
        issues = [issue for col in self.columns for issue in col.quality_issues]
        return sorted(issues, key=lambda i: i.severity.rank, reverse=True)

    def summarize(self) -> SampleAnalysisSummary:
        return SampleAnalysisSummary(
            row_count=self.row_count,
            column_count=self.column_count,
            quality_score=self.quality_score,
            numeric_columns=self.numeric_column_count,
            categorical_columns=self.categorical_column_count,
            columns_with_missing=self.columns_with_missing,
            missing_percentage=self.missing_percentage,
            issue_count=len(self.all_quality_issues),
        )

    def summary(self) -> str:
        """Human-readable summary text."""
        lines = [
            f"Stage {self.stage_number} sample: {self.row_count} rows x "
            f"{self.column_count} columns ({self.sample_ratio:.2%} of dataset)",
            f"Quality score: {self.quality_score:.2%}",
            f"Numeric columns: {self.numeric_column_count}, "
            f"categorical columns: {self.categorical_column_count}",
            f"Columns with missing values: {self.columns_with_missing} "
            f"({self.missing_percentage:.1f}% of cells missing)",
        ]
        issues = self.all_quality_issues
        if issues:
            lines.append(f"Quality issues ({len(issues)}):")
            for issue in issues:
                lines.append(
                    f"  [{issue.severity.value}] {issue.column_name}: {issue.description}"
                )
        return "\n".join(lines)
