"""Statistical analysis of sample columns.

Pure functions over raw string values:
- values: blank / missing / numeric classification of single cells
- numeric: descriptive statistics (scipy for skewness and kurtosis)
- categorical: frequency statistics and Shannon entropy
"""

from incremental_quality.analysis.statistics.categorical import (
    analyze_categorical,
    shannon_entropy,
)
from incremental_quality.analysis.statistics.models import (
    CategoricalStats,
    ColumnAnalysis,
    ColumnKind,
    NumericStats,
    QualityIssue,
    SampleAnalysis,
    SampleAnalysisSummary,
    ValueCount,
)
from incremental_quality.analysis.statistics.numeric import analyze_numeric
from incremental_quality.analysis.statistics.values import (
    is_blank,
    is_missing,
    numeric_values,
    parse_number,
)

__all__ = [
    # Functions
    "analyze_categorical",
    "analyze_numeric",
    "is_blank",
    "is_missing",
    "numeric_values",
    "parse_number",
    "shannon_entropy",
    # Models
    "CategoricalStats",
    "ColumnAnalysis",
    "ColumnKind",
    "NumericStats",
    "QualityIssue",
    "SampleAnalysis",
    "SampleAnalysisSummary",
    "ValueCount",
]
