"""Sample analysis: column statistics and quality scoring."""

from incremental_quality.analysis.sample_analyzer import SampleAnalyzer
from incremental_quality.analysis.statistics import (
    ColumnAnalysis,
    SampleAnalysis,
    SampleAnalysisSummary,
)

__all__ = [
    "ColumnAnalysis",
    "SampleAnalysis",
    "SampleAnalysisSummary",
    "SampleAnalyzer",
]
