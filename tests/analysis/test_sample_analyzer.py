"""Tests for the sample analyzer."""

import pytest
from conftest import raw_frame

from incremental_quality.analysis import SampleAnalyzer
from incremental_quality.analysis.statistics import ColumnKind
from incremental_quality.core.models.base import Severity


class TestColumnAnalysis:
    """Tests for per-column analysis."""

    def test_numeric_column(self):
        frame = raw_frame({"amount": ["1", "2", "3", None]})
        analysis = SampleAnalyzer().analyze(frame, stage_number=1)

        col = analysis.column("amount")
        assert col is not None
        assert col.kind == ColumnKind.NUMERIC
        assert col.null_count == 1
        assert col.non_null_count == 3
        assert col.numeric_stats is not None
        assert col.numeric_stats.mean == pytest.approx(2.0)
        assert col.categorical_stats is None

    def test_text_column(self):
        frame = raw_frame({"city": ["Seoul", "Busan", "Seoul", "N/A"]})
        col = SampleAnalyzer().analyze(frame, stage_number=1).column("city")

        assert col is not None
        assert col.kind == ColumnKind.TEXT
        assert col.null_count == 1
        assert col.categorical_stats is not None
        assert col.categorical_stats.mode == "Seoul"

    def test_empty_column(self):
        frame = raw_frame({"notes": [None, "", "null"]})
        col = SampleAnalyzer().analyze(frame, stage_number=1).column("notes")

        assert col is not None
        assert col.kind == ColumnKind.EMPTY
        assert col.missing_percentage == pytest.approx(100.0)

    def test_custom_missing_indicators(self):
        frame = raw_frame({"code": ["?", "a", "b"]})
        col = SampleAnalyzer(missing_indicators=["?"]).analyze(frame, 1).column("code")
        assert col is not None
        assert col.null_count == 1


class TestQualityIssues:
    """Tests for quality issues and recommendations."""

    def test_high_missing_is_high_severity(self):
        frame = raw_frame({"x": ["1", None, None, None]})
        col = SampleAnalyzer().analyze(frame, 1).column("x")
        assert col is not None
        issue = col.quality_issues[0]
        assert issue.issue_type == "high_missing_values"
        assert issue.severity == Severity.HIGH
        assert "Drop column due to excessive missing values" in col.recommendations

    def test_moderate_missing(self):
        frame = raw_frame({"x": ["1", "2", "3", None]})
        col = SampleAnalyzer().analyze(frame, 1).column("x")
        assert col is not None
        assert [i.issue_type for i in col.quality_issues] == ["moderate_missing_values"]
        assert "Fill missing numeric values with median" in col.recommendations


class TestSampleAnalysis:
    """Tests for sample-level results."""

    def test_quality_score_perfect(self):
        frame = raw_frame({"a": ["1", "2"], "b": ["x", "y"]})
        assert SampleAnalyzer().analyze(frame, 1).quality_score == pytest.approx(1.0)

    def test_quality_score_penalises_missing(self, customers_frame):
        analysis = SampleAnalyzer().analyze(customers_frame, stage_number=1, sample_ratio=1.0)
        # age is 20% missing: 1 - 0.2 * 0.5 = 0.9; other columns score 1.0
        assert analysis.quality_score == pytest.approx((1.0 + 0.9 + 1.0 + 1.0) / 4)

    def test_summarize(self, customers_frame):
        summary = SampleAnalyzer().analyze(customers_frame, stage_number=2).summarize()
        assert summary.row_count == 40
        assert summary.column_count == 4
        assert summary.numeric_columns == 2
        assert summary.categorical_columns == 2
        assert summary.columns_with_missing == 1
        assert summary.missing_percentage == pytest.approx(8 / 160 * 100)

    def test_summary_text(self, customers_frame):
        text = SampleAnalyzer().analyze(customers_frame, stage_number=1, sample_ratio=0.5).summary()
        assert text.startswith("Stage 1 sample: 40 rows x 4 columns")
        assert "Quality score" in text

    def test_statistics_convergence(self, customers_frame):
        analyzer = SampleAnalyzer()
        first = analyzer.analyze(customers_frame, 1)
        second = analyzer.analyze(customers_frame.copy(), 2)
        assert SampleAnalyzer.has_converged(first, second)

    def test_no_comparable_columns_never_converges(self):
        analyzer = SampleAnalyzer()
        empty = raw_frame({"x": [None, None]})
        assert not SampleAnalyzer.has_converged(analyzer.analyze(empty, 1), analyzer.analyze(empty, 2))
