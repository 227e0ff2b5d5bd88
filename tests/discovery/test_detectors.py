"""Tests for the built-in pattern detectors."""

import pandas as pd
import pytest

from incremental_quality.core.config import DetectionConfig
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors import (
    CategoryVariationDetector,
    DetectorRegistry,
    EncodingIssueDetector,
    FormatVariationDetector,
    MissingValueDetector,
    OutlierDetector,
    PatternDetector,
    TypeInconsistencyDetector,
    WhitespaceDetector,
    create_default_registry,
    repair_mojibake,
)
from incremental_quality.discovery.models import PatternType


def column(values: list) -> pd.Series:
    return pd.Series(values, dtype=object)


class ExplodingDetector(PatternDetector):
    detector_id = "exploding"

    def detect(self, column, column_name):
        raise RuntimeError("boom")


class TestMissingValueDetector:
    """Tests for MissingValueDetector."""

    def test_mixed_representations(self):
        patterns = MissingValueDetector().detect(column(["1", "", "NA", "2", "null"]), "score")

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern_type == PatternType.MISSING_VALUE
        assert pattern.occurrences == 3
        assert pattern.affected_percentage == pytest.approx(0.6)
        assert pattern.severity == Severity.HIGH
        assert pattern.confidence == pytest.approx(0.4)
        assert pattern.details["detector_id"] == "missing_value"

    def test_medium_severity_at_or_below_ten_percent(self):
        values = ["1"] * 9 + [None]
        pattern = MissingValueDetector().detect(column(values), "x")[0]
        assert pattern.severity == Severity.MEDIUM

    def test_below_threshold_emits_nothing(self):
        config = DetectionConfig(min_affected_percentage=0.5)
        assert MissingValueDetector(config).detect(column(["1", None, "2"]), "x") == []

    def test_no_missing(self):
        assert MissingValueDetector().detect(column(["a", "b"]), "x") == []


class TestTypeInconsistencyDetector:
    """Tests for TypeInconsistencyDetector."""

    def test_mixed_column(self):
        values = ["1", "2", "3", "4", "5", "6", "seven", "eight", "", None]
        pattern = TypeInconsistencyDetector().detect(column(values), "qty")[0]

        assert pattern.occurrences == 2
        assert pattern.details["majority_type"] == "numeric"
        assert pattern.confidence == pytest.approx(0.75)
        assert pattern.examples == ["seven", "eight"]

    def test_dominant_type_is_not_flagged(self):
        values = [str(i) for i in range(19)] + ["x"]
        assert TypeInconsistencyDetector().detect(column(values), "n") == []

    def test_blank_only(self):
        assert TypeInconsistencyDetector().detect(column(["", None, " "]), "n") == []


    def test_missing_markers_are_not_text(self):
        values = ["1", "", "NA", "2", "null"]
        assert TypeInconsistencyDetector().detect(column(values), "score") == []

    def test_grouped_numbers_count_as_numeric(self):
        values = ["1,234", "12,5", "7", "1 000"]
        assert TypeInconsistencyDetector().detect(column(values), "n") == []


class TestFormatVariationDetector:
    """Tests for FormatVariationDetector."""

    def test_two_date_formats(self):
        values = ["2024-01-15", "15/01/2024", "2024-01-16"]
        pattern = FormatVariationDetector().detect(column(values), "signup")[0]

        assert pattern.pattern_type == PatternType.FORMAT_VARIATION
        assert pattern.details["formats"] == {"yyyy-MM-dd": 2, "dd/MM/yyyy": 1}
        assert pattern.details["dominant_format"] == "yyyy-MM-dd"
        assert pattern.confidence == pytest.approx(1.0)
        assert pattern.severity == Severity.LOW

    def test_single_format(self):
        assert FormatVariationDetector().detect(column(["2024-01-15", "2024-02-01"]), "d") == []

    def test_confidence_is_matched_share(self):
        values = ["2024-01-15", "15/01/2024", "soon", "later"]
        pattern = FormatVariationDetector().detect(column(values), "d")[0]
        assert pattern.confidence == pytest.approx(0.5)

    def test_month_first_dates(self):
        values = ["2024-01-15", "01/15/2024", "12/31/2024"]
        [pattern] = FormatVariationDetector().detect(column(values), "signup")

        assert pattern.details["formats"] == {"yyyy-MM-dd": 1, "MM/dd/yyyy": 2}
        assert pattern.details["dominant_format"] == "MM/dd/yyyy"
        assert pattern.details["unparsed_dates"] == 0

    def test_ambiguous_dates_default_to_day_first(self):
        values = ["2024-01-15", "03/04/2024"]
        [pattern] = FormatVariationDetector().detect(column(values), "signup")
        assert pattern.details["formats"] == {"yyyy-MM-dd": 1, "dd/MM/yyyy": 1}

    def test_number_formats(self):
        values = ["1,234.5", "1200", "12,5", "980", "1 000"]
        [pattern] = FormatVariationDetector().detect(column(values), "price")

        assert pattern.details["variation_kind"] == "number"
        assert pattern.details["number_formats"] == {
            "thousands": 1,
            "plain": 2,
            "comma_decimal": 1,
            "space_grouped": 1,
        }
        assert pattern.occurrences == 3
        assert pattern.confidence == pytest.approx(0.85)
        assert pattern.examples == ["1,234.5", "12,5", "1 000"]

    def test_single_number_notation(self):
        assert FormatVariationDetector().detect(column(["1,234", "2,345"]), "n") == []

    def test_boolean_spellings(self):
        values = ["yes", "no", "Y", "N", "true"]
        [pattern] = FormatVariationDetector().detect(column(values), "active")

        assert pattern.details["variation_kind"] == "boolean"
        assert pattern.occurrences == 4
        assert pattern.confidence == pytest.approx(0.90)
        assert pattern.examples == ["yes", "no", "Y", "N"]

    def test_true_false_pair_is_not_a_variation(self):
        detector = FormatVariationDetector()
        assert detector.detect(column(["true", "false", "TRUE"]), "flag") == []
        assert detector.detect(column(["1", "0", "1"]), "flag") == []


class TestOutlierDetector:
    """Tests for OutlierDetector."""

    def test_not_applicable_below_min_values(self):
        assert not OutlierDetector().is_applicable(column(["1", "2", "3"]))

    def test_reference_values_with_three_sigma(self):
        # mean 92, population std ~184.3: 500 lies within 3 sigma
        config = DetectionConfig(outlier_min_values=6)
        values = column(["10", "11", "9", "10", "12", "500"])
        assert OutlierDetector(config).detect(values, "v") == []

    def test_reference_values_with_two_sigma(self):
        config = DetectionConfig(outlier_min_values=6, outlier_std_threshold=2.0)
        values = column(["10", "11", "9", "10", "12", "500"])
        pattern = OutlierDetector(config).detect(values, "v")[0]

        assert pattern.occurrences == 1
        assert pattern.examples == ["500"]
        assert pattern.details["mean"] == pytest.approx(92.0)
        assert pattern.details["std_dev"] == pytest.approx(184.28, abs=0.01)
        assert pattern.severity == Severity.HIGH

    def test_constant_column(self):
        config = DetectionConfig(outlier_min_values=3)
        assert OutlierDetector(config).detect(column(["5"] * 10), "v") == []


class TestCategoryVariationDetector:
    """Tests for CategoryVariationDetector."""

    def test_case_variations(self):
        values = ["Seoul"] * 6 + ["seoul"] * 2 + ["Busan"] * 2
        patterns = CategoryVariationDetector().detect(column(values), "city")

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.details["variation_kind"] == "case"
        assert pattern.details["mapping"] == {"seoul": "Seoul"}
        assert pattern.occurrences == 2
        assert pattern.confidence == pytest.approx(0.95)

    def test_similar_spellings(self):
        values = ["Seoul"] * 8 + ["Seuol"] + ["Busan"] * 5
        patterns = CategoryVariationDetector(
            DetectionConfig(category_similarity_threshold=0.5)
        ).detect(column(values), "city")

        similar = [p for p in patterns if p.details["variation_kind"] == "similarity"]
        assert len(similar) == 1
        assert similar[0].details["mapping"] == {"Seuol": "Seoul"}
        assert similar[0].severity == Severity.MEDIUM

    def test_not_applicable_to_numeric_or_dates(self):
        detector = CategoryVariationDetector()
        assert not detector.is_applicable(column(["1", "2", "3"]))
        assert not detector.is_applicable(column(["2024-01-01", "2024-01-02"]))

    def test_not_applicable_above_max_distinct(self):
        detector = CategoryVariationDetector(DetectionConfig(category_max_distinct=2))
        assert not detector.is_applicable(column(["a", "b", "c"]))


class TestEncodingIssueDetector:
    """Tests for EncodingIssueDetector."""

    def test_mojibake_and_replacement_characters(self):
        values = ["cafÃ©", "na\ufffdve", "plain", "text"]
        detector = EncodingIssueDetector()
        assert detector.is_applicable(column(values))

        pattern = detector.detect(column(values), "name")[0]
        assert pattern.occurrences == 2
        assert pattern.severity == Severity.CRITICAL
        assert pattern.details["replacement_chars"] == 1

    def test_ascii_only_not_applicable(self):
        assert not EncodingIssueDetector().is_applicable(column(["abc", None]))

    def test_repair_mojibake(self):
        assert repair_mojibake("cafÃ©") == "café"
        assert repair_mojibake("plain") is None


class TestWhitespaceDetector:
    """Tests for WhitespaceDetector."""

    def test_surrounding_and_repeated(self):
        values = [" a", "b ", "c  d", "ok", None]
        pattern = WhitespaceDetector().detect(column(values), "name")[0]
        assert pattern.occurrences == 3
        assert pattern.confidence == pytest.approx(1.0)

    def test_clean_column(self):
        assert WhitespaceDetector().detect(column(["a", "b c"]), "name") == []


class TestDetectorRegistry:
    """Tests for DetectorRegistry."""

    def test_default_registry_order(self):
        registry = create_default_registry()
        assert registry.get_detector_ids() == [
            "missing_value",
            "type_inconsistency",
            "format_variation",
            "outlier_anomaly",
            "category_variation",
            "encoding_issue",
            "whitespace_issue",
        ]

    def test_failure_is_captured(self):
        registry = DetectorRegistry()
        registry.register(ExplodingDetector())
        registry.register(WhitespaceDetector())

        results = registry.run_all(column([" a", "b"]), "name")
        assert not results[0][1].success
        assert "boom" in (results[0][1].error or "")
        assert results[1][1].success
        assert len(results[1][1].unwrap()) == 1

    def test_not_applicable_is_empty_success(self):
        registry = DetectorRegistry()
        registry.register(OutlierDetector())
        [(_, result)] = registry.run_all(column(["1"]), "n")
        assert result.success
        assert result.value == []

    def test_lookup_by_pattern(self):
        registry = create_default_registry()
        detectors = registry.get_detectors_for_pattern(PatternType.WHITESPACE_ISSUE)
        assert [d.detector_id for d in detectors] == ["whitespace_issue"]
