"""Tests for applying approved rules to a dataset."""

import math

import pytest
from conftest import make_rule, raw_frame

from incremental_quality.application import (
    DataFrameRuleApplier,
    RuleApplier,
    format_number,
    write_output,
)
from incremental_quality.discovery.models import PatternType, RuleType


def apply_one(frame, rule, **kwargs):
    result = DataFrameRuleApplier(**kwargs).apply(frame, [rule])
    return result.frame, result.results[0]


def missing_rule(**parameters):
    return make_rule(
        RuleType.MISSING_VALUE_STRATEGY, "age", PatternType.MISSING_VALUE, parameters=parameters
    )


def outlier_rule(**parameters):
    return make_rule(
        RuleType.OUTLIER_HANDLING, "amount", PatternType.OUTLIER_ANOMALY, parameters=parameters
    )


def type_rule(**parameters):
    return make_rule(
        RuleType.TYPE_CONVERSION, "qty", PatternType.TYPE_INCONSISTENCY, parameters=parameters
    )


def city_rule(**parameters):
    return make_rule(
        RuleType.CASE_NORMALIZATION, "city", PatternType.CATEGORY_VARIATION, parameters=parameters
    )


@pytest.fixture
def ages():
    return raw_frame({"age": ["10", "20", None, "30", "NA"]})


@pytest.fixture
def amounts():
    return raw_frame({"amount": ["10", "500", "-5", None]})


@pytest.fixture
def cities():
    return raw_frame({"city": ["Seoul", "seoul", None, "Busan"]})


class TestFormatNumber:
    """Tests for format_number."""

    def test_integers_lose_the_decimal_point(self):
        assert format_number(20.0) == "20"
        assert format_number(-3.0) == "-3"

    def test_fractions_are_kept(self):
        assert format_number(2.5) == "2.5"


class TestAutoResolvableHandlers:
    """Tests for the cell-level cleanup handlers."""

    def test_protocol(self):
        assert isinstance(DataFrameRuleApplier(), RuleApplier)

    def test_whitespace(self):
        frame = raw_frame({"name": ["  Ann ", "Bob", "a  b", None]})
        rule = make_rule(RuleType.WHITESPACE_NORMALIZATION, "name", PatternType.WHITESPACE_ISSUE)
        cleaned, result = apply_one(frame, rule)

        assert cleaned["name"].tolist() == ["Ann", "Bob", "a b", None]
        assert result.rows_affected == 2
        assert result.status == "applied"

    def test_dates_become_iso(self):
        frame = raw_frame({"signup": ["2024-01-15", "15/01/2024", None, "not a date"]})
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION, "signup", PatternType.FORMAT_VARIATION
        )
        cleaned, result = apply_one(frame, rule)

        assert cleaned["signup"].tolist() == ["2024-01-15", "2024-01-15", None, "not a date"]
        assert result.rows_affected == 1

    def test_impossible_date_is_left_alone(self):
        frame = raw_frame({"signup": ["31/02/2024"]})
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION, "signup", PatternType.FORMAT_VARIATION
        )
        cleaned, result = apply_one(frame, rule)
        assert cleaned["signup"].tolist() == ["31/02/2024"]
        assert result.details["unconverted"] == 1
        assert result.describe().endswith("1 values left unconverted")

    def test_month_first_column(self):
        frame = raw_frame({"signup": ["2024-01-15", "01/15/2024", "12/31/2024"]})
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION, "signup", PatternType.FORMAT_VARIATION
        )
        cleaned, result = apply_one(frame, rule)

        assert cleaned["signup"].tolist() == ["2024-01-15", "2024-01-15", "2024-12-31"]
        assert result.rows_affected == 2
        assert result.details["unconverted"] == 0
        assert result.details["converted_formats"] == ["MM/dd/yyyy", "yyyy-MM-dd"]

    def test_ambiguous_dates_follow_the_column(self):
        frame = raw_frame({"signup": ["03/04/2024", "01/15/2024"]})
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION, "signup", PatternType.FORMAT_VARIATION
        )
        cleaned, _ = apply_one(frame, rule)
        assert cleaned["signup"].tolist() == ["2024-03-04", "2024-01-15"]

    def test_other_order_is_tried_before_giving_up(self):
        frame = raw_frame({"signup": ["15/01/2024", "01/20/2024", "02/03/2024"]})
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION, "signup", PatternType.FORMAT_VARIATION
        )
        cleaned, result = apply_one(frame, rule)

        # Day-first wins the tie; the month-first value still converts
        assert cleaned["signup"].tolist() == ["2024-01-15", "2024-01-20", "2024-03-02"]
        assert result.details["unconverted"] == 0

    def test_detected_formats_are_preferred(self):
        frame = raw_frame({"signup": ["02/03/2024", "2024-01-01"]})
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION,
            "signup",
            PatternType.FORMAT_VARIATION,
            parameters={"formats": {"yyyy-MM-dd": 1, "MM/dd/yyyy": 1}},
        )
        cleaned, _ = apply_one(frame, rule)
        assert cleaned["signup"].tolist() == ["2024-02-03", "2024-01-01"]

    def test_encoding_repair(self):
        frame = raw_frame({"name": ["CafÃ©", "ab\ufffd", "plain"]})
        rule = make_rule(RuleType.ENCODING_NORMALIZATION, "name", PatternType.ENCODING_ISSUE)
        cleaned, result = apply_one(frame, rule)

        assert cleaned["name"].tolist() == ["Café", "ab", "plain"]
        assert result.rows_affected == 2

    def test_numeric_separators(self):
        frame = raw_frame({"price": ["1,234.5", "12", "1.234,5", "12,5", "1 000", "n/a"]})
        rule = make_rule(
            RuleType.NUMERIC_FORMAT_STANDARDIZATION, "price", PatternType.FORMAT_VARIATION
        )
        cleaned, result = apply_one(frame, rule)

        assert cleaned["price"].tolist() == ["1234.5", "12", "1234.5", "12.5", "1000", "n/a"]
        assert result.rows_affected == 4

    def test_booleans(self):
        frame = raw_frame({"active": ["yes", "N", "true", "OFF", None, "maybe"]})
        rule = make_rule(
            RuleType.BOOLEAN_FORMAT_STANDARDIZATION, "active", PatternType.FORMAT_VARIATION
        )
        cleaned, result = apply_one(frame, rule)

        assert cleaned["active"].tolist() == ["true", "false", "true", "false", None, "maybe"]
        assert result.rows_affected == 3


class TestCategoryHandlers:
    """Tests for category and case mapping."""

    def test_merge(self, cities):
        cleaned, result = apply_one(cities, city_rule(mapping={"seoul": "Seoul"}))
        assert cleaned["city"].tolist() == ["Seoul", "Seoul", None, "Busan"]
        assert result.rows_affected == 1

    def test_merge_preserve_keeps_original(self, cities):
        rule = city_rule(mapping={"seoul": "Seoul"}, action="merge_preserve")
        cleaned, _ = apply_one(cities, rule)

        assert list(cleaned.columns) == ["city", "city_original"]
        assert cleaned["city_original"].tolist() == ["Seoul", "seoul", None, "Busan"]
        assert cleaned["city"].tolist() == ["Seoul", "Seoul", None, "Busan"]

    def test_keep(self, cities):
        rule = city_rule(mapping={"seoul": "Seoul"}, action="keep_categories")
        cleaned, result = apply_one(cities, rule)
        assert cleaned["city"].tolist() == cities["city"].tolist()
        assert result.rows_affected == 0

    def test_merge_without_mapping_fails(self, cities):
        cleaned, result = apply_one(cities, city_rule())
        assert result.status == "failed"
        assert "has no category mapping" in result.error
        assert cleaned["city"].tolist() == cities["city"].tolist()


class TestMissingValueHandler:
    """Tests for missing value strategies."""

    def test_median_by_default(self, ages):
        cleaned, result = apply_one(ages, missing_rule())
        assert cleaned["age"].tolist() == ["10", "20", "20", "30", "20"]
        assert result.rows_affected == 2

    def test_mean(self, ages):
        frame = raw_frame({"age": ["10", "20", None, "40"]})
        cleaned, _ = apply_one(frame, missing_rule(action="fill_mean"))
        assert cleaned["age"].tolist()[2] == format_number(70 / 3)

    def test_mode_for_text(self):
        frame = raw_frame({"age": ["x", "y", "x", None]})
        cleaned, _ = apply_one(frame, missing_rule(action="fill_mode"))
        assert cleaned["age"].tolist() == ["x", "y", "x", "x"]

    def test_drop_rows(self, ages):
        result = DataFrameRuleApplier().apply(ages, [missing_rule(action="drop_rows")])
        assert result.frame["age"].tolist() == ["10", "20", "30"]
        assert result.rows_before == 5
        assert result.rows_after == 3

    def test_constant(self, ages):
        cleaned, _ = apply_one(ages, missing_rule(action="fill_constant", constant_value=0.0))
        assert cleaned["age"].tolist() == ["10", "20", "0", "30", "0"]

    def test_constant_requires_value(self, ages):
        _, result = apply_one(ages, missing_rule(action="fill_constant"))
        assert result.status == "failed"
        assert "constant_value" in result.error

    def test_keep_as_is(self, ages):
        cleaned, result = apply_one(ages, missing_rule(action="keep_as_is"))
        assert cleaned["age"].tolist() == ages["age"].tolist()
        assert result.rows_affected == 0


class TestOutlierHandler:
    """Tests for outlier strategies."""

    def test_cap(self, amounts):
        cleaned, result = apply_one(amounts, outlier_rule(lower_bound=0, upper_bound=100))
        assert cleaned["amount"].tolist() == ["10", "100", "0", None]
        assert result.rows_affected == 2

    def test_remove(self, amounts):
        rule = outlier_rule(lower_bound=0, upper_bound=100, action="remove_outliers")
        result = DataFrameRuleApplier().apply(amounts, [rule])
        assert result.frame["amount"].tolist() == ["10", None]
        assert result.results[0].rows_affected == 2

    def test_transform(self, amounts):
        cleaned, _ = apply_one(amounts, outlier_rule(action="transform"))
        values = cleaned["amount"].tolist()
        assert float(values[0]) == pytest.approx(math.log1p(10))
        assert float(values[2]) == pytest.approx(-math.log1p(5))
        assert values[3] is None

    def test_unrelated_action_fails(self, amounts):
        _, result = apply_one(amounts, outlier_rule(action="fill_mean"))
        assert result.status == "failed"


class TestTypeConversionHandler:
    """Tests for mixed-type resolution."""

    def test_to_numeric(self):
        frame = raw_frame({"qty": ["1", "2", "x"]})
        cleaned, _ = apply_one(frame, type_rule(majority_type="numeric"))
        assert cleaned["qty"].tolist() == [1.0, 2.0, None]

    def test_to_text(self):
        frame = raw_frame({"qty": ["1", " a "]})
        cleaned, _ = apply_one(frame, type_rule(majority_type="text"))
        assert cleaned["qty"].tolist() == ["1", "a"]

    def test_split(self):
        frame = raw_frame({"id": ["a", "b", "c"], "qty": ["1", "x", None]})
        cleaned, result = apply_one(frame, type_rule(action="split_column"))

        assert list(cleaned.columns) == ["id", "qty_numeric", "qty_text"]
        assert cleaned["qty_numeric"].tolist() == [1.0, None, None]
        assert cleaned["qty_text"].tolist() == [None, "x", None]
        assert result.rows_affected == 2


class TestOtherHandlers:
    """Tests for duplicates, business rules and rejected rules."""

    def test_duplicates(self):
        frame = raw_frame({"id": ["1", "2", "1"], "v": ["a", "b", "c"]})
        rule = make_rule(RuleType.DUPLICATE_HANDLING, "id", PatternType.DUPLICATE_RECORDS)
        result = DataFrameRuleApplier().apply(frame, [rule])

        assert result.frame["v"].tolist() == ["a", "b"]
        assert result.results[0].rows_affected == 1

    def test_business_rule_is_skipped(self, ages):
        rule = make_rule(
            RuleType.BUSINESS_LOGIC_DECISION, "age", PatternType.BUSINESS_RULE
        )
        cleaned, result = apply_one(ages, rule)

        assert result.status == "skipped"
        assert result.success
        assert cleaned["age"].tolist() == ages["age"].tolist()

    def test_custom_logic_is_reported(self, ages):
        rule = make_rule(
            RuleType.BUSINESS_LOGIC_DECISION,
            "age",
            PatternType.BUSINESS_RULE,
            parameters={"action": "custom_logic", "custom_logic": "cap at 120"},
        )
        _, result = apply_one(ages, rule)

        assert result.skipped
        assert result.message == "custom handling recorded for manual follow-up: cap at 120"

    def test_rejected_rule_is_skipped(self, ages):
        _, result = apply_one(ages, missing_rule(action="reject"))
        assert result.skipped
        assert result.message == "rejected during review"
        assert result.describe() == f"{missing_rule().id}: skipped (rejected during review)"


class TestBulkApplication:
    """Tests for ordering and failure handling across rules."""

    def test_cleanup_runs_before_imputation(self):
        frame = raw_frame({"age": [" 10", "20 ", None]})
        whitespace = make_rule(
            RuleType.WHITESPACE_NORMALIZATION, "age", PatternType.WHITESPACE_ISSUE
        )
        result = DataFrameRuleApplier().apply(frame, [missing_rule(), whitespace])

        assert [r.rule_type for r in result.results] == [
            RuleType.WHITESPACE_NORMALIZATION,
            RuleType.MISSING_VALUE_STRATEGY,
        ]
        assert result.frame["age"].tolist() == ["10", "20", "15"]

    def test_partial_failure_continues(self, ages):
        ghost = make_rule(RuleType.WHITESPACE_NORMALIZATION, "ghost", PatternType.WHITESPACE_ISSUE)
        result = DataFrameRuleApplier().apply(ages, [ghost, missing_rule()])

        assert result.applied_count == 1
        assert result.failed_count == 1
        assert result.is_partial
        assert not result.success
        assert "Column 'ghost' not found" in result.failed_rules[0].error
        assert result.failed_rules[0].describe().startswith(f"{ghost.id}: failed (")
        assert result.results[1].describe() == f"{missing_rule().id}: applied (2 rows)"

    def test_stop_on_first_failure(self, ages):
        ghost = make_rule(RuleType.WHITESPACE_NORMALIZATION, "ghost", PatternType.WHITESPACE_ISSUE)
        result = DataFrameRuleApplier(continue_on_failure=False).apply(
            ages, [ghost, missing_rule()]
        )

        assert result.stopped_early
        assert len(result.results) == 1
        assert result.frame["age"].tolist() == ages["age"].tolist()

    def test_input_frame_is_not_modified(self, ages):
        before = ages["age"].tolist()
        DataFrameRuleApplier().apply(ages, [missing_rule()])
        assert ages["age"].tolist() == before

    def test_write_output(self, ages, tmp_path):
        path = write_output(ages, tmp_path / "out" / "ages-cleaned.csv")
        assert path.exists()
        assert path.read_text(encoding="utf-8").splitlines()[0] == "age"
