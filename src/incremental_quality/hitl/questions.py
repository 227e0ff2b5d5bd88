"""HITL question generation.

Builds one question per review-required rule, with an option set chosen by
rule type, a recommended option and a context paragraph describing the
affected column. Options that need a value (a fill constant, an outlier
threshold, custom logic) get a follow-up input question.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pandas as pd

from incremental_quality.analysis.statistics import SampleAnalysis
from incremental_quality.core.logging import get_logger
from incremental_quality.discovery.models import PreprocessingRule, RuleType
from incremental_quality.hitl.models import (
    ActionType,
    HITLOption,
    HITLQuestion,
    QuestionPriority,
    QuestionType,
)
from incremental_quality.hitl.recommendations import RecommendationEngine, is_numeric_column

logger = get_logger(__name__)

HIGH_PRIORITY_RATIO = 0.10
LOW_PRIORITY_RATIO = 0.01

# (action, label, description) per rule family; keys are assigned A, B, C...
_MISSING_OPTIONS = [
    (ActionType.FILL_MEAN, "Fill with mean", "Replace missing values with the column mean"),
    (ActionType.FILL_MEDIAN, "Fill with median", "Replace missing values with the median (robust to outliers)"),
    (ActionType.FILL_MODE, "Fill with mode", "Replace missing values with the most frequent value"),
    (ActionType.FILL_CONSTANT, "Fill with a constant", "Replace missing values with a value you provide"),
    (ActionType.DROP_ROWS, "Drop rows", "Remove records with missing values"),
    (ActionType.KEEP_AS_IS, "Keep as-is", "Leave missing values untouched"),
]
_OUTLIER_OPTIONS = [
    (ActionType.REMOVE_OUTLIERS, "Remove outliers", "Delete records holding outlier values"),
    (ActionType.CAP_OUTLIERS, "Cap (winsorize)", "Clip values to the outlier bounds, keeping every record"),
    (ActionType.TRANSFORM, "Log transform", "Apply a signed log transform to compress extreme values"),
    (ActionType.KEEP_AS_IS, "Keep as-is", "Outliers may be legitimate edge cases"),
]
_TYPE_OPTIONS = [
    (ActionType.TO_NUMERIC, "Convert to numeric", "Parse values as numbers; unparseable values become missing"),
    (ActionType.TO_TEXT, "Convert to text", "Treat every value as text"),
    (ActionType.SPLIT_COLUMN, "Split column", "Separate numeric and text values into two columns"),
    (ActionType.KEEP_MIXED, "Keep mixed", "Leave the column as it is"),
]
_CATEGORY_OPTIONS = [
    (ActionType.MERGE_CATEGORIES, "Merge variations", "Standardize each group to its most frequent spelling"),
    (ActionType.KEEP_CATEGORIES, "Keep separate", "Preserve all variations as distinct categories"),
    (ActionType.MERGE_PRESERVE, "Merge and preserve original", "Merge variations and keep the original values in a new column"),
]
_BUSINESS_OPTIONS = [
    (ActionType.APPLY_RULE, "Apply rule", "Apply the business rule as described"),
    (ActionType.DELETE_ROWS, "Delete rows", "Remove records violating the rule"),
    (ActionType.KEEP_AS_IS, "Keep as-is", "Leave the data unchanged"),
    (ActionType.CUSTOM_LOGIC, "Custom logic", "Describe the custom handling in a follow-up answer"),
]
_CONFIRMATION_OPTIONS = [
    (ActionType.APPROVE, "Approve", "Apply this rule during bulk processing"),
    (ActionType.REJECT, "Reject", "Do not apply this rule"),
]
_YES_NO_OPTIONS = [
    (ActionType.DROP_ROWS, "Yes", "Remove duplicate records, keeping the first occurrence"),
    (ActionType.KEEP_AS_IS, "No", "Keep every record"),
]
_YES_NO_KEYS = ["Y", "N"]

_INPUT_TYPES = (QuestionType.NUMERIC_INPUT, QuestionType.TEXT_INPUT)

_QUESTION_TEXT = {
    RuleType.MISSING_VALUE_STRATEGY: "How should missing values in '{column}' be handled?",
    RuleType.OUTLIER_HANDLING: "How should outliers in '{column}' be handled?",
    RuleType.TYPE_CONVERSION: "How should mixed types in '{column}' be resolved?",
    RuleType.CATEGORY_MAPPING: "Should category variations in '{column}' be merged?",
    RuleType.UNKNOWN_CATEGORY_MAPPING: "Should unknown categories in '{column}' be mapped?",
    RuleType.BUSINESS_LOGIC_DECISION: "How should the business rule on '{column}' be handled?",
}

_YES_NO_TEXT = {
    RuleType.DUPLICATE_HANDLING: "Remove duplicate records in '{column}'?",
}

_OPTION_SETS = {
    RuleType.MISSING_VALUE_STRATEGY: _MISSING_OPTIONS,
    RuleType.OUTLIER_HANDLING: _OUTLIER_OPTIONS,
    RuleType.TYPE_CONVERSION: _TYPE_OPTIONS,
    RuleType.CATEGORY_MAPPING: _CATEGORY_OPTIONS,
    RuleType.UNKNOWN_CATEGORY_MAPPING: _CATEGORY_OPTIONS,
    RuleType.BUSINESS_LOGIC_DECISION: _BUSINESS_OPTIONS,
}


def question_priority(rule: PreprocessingRule) -> QuestionPriority:
    if rule.affected_percentage > HIGH_PRIORITY_RATIO:
        return QuestionPriority.HIGH
    if rule.affected_percentage < LOW_PRIORITY_RATIO:
        return QuestionPriority.LOW
    return QuestionPriority.NORMAL


def build_context(
    rule: PreprocessingRule,
    sample: pd.DataFrame | None = None,
    analysis: SampleAnalysis | None = None,
) -> str:
    """Context paragraph: affected rows, severity, examples and column stats."""
    column = rule.column_name
    rows = len(sample) if sample is not None else None
    scope = f" of {rows:,} sampled rows" if rows is not None else ""
    lines = [
        f"Column '{column}': {rule.affected_rows:,} affected rows "
        f"({rule.affected_percentage:.1%}{scope}), severity {rule.severity.value}.",
        rule.description,
    ]
    if rule.examples:
        lines.append("Examples: " + ", ".join(f"'{e}'" for e in rule.examples[:5]))

    col = analysis.column(column) if analysis is not None else None
    if col is not None:
        if col.numeric_stats is not None:
            stats = col.numeric_stats
            lines.append(
                f"Column stats: mean {stats.mean:.2f}, median {stats.median:.2f}, "
                f"std {stats.std_dev:.2f}, range {stats.min_value:g} to {stats.max_value:g}"
            )
        elif col.categorical_stats is not None:
            stats = col.categorical_stats
            top = ", ".join(f"{v.value} ({v.count})" for v in stats.top_values[:3])
            lines.append(f"Column stats: {stats.unique_count} distinct values; top: {top}")
        if col.null_count:
            lines.append(f"Missing: {col.missing_percentage:.1f}% of rows")
    return "\n".join(lines)


class HITLQuestionGenerator:
    """Generates questions for rules that need a human decision."""

    def __init__(
        self,
        recommendations: RecommendationEngine | None = None,
        outlier_std_threshold: float = 3.0,
    ):
        self.recommendations = recommendations or RecommendationEngine()
        self.outlier_std_threshold = outlier_std_threshold

    def generate(
        self,
        rule: PreprocessingRule,
        sample: pd.DataFrame | None = None,
        analysis: SampleAnalysis | None = None,
    ) -> HITLQuestion:
        """Build the question for one rule.

        Duplicate handling gets a yes/no question, auto-resolvable rules an
        approve/reject confirmation and every other review rule a
        multiple-choice question.
        """
        if rule.rule_type in _YES_NO_TEXT:
            question_type = QuestionType.YES_NO
            option_set = _YES_NO_OPTIONS
            keys = _YES_NO_KEYS
            text = _YES_NO_TEXT[rule.rule_type].format(column=rule.column_name)
        elif rule.rule_type in _OPTION_SETS:
            question_type = QuestionType.MULTIPLE_CHOICE
            option_set = _OPTION_SETS[rule.rule_type]
            keys = _letters(len(option_set))
            text = _QUESTION_TEXT[rule.rule_type].format(column=rule.column_name)
        else:
            question_type = QuestionType.CONFIRMATION
            option_set = _CONFIRMATION_OPTIONS
            keys = _letters(len(option_set))
            text = f"Apply '{rule.rule_type.value}' to '{rule.column_name}'? {rule.transformation}".strip()

        recommendation = self.recommendations.recommend(
            rule, sample, analysis, confirmation=question_type == QuestionType.CONFIRMATION
        )

        options: list[HITLOption] = []
        recommended_key: str | None = None
        for key, (action, label, description) in zip(keys, option_set, strict=True):
            is_recommended = recommended_key is None and action == recommendation.action
            if is_recommended:
                recommended_key = key
            options.append(
                HITLOption(
                    key=key,
                    label=label,
                    description=description,
                    action=action,
                    is_recommended=is_recommended,
                )
            )

        return self._question(
            rule,
            question_type,
            text,
            context=build_context(rule, sample, analysis),
            options=options,
            recommended_option=recommended_key,
            recommendation_reason=recommendation.reason,
        )

    def follow_up(
        self,
        rule: PreprocessingRule,
        action: ActionType,
        sample: pd.DataFrame | None = None,
        analysis: SampleAnalysis | None = None,
    ) -> HITLQuestion | None:
        """Value question for an option that needs one, None otherwise.

        - fill constant: NUMERIC_INPUT for numeric columns, TEXT_INPUT otherwise
        - remove or cap outliers: NUMERIC_INPUT for the standard-deviation threshold
        - custom logic: TEXT_INPUT describing the handling
        """
        column = rule.column_name
        if action == ActionType.FILL_CONSTANT:
            numeric = is_numeric_column(column, sample, analysis)
            return self._question(
                rule,
                QuestionType.NUMERIC_INPUT if numeric else QuestionType.TEXT_INPUT,
                f"Which value should replace missing values in '{column}'?",
                context=f"Column '{column}' is {'numeric' if numeric else 'text'}.",
            )
        if action in (ActionType.REMOVE_OUTLIERS, ActionType.CAP_OUTLIERS):
            current = float(rule.parameters.get("std_threshold", self.outlier_std_threshold))
            return self._question(
                rule,
                QuestionType.NUMERIC_INPUT,
                f"How many standard deviations from the mean mark an outlier in '{column}'?",
                context=(
                    f"Detected with a threshold of {current:g}. "
                    "A different value recomputes the bounds on the full dataset."
                ),
                recommendation_reason="Keep the threshold the outliers were detected with",
                default_value=current,
            )
        if action == ActionType.CUSTOM_LOGIC:
            return self._question(
                rule,
                QuestionType.TEXT_INPUT,
                f"Describe the custom handling for '{column}'.",
                context=rule.description,
            )
        return None

    @staticmethod
    def _question(
        rule: PreprocessingRule,
        question_type: QuestionType,
        text: str,
        context: str,
        options: list[HITLOption] | None = None,
        recommended_option: str | None = None,
        recommendation_reason: str | None = None,
        default_value: float | str | None = None,
    ) -> HITLQuestion:
        created_at = datetime.now(UTC)
        suffix = "_value" if question_type in _INPUT_TYPES else ""
        question = HITLQuestion(
            id=f"HITL_{rule.id}{suffix}_{created_at:%Y%m%d%H%M%S}",
            type=question_type,
            context=context,
            question=text,
            options=options or [],
            recommended_option=recommended_option,
            recommendation_reason=recommendation_reason,
            rule_id=rule.id,
            priority=question_priority(rule),
            default_value=default_value,
            created_at=created_at,
        )
        logger.debug(
            "hitl_question_generated",
            question_id=question.id,
            rule_id=rule.id,
            type=question.type.value,
            recommended=recommended_option,
        )
        return question


def _letters(count: int) -> list[str]:
    return [chr(ord("A") + i) for i in range(count)]
