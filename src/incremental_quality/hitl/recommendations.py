"""Recommended answers for HITL questions.

Each recommendation is an action plus a short reason shown to the reviewer.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from incremental_quality.analysis.statistics import ColumnKind, SampleAnalysis, numeric_values
from incremental_quality.discovery.models import PreprocessingRule, RuleType
from incremental_quality.hitl.models import ActionType

CONFIRMATION_CONFIDENCE = 0.9


@dataclass(frozen=True)
class Recommendation:
    action: ActionType
    reason: str


def is_numeric_column(
    column_name: str,
    sample: pd.DataFrame | None = None,
    analysis: SampleAnalysis | None = None,
) -> bool:
    """Whether a column holds numbers, from the analysis or the raw sample."""
    if analysis is not None:
        col = analysis.column(column_name)
        if col is not None:
            return col.kind == ColumnKind.NUMERIC
    if sample is not None and column_name in sample.columns:
        values = [v for v in sample[column_name].tolist() if v is not None and str(v).strip()]
        return bool(values) and len(numeric_values(values)) / len(values) >= 0.9
    return False


class RecommendationEngine:
    """Picks the recommended action for a rule's question."""

    def recommend(
        self,
        rule: PreprocessingRule,
        sample: pd.DataFrame | None = None,
        analysis: SampleAnalysis | None = None,
        confirmation: bool = False,
    ) -> Recommendation:
        if confirmation:
            return self._confirmation(rule)

        match rule.rule_type:
            case RuleType.MISSING_VALUE_STRATEGY:
                return self._missing(rule, sample, analysis)
            case RuleType.OUTLIER_HANDLING:
                return self._outlier(rule)
            case RuleType.TYPE_CONVERSION:
                return self._type(rule, sample)
            case RuleType.DUPLICATE_HANDLING:
                return self._duplicates(rule)
            case RuleType.CATEGORY_MAPPING | RuleType.UNKNOWN_CATEGORY_MAPPING:
                return Recommendation(
                    ActionType.MERGE_CATEGORIES,
                    "Merging category variations improves consistency and reduces dimensionality",
                )
            case _:
                return Recommendation(
                    ActionType.KEEP_AS_IS,
                    "Keeping values as-is is the safest option until the business logic is clarified",
                )

    @staticmethod
    def _missing(
        rule: PreprocessingRule,
        sample: pd.DataFrame | None,
        analysis: SampleAnalysis | None,
    ) -> Recommendation:
        pct = rule.affected_percentage
        if pct < 0.05:
            return Recommendation(
                ActionType.DROP_ROWS,
                f"Only {pct:.1%} of rows are affected; dropping them has minimal impact",
            )
        if is_numeric_column(rule.column_name, sample, analysis):
            return Recommendation(
                ActionType.FILL_MEAN,
                "Mean imputation preserves the distribution of numeric data with few outliers",
            )
        return Recommendation(
            ActionType.FILL_MODE,
            "Mode imputation keeps categorical values within the observed categories",
        )

    @staticmethod
    def _outlier(rule: PreprocessingRule) -> Recommendation:
        pct = rule.affected_percentage
        if pct < 0.01:
            return Recommendation(
                ActionType.REMOVE_OUTLIERS,
                "Very few outliers suggest data entry errors rather than legitimate values",
            )
        if pct < 0.05:
            return Recommendation(
                ActionType.KEEP_AS_IS,
                "A small share of outliers may represent legitimate edge cases",
            )
        return Recommendation(
            ActionType.CAP_OUTLIERS,
            "Capping preserves all records while limiting the impact of extreme values",
        )

    @staticmethod
    def _type(rule: PreprocessingRule, sample: pd.DataFrame | None) -> Recommendation:
        majority = rule.parameters.get("majority_type")
        if majority is None and sample is not None and rule.column_name in sample.columns:
            values = [v for v in sample[rule.column_name].tolist() if v is not None and str(v).strip()]
            numeric = len(numeric_values(values))
            majority = "numeric" if numeric >= len(values) - numeric else "text"

        if majority == "numeric":
            return Recommendation(ActionType.TO_NUMERIC, "Majority of values are numeric")
        return Recommendation(ActionType.TO_TEXT, "Majority of values are text")

    @staticmethod
    def _duplicates(rule: PreprocessingRule) -> Recommendation:
        if rule.confidence >= CONFIRMATION_CONFIDENCE:
            return Recommendation(
                ActionType.DROP_ROWS,
                f"Duplicates detected with {rule.confidence:.1%} confidence; keep the first occurrence",
            )
        return Recommendation(
            ActionType.KEEP_AS_IS,
            f"Duplicate confidence is only {rule.confidence:.1%}; keep records until verified",
        )

    @staticmethod
    def _confirmation(rule: PreprocessingRule) -> Recommendation:
        if rule.confidence >= CONFIRMATION_CONFIDENCE:
            return Recommendation(
                ActionType.APPROVE,
                f"Rule confidence is {rule.confidence:.1%}",
            )
        return Recommendation(
            ActionType.REJECT,
            f"Rule confidence is only {rule.confidence:.1%}; review before applying",
        )
