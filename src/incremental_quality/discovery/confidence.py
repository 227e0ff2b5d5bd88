"""Rule confidence.

Two views of how much to trust a rule:
- ConfidenceCalculator: single-stage score from consistency, coverage and
  stability against the previous sample
- RuleConfidenceTracker: cross-stage history per rule signature with
  recency-weighted confidence, variance and trend

A tracker instance belongs to one workflow run; its history is carried in
checkpoints through snapshot()/restore().
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from incremental_quality.analysis.statistics import is_blank, is_missing, parse_number
from incremental_quality.core.config import DEFAULT_MISSING_INDICATORS
from incremental_quality.core.logging import get_logger
from incremental_quality.core.models.base import clamp_unit
from incremental_quality.discovery.detectors import has_encoding_issue, has_whitespace_issue
from incremental_quality.discovery.models import (
    ConfidenceScore,
    ConfidenceTrend,
    ConvergenceRecommendation,
    ConvergenceReport,
    PatternType,
    PreprocessingRule,
    RuleConfidenceReport,
    RuleType,
)

logger = get_logger(__name__)

CONSISTENCY_WEIGHT = 0.5
COVERAGE_WEIGHT = 0.3
STABILITY_WEIGHT = 0.2

# Report recommendation thresholds
CONTINUE_SAMPLING_BELOW = 100  # samples since the last new rule
REVIEW_STRATEGY_BELOW = 0.7  # overall confidence

# Expected share of applicable rows a rule of each type fixes cleanly
RULE_SUCCESS_RATES: dict[RuleType, float] = {
    RuleType.WHITESPACE_NORMALIZATION: 0.99,
    RuleType.ENCODING_NORMALIZATION: 0.95,
    RuleType.DATE_FORMAT_STANDARDIZATION: 0.90,
    RuleType.NUMERIC_FORMAT_STANDARDIZATION: 0.90,
    RuleType.BOOLEAN_FORMAT_STANDARDIZATION: 0.95,
    RuleType.CASE_NORMALIZATION: 0.95,
    RuleType.MISSING_VALUE_STRATEGY: 0.85,
    RuleType.TYPE_CONVERSION: 0.80,
    RuleType.OUTLIER_HANDLING: 0.85,
    RuleType.CATEGORY_MAPPING: 0.90,
    RuleType.UNKNOWN_CATEGORY_MAPPING: 0.85,
    RuleType.DUPLICATE_HANDLING: 0.95,
    RuleType.BUSINESS_LOGIC_DECISION: 0.75,
}
DEFAULT_SUCCESS_RATE = 0.80

_MISSING = frozenset(DEFAULT_MISSING_INDICATORS)


def _always(value: Any) -> bool:
    return True


_APPLICABILITY: dict[PatternType, Callable[[Any], bool]] = {
    PatternType.MISSING_VALUE: lambda v: is_missing(v, _MISSING),
    PatternType.WHITESPACE_ISSUE: has_whitespace_issue,
    PatternType.TYPE_INCONSISTENCY: _always,
    PatternType.FORMAT_VARIATION: _always,
    PatternType.BUSINESS_RULE: _always,
    PatternType.DUPLICATE_RECORDS: _always,
    PatternType.OUTLIER_ANOMALY: lambda v: parse_number(v) is not None,
    PatternType.CATEGORY_VARIATION: lambda v: not is_blank(v),
    PatternType.ENCODING_ISSUE: has_encoding_issue,
}


def count_applicable_rows(rule: PreprocessingRule, column: pd.Series) -> int:
    """Rows of a column the rule would act on."""
    predicate = _APPLICABILITY.get(rule.pattern_type, _always)
    return sum(1 for v in column.tolist() if predicate(v))


def _half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ConfidenceCalculator:
    """Single-stage confidence for a rule.

    overall = 0.5 * consistency + 0.3 * coverage + 0.2 * stability
    """

    def calculate(
        self,
        rule: PreprocessingRule,
        current_sample: pd.DataFrame,
        previous_sample: pd.DataFrame | None = None,
        previous_coverage: float | None = None,
    ) -> ConfidenceScore:
        """Score a rule against the current sample.

        Args:
            rule: Rule to score
            current_sample: Sample of the current stage
            previous_sample: Sample of the previous stage, if available
            previous_coverage: Applicable-row ratio recorded in the previous
                stage; used when the previous sample itself is not kept

        Returns:
            ConfidenceScore
        """
        column_name = rule.column_name
        if column_name not in current_sample.columns:
            return ConfidenceScore(consistency=0.0, coverage=0.0, stability=0.0, overall=0.0)

        column = current_sample[column_name]
        rows = len(column)
        applicable = count_applicable_rows(rule, column)

        rate = RULE_SUCCESS_RATES.get(rule.rule_type, DEFAULT_SUCCESS_RATE)
        successes = _half_up(applicable * rate)
        consistency = successes / applicable if applicable else 1.0
        coverage = applicable / rows if rows else 0.0
        stability = self._stability(rule, coverage, previous_sample, previous_coverage)

        overall = (
            consistency * CONSISTENCY_WEIGHT
            + coverage * COVERAGE_WEIGHT
            + stability * STABILITY_WEIGHT
        )
        return ConfidenceScore(
            consistency=clamp_unit(consistency),
            coverage=clamp_unit(coverage),
            stability=clamp_unit(stability),
            overall=clamp_unit(overall),
            exception_count=applicable - successes,
            total_attempts=applicable,
        )

    @staticmethod
    def _stability(
        rule: PreprocessingRule,
        current_ratio: float,
        previous_sample: pd.DataFrame | None,
        previous_coverage: float | None,
    ) -> float:
        if previous_sample is not None:
            if rule.column_name not in previous_sample.columns:
                return 0.0
            prev_column = previous_sample[rule.column_name]
            if len(prev_column) == 0:
                return 0.0
            previous_ratio = count_applicable_rows(rule, prev_column) / len(prev_column)
        elif previous_coverage is not None:
            previous_ratio = previous_coverage
        else:
            # First observation
            return 1.0
        return 1.0 - abs(previous_ratio - current_ratio)


# === Cross-stage tracking ===


class TrackerSnapshot(BaseModel):
    """Serializable state of a RuleConfidenceTracker."""

    history: dict[str, list[float]] = Field(default_factory=dict)
    samples_since_last_new_rule: int = 0


class RuleConfidenceTracker:
    """Tracks each rule's confidence across stages, keyed by signature."""

    def __init__(
        self,
        stability_threshold: float = 0.98,
        max_variance: float = 0.05,
        convergence_sample_count: int = 500,
        history_size: int = 10,
    ):
        self.stability_threshold = stability_threshold
        self.max_variance = max_variance
        self.convergence_sample_count = convergence_sample_count
        self.history_size = history_size
        self._history: dict[str, deque[float]] = {}
        self.samples_since_last_new_rule = 0

    def update(
        self,
        rules: Sequence[PreprocessingRule],
        new_rules_discovered: bool,
        sample_size: int = 1,
    ) -> None:
        """Record the current confidence of each rule."""
        for rule in rules:
            history = self._history.setdefault(rule.signature, deque(maxlen=self.history_size))
            history.append(clamp_unit(rule.confidence))

        if new_rules_discovered:
            self.samples_since_last_new_rule = 0
        else:
            self.samples_since_last_new_rule += sample_size

        logger.debug(
            "confidence_tracker_updated",
            rules=len(rules),
            tracked=len(self._history),
            samples_since_last_new_rule=self.samples_since_last_new_rule,
        )

    def history(self, signature: str) -> list[float]:
        return list(self._history.get(signature, ()))

    def weighted_confidence(self, signature: str, fallback: float = 0.0) -> float:
        """Recency-weighted mean with weights e^(i - n + 1)."""
        values = self._history.get(signature)
        if not values:
            return clamp_unit(fallback)
        arr = np.asarray(values, dtype=float)
        n = arr.size
        weights = np.exp(np.arange(n) - n + 1)
        return clamp_unit(float((weights * arr).sum() / weights.sum()))

    def variance(self, signature: str) -> float:
        """Population variance of the history (0 below two values)."""
        values = self._history.get(signature)
        if not values or len(values) < 2:
            return 0.0
        return float(np.var(np.asarray(values, dtype=float)))

    def trend(self, signature: str) -> ConfidenceTrend:
        values = self.history(signature)
        if len(values) < 3:
            return ConfidenceTrend.INSUFFICIENT_DATA

        recent = values[-3:]
        slope = (recent[2] - recent[0]) / 2
        if abs(slope) < 0.02:
            return ConfidenceTrend.STABLE
        if float(np.var(np.asarray(recent, dtype=float))) > 0.1:
            return ConfidenceTrend.VOLATILE
        return ConfidenceTrend.INCREASING if slope > 0 else ConfidenceTrend.DECREASING

    def is_stable(self, rule: PreprocessingRule) -> bool:
        signature = rule.signature
        if self.weighted_confidence(signature, rule.confidence) < self.stability_threshold:
            return False
        if len(self._history.get(signature, ())) >= 3:
            return self.variance(signature) <= self.max_variance
        return True

    def has_converged(self, rules: Sequence[PreprocessingRule]) -> bool:
        if self.samples_since_last_new_rule < self.convergence_sample_count:
            return False
        return all(self.is_stable(rule) for rule in rules)

    def report(self, rules: Sequence[PreprocessingRule]) -> ConvergenceReport:
        """Cross-stage confidence report for a rule set."""
        reports = [
            RuleConfidenceReport(
                rule_id=rule.id,
                signature=rule.signature,
                current_confidence=rule.confidence,
                weighted_confidence=self.weighted_confidence(rule.signature, rule.confidence),
                variance=self.variance(rule.signature),
                trend=self.trend(rule.signature),
                observations=len(self._history.get(rule.signature, ())),
                is_stable=self.is_stable(rule),
            )
            for rule in rules
        ]

        stable = sum(1 for r in reports if r.is_stable)
        unstable = len(reports) - stable
        overall = sum(r.weighted_confidence for r in reports) / len(reports) if reports else 0.0
        converged = self.has_converged(rules)
        recommendation = self._recommend(rules, converged, overall)

        summary = (
            f"{stable}/{len(reports)} rules stable, overall confidence {overall:.1%}, "
            f"{self.samples_since_last_new_rule} samples since last new rule; "
            f"recommendation: {recommendation.value}"
        )
        return ConvergenceReport(
            has_converged=converged,
            overall_confidence=overall,
            stable_rules=stable,
            unstable_rules=unstable,
            samples_since_last_new_rule=self.samples_since_last_new_rule,
            recommendation=recommendation,
            summary=summary,
            rules=reports,
        )

    def _recommend(
        self, rules: Sequence[PreprocessingRule], converged: bool, overall: float
    ) -> ConvergenceRecommendation:
        if not converged and self.samples_since_last_new_rule < CONTINUE_SAMPLING_BELOW:
            return ConvergenceRecommendation.CONTINUE_SAMPLING
        if overall < REVIEW_STRATEGY_BELOW:
            return ConvergenceRecommendation.REVIEW_STRATEGY
        if any(r.requires_hitl and not r.is_approved for r in rules):
            return ConvergenceRecommendation.PROCEED_TO_HITL
        if converged and overall >= self.stability_threshold:
            return ConvergenceRecommendation.READY_FOR_BULK_PROCESSING
        return ConvergenceRecommendation.CONTINUE_SAMPLING

    def reset(self) -> None:
        self._history.clear()
        self.samples_since_last_new_rule = 0

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            history={sig: list(values) for sig, values in self._history.items()},
            samples_since_last_new_rule=self.samples_since_last_new_rule,
        )

    def restore(self, snapshot: TrackerSnapshot) -> None:
        self._history = {
            sig: deque(values, maxlen=self.history_size)
            for sig, values in snapshot.history.items()
        }
        self.samples_since_last_new_rule = snapshot.samples_since_last_new_rule
