"""Rule discovery engine.

Runs every applicable detector over every column of a sample, converts the
detected patterns into preprocessing rules, merges duplicates and orders
the result by priority.

Columns are processed in parallel; results are re-assembled in column
order so the output is deterministic.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pandas as pd

from incremental_quality.analysis.statistics import SampleAnalysis
from incremental_quality.core.config import DetectionConfig, get_settings
from incremental_quality.core.logging import get_logger, record_discovery, record_operation_timing
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors import DetectorRegistry, create_default_registry
from incremental_quality.discovery.models import (
    DetectedPattern,
    DetectorFailure,
    DiscoveryResult,
    PatternType,
    PreprocessingRule,
    RuleType,
    requires_review,
)

logger = get_logger(__name__)

SYSTEM_APPROVER = "system"

PATTERN_RULE_TYPES: dict[PatternType, RuleType] = {
    PatternType.MISSING_VALUE: RuleType.MISSING_VALUE_STRATEGY,
    PatternType.TYPE_INCONSISTENCY: RuleType.TYPE_CONVERSION,
    PatternType.FORMAT_VARIATION: RuleType.DATE_FORMAT_STANDARDIZATION,
    PatternType.OUTLIER_ANOMALY: RuleType.OUTLIER_HANDLING,
    PatternType.CATEGORY_VARIATION: RuleType.CATEGORY_MAPPING,
    PatternType.ENCODING_ISSUE: RuleType.ENCODING_NORMALIZATION,
    PatternType.WHITESPACE_ISSUE: RuleType.WHITESPACE_NORMALIZATION,
    PatternType.DUPLICATE_RECORDS: RuleType.DUPLICATE_HANDLING,
    PatternType.BUSINESS_RULE: RuleType.BUSINESS_LOGIC_DECISION,
}

SEVERITY_PRIORITY: dict[Severity, int] = {
    Severity.CRITICAL: 10,
    Severity.HIGH: 7,
    Severity.MEDIUM: 5,
    Severity.LOW: 3,
}

_FORMAT_RULE_TYPES: dict[str, RuleType] = {
    "number": RuleType.NUMERIC_FORMAT_STANDARDIZATION,
    "boolean": RuleType.BOOLEAN_FORMAT_STANDARDIZATION,
}

RULE_TYPE_PRIORITY_BONUS: dict[RuleType, int] = {
    RuleType.MISSING_VALUE_STRATEGY: 2,
    RuleType.TYPE_CONVERSION: 2,
    RuleType.OUTLIER_HANDLING: 1,
    RuleType.ENCODING_NORMALIZATION: 1,
}

# Detector details copied into rule parameters for the rule applier
_CARRIED_DETAILS = (
    "mapping",
    "majority_type",
    "dominant_format",
    "formats",
    "std_threshold",
    "lower_bound",
    "upper_bound",
)


def determine_rule_type(pattern: DetectedPattern) -> RuleType:
    """Map a detected pattern to the rule type that resolves it."""
    kind = pattern.details.get("variation_kind")
    if pattern.pattern_type == PatternType.CATEGORY_VARIATION and kind == "case":
        return RuleType.CASE_NORMALIZATION
    if pattern.pattern_type == PatternType.FORMAT_VARIATION and kind in _FORMAT_RULE_TYPES:
        return _FORMAT_RULE_TYPES[kind]
    return PATTERN_RULE_TYPES.get(pattern.pattern_type, RuleType.BUSINESS_LOGIC_DECISION)


def determine_priority(severity: Severity, rule_type: RuleType) -> int:
    """Severity base plus rule-type bonus, clamped to [1, 10]."""
    base = SEVERITY_PRIORITY.get(severity, 1)
    return max(1, min(10, base + RULE_TYPE_PRIORITY_BONUS.get(rule_type, 0)))


def generate_rule_id(
    rule_type: RuleType, column_names: list[str], pattern_type: PatternType
) -> str:
    return f"{rule_type.value}_{'+'.join(column_names)}_{pattern_type.value}"


def _rule_parameters(pattern: DetectedPattern, rule_type: RuleType) -> dict[str, Any]:
    params: dict[str, Any] = {
        "affected_percentage": pattern.affected_percentage,
        "severity": pattern.severity.value,
        "pattern_confidence": pattern.confidence,
    }

    if rule_type == RuleType.MISSING_VALUE_STRATEGY:
        params["strategy"] = "impute_median"
    elif rule_type == RuleType.DATE_FORMAT_STANDARDIZATION:
        params["target_format"] = "ISO-8601"
    elif rule_type == RuleType.NUMERIC_FORMAT_STANDARDIZATION:
        params["decimal_separator"] = "."
    elif rule_type == RuleType.BOOLEAN_FORMAT_STANDARDIZATION:
        params["target_format"] = "true/false"
    elif rule_type == RuleType.ENCODING_NORMALIZATION:
        params["target_encoding"] = "UTF-8"
    elif rule_type == RuleType.WHITESPACE_NORMALIZATION:
        params["trim"] = True
        params["collapse_spaces"] = True

    for key in _CARRIED_DETAILS:
        if key in pattern.details:
            params[key] = pattern.details[key]
    return params


def pattern_to_rule(
    pattern: DetectedPattern, stage: int, max_examples: int = 5
) -> PreprocessingRule:
    """Convert one detected pattern into a preprocessing rule."""
    rule_type = determine_rule_type(pattern)
    columns = [pattern.column_name]
    return PreprocessingRule(
        id=generate_rule_id(rule_type, columns, pattern.pattern_type),
        rule_type=rule_type,
        column_names=columns,
        pattern_type=pattern.pattern_type,
        description=pattern.description,
        transformation=pattern.suggested_fix or "",
        confidence=pattern.confidence,
        affected_rows=pattern.occurrences,
        affected_percentage=pattern.affected_percentage,
        severity=pattern.severity,
        priority=determine_priority(pattern.severity, rule_type),
        requires_hitl=requires_review(rule_type),
        discovered_in_stage=max(1, min(5, stage)),
        examples=pattern.examples[:max_examples],
        parameters=_rule_parameters(pattern, rule_type),
    )


class RuleDiscoveryEngine:
    """Discovers preprocessing rules from a sample."""

    def __init__(
        self,
        config: DetectionConfig | None = None,
        registry: DetectorRegistry | None = None,
        max_workers: int | None = None,
    ):
        self.config = config or DetectionConfig()
        self.registry = registry or create_default_registry(self.config)
        self.max_workers = max_workers or get_settings().max_detector_workers

    def discover(
        self,
        sample: pd.DataFrame,
        analysis: SampleAnalysis | None = None,
        stage: int | None = None,
    ) -> DiscoveryResult:
        """Run detection on a sample and derive rules.

        Args:
            sample: Sample frame (raw string values)
            analysis: Analysis of the same sample; supplies the stage number
            stage: Stage number when no analysis is given

        Returns:
            DiscoveryResult with rules, patterns and detector failures
        """
        start = time.time()
        stage_number = stage if stage is not None else (analysis.stage_number if analysis else 1)

        columns = [str(c) for c in sample.columns if str(c) not in self.config.ignore_columns]
        logger.info(
            "rule_discovery_started",
            stage=stage_number,
            rows=len(sample),
            columns=len(columns),
        )

        patterns: list[DetectedPattern] = []
        failures: list[DetectorFailure] = []

        if columns:
            workers = max(1, min(self.max_workers, len(columns)))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                # map() preserves column order
                per_column = list(
                    pool.map(lambda name: self._detect_column(sample[name], name), columns)
                )
            for column_patterns, column_failures in per_column:
                patterns.extend(column_patterns)
                failures.extend(column_failures)

        rules = self._merge(
            [pattern_to_rule(p, stage_number, self.config.max_examples) for p in patterns]
        )
        rules.sort(key=lambda r: (-r.priority, -r.affected_rows, r.id))
        self.auto_approve(rules)

        duration = time.time() - start
        record_discovery(len(patterns), len(rules), len(failures))
        record_operation_timing("rule_discovery", duration)
        logger.info(
            "rule_discovery_completed",
            stage=stage_number,
            patterns=len(patterns),
            rules=len(rules),
            auto_resolvable=sum(1 for r in rules if not r.requires_hitl),
            review_required=sum(1 for r in rules if r.requires_hitl),
            detector_failures=len(failures),
            duration_seconds=round(duration, 3),
        )
        return DiscoveryResult(rules=rules, patterns=patterns, failures=failures)

    def discover_rules(
        self,
        sample: pd.DataFrame,
        analysis: SampleAnalysis | None = None,
        stage: int | None = None,
    ) -> list[PreprocessingRule]:
        """Discover rules, dropping pattern and failure details."""
        return self.discover(sample, analysis, stage).rules

    def _detect_column(
        self, column: pd.Series, column_name: str
    ) -> tuple[list[DetectedPattern], list[DetectorFailure]]:
        patterns: list[DetectedPattern] = []
        failures: list[DetectorFailure] = []
        for detector, result in self.registry.run_all(column, column_name):
            if result.success:
                patterns.extend(result.value or [])
            else:
                failures.append(
                    DetectorFailure(
                        detector_id=detector.detector_id,
                        column_name=column_name,
                        error=result.error or "unknown error",
                    )
                )
        return patterns, failures

    @staticmethod
    def _merge(rules: list[PreprocessingRule]) -> list[PreprocessingRule]:
        """Collapse rules sharing a signature, keeping the most confident."""
        merged: dict[str, PreprocessingRule] = {}
        for rule in rules:
            existing = merged.get(rule.signature)
            if existing is None or rule.confidence > existing.confidence:
                merged[rule.signature] = rule
        return list(merged.values())

    def auto_approve(self, rules: Sequence[PreprocessingRule]) -> int:
        """Approve confident auto-resolvable rules; returns how many were approved."""
        threshold = self.config.auto_approve_threshold
        approved = 0
        for rule in rules:
            if not rule.requires_hitl and not rule.is_approved and rule.confidence >= threshold:
                rule.approve(
                    SYSTEM_APPROVER,
                    f"auto-resolvable (confidence={rule.confidence:.0%})",
                )
                approved += 1
        return approved
