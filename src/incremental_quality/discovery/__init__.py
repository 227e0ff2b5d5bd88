"""Rule discovery: pattern detection, rule derivation, confidence and convergence."""

from incremental_quality.discovery.confidence import (
    ConfidenceCalculator,
    RuleConfidenceTracker,
    TrackerSnapshot,
)
from incremental_quality.discovery.convergence import ConvergenceDetector
from incremental_quality.discovery.engine import RuleDiscoveryEngine
from incremental_quality.discovery.models import (
    AUTO_RESOLVABLE_RULE_TYPES,
    ConfidenceScore,
    ConvergenceInfo,
    ConvergenceReport,
    DetectedPattern,
    DiscoveryResult,
    PatternType,
    PreprocessingRule,
    RuleType,
    requires_review,
)

__all__ = [
    "AUTO_RESOLVABLE_RULE_TYPES",
    "ConfidenceCalculator",
    "ConfidenceScore",
    "ConvergenceDetector",
    "ConvergenceInfo",
    "ConvergenceReport",
    "DetectedPattern",
    "DiscoveryResult",
    "PatternType",
    "PreprocessingRule",
    "RuleConfidenceTracker",
    "RuleDiscoveryEngine",
    "RuleType",
    "TrackerSnapshot",
    "requires_review",
]
