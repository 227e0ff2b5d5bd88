"""Rule discovery models.

Pydantic models for patterns, rules and confidence:
- PatternType / RuleType: what was observed and what to do about it
- DetectedPattern: One finding of one detector on one column
- PreprocessingRule: A candidate transformation derived from a pattern
- ConfidenceScore: Single-stage confidence decomposition
- ConvergenceInfo: Rule-set change between two stages
- RuleConfidenceReport / ConvergenceReport: Cross-stage confidence view
- DiscoveryResult: Output of one discovery pass
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from incremental_quality.core.models.base import Severity, clamp_unit


class PatternType(str, Enum):
    """Kinds of data quality patterns detectors can report."""

    MISSING_VALUE = "missing_value"
    TYPE_INCONSISTENCY = "type_inconsistency"
    FORMAT_VARIATION = "format_variation"
    OUTLIER_ANOMALY = "outlier_anomaly"
    CATEGORY_VARIATION = "category_variation"
    ENCODING_ISSUE = "encoding_issue"
    WHITESPACE_ISSUE = "whitespace_issue"
    BUSINESS_RULE = "business_rule"
    DUPLICATE_RECORDS = "duplicate_records"


class RuleType(str, Enum):
    """Preprocessing rule types."""

    # Auto-resolvable
    DATE_FORMAT_STANDARDIZATION = "date_format_standardization"
    ENCODING_NORMALIZATION = "encoding_normalization"
    WHITESPACE_NORMALIZATION = "whitespace_normalization"
    CASE_NORMALIZATION = "case_normalization"
    NUMERIC_FORMAT_STANDARDIZATION = "numeric_format_standardization"
    BOOLEAN_FORMAT_STANDARDIZATION = "boolean_format_standardization"

    # Require human review
    MISSING_VALUE_STRATEGY = "missing_value_strategy"
    OUTLIER_HANDLING = "outlier_handling"
    CATEGORY_MAPPING = "category_mapping"
    UNKNOWN_CATEGORY_MAPPING = "unknown_category_mapping"
    TYPE_CONVERSION = "type_conversion"
    DUPLICATE_HANDLING = "duplicate_handling"
    BUSINESS_LOGIC_DECISION = "business_logic_decision"


AUTO_RESOLVABLE_RULE_TYPES: frozenset[RuleType] = frozenset(
    {
        RuleType.DATE_FORMAT_STANDARDIZATION,
        RuleType.ENCODING_NORMALIZATION,
        RuleType.WHITESPACE_NORMALIZATION,
        RuleType.CASE_NORMALIZATION,
        RuleType.NUMERIC_FORMAT_STANDARDIZATION,
        RuleType.BOOLEAN_FORMAT_STANDARDIZATION,
    }
)


def requires_review(rule_type: RuleType) -> bool:
    """Whether a rule of this type needs a human decision."""
    return rule_type not in AUTO_RESOLVABLE_RULE_TYPES


class DetectedPattern(BaseModel):
    """A data quality pattern detected in one column of a sample."""

    pattern_type: PatternType
    column_name: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    severity: Severity
    occurrences: int = Field(ge=0)
    total_rows: int = Field(ge=0)
    affected_percentage: float = Field(ge=0.0, le=1.0)
    suggested_fix: str | None = None
    examples: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


def rule_signature(
    rule_type: RuleType, column_names: list[str], pattern_type: PatternType
) -> str:
    """Stable identity of a rule across stages."""
    return f"{rule_type.value}|{','.join(column_names)}|{pattern_type.value}"


class PreprocessingRule(BaseModel):
    """A preprocessing rule discovered from a sample.

    Confidence is clamped to [0, 1] on construction and on every assignment.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str
    rule_type: RuleType
    column_names: list[str]
    pattern_type: PatternType
    description: str
    transformation: str = ""
    confidence: float = 0.0
    affected_rows: int = Field(default=0, ge=0)
    affected_percentage: float = Field(default=0.0, ge=0.0, le=1.0)
    severity: Severity = Severity.LOW
    priority: int = Field(default=5, ge=1, le=10)
    requires_hitl: bool = True
    is_approved: bool = False
    approved_by: str | None = None
    approval_note: str | None = None
    discovered_in_stage: int = Field(default=1, ge=1, le=5)
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    examples: list[str] = Field(default_factory=list)
    parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return clamp_unit(float(value))

    @property
    def signature(self) -> str:
        return self.get_signature()

    def get_signature(self) -> str:
        """(rule_type, column_names, pattern_type) as a stable string."""
        return rule_signature(self.rule_type, self.column_names, self.pattern_type)

    @property
    def column_name(self) -> str:
        """Primary column the rule applies to."""
        return self.column_names[0] if self.column_names else ""

    def approve(self, by: str, note: str | None = None) -> None:
        """Mark the rule approved."""
        self.is_approved = True
        self.approved_by = by
        self.approval_note = note


# === Confidence ===


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


HIGH_CONFIDENCE_THRESHOLD = 0.98
MEDIUM_CONFIDENCE_THRESHOLD = 0.90


class ConfidenceScore(BaseModel):
    """Single-stage confidence for a rule.

    overall = 0.5 * consistency + 0.3 * coverage + 0.2 * stability
    """

    consistency: float = Field(ge=0.0, le=1.0)
    coverage: float = Field(ge=0.0, le=1.0)
    stability: float = Field(ge=0.0, le=1.0)
    overall: float = Field(ge=0.0, le=1.0)
    exception_count: int = 0
    total_attempts: int = 0

    @property
    def level(self) -> ConfidenceLevel:
        if self.overall >= HIGH_CONFIDENCE_THRESHOLD:
            return ConfidenceLevel.HIGH
        if self.overall >= MEDIUM_CONFIDENCE_THRESHOLD:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    @property
    def exception_rate(self) -> float:
        return self.exception_count / self.total_attempts if self.total_attempts else 0.0


class ConvergenceInfo(BaseModel):
    """How much the rule set changed from one stage to the next."""

    has_converged: bool
    change_rate: float
    threshold: float = 0.02
    total_rules: int
    previous_rules: int
    new_rules: int = 0
    modified_rules: int = 0
    removed_rules: int = 0
    stable_rules: int = 0
    status: str = ""
    summary: str = ""
    new_signatures: list[str] = Field(default_factory=list)
    modified_signatures: list[str] = Field(default_factory=list)
    removed_signatures: list[str] = Field(default_factory=list)


class ConfidenceTrend(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    STABLE = "stable"
    INCREASING = "increasing"
    DECREASING = "decreasing"
    VOLATILE = "volatile"


class ConvergenceRecommendation(str, Enum):
    CONTINUE_SAMPLING = "continue_sampling"
    PROCEED_TO_HITL = "proceed_to_hitl"
    READY_FOR_BULK_PROCESSING = "ready_for_bulk_processing"
    REVIEW_STRATEGY = "review_strategy"


class RuleConfidenceReport(BaseModel):
    """Cross-stage confidence of one rule."""

    rule_id: str
    signature: str
    current_confidence: float
    weighted_confidence: float
    variance: float
    trend: ConfidenceTrend
    observations: int
    is_stable: bool


class ConvergenceReport(BaseModel):
    """Cross-stage confidence of the whole rule set."""

    has_converged: bool
    overall_confidence: float
    stable_rules: int
    unstable_rules: int
    samples_since_last_new_rule: int
    recommendation: ConvergenceRecommendation
    summary: str
    rules: list[RuleConfidenceReport] = Field(default_factory=list)


# === Discovery output ===


class DetectorFailure(BaseModel):
    """A detector that raised on one column."""

    detector_id: str
    column_name: str
    error: str


class DiscoveryResult(BaseModel):
    """Output of one discovery pass over a sample."""

    rules: list[PreprocessingRule] = Field(default_factory=list)
    patterns: list[DetectedPattern] = Field(default_factory=list)
    failures: list[DetectorFailure] = Field(default_factory=list)
