"""Human-in-the-loop models.

- QuestionType / ActionType / QuestionPriority: enums
- HITLOption: One selectable answer
- HITLQuestion: A question about one rule
- HITLAnswer: A reviewer's answer
- HITLDecision: Audit-trail entry binding question, answer and outcome
- DecisionSummary: Aggregate view of a session's decisions
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    YES_NO = "yes_no"
    NUMERIC_INPUT = "numeric_input"
    TEXT_INPUT = "text_input"
    CONFIRMATION = "confirmation"


class ActionType(str, Enum):
    """Action bound to a rule by a reviewer's choice."""

    # Missing values
    FILL_MEAN = "fill_mean"
    FILL_MEDIAN = "fill_median"
    FILL_MODE = "fill_mode"
    FILL_CONSTANT = "fill_constant"
    DROP_ROWS = "drop_rows"
    KEEP_AS_IS = "keep_as_is"

    # Outliers
    REMOVE_OUTLIERS = "remove_outliers"
    CAP_OUTLIERS = "cap_outliers"
    TRANSFORM = "transform"

    # Type conversion
    TO_NUMERIC = "to_numeric"
    TO_TEXT = "to_text"
    SPLIT_COLUMN = "split_column"
    KEEP_MIXED = "keep_mixed"

    # Categories
    MERGE_CATEGORIES = "merge_categories"
    KEEP_CATEGORIES = "keep_categories"
    MERGE_PRESERVE = "merge_preserve"

    # Business logic
    APPLY_RULE = "apply_rule"
    DELETE_ROWS = "delete_rows"
    CUSTOM_LOGIC = "custom_logic"

    # Confirmation
    APPROVE = "approve"
    REJECT = "reject"


class QuestionPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class HITLOption(BaseModel):
    """A selectable answer to a question."""

    key: str
    label: str
    description: str = ""
    action: ActionType
    is_recommended: bool = False


class HITLQuestion(BaseModel):
    """A question put to the reviewer about one rule."""

    id: str
    type: QuestionType
    context: str
    question: str
    options: list[HITLOption] = Field(default_factory=list)
    recommended_option: str | None = None
    recommendation_reason: str | None = None
    rule_id: str
    priority: QuestionPriority = QuestionPriority.NORMAL
    # Pre-filled value for NUMERIC_INPUT and TEXT_INPUT questions
    default_value: float | str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_input(self) -> bool:
        return self.type in (QuestionType.NUMERIC_INPUT, QuestionType.TEXT_INPUT)

    def option(self, key: str) -> HITLOption | None:
        """Look up an option by key (case-insensitive)."""
        wanted = key.strip().upper()
        for opt in self.options:
            if opt.key.upper() == wanted:
                return opt
        return None


class HITLAnswer(BaseModel):
    """A reviewer's answer to a question."""

    question_id: str
    selected_option_key: str | None = None
    text_value: str | None = None
    numeric_value: float | None = None
    boolean_value: bool | None = None
    notes: str | None = None
    answered_by: str = "user"
    answered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def value(self) -> float | str | None:
        """Typed value of an input answer, numeric first."""
        return self.numeric_value if self.numeric_value is not None else self.text_value


class HITLDecision(BaseModel):
    """Audit-trail entry for one rule decision.

    question and answer are None for decisions taken without asking
    (HITL skipped). follow_up holds the value question asked after an
    option that needs one (a fill constant, an outlier threshold).
    """

    question: HITLQuestion | None = None
    answer: HITLAnswer | None = None
    follow_up: HITLQuestion | None = None
    follow_up_answer: HITLAnswer | None = None
    rule_id: str
    action: ActionType | None = None
    approved: bool
    user_id: str
    notes: str = ""
    logged_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def followed_recommendation(self) -> bool:
        if self.question is None or self.answer is None:
            return False
        selected = self.answer.selected_option_key
        recommended = self.question.recommended_option
        return (
            selected is not None
            and recommended is not None
            and selected.upper() == recommended.upper()
        )

    @property
    def latency_seconds(self) -> float | None:
        """Time from question creation to answer."""
        if self.question is None or self.answer is None:
            return None
        return (self.answer.answered_at - self.question.created_at).total_seconds()


class DecisionSummary(BaseModel):
    """Aggregate statistics over a session's decisions."""

    session_id: str
    total_decisions: int = 0
    approved: int = 0
    rejected: int = 0
    followed_recommendations: int = 0
    overridden_recommendations: int = 0
    action_distribution: dict[str, int] = Field(default_factory=dict)
    question_type_distribution: dict[str, int] = Field(default_factory=dict)
    average_latency_seconds: float | None = None
    earliest: datetime | None = None
    latest: datetime | None = None

    @property
    def recommendation_follow_rate(self) -> float:
        asked = self.followed_recommendations + self.overridden_recommendations
        return self.followed_recommendations / asked if asked else 0.0
