"""Human-in-the-loop review of discovered rules."""

from incremental_quality.hitl.models import (
    ActionType,
    DecisionSummary,
    HITLAnswer,
    HITLDecision,
    HITLOption,
    HITLQuestion,
    QuestionPriority,
    QuestionType,
)
from incremental_quality.hitl.prompts import (
    AnswerProvider,
    RecommendedAnswerProvider,
    ScriptedAnswerProvider,
    render_question,
)
from incremental_quality.hitl.questions import HITLQuestionGenerator
from incremental_quality.hitl.recommendations import Recommendation, RecommendationEngine
from incremental_quality.hitl.service import DecisionLogger, HITLWorkflowService

__all__ = [
    "ActionType",
    "AnswerProvider",
    "DecisionLogger",
    "DecisionSummary",
    "HITLAnswer",
    "HITLDecision",
    "HITLOption",
    "HITLQuestion",
    "HITLQuestionGenerator",
    "HITLWorkflowService",
    "QuestionPriority",
    "QuestionType",
    "Recommendation",
    "RecommendationEngine",
    "RecommendedAnswerProvider",
    "ScriptedAnswerProvider",
    "render_question",
]
