"""Answer providers and plain-text question rendering.

The workflow asks questions through an AnswerProvider; how the question
reaches a person (terminal, web form, chat) is up to the provider.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from incremental_quality.hitl.models import HITLAnswer, HITLQuestion, QuestionType

RECOMMENDATION_USER = "system:recommendation"


@runtime_checkable
class AnswerProvider(Protocol):
    """Supplies answers to HITL questions.

    Returning None means the question went unanswered; the rule stays
    unapproved.
    """

    async def answer(self, question: HITLQuestion) -> HITLAnswer | None: ...


def render_question(question: HITLQuestion) -> str:
    """Plain-text form of a question."""
    lines = [
        f"[{question.priority.value.upper()}] {question.question}",
        "",
        question.context,
        "",
    ]
    for option in question.options:
        marker = " (recommended)" if option.is_recommended else ""
        lines.append(f"  {option.key}) {option.label}{marker}")
        if option.description:
            lines.append(f"     {option.description}")
    if question.default_value is not None:
        lines.append(f"  Default: {question.default_value}")
    if question.recommendation_reason:
        lines.append("")
        lines.append(f"Recommendation: {question.recommendation_reason}")
    return "\n".join(lines)


def value_answer(question: HITLQuestion, value: float | str, **fields) -> HITLAnswer:
    """Answer an input question, typed by the question kind."""
    if question.type == QuestionType.NUMERIC_INPUT:
        return HITLAnswer(question_id=question.id, numeric_value=float(value), **fields)
    return HITLAnswer(question_id=question.id, text_value=str(value), **fields)


class RecommendedAnswerProvider:
    """Answers every question with its recommended option.

    Input questions get their default value and go unanswered without one.
    For unattended runs; answers are attributed to "system:recommendation".
    """

    async def answer(self, question: HITLQuestion) -> HITLAnswer | None:
        if question.is_input:
            if question.default_value is None:
                return None
            return value_answer(
                question,
                question.default_value,
                answered_by=RECOMMENDATION_USER,
                notes="Default value used automatically",
            )

        key = question.recommended_option
        if key is None and question.options:
            key = question.options[0].key
        if key is None:
            return None
        return HITLAnswer(
            question_id=question.id,
            selected_option_key=key,
            answered_by=RECOMMENDATION_USER,
            notes="Recommended option selected automatically",
        )


class ScriptedAnswerProvider:
    """Answers from a fixed mapping of rule id to option key.

    Input questions are answered from values, also keyed by rule id. Rules
    without an entry go unanswered.
    """

    def __init__(
        self,
        choices: dict[str, str],
        answered_by: str = "user",
        values: dict[str, float | str] | None = None,
    ):
        self.choices = choices
        self.answered_by = answered_by
        self.values = values or {}

    async def answer(self, question: HITLQuestion) -> HITLAnswer | None:
        if question.is_input:
            value = self.values.get(question.rule_id)
            if value is None:
                return None
            return value_answer(question, value, answered_by=self.answered_by)

        key = self.choices.get(question.rule_id)
        if key is None:
            return None
        return HITLAnswer(
            question_id=question.id,
            selected_option_key=key,
            answered_by=self.answered_by,
        )
