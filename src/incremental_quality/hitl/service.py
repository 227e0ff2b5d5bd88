"""HITL workflow service.

Turns review-required rules into questions, collects answers through an
AnswerProvider, binds the chosen action into each rule and records every
decision in the DecisionLogger.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Sequence
from pathlib import Path

import pandas as pd

from incremental_quality.analysis.statistics import SampleAnalysis
from incremental_quality.core.logging import get_logger, record_hitl_decisions
from incremental_quality.discovery.models import PreprocessingRule
from incremental_quality.hitl.models import (
    ActionType,
    DecisionSummary,
    HITLAnswer,
    HITLDecision,
    HITLQuestion,
    QuestionType,
)
from incremental_quality.hitl.prompts import AnswerProvider
from incremental_quality.hitl.questions import HITLQuestionGenerator

logger = get_logger(__name__)

SKIPPED_APPROVER = "system"
SKIPPED_NOTE = "auto-approved (HITL skipped)"
FOLLOWED_NOTE = "Followed AI recommendation"
OVERRIDDEN_NOTE = "Overrode AI recommendation"


class DecisionLogger:
    """In-memory HITL decision log, one list per session."""

    def __init__(self) -> None:
        self._decisions: dict[str, list[HITLDecision]] = {}

    def log(self, session_id: str, decision: HITLDecision) -> None:
        self._decisions.setdefault(session_id, []).append(decision)
        logger.info(
            "hitl_decision_logged",
            session_id=session_id,
            rule_id=decision.rule_id,
            action=decision.action.value if decision.action else None,
            approved=decision.approved,
            user=decision.user_id,
        )

    def decisions(self, session_id: str) -> list[HITLDecision]:
        return list(self._decisions.get(session_id, []))

    def restore(self, session_id: str, decisions: Sequence[HITLDecision]) -> None:
        """Replace a session's log with decisions loaded from a checkpoint."""
        self._decisions[session_id] = list(decisions)

    def summary(self, session_id: str) -> DecisionSummary:
        decisions = self._decisions.get(session_id, [])
        if not decisions:
            return DecisionSummary(session_id=session_id)

        asked = [d for d in decisions if d.question is not None and d.answer is not None]
        followed = sum(1 for d in asked if d.followed_recommendation)
        latencies = [d.latency_seconds for d in asked if d.latency_seconds is not None]

        return DecisionSummary(
            session_id=session_id,
            total_decisions=len(decisions),
            approved=sum(1 for d in decisions if d.approved),
            rejected=sum(1 for d in decisions if not d.approved),
            followed_recommendations=followed,
            overridden_recommendations=len(asked) - followed,
            action_distribution=dict(
                Counter(d.action.value for d in decisions if d.action is not None)
            ),
            question_type_distribution=dict(
                Counter(
                    q.type.value
                    for d in decisions
                    for q in (d.question, d.follow_up)
                    if q is not None
                )
            ),
            average_latency_seconds=sum(latencies) / len(latencies) if latencies else None,
            earliest=min(d.logged_at for d in decisions),
            latest=max(d.logged_at for d in decisions),
        )

    def export_json(self, session_id: str, path: Path | str) -> Path:
        """Write the session's decisions and summary to a JSON file."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "session_id": session_id,
            "summary": self.summary(session_id).model_dump(mode="json"),
            "decisions": [d.model_dump(mode="json") for d in self.decisions(session_id)],
        }
        target.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("hitl_decisions_exported", session_id=session_id, path=str(target))
        return target

    def clear(self, session_id: str) -> None:
        self._decisions.pop(session_id, None)


class HITLWorkflowService:
    """Resolves review-required rules through human decisions."""

    def __init__(
        self,
        question_generator: HITLQuestionGenerator | None = None,
        decision_logger: DecisionLogger | None = None,
    ):
        self.question_generator = question_generator or HITLQuestionGenerator()
        self.decision_logger = decision_logger or DecisionLogger()

    @staticmethod
    def pending_rules(rules: Sequence[PreprocessingRule]) -> list[PreprocessingRule]:
        """Rules still waiting for a decision.

        Auto-resolvable rules below the auto-approval threshold are included
        and get a confirmation question.
        """
        return [r for r in rules if not r.is_approved]

    async def run(
        self,
        rules: Sequence[PreprocessingRule],
        sample: pd.DataFrame | None,
        analysis: SampleAnalysis | None,
        provider: AnswerProvider,
        session_id: str,
    ) -> list[HITLDecision]:
        """Ask about every pending rule and apply the answers.

        A failure on one question is logged and the rule left unapproved.
        Cancellation propagates immediately; rules decided before it keep
        their decisions.

        Returns:
            Decisions taken in this call, in question order
        """
        pending = self.pending_rules(rules)
        logger.info("hitl_started", session_id=session_id, questions=len(pending))

        decisions: list[HITLDecision] = []
        for rule in pending:
            try:
                decision = await self._resolve(rule, sample, analysis, provider)
            except Exception as e:
                logger.warning(
                    "hitl_question_failed",
                    session_id=session_id,
                    rule_id=rule.id,
                    error=str(e),
                )
                continue

            if decision is None:
                continue
            self.decision_logger.log(session_id, decision)
            decisions.append(decision)

        record_hitl_decisions(len(decisions))
        logger.info(
            "hitl_completed",
            session_id=session_id,
            decisions=len(decisions),
            approved=sum(1 for d in decisions if d.approved),
        )
        return decisions

    async def _resolve(
        self,
        rule: PreprocessingRule,
        sample: pd.DataFrame | None,
        analysis: SampleAnalysis | None,
        provider: AnswerProvider,
    ) -> HITLDecision | None:
        question = self.question_generator.generate(rule, sample, analysis)
        answer = await provider.answer(question)
        if answer is None:
            logger.info("hitl_question_unanswered", rule_id=rule.id, question_id=question.id)
            return None

        if (
            question.type == QuestionType.YES_NO
            and answer.selected_option_key is None
            and answer.boolean_value is not None
        ):
            key = question.options[0].key if answer.boolean_value else question.options[1].key
            answer = answer.model_copy(update={"selected_option_key": key})

        option = question.option(answer.selected_option_key or "")
        if option is None:
            logger.warning(
                "hitl_answer_rejected",
                rule_id=rule.id,
                question_id=question.id,
                selected=answer.selected_option_key,
                reason="unknown option key",
            )
            return None

        value = answer.value
        follow_up: HITLQuestion | None = None
        follow_up_answer: HITLAnswer | None = None
        if value is None:
            follow_up = self.question_generator.follow_up(rule, option.action, sample, analysis)
        if follow_up is not None:
            follow_up_answer = await provider.answer(follow_up)
            value = follow_up_answer.value if follow_up_answer is not None else None
            if value is None:
                value = follow_up.default_value
                logger.info(
                    "hitl_follow_up_unanswered",
                    rule_id=rule.id,
                    question_id=follow_up.id,
                    default=value,
                )

        approved = option.action != ActionType.REJECT
        self._bind_action(rule, option.action, value)
        if approved:
            rule.approve(answer.answered_by, f"{option.action.value}: {option.label}")

        followed = (
            question.recommended_option is not None
            and option.key.upper() == question.recommended_option.upper()
        )
        notes = FOLLOWED_NOTE if followed else OVERRIDDEN_NOTE
        if follow_up is not None and value is not None:
            notes = f"{notes}. Value: {value}"
        if answer.notes:
            notes = f"{notes}. {answer.notes}"

        return HITLDecision(
            question=question,
            answer=answer,
            follow_up=follow_up,
            follow_up_answer=follow_up_answer,
            rule_id=rule.id,
            action=option.action,
            approved=approved,
            user_id=answer.answered_by,
            notes=notes,
        )

    def _bind_action(
        self, rule: PreprocessingRule, action: ActionType, value: float | str | None
    ) -> None:
        """Record the chosen action and its value in the rule parameters.

        Raises:
            ValueError: If an outlier threshold is not a positive number
        """
        rule.parameters["action"] = action.value
        if value is None:
            return
        if action == ActionType.FILL_CONSTANT:
            rule.parameters["constant_value"] = value
        elif action in (ActionType.REMOVE_OUTLIERS, ActionType.CAP_OUTLIERS):
            threshold = float(value)
            if threshold <= 0:
                raise ValueError(f"Outlier threshold must be positive, got {value}")
            current = float(
                rule.parameters.get(
                    "std_threshold", self.question_generator.outlier_std_threshold
                )
            )
            if threshold != current:
                # Bounds are recomputed from the new threshold at application
                rule.parameters["std_threshold"] = threshold
                rule.parameters.pop("lower_bound", None)
                rule.parameters.pop("upper_bound", None)
        elif action == ActionType.CUSTOM_LOGIC:
            rule.parameters["custom_logic"] = str(value)

    def skip_hitl(
        self, rules: Sequence[PreprocessingRule], session_id: str
    ) -> list[HITLDecision]:
        """Approve every unapproved rule without asking, recording each decision."""
        decisions: list[HITLDecision] = []
        for rule in rules:
            if rule.is_approved:
                continue
            rule.approve(SKIPPED_APPROVER, SKIPPED_NOTE)
            decision = HITLDecision(
                rule_id=rule.id,
                action=ActionType.APPROVE,
                approved=True,
                user_id=SKIPPED_APPROVER,
                notes=SKIPPED_NOTE,
            )
            self.decision_logger.log(session_id, decision)
            decisions.append(decision)

        record_hitl_decisions(len(decisions))
        logger.info("hitl_skipped", session_id=session_id, auto_approved=len(decisions))
        return decisions
