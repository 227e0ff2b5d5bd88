"""Tests for the HITL workflow service and decision log."""

import asyncio
import json

import pytest
from conftest import make_rule

from incremental_quality.discovery.models import PatternType, RuleType
from incremental_quality.hitl import (
    ActionType,
    AnswerProvider,
    DecisionLogger,
    HITLAnswer,
    HITLWorkflowService,
    QuestionType,
    RecommendedAnswerProvider,
    ScriptedAnswerProvider,
)

SESSION = "session-1"


@pytest.fixture
def rules():
    return [
        make_rule(
            RuleType.MISSING_VALUE_STRATEGY,
            "age",
            PatternType.MISSING_VALUE,
            affected_percentage=0.2,
        ),
        make_rule(
            RuleType.OUTLIER_HANDLING,
            "amount",
            PatternType.OUTLIER_ANOMALY,
            affected_percentage=0.1,
        ),
        make_rule(
            RuleType.WHITESPACE_NORMALIZATION,
            "name",
            PatternType.WHITESPACE_ISSUE,
            confidence=1.0,
            is_approved=True,
            approved_by="system",
        ),
    ]


class CancelAfterFirst:
    """Answers the first question, then cancels."""

    def __init__(self):
        self.asked = 0

    async def answer(self, question):
        self.asked += 1
        if self.asked > 1:
            raise asyncio.CancelledError()
        return HITLAnswer(question_id=question.id, selected_option_key="B", answered_by="alice")


class BrokenProvider:
    async def answer(self, question):
        raise RuntimeError("provider unavailable")


class TestHITLWorkflowService:
    """Tests for HITLWorkflowService.run."""

    def test_pending_rules_skip_approved(self, rules):
        pending = HITLWorkflowService.pending_rules(rules)
        assert [r.column_name for r in pending] == ["age", "amount"]

    def test_providers_satisfy_protocol(self):
        assert isinstance(RecommendedAnswerProvider(), AnswerProvider)
        assert isinstance(ScriptedAnswerProvider({}), AnswerProvider)

    async def test_scripted_answers_bind_actions(self, rules):
        provider = ScriptedAnswerProvider(
            {rules[0].id: "D", rules[1].id: "B"}, answered_by="alice"
        )
        service = HITLWorkflowService()
        decisions = await service.run(rules, None, None, provider, SESSION)

        assert len(decisions) == 2
        missing, outlier = rules[0], rules[1]
        assert missing.is_approved
        assert missing.approved_by == "alice"
        assert missing.parameters["action"] == ActionType.FILL_CONSTANT.value
        assert outlier.parameters["action"] == ActionType.CAP_OUTLIERS.value
        assert service.decision_logger.decisions(SESSION) == decisions

    async def test_constant_value_is_bound(self, rules):
        class ConstantProvider:
            async def answer(self, question):
                return HITLAnswer(
                    question_id=question.id, selected_option_key="D", numeric_value=0.0
                )

        await HITLWorkflowService().run(rules[:1], None, None, ConstantProvider(), SESSION)
        assert rules[0].parameters["constant_value"] == 0.0

    async def test_follow_up_value_is_bound(self, rules):
        provider = ScriptedAnswerProvider(
            {rules[0].id: "D"}, answered_by="alice", values={rules[0].id: "unknown"}
        )
        [decision] = await HITLWorkflowService().run(rules[:1], None, None, provider, SESSION)

        assert rules[0].parameters["constant_value"] == "unknown"
        assert decision.follow_up.type == QuestionType.TEXT_INPUT
        assert decision.follow_up_answer.text_value == "unknown"
        assert decision.notes == "Overrode AI recommendation. Value: unknown"

    async def test_outlier_threshold_resets_bounds(self, rules):
        outlier = rules[1]
        outlier.parameters.update({"lower_bound": -5.0, "upper_bound": 5.0})
        provider = ScriptedAnswerProvider({outlier.id: "B"}, values={outlier.id: 2.0})
        [decision] = await HITLWorkflowService().run([outlier], None, None, provider, SESSION)

        assert decision.follow_up.type == QuestionType.NUMERIC_INPUT
        assert outlier.parameters["std_threshold"] == 2.0
        assert "lower_bound" not in outlier.parameters
        assert "upper_bound" not in outlier.parameters

    async def test_unanswered_follow_up_uses_default(self, rules):
        outlier = rules[1]
        outlier.parameters.update({"lower_bound": -5.0, "upper_bound": 5.0})
        provider = ScriptedAnswerProvider({outlier.id: "A"})
        [decision] = await HITLWorkflowService().run([outlier], None, None, provider, SESSION)

        assert decision.approved
        assert decision.follow_up_answer is None
        assert decision.notes.endswith("Value: 3.0")
        assert "std_threshold" not in outlier.parameters
        assert outlier.parameters["lower_bound"] == -5.0

    async def test_invalid_threshold_leaves_rule_pending(self, rules):
        outlier = rules[1]
        provider = ScriptedAnswerProvider({outlier.id: "A"}, values={outlier.id: -1.0})
        decisions = await HITLWorkflowService().run([outlier], None, None, provider, SESSION)

        assert decisions == []
        assert not outlier.is_approved

    async def test_yes_no_boolean_answer(self):
        rule = make_rule(
            RuleType.DUPLICATE_HANDLING, "id", PatternType.DUPLICATE_RECORDS, confidence=0.95
        )

        class NoProvider:
            async def answer(self, question):
                return HITLAnswer(question_id=question.id, boolean_value=False)

        [decision] = await HITLWorkflowService().run([rule], None, None, NoProvider(), SESSION)

        assert decision.question.type == QuestionType.YES_NO
        assert decision.answer.selected_option_key == "N"
        assert decision.action == ActionType.KEEP_AS_IS
        assert not decision.followed_recommendation
        assert rule.parameters["action"] == "keep_as_is"

    async def test_recommended_answers(self, rules):
        decisions = await HITLWorkflowService().run(
            rules, None, None, RecommendedAnswerProvider(), SESSION
        )
        assert all(d.approved for d in decisions)
        assert all(d.followed_recommendation for d in decisions)
        assert all(d.notes.startswith("Followed AI recommendation") for d in decisions)
        assert rules[0].approved_by == "system:recommendation"
        assert decisions[1].follow_up_answer.numeric_value == 3.0
        assert decisions[1].follow_up_answer.answered_by == "system:recommendation"

    async def test_reject_leaves_rule_unapproved(self):
        rule = make_rule(
            RuleType.DATE_FORMAT_STANDARDIZATION,
            "signup",
            PatternType.FORMAT_VARIATION,
            confidence=0.5,
        )
        provider = ScriptedAnswerProvider({rule.id: "B"})
        [decision] = await HITLWorkflowService().run([rule], None, None, provider, SESSION)

        assert decision.action == ActionType.REJECT
        assert not decision.approved
        assert not rule.is_approved
        assert rule.parameters["action"] == "reject"

    async def test_unanswered_and_unknown_keys_stay_pending(self, rules):
        provider = ScriptedAnswerProvider({rules[0].id: "Z"})
        decisions = await HITLWorkflowService().run(rules, None, None, provider, SESSION)

        assert decisions == []
        assert not rules[0].is_approved
        assert not rules[1].is_approved

    async def test_provider_failure_is_isolated(self, rules):
        decisions = await HITLWorkflowService().run(rules, None, None, BrokenProvider(), SESSION)
        assert decisions == []
        assert not rules[0].is_approved

    async def test_cancellation_keeps_earlier_decisions(self, rules):
        service = HITLWorkflowService()
        with pytest.raises(asyncio.CancelledError):
            await service.run(rules, None, None, CancelAfterFirst(), SESSION)

        assert rules[0].is_approved
        assert rules[0].parameters["action"] == ActionType.FILL_MEDIAN.value
        assert not rules[1].is_approved
        assert len(service.decision_logger.decisions(SESSION)) == 1


class TestSkipHITL:
    """Tests for HITLWorkflowService.skip_hitl."""

    def test_skip_attributes_approvals_to_system(self, rules):
        decisions = HITLWorkflowService().skip_hitl(rules, SESSION)

        assert [d.rule_id for d in decisions] == [rules[0].id, rules[1].id]
        for rule in rules[:2]:
            assert rule.is_approved
            assert rule.approved_by == "system"
            assert rule.approval_note == "auto-approved (HITL skipped)"
        for decision in decisions:
            assert decision.question is None
            assert decision.user_id == "system"
            assert decision.action == ActionType.APPROVE
            assert not decision.followed_recommendation


class TestDecisionLogger:
    """Tests for DecisionLogger."""

    async def test_summary(self, rules):
        decision_log = DecisionLogger()
        service = HITLWorkflowService(decision_logger=decision_log)
        provider = ScriptedAnswerProvider({rules[0].id: "C", rules[1].id: "D"})
        await service.run(rules, None, None, provider, SESSION)

        summary = decision_log.summary(SESSION)
        assert summary.total_decisions == 2
        assert summary.approved == 2
        assert summary.followed_recommendations == 1
        assert summary.overridden_recommendations == 1
        assert summary.recommendation_follow_rate == pytest.approx(0.5)
        assert summary.action_distribution == {"fill_mode": 1, "keep_as_is": 1}
        assert summary.question_type_distribution == {"multiple_choice": 2}

    async def test_summary_counts_follow_ups(self, rules):
        decision_log = DecisionLogger()
        service = HITLWorkflowService(decision_logger=decision_log)
        provider = ScriptedAnswerProvider({rules[1].id: "B"}, values={rules[1].id: 2.5})
        await service.run(rules, None, None, provider, SESSION)

        summary = decision_log.summary(SESSION)
        assert summary.question_type_distribution == {"multiple_choice": 1, "numeric_input": 1}

    def test_empty_summary(self):
        summary = DecisionLogger().summary("unknown")
        assert summary.total_decisions == 0
        assert summary.recommendation_follow_rate == 0.0

    def test_export_json(self, rules, tmp_path):
        decision_log = DecisionLogger()
        HITLWorkflowService(decision_logger=decision_log).skip_hitl(rules, SESSION)

        path = decision_log.export_json(SESSION, tmp_path / "audit" / "decisions.json")
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["session_id"] == SESSION
        assert payload["summary"]["total_decisions"] == 2
        assert len(payload["decisions"]) == 2

    def test_clear(self, rules):
        decision_log = DecisionLogger()
        HITLWorkflowService(decision_logger=decision_log).skip_hitl(rules, SESSION)
        decision_log.clear(SESSION)
        assert decision_log.decisions(SESSION) == []

    def test_restore(self, rules):
        source = DecisionLogger()
        decisions = HITLWorkflowService(decision_logger=source).skip_hitl(rules, SESSION)

        restored = DecisionLogger()
        restored.restore(SESSION, decisions)
        assert restored.decisions(SESSION) == decisions
        assert restored.summary(SESSION).approved == len(decisions)
