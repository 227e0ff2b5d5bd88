"""End-to-end tests for the incremental workflow."""

import asyncio

import pandas as pd
import pytest

from incremental_quality.core.config import DetectionConfig
from incremental_quality.core.exceptions import DatasetLoadError, WorkflowError
from incremental_quality.discovery import RuleDiscoveryEngine
from incremental_quality.discovery.models import RuleType
from incremental_quality.hitl import (
    HITLAnswer,
    RecommendedAnswerProvider,
    ScriptedAnswerProvider,
)
from incremental_quality.pipeline import (
    IncrementalWorkflow,
    WorkflowStage,
    composite_confidence,
    latest_checkpoint,
    load_checkpoint,
)


class CancellingProvider:
    async def answer(self, question):
        raise asyncio.CancelledError()


def make_workflow(**kwargs) -> IncrementalWorkflow:
    return IncrementalWorkflow(detection_config=DetectionConfig(), **kwargs)


def read_output(path) -> pd.DataFrame:
    return pd.read_csv(path, dtype=str, keep_default_na=False)


class TestCompositeConfidence:
    """Tests for composite_confidence."""

    def test_weights(self):
        assert composite_confidence(True, 1.0, 1.0) == pytest.approx(1.0)
        assert composite_confidence(False, 1.0, 1.0) == pytest.approx(0.92)
        assert composite_confidence(True, 0.975, 1.0) == pytest.approx(0.9925)
        assert composite_confidence(False, 0.0, 0.0) == pytest.approx(0.32)


class TestFullRun:
    """Tests for a complete run with review skipped."""

    async def test_skip_hitl_completes(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        state = await make_workflow().start(customers_csv, workflow_config)

        assert state.is_completed
        assert state.completed_at is not None
        assert state.total_records == 40
        assert len(state.completed_stages) == 5
        assert len(state.discovered_rules) == 3
        assert len(state.approved_rules) == 3
        assert state.has_converged
        assert state.confidence_score == pytest.approx(0.9925)

        missing = next(
            r for r in state.discovered_rules if r.rule_type == RuleType.MISSING_VALUE_STRATEGY
        )
        assert missing.approved_by == "system"
        assert missing.approval_note == "auto-approved (HITL skipped)"
        assert [d.rule_id for d in state.decisions] == [missing.id]

    async def test_cleaned_output(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        state = await make_workflow().start(customers_csv, workflow_config)

        assert state.output_path == str(workflow_config.output_dir / "customers-cleaned.csv")
        cleaned = read_output(state.output_path)
        assert len(cleaned) == 40
        assert (cleaned["age"] != "").all()
        assert cleaned["signup"].str.fullmatch(r"\d{4}-\d{2}-\d{2}").all()
        assert "seoul" not in set(cleaned["city"])

        bulk = state.stage_result(WorkflowStage.BULK_PROCESSING)
        assert bulk.sample_size == 40
        assert all(r.status == "applied" for r in bulk.rule_outcomes)
        assert bulk.notes.startswith("Applied 3 of 3 rules to full dataset")

    async def test_stage_records(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        state = await make_workflow().start(customers_csv, workflow_config)

        first = state.stage_result(WorkflowStage.INITIAL_EXPLORATION)
        second = state.stage_result(WorkflowStage.PATTERN_EXPANSION)
        assert len(first.rules_discovered) == 3
        assert first.analysis.row_count == 40
        assert second.rules_discovered == []
        assert second.convergence.new_rules == 0
        assert first.statistics_converged is None
        assert second.statistics_converged is True
        assert "Statistics stable: yes" in second.notes
        review = state.stage_result(WorkflowStage.HITL_DECISION)
        assert review.notes == "HITL decisions: 1, Approved rules: 3"
        assert state.stage_result(WorkflowStage.CONFIDENCE_CHECKPOINT).rule_scores

    async def test_progress_updates(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        updates = []
        await make_workflow().start(customers_csv, workflow_config, progress=updates.append)

        assert len(updates) == 10
        assert [u.percentage for u in updates[:2]] == [0.0, 1.0]
        assert updates[0].stage == WorkflowStage.INITIAL_EXPLORATION
        assert updates[-1].stage == WorkflowStage.BULK_PROCESSING
        assert updates[-1].message.startswith("Stage 5 complete")

    async def test_checkpoints_written_per_stage(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        state = await make_workflow().start(customers_csv, workflow_config)

        names = {p.name for p in workflow_config.checkpoint_dir.iterdir()}
        assert names == {
            f"checkpoint-{state.session_id}-{stage.value}.json"
            for stage in (
                WorkflowStage.PATTERN_EXPANSION,
                WorkflowStage.HITL_DECISION,
                WorkflowStage.CONFIDENCE_CHECKPOINT,
                WorkflowStage.BULK_PROCESSING,
                WorkflowStage.COMPLETED,
            )
        }

    async def test_checkpoints_disabled(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        workflow_config.enable_checkpoints = False
        await make_workflow().start(customers_csv, workflow_config)
        assert not workflow_config.checkpoint_dir.exists()


class DriftingEngine(RuleDiscoveryEngine):
    """Measures the missing-value rule at 0.5 from stage 3 on."""

    def discover(self, sample, analysis=None, stage=None):
        result = super().discover(sample, analysis, stage)
        if stage is not None and stage >= 3:
            for rule in result.rules:
                if rule.rule_type == RuleType.MISSING_VALUE_STRATEGY:
                    rule.confidence = 0.5
        return result


class TestConfidenceObservations:
    """Tests for the per-stage confidence history."""

    async def test_later_stages_record_sample_confidence(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        config = DetectionConfig()
        workflow = IncrementalWorkflow(
            detection_config=config, discovery_engine=DriftingEngine(config)
        )
        state = await workflow.start(customers_csv, workflow_config)

        missing = next(
            r for r in state.discovered_rules if r.rule_type == RuleType.MISSING_VALUE_STRATEGY
        )
        history = state.confidence_history.history[missing.signature]
        assert len(history) == 4
        assert history[0] == pytest.approx(history[1])
        assert history[0] > 0.5
        assert history[2:] == [pytest.approx(0.5), pytest.approx(0.5)]

    async def test_history_matches_stage_one_confidence(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        workflow = make_workflow()
        state = await workflow.start(customers_csv, workflow_config)

        first = state.stage_result(WorkflowStage.INITIAL_EXPLORATION)
        for rule in first.rules_discovered:
            history = workflow.tracker.history(rule.signature)
            assert len(history) == 4
            assert history == [pytest.approx(rule.confidence)] * 4


class TestFailures:
    """Tests for workflow error paths."""

    async def test_review_requires_provider(self, customers_csv, workflow_config):
        with pytest.raises(WorkflowError, match="requires an answer provider"):
            await make_workflow().start(customers_csv, workflow_config)

    async def test_missing_dataset(self, tmp_path, workflow_config):
        with pytest.raises(DatasetLoadError):
            await make_workflow().start(tmp_path / "absent.csv", workflow_config)


class TestReview:
    """Tests for stage 3 review and stage 4 auto-approval."""

    async def test_recommended_answers(self, customers_csv, workflow_config):
        workflow = make_workflow(answer_provider=RecommendedAnswerProvider())
        state = await workflow.start(customers_csv, workflow_config)

        assert state.is_completed
        assert len(state.approved_rules) == 3
        [decision] = state.decisions
        assert decision.followed_recommendation
        assert decision.user_id == "system:recommendation"
        review = state.stage_result(WorkflowStage.HITL_DECISION)
        assert review.notes == (
            "HITL decisions: 1, Approved rules: 3, Followed recommendations: 1/1 (100%)"
        )

    async def test_constant_fill(self, customers_csv, workflow_config):
        class ConstantProvider:
            async def answer(self, question):
                return HITLAnswer(
                    question_id=question.id, selected_option_key="D", numeric_value=0
                )

        state = await make_workflow(answer_provider=ConstantProvider()).start(
            customers_csv, workflow_config
        )
        cleaned = read_output(state.output_path)
        assert (cleaned["age"] == "0").sum() == 8

    async def test_unanswered_rule_is_not_applied(self, customers_csv, workflow_config):
        state = await make_workflow(answer_provider=ScriptedAnswerProvider({})).start(
            customers_csv, workflow_config
        )

        assert len(state.approved_rules) == 2
        assert state.confidence_score == pytest.approx(0.8925)
        cleaned = read_output(state.output_path)
        assert (cleaned["age"] == "").sum() == 8

    async def test_auto_approval_after_confidence_checkpoint(
        self, customers_csv, workflow_config
    ):
        workflow_config.enable_auto_approval = True
        workflow_config.min_confidence_threshold = 0.8
        workflow_config.max_error_rate = 0.2
        state = await make_workflow(answer_provider=ScriptedAnswerProvider({})).start(
            customers_csv, workflow_config
        )

        missing = next(
            r for r in state.discovered_rules if r.rule_type == RuleType.MISSING_VALUE_STRATEGY
        )
        assert missing.is_approved
        assert missing.approved_by == "system"
        assert missing.approval_note.startswith("auto-approved (confidence=")
        assert len(state.approved_rules) == 3

    async def test_auto_approval_holds_back_error_prone_rules(
        self, customers_csv, workflow_config
    ):
        workflow_config.enable_auto_approval = True
        workflow_config.min_confidence_threshold = 0.8
        state = await make_workflow(answer_provider=ScriptedAnswerProvider({})).start(
            customers_csv, workflow_config
        )

        # 1 of 8 missing rows is an exception: 12.5% > 1%
        assert len(state.approved_rules) == 2


class TestResume:
    """Tests for checkpoint resume."""

    async def test_cancelled_review_resumes(self, customers_csv, workflow_config):
        with pytest.raises(asyncio.CancelledError):
            await make_workflow(answer_provider=CancellingProvider()).start(
                customers_csv, workflow_config
            )

        path = latest_checkpoint(workflow_config.checkpoint_dir)
        assert path.name.endswith("-hitl_decision.json")
        saved = load_checkpoint(path)
        assert saved.current_stage == WorkflowStage.HITL_DECISION
        stage1 = saved.stage_result(WorkflowStage.INITIAL_EXPLORATION)

        workflow = make_workflow(answer_provider=RecommendedAnswerProvider())
        resumed = await workflow.resume(path)

        assert resumed.is_completed
        assert resumed.session_id == saved.session_id
        assert (
            resumed.stage_result(WorkflowStage.INITIAL_EXPLORATION).model_dump()
            == stage1.model_dump()
        )
        assert len(resumed.approved_rules) == 3
        assert workflow.hitl_service.decision_logger.decisions(resumed.session_id) == (
            resumed.decisions
        )
        assert resumed.stage_result(WorkflowStage.PATTERN_EXPANSION).statistics_converged

    async def test_completed_state_is_returned_unchanged(self, customers_csv, workflow_config):
        workflow_config.skip_hitl = True
        state = await make_workflow().start(customers_csv, workflow_config)

        resumed = await make_workflow().resume(state)
        assert resumed is state
