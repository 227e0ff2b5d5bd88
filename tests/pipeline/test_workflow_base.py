"""Tests for workflow stages, the stage plan and run configuration."""

import pytest
from pydantic import ValidationError

from incremental_quality.pipeline import (
    STAGE_PLAN,
    WorkflowConfig,
    WorkflowStage,
    WorkflowState,
    get_stage_definition,
)


class TestWorkflowStage:
    """Tests for the stage state machine."""

    def test_order(self):
        assert [s.number for s in WorkflowStage] == list(range(7))
        assert WorkflowStage.NOT_STARTED.next_stage() == WorkflowStage.INITIAL_EXPLORATION
        assert WorkflowStage.HITL_DECISION.next_stage() == WorkflowStage.CONFIDENCE_CHECKPOINT
        assert WorkflowStage.BULK_PROCESSING.next_stage() == WorkflowStage.COMPLETED

    def test_completed_is_terminal(self):
        assert WorkflowStage.COMPLETED.next_stage() == WorkflowStage.COMPLETED

    def test_stage_plan_covers_working_stages(self):
        assert [d.stage for d in STAGE_PLAN] == [
            WorkflowStage.INITIAL_EXPLORATION,
            WorkflowStage.PATTERN_EXPANSION,
            WorkflowStage.HITL_DECISION,
            WorkflowStage.CONFIDENCE_CHECKPOINT,
            WorkflowStage.BULK_PROCESSING,
        ]
        assert get_stage_definition(WorkflowStage.BULK_PROCESSING).ratio_field is None
        assert get_stage_definition(WorkflowStage.COMPLETED) is None


class TestWorkflowConfig:
    """Tests for WorkflowConfig."""

    def test_defaults(self):
        config = WorkflowConfig()
        assert config.ratio_for(WorkflowStage.INITIAL_EXPLORATION) == 0.001
        assert config.ratio_for(WorkflowStage.PATTERN_EXPANSION) == 0.005
        assert config.ratio_for(WorkflowStage.HITL_DECISION) == 0.015
        assert config.ratio_for(WorkflowStage.CONFIDENCE_CHECKPOINT) == 0.025
        assert config.ratio_for(WorkflowStage.BULK_PROCESSING) == 1.0
        assert config.min_confidence_threshold == 0.98
        assert config.max_error_rate == 0.01
        assert config.convergence_threshold == 0.02
        assert not config.skip_hitl
        assert config.enable_checkpoints

    @pytest.mark.parametrize("ratio", [0.0, 1.5])
    def test_ratio_bounds(self, ratio):
        with pytest.raises(ValidationError):
            WorkflowConfig(stage1_ratio=ratio)

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            WorkflowConfig(sampling_strategy="systematic")


class TestWorkflowState:
    """Tests for WorkflowState."""

    def test_new_state(self):
        state = WorkflowState(dataset_path="data.csv")
        assert state.current_stage == WorkflowStage.NOT_STARTED
        assert len(state.session_id) == 32
        assert not state.is_completed
        assert state.total_duration_seconds == 0.0

    def test_sessions_are_unique(self):
        assert WorkflowState(dataset_path="a").session_id != WorkflowState(
            dataset_path="a"
        ).session_id
