"""Workflow base types.

Defines the stage state machine, the static stage plan, per-run
configuration and the state aggregate that is checkpointed after every
stage.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from incremental_quality.analysis.statistics import SampleAnalysisSummary
from incremental_quality.application.models import RuleApplicationResult
from incremental_quality.discovery.confidence import TrackerSnapshot
from incremental_quality.discovery.models import (
    ConfidenceScore,
    ConvergenceInfo,
    DetectorFailure,
    PreprocessingRule,
)
from incremental_quality.hitl.models import HITLDecision


class WorkflowStage(str, Enum):
    """Workflow state machine. Strictly sequential."""

    NOT_STARTED = "not_started"
    INITIAL_EXPLORATION = "initial_exploration"
    PATTERN_EXPANSION = "pattern_expansion"
    HITL_DECISION = "hitl_decision"
    CONFIDENCE_CHECKPOINT = "confidence_checkpoint"
    BULK_PROCESSING = "bulk_processing"
    COMPLETED = "completed"

    @property
    def number(self) -> int:
        """Position in the state machine (0 = not started, 6 = completed)."""
        return _STAGE_ORDER.index(self)

    def next_stage(self) -> WorkflowStage:
        if self == WorkflowStage.COMPLETED:
            return self
        return _STAGE_ORDER[self.number + 1]


_STAGE_ORDER: list[WorkflowStage] = list(WorkflowStage)


@dataclass(frozen=True)
class StageDefinition:
    """Static definition of a stage."""

    stage: WorkflowStage
    ratio_field: str | None  # WorkflowConfig field, None = full dataset
    description: str


STAGE_PLAN: list[StageDefinition] = [
    StageDefinition(
        stage=WorkflowStage.INITIAL_EXPLORATION,
        ratio_field="stage1_ratio",
        description="Sample, detect and discover baseline rules",
    ),
    StageDefinition(
        stage=WorkflowStage.PATTERN_EXPANSION,
        ratio_field="stage2_ratio",
        description="Discover on a larger sample; converged when no new rules appear",
    ),
    StageDefinition(
        stage=WorkflowStage.HITL_DECISION,
        ratio_field="stage3_ratio",
        description="Resolve unapproved rules through human review",
    ),
    StageDefinition(
        stage=WorkflowStage.CONFIDENCE_CHECKPOINT,
        ratio_field="stage4_ratio",
        description="Composite confidence and optional auto-approval",
    ),
    StageDefinition(
        stage=WorkflowStage.BULK_PROCESSING,
        ratio_field=None,
        description="Apply approved rules to the full dataset",
    ),
]


def get_stage_definition(stage: WorkflowStage) -> StageDefinition | None:
    for definition in STAGE_PLAN:
        if definition.stage == stage:
            return definition
    return None


class WorkflowConfig(BaseModel):
    """Per-run configuration, stored in every checkpoint."""

    stage1_ratio: float = Field(default=0.001, gt=0.0, le=1.0)
    stage2_ratio: float = Field(default=0.005, gt=0.0, le=1.0)
    stage3_ratio: float = Field(default=0.015, gt=0.0, le=1.0)
    stage4_ratio: float = Field(default=0.025, gt=0.0, le=1.0)

    min_confidence_threshold: float = Field(default=0.98, ge=0.0, le=1.0)
    max_error_rate: float = Field(default=0.01, ge=0.0, le=1.0)
    convergence_threshold: float = Field(default=0.02, ge=0.0, le=1.0)

    skip_hitl: bool = False
    enable_auto_approval: bool = False
    enable_checkpoints: bool = True
    checkpoint_dir: Path = Path("./checkpoints")
    output_dir: Path = Path("./cleaned")

    random_seed: int = 42
    sampling_strategy: Literal["adaptive", "random", "stratified"] = "adaptive"
    stratify_column: str | None = None

    continue_on_rule_failure: bool = True
    bulk_chunk_size: int = Field(default=10000, gt=0)
    generate_report: bool = True

    def ratio_for(self, stage: WorkflowStage) -> float:
        definition = get_stage_definition(stage)
        if definition is None or definition.ratio_field is None:
            return 1.0
        return getattr(self, definition.ratio_field)


class StageResult(BaseModel):
    """Immutable record of one stage's execution."""

    model_config = ConfigDict(frozen=True)

    stage: WorkflowStage
    sample_size: int
    sample_ratio: float
    analysis: SampleAnalysisSummary | None = None
    rules_discovered: list[PreprocessingRule] = Field(default_factory=list)
    convergence: ConvergenceInfo | None = None
    rule_scores: dict[str, ConfidenceScore] = Field(default_factory=dict)
    detector_failures: list[DetectorFailure] = Field(default_factory=list)
    # Stage 2 only: whether column statistics matched stage 1's sample
    statistics_converged: bool | None = None
    rule_outcomes: list[RuleApplicationResult] = Field(default_factory=list)
    duration_seconds: float = 0.0
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    notes: str = ""


class DeliverableManifest(BaseModel):
    """Files written when a workflow completes."""

    cleaned_data_path: str | None = None
    report_path: str | None = None
    metadata_path: str | None = None
    decisions_path: str | None = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class WorkflowState(BaseModel):
    """The mutable aggregate owned by the orchestrator."""

    session_id: str = Field(default_factory=lambda: uuid4().hex)
    current_stage: WorkflowStage = WorkflowStage.NOT_STARTED
    dataset_path: str
    total_records: int = 0
    completed_stages: dict[WorkflowStage, StageResult] = Field(default_factory=dict)
    discovered_rules: list[PreprocessingRule] = Field(default_factory=list)
    approved_rules: list[PreprocessingRule] = Field(default_factory=list)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    has_converged: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    config: WorkflowConfig = Field(default_factory=WorkflowConfig)
    confidence_history: TrackerSnapshot = Field(default_factory=TrackerSnapshot)
    decisions: list[HITLDecision] = Field(default_factory=list)
    output_path: str | None = None
    deliverables: DeliverableManifest | None = None
    notes: list[str] = Field(default_factory=list)

    def stage_result(self, stage: WorkflowStage) -> StageResult | None:
        return self.completed_stages.get(stage)

    def is_stage_completed(self, stage: WorkflowStage) -> bool:
        return stage in self.completed_stages

    @property
    def is_completed(self) -> bool:
        return self.current_stage == WorkflowStage.COMPLETED

    @property
    def total_duration_seconds(self) -> float:
        return sum(r.duration_seconds for r in self.completed_stages.values())

    def sync_approved_rules(self) -> None:
        """Rebuild approved_rules from the approval flags of discovered_rules."""
        self.approved_rules = [r for r in self.discovered_rules if r.is_approved]


class ProgressUpdate(BaseModel):
    """Progress report sent to observers at the start and end of every stage."""

    stage: WorkflowStage
    percentage: float = Field(ge=0.0, le=1.0)
    message: str
    rules_discovered: int = 0
    confidence_score: float = 0.0
    has_converged: bool = False


type ProgressCallback = Callable[[ProgressUpdate], None]
