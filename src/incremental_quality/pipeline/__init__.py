"""Staged incremental workflow."""

from incremental_quality.pipeline.base import (
    STAGE_PLAN,
    DeliverableManifest,
    ProgressCallback,
    ProgressUpdate,
    StageDefinition,
    StageResult,
    WorkflowConfig,
    WorkflowStage,
    WorkflowState,
    get_stage_definition,
)
from incremental_quality.pipeline.checkpoint import (
    checkpoint_path,
    latest_checkpoint,
    load_checkpoint,
    save_checkpoint,
)
from incremental_quality.pipeline.deliverables import (
    DeliverableWriter,
    build_metadata,
    render_report,
)
from incremental_quality.pipeline.orchestrator import IncrementalWorkflow, composite_confidence

__all__ = [
    "DeliverableManifest",
    "DeliverableWriter",
    "IncrementalWorkflow",
    "ProgressCallback",
    "ProgressUpdate",
    "STAGE_PLAN",
    "StageDefinition",
    "StageResult",
    "WorkflowConfig",
    "WorkflowStage",
    "WorkflowState",
    "build_metadata",
    "checkpoint_path",
    "composite_confidence",
    "get_stage_definition",
    "latest_checkpoint",
    "load_checkpoint",
    "render_report",
    "save_checkpoint",
]
