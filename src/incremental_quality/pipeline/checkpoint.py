"""Checkpoint persistence.

A checkpoint is the JSON-serialized WorkflowState written after a stage.
Files are named from the session id and the stage the state will resume
at, and are self-sufficient for resuming.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from incremental_quality.core.exceptions import CheckpointError
from incremental_quality.core.logging import get_logger
from incremental_quality.pipeline.base import WorkflowStage, WorkflowState

logger = get_logger(__name__)


def checkpoint_path(directory: Path | str, session_id: str, stage: WorkflowStage) -> Path:
    return Path(directory) / f"checkpoint-{session_id}-{stage.value}.json"


def save_checkpoint(state: WorkflowState, directory: Path | str | None = None) -> Path:
    """Write the state to its checkpoint file.

    Written to a temporary file first and moved into place, so a crash never
    leaves a truncated checkpoint behind.

    Args:
        state: State to persist
        directory: Target directory; defaults to state.config.checkpoint_dir

    Returns:
        Path of the written checkpoint
    """
    target_dir = Path(directory) if directory is not None else state.config.checkpoint_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    path = checkpoint_path(target_dir, state.session_id, state.current_stage)

    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
    tmp.replace(path)

    logger.info(
        "checkpoint_saved",
        session_id=state.session_id,
        stage=state.current_stage.value,
        path=str(path),
    )
    return path


def load_checkpoint(path: Path | str) -> WorkflowState:
    """Load a checkpoint.

    Raises:
        CheckpointError: If the file is missing or cannot be deserialized
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise CheckpointError(f"Checkpoint file not found: {file_path}")

    try:
        state = WorkflowState.model_validate_json(file_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        raise CheckpointError(f"Checkpoint is unusable: {file_path}: {e}") from e

    logger.info(
        "checkpoint_loaded",
        session_id=state.session_id,
        stage=state.current_stage.value,
        path=str(file_path),
    )
    return state


def latest_checkpoint(directory: Path | str, session_id: str | None = None) -> Path | None:
    """Most recently written checkpoint in a directory, optionally for one session."""
    root = Path(directory)
    if not root.is_dir():
        return None
    pattern = f"checkpoint-{session_id}-*.json" if session_id else "checkpoint-*.json"
    candidates = sorted(root.glob(pattern), key=lambda p: (p.stat().st_mtime_ns, _stage_number(p)))
    return candidates[-1] if candidates else None


def _stage_number(path: Path) -> int:
    for stage in WorkflowStage:
        if path.stem.endswith(f"-{stage.value}"):
            return stage.number
    return -1
