"""Deliverables written when a workflow completes.

Next to the cleaned CSV from stage 5, the output directory receives:

- <stem>-report.md: markdown processing report
- <stem>-metadata.json: machine-readable workflow summary
- <stem>-decisions.json: the session's HITL decision log
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from incremental_quality.core.logging import get_logger
from incremental_quality.hitl import DecisionLogger
from incremental_quality.pipeline.base import (
    STAGE_PLAN,
    DeliverableManifest,
    WorkflowState,
)

logger = get_logger(__name__)


def deliverable_paths(state: WorkflowState) -> dict[str, Path]:
    """Report, metadata and decision log paths for a session."""
    directory = Path(state.config.output_dir)
    stem = Path(state.dataset_path).stem
    return {
        "report": directory / f"{stem}-report.md",
        "metadata": directory / f"{stem}-metadata.json",
        "decisions": directory / f"{stem}-decisions.json",
    }


def format_duration(seconds: float) -> str:
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    return f"{hours:02d}:{minutes:02d}:{secs:05.2f}"


def render_report(state: WorkflowState, manifest: DeliverableManifest | None = None) -> str:
    """Markdown processing report for a workflow state."""
    lines = ["# Incremental Quality Report", ""]
    lines.append(f"**Session ID**: `{state.session_id}`")
    lines.append(f"**Dataset**: `{Path(state.dataset_path).name}`")
    lines.append(f"**Generated**: {datetime.now(UTC):%Y-%m-%d %H:%M:%S} UTC")
    lines.extend(["", "---", ""])

    lines.extend(_summary_section(state))
    lines.extend(_rules_section(state))
    lines.extend(_stage_section(state))
    lines.extend(_deliverables_section(state, manifest))
    lines.extend(_configuration_section(state))
    return "\n".join(lines)


def build_metadata(state: WorkflowState) -> dict[str, Any]:
    """JSON-friendly summary of a workflow state."""
    return {
        "session_id": state.session_id,
        "current_stage": state.current_stage.value,
        "dataset_path": state.dataset_path,
        "total_records": state.total_records,
        "total_duration_seconds": state.total_duration_seconds,
        "confidence_score": state.confidence_score,
        "has_converged": state.has_converged,
        "started_at": state.started_at.isoformat(),
        "completed_at": state.completed_at.isoformat() if state.completed_at else None,
        "completed_stages": {
            result.stage.value: {
                "sample_size": result.sample_size,
                "sample_ratio": result.sample_ratio,
                "rules_discovered": len(result.rules_discovered),
                "duration_seconds": result.duration_seconds,
                "quality_score": result.analysis.quality_score if result.analysis else None,
            }
            for result in sorted(state.completed_stages.values(), key=lambda r: r.stage.number)
        },
        "rules": [
            {
                "id": rule.id,
                "type": rule.rule_type.value,
                "column_names": rule.column_names,
                "description": rule.description,
                "confidence": rule.confidence,
                "is_approved": rule.is_approved,
                "approved_by": rule.approved_by,
                "approval_note": rule.approval_note,
            }
            for rule in state.discovered_rules
        ],
        "config": state.config.model_dump(mode="json"),
    }


class DeliverableWriter:
    """Writes the report, metadata and decision log for a completed workflow."""

    def __init__(self, decision_logger: DecisionLogger | None = None):
        self.decision_logger = decision_logger or DecisionLogger()

    def write(self, state: WorkflowState) -> DeliverableManifest:
        """Write every deliverable into state.config.output_dir.

        The report is skipped when config.generate_report is off; metadata
        and the decision log are always written.

        Raises:
            OSError: If the output directory is not writable
        """
        paths = deliverable_paths(state)
        paths["report"].parent.mkdir(parents=True, exist_ok=True)

        if not self.decision_logger.decisions(state.session_id):
            self.decision_logger.restore(state.session_id, state.decisions)
        decisions_path = self.decision_logger.export_json(state.session_id, paths["decisions"])

        metadata_path = paths["metadata"]
        metadata_path.write_text(json.dumps(build_metadata(state), indent=2), encoding="utf-8")

        manifest = DeliverableManifest(
            cleaned_data_path=state.output_path,
            report_path=str(paths["report"]) if state.config.generate_report else None,
            metadata_path=str(metadata_path),
            decisions_path=str(decisions_path),
        )
        if manifest.report_path is not None:
            paths["report"].write_text(render_report(state, manifest), encoding="utf-8")

        logger.info(
            "deliverables_written",
            session_id=state.session_id,
            report=manifest.report_path,
            metadata=manifest.metadata_path,
            decisions=manifest.decisions_path,
        )
        return manifest


# --- report sections ---


def _summary_section(state: WorkflowState) -> list[str]:
    stages = len(STAGE_PLAN)
    decided = len(state.decisions)
    followed = sum(1 for d in state.decisions if d.followed_recommendation)
    return [
        "## Summary",
        "",
        f"- **Total Records**: {state.total_records:,}",
        f"- **Processing Duration**: {format_duration(state.total_duration_seconds)}",
        f"- **Workflow Stage**: {state.current_stage.value}",
        f"- **Confidence Score**: {state.confidence_score:.2%}",
        f"- **Converged**: {'Yes' if state.has_converged else 'No'}",
        f"- **Stages Completed**: {len(state.completed_stages)}/{stages}",
        f"- **Rules Discovered**: {len(state.discovered_rules)}",
        f"- **Rules Approved**: {len(state.approved_rules)}",
        f"- **HITL Decisions**: {decided} ({followed} followed the recommendation)",
        "",
        "---",
        "",
    ]


def _rules_section(state: WorkflowState) -> list[str]:
    lines = [f"## Rules Applied ({len(state.approved_rules)} total)", ""]
    if not state.approved_rules:
        lines.extend(["*No rules were approved for application.*", ""])
        return lines

    outcomes: dict[str, str] = {}
    for result in state.completed_stages.values():
        for outcome in result.rule_outcomes:
            outcomes[outcome.rule_id] = outcome.describe()

    for i, rule in enumerate(state.approved_rules, start=1):
        lines.append(f"{i}. **{rule.rule_type.value}**")
        lines.append(f"   - **Columns**: {', '.join(rule.column_names)}")
        lines.append(f"   - **Description**: {rule.description}")
        lines.append(f"   - **Confidence**: {rule.confidence:.2%}")
        if rule.approved_by:
            lines.append(f"   - **Approved by**: {rule.approved_by}")
        if rule.approval_note:
            lines.append(f"   - **Note**: {rule.approval_note}")
        if rule.id in outcomes:
            lines.append(f"   - **Outcome**: {outcomes[rule.id]}")
        lines.append("")

    lines.extend(["---", ""])
    return lines


def _stage_section(state: WorkflowState) -> list[str]:
    lines = ["## Stage Details", ""]
    for definition in STAGE_PLAN:
        result = state.stage_result(definition.stage)
        if result is None:
            continue
        lines.append(f"### {definition.stage.value}")
        lines.append("")
        lines.append(f"- **Sample Ratio**: {result.sample_ratio:.2%}")
        lines.append(f"- **Sample Size**: {result.sample_size:,} records")
        lines.append(f"- **Duration**: {format_duration(result.duration_seconds)}")
        lines.append(f"- **Rules Discovered**: {len(result.rules_discovered)}")
        if result.analysis is not None:
            lines.append(f"- **Quality Score**: {result.analysis.quality_score:.2%}")
        if result.notes:
            lines.append(f"- **Notes**: {result.notes}")
        lines.append("")

    lines.extend(["---", ""])
    return lines


def _deliverables_section(
    state: WorkflowState, manifest: DeliverableManifest | None
) -> list[str]:
    paths = deliverable_paths(state)
    cleaned = manifest.cleaned_data_path if manifest else state.output_path
    lines = ["## Deliverables", ""]
    lines.append(f"- **Cleaned Data**: `{cleaned}`" if cleaned else "- **Cleaned Data**: not written")
    lines.append(f"- **This Report**: `{paths['report']}`")
    lines.append(f"- **Workflow Metadata**: `{paths['metadata']}`")
    lines.append(f"- **Decision Log**: `{paths['decisions']}`")
    lines.extend(["", "---", ""])
    return lines


def _configuration_section(state: WorkflowState) -> list[str]:
    return [
        "## Configuration",
        "",
        "```json",
        json.dumps(state.config.model_dump(mode="json"), indent=2),
        "```",
        "",
    ]
