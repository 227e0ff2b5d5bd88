"""Structured logging for the incremental workflow.

Works for:
- Local CLI runs (rich console output)
- Unattended runs shipping logs elsewhere (JSON structured logs)

Usage:
    from incremental_quality.core.logging import get_logger, configure_logging

    # Configure at startup
    configure_logging(log_level="INFO", log_format="console")

    # Get logger in any module
    logger = get_logger(__name__)

    # Log with structured context
    logger.info("stage_started", stage="initial_exploration", ratio=0.001)

    # Scoped context propagation
    with log_context(session_id="abc123", stage="hitl_decision"):
        logger.info("question_asked", rule_id="missing_value_strategy_age_missing_value")
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

import structlog
from structlog.typing import FilteringBoundLogger

# Context variables for correlation
_run_context: ContextVar[dict[str, Any] | None] = ContextVar("run_context", default=None)


@dataclass
class StageMetrics:
    """Metrics collected during one workflow stage."""

    stage_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    # Counters
    rows_sampled: int = 0
    columns_analyzed: int = 0
    patterns_detected: int = 0
    rules_discovered: int = 0
    detector_failures: int = 0
    hitl_decisions: int = 0
    rules_applied: int = 0

    # Sub-operation timings (seconds)
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        """Get duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def record_timing(self, operation: str, seconds: float) -> None:
        """Record timing for a sub-operation."""
        self.timings[operation] = self.timings.get(operation, 0.0) + seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "stage_name": self.stage_name,
            "duration_seconds": self.duration_seconds,
            "rows_sampled": self.rows_sampled,
            "columns_analyzed": self.columns_analyzed,
            "patterns_detected": self.patterns_detected,
            "rules_discovered": self.rules_discovered,
            "detector_failures": self.detector_failures,
            "hitl_decisions": self.hitl_decisions,
            "rules_applied": self.rules_applied,
            "timings": self.timings,
        }


@dataclass
class WorkflowMetrics:
    """Aggregate metrics for an entire workflow run."""

    session_id: str
    dataset_path: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    stages: list[StageMetrics] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def add_stage(self, metrics: StageMetrics) -> None:
        """Add stage metrics."""
        self.stages.append(metrics)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "session_id": self.session_id,
            "dataset_path": self.dataset_path,
            "duration_seconds": self.duration_seconds,
            "stage_count": len(self.stages),
            "total_rows_sampled": sum(s.rows_sampled for s in self.stages),
            "total_rules_discovered": sum(s.rules_discovered for s in self.stages),
            "total_detector_failures": sum(s.detector_failures for s in self.stages),
            "total_hitl_decisions": sum(s.hitl_decisions for s in self.stages),
            "stages": [s.to_dict() for s in self.stages],
        }


# Metrics storage (per-run)
_current_metrics: ContextVar[WorkflowMetrics | None] = ContextVar("current_metrics", default=None)
_current_stage_metrics: ContextVar[StageMetrics | None] = ContextVar(
    "current_stage_metrics", default=None
)


def start_workflow_metrics(session_id: str, dataset_path: str) -> WorkflowMetrics:
    """Start collecting metrics for a workflow run."""
    metrics = WorkflowMetrics(session_id=session_id, dataset_path=dataset_path)
    _current_metrics.set(metrics)
    return metrics


def start_stage_metrics(stage_name: str) -> StageMetrics:
    """Start collecting metrics for a stage."""
    metrics = StageMetrics(stage_name=stage_name)
    _current_stage_metrics.set(metrics)
    return metrics


def get_stage_metrics() -> StageMetrics | None:
    """Get current stage metrics."""
    return _current_stage_metrics.get()


def end_stage_metrics() -> StageMetrics | None:
    """End current stage metrics and add them to the workflow metrics."""
    stage_metrics = _current_stage_metrics.get()
    if stage_metrics:
        stage_metrics.end_time = datetime.now(UTC)
        workflow_metrics = _current_metrics.get()
        if workflow_metrics:
            workflow_metrics.add_stage(stage_metrics)
        _current_stage_metrics.set(None)
    return stage_metrics


def end_workflow_metrics() -> WorkflowMetrics | None:
    """End workflow metrics collection."""
    metrics = _current_metrics.get()
    if metrics:
        metrics.end_time = datetime.now(UTC)
        _current_metrics.set(None)
    return metrics


def _add_run_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor to add run context to log events."""
    context = _run_context.get()
    if context:
        event_dict.update(context)
    return event_dict


def _add_metrics_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor to add current metrics context."""
    stage_metrics = _current_stage_metrics.get()
    if stage_metrics:
        event_dict["_stage"] = stage_metrics.stage_name
    workflow_metrics = _current_metrics.get()
    if workflow_metrics:
        event_dict["_session_id"] = workflow_metrics.session_id
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    show_timestamps: bool = True,
    color: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Output format ("console" for development, "json" for production)
        show_timestamps: Whether to show timestamps in console mode
        color: Whether to use colors in console mode
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_run_context,
        _add_metrics_context,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if show_timestamps:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=color,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Also configure stdlib logging for libraries
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Bound structlog logger
    """
    return cast(FilteringBoundLogger, structlog.get_logger(name))


class LogContext:
    """Context manager for adding context to logs within a scope."""

    def __init__(self, **context: Any):
        self.context = context
        self.token: Any = None

    def __enter__(self) -> LogContext:
        current = _run_context.get() or {}
        self.token = _run_context.set({**current, **self.context})
        return self

    def __exit__(self, *args: Any) -> None:
        if self.token:
            _run_context.reset(self.token)


def log_context(**context: Any) -> LogContext:
    """Create a context manager for scoped logging context.

    Usage:
        with log_context(session_id="abc", stage="pattern_expansion"):
            logger.info("processing")  # Will include session_id and stage
    """
    return LogContext(**context)


def record_rows_sampled(count: int) -> None:
    """Record sampled rows in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.rows_sampled += count


def record_columns_analyzed(count: int) -> None:
    """Record analyzed columns in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.columns_analyzed += count


def record_discovery(patterns: int, rules: int, failures: int = 0) -> None:
    """Record discovery counters in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.patterns_detected += patterns
        metrics.rules_discovered += rules
        metrics.detector_failures += failures


def record_hitl_decisions(count: int) -> None:
    """Record HITL decisions in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.hitl_decisions += count


def record_rules_applied(count: int) -> None:
    """Record applied rules in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.rules_applied += count


def record_operation_timing(operation: str, seconds: float) -> None:
    """Record timing for a sub-operation in current stage metrics."""
    metrics = _current_stage_metrics.get()
    if metrics:
        metrics.record_timing(operation, seconds)


# Initialize with default configuration
configure_logging()
