"""Incremental workflow orchestrator.

Drives the five-stage workflow:

1. Initial exploration (0.1%): baseline rules
2. Pattern expansion (0.5%): new rules only; converged when none appear
3. HITL decision (1.5%): review of unapproved rules
4. Confidence checkpoint (2.5%): composite confidence, optional auto-approval
5. Bulk processing (100%): approved rules handed to the RuleApplier

Stages run strictly in sequence. The state is checkpointed after every
stage and on HITL cancellation, and a checkpoint is enough to resume.
On completion the DeliverableWriter adds the report, metadata and
decision log to the output directory.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from pathlib import Path

import pandas as pd

from incremental_quality.analysis import SampleAnalysis, SampleAnalyzer
from incremental_quality.application import DataFrameRuleApplier, RuleApplier, write_output
from incremental_quality.core.config import DetectionConfig, load_detection_config
from incremental_quality.core.exceptions import DatasetLoadError, WorkflowError
from incremental_quality.core.logging import (
    end_stage_metrics,
    end_workflow_metrics,
    get_logger,
    log_context,
    start_stage_metrics,
    start_workflow_metrics,
)
from incremental_quality.core.models.base import clamp_unit
from incremental_quality.discovery import (
    ConfidenceCalculator,
    ConvergenceDetector,
    RuleConfidenceTracker,
    RuleDiscoveryEngine,
)
from incremental_quality.discovery.models import (
    ConfidenceScore,
    ConvergenceInfo,
    DetectorFailure,
    PreprocessingRule,
)
from incremental_quality.hitl import AnswerProvider, HITLWorkflowService
from incremental_quality.pipeline.base import (
    ProgressCallback,
    ProgressUpdate,
    StageResult,
    WorkflowConfig,
    WorkflowStage,
    WorkflowState,
)
from incremental_quality.pipeline.checkpoint import load_checkpoint, save_checkpoint
from incremental_quality.pipeline.deliverables import DeliverableWriter
from incremental_quality.sampling import (
    SampleResult,
    SamplingConfig,
    SamplingEngine,
    create_strategy,
)
from incremental_quality.sources import CSVLoader, DatasetLoader

logger = get_logger(__name__)

FALLBACK_RECORD_COUNT = 100_000
CONFIDENCE_APPROVER = "system"

# Composite confidence weights
CONVERGENCE_WEIGHT = 0.4
QUALITY_WEIGHT = 0.3
APPROVAL_WEIGHT = 0.3
UNCONVERGED_FACTOR = 0.8


def composite_confidence(has_converged: bool, quality_score: float, approval_ratio: float) -> float:
    """0.4 x convergence factor + 0.3 x sample quality + 0.3 x approval ratio."""
    convergence_factor = 1.0 if has_converged else UNCONVERGED_FACTOR
    return clamp_unit(
        CONVERGENCE_WEIGHT * convergence_factor
        + QUALITY_WEIGHT * quality_score
        + APPROVAL_WEIGHT * approval_ratio
    )


class IncrementalWorkflow:
    """Orchestrates sampling, discovery, review and bulk application.

    Every collaborator can be injected; defaults are built from the
    detection config. The cross-stage confidence tracker is owned by the
    workflow and persisted in the state, so one instance should drive one
    session at a time.
    """

    def __init__(
        self,
        loader: DatasetLoader | None = None,
        analyzer: SampleAnalyzer | None = None,
        discovery_engine: RuleDiscoveryEngine | None = None,
        calculator: ConfidenceCalculator | None = None,
        convergence_detector: ConvergenceDetector | None = None,
        hitl_service: HITLWorkflowService | None = None,
        answer_provider: AnswerProvider | None = None,
        applier: RuleApplier | None = None,
        deliverable_writer: DeliverableWriter | None = None,
        detection_config: DetectionConfig | None = None,
    ):
        self.detection_config = detection_config or load_detection_config()
        self.loader: DatasetLoader = loader or CSVLoader()
        self.analyzer = analyzer or SampleAnalyzer(self.detection_config.missing_indicators)
        self.discovery_engine = discovery_engine or RuleDiscoveryEngine(self.detection_config)
        self.calculator = calculator or ConfidenceCalculator()
        self.convergence_detector = convergence_detector or ConvergenceDetector()
        self.hitl_service = hitl_service or HITLWorkflowService()
        self.answer_provider = answer_provider
        self.applier = applier
        self.deliverable_writer = deliverable_writer or DeliverableWriter(
            self.hitl_service.decision_logger
        )
        self.tracker = RuleConfidenceTracker()

        self._data: pd.DataFrame | None = None
        self._data_path: str | None = None
        self._analyses: dict[WorkflowStage, SampleAnalysis] = {}

    # --- entry points ---

    async def start(
        self,
        dataset_path: Path | str,
        config: WorkflowConfig | None = None,
        progress: ProgressCallback | None = None,
    ) -> WorkflowState:
        """Run the whole workflow on a dataset.

        Raises:
            DatasetLoadError: If the dataset cannot be read
            WorkflowError: If HITL is required but no answer provider is set
        """
        config = config or WorkflowConfig()
        path = str(dataset_path)
        state = WorkflowState(
            dataset_path=path,
            total_records=self._count_records(path),
            config=config,
            current_stage=WorkflowStage.INITIAL_EXPLORATION,
        )
        self.tracker.reset()
        self._data = None
        self._analyses.clear()

        logger.info(
            "workflow_started",
            session_id=state.session_id,
            dataset=path,
            total_records=state.total_records,
        )
        return await self._run(state, progress)

    async def resume(
        self,
        checkpoint: Path | str | WorkflowState,
        progress: ProgressCallback | None = None,
    ) -> WorkflowState:
        """Continue a workflow from a checkpoint file or loaded state.

        Raises:
            CheckpointError: If the checkpoint is missing or unusable
        """
        state = (
            checkpoint if isinstance(checkpoint, WorkflowState) else load_checkpoint(checkpoint)
        )
        if state.is_completed:
            logger.info("workflow_already_completed", session_id=state.session_id)
            return state
        if state.current_stage == WorkflowStage.NOT_STARTED:
            state.current_stage = WorkflowStage.INITIAL_EXPLORATION

        self.tracker.reset()
        self.tracker.restore(state.confidence_history)
        self.hitl_service.decision_logger.restore(state.session_id, state.decisions)
        self._data = None
        self._analyses.clear()

        logger.info(
            "workflow_resumed",
            session_id=state.session_id,
            stage=state.current_stage.value,
            rules=len(state.discovered_rules),
        )
        return await self._run(state, progress)

    async def _run(self, state: WorkflowState, progress: ProgressCallback | None) -> WorkflowState:
        handlers = {
            WorkflowStage.INITIAL_EXPLORATION: self._initial_exploration,
            WorkflowStage.PATTERN_EXPANSION: self._pattern_expansion,
            WorkflowStage.HITL_DECISION: self._hitl_decision,
            WorkflowStage.CONFIDENCE_CHECKPOINT: self._confidence_checkpoint,
            WorkflowStage.BULK_PROCESSING: self._bulk_processing,
        }

        start_workflow_metrics(state.session_id, state.dataset_path)
        try:
            with log_context(session_id=state.session_id):
                while state.current_stage in handlers:
                    stage = state.current_stage
                    start_stage_metrics(stage.value)
                    try:
                        with log_context(stage=stage.value):
                            self._report(progress, state, stage, 0.0, f"Starting {stage.value}")
                            message = await handlers[stage](state)
                            state.confidence_history = self.tracker.snapshot()
                            state.current_stage = stage.next_stage()
                            if state.current_stage == WorkflowStage.COMPLETED:
                                state.completed_at = state.completed_stages[stage].completed_at
                                state.deliverables = await asyncio.to_thread(
                                    self.deliverable_writer.write, state
                                )
                            self._checkpoint(state)
                            self._report(progress, state, stage, 1.0, message)
                    finally:
                        end_stage_metrics()
        finally:
            metrics = end_workflow_metrics()

        logger.info(
            "workflow_completed",
            session_id=state.session_id,
            discovered=len(state.discovered_rules),
            approved=len(state.approved_rules),
            confidence=round(state.confidence_score, 4),
            duration_seconds=round(metrics.duration_seconds, 3) if metrics else None,
        )
        if metrics:
            logger.debug("workflow_metrics", metrics=metrics.to_dict())
        return state

    # --- stages ---

    async def _initial_exploration(self, state: WorkflowState) -> str:
        new_rules = await self._discovery_stage(state, WorkflowStage.INITIAL_EXPLORATION)
        return f"Stage 1 complete: {len(new_rules)} rules discovered"

    async def _pattern_expansion(self, state: WorkflowState) -> str:
        new_rules = await self._discovery_stage(state, WorkflowStage.PATTERN_EXPANSION)
        if not new_rules:
            state.has_converged = True
            logger.info("rule_discovery_converged", reason="no new rules")
        return f"Stage 2 complete: {len(new_rules)} new rules discovered"

    async def _discovery_stage(
        self, state: WorkflowState, stage: WorkflowStage
    ) -> list[PreprocessingRule]:
        start = time.time()
        sample, analysis = await self._sample_and_analyze(state, stage)
        discovery = self.discovery_engine.discover(sample.frame, analysis, stage.number)

        known = {r.signature: r for r in state.discovered_rules}
        new_rules = [r for r in discovery.rules if r.signature not in known]
        convergence = self.convergence_detector.detect(
            list(known.values()), discovery.rules, state.config.convergence_threshold
        )

        self.tracker.update(discovery.rules, bool(new_rules), sample.size)
        for rule in discovery.rules:
            existing = known.get(rule.signature)
            if existing is not None:
                existing.confidence = self.tracker.weighted_confidence(
                    rule.signature, rule.confidence
                )
        self.discovery_engine.auto_approve(list(known.values()))

        state.discovered_rules.extend(new_rules)
        state.sync_approved_rules()

        statistics_converged = self._statistics_converged(stage, analysis)
        self._record(
            state,
            stage,
            sample,
            analysis,
            start,
            rules_discovered=new_rules,
            convergence=convergence,
            detector_failures=discovery.failures,
            statistics_converged=statistics_converged,
            notes=self._discovery_notes(
                new_rules, convergence, discovery.failures, statistics_converged
            ),
        )
        return new_rules

    async def _hitl_decision(self, state: WorkflowState) -> str:
        start = time.time()
        stage = WorkflowStage.HITL_DECISION
        sample, analysis = await self._sample_and_analyze(state, stage)
        self._observe_confidence(state, sample, analysis, stage)

        decision_log = self.hitl_service.decision_logger
        already_logged = len(decision_log.decisions(state.session_id))

        if state.config.skip_hitl:
            logger.info("hitl_skipped_by_config")
            self.hitl_service.skip_hitl(state.discovered_rules, state.session_id)
        else:
            if self.answer_provider is None:
                raise WorkflowError("HITL review requires an answer provider (or skip_hitl=True)")
            try:
                await self.hitl_service.run(
                    state.discovered_rules,
                    sample.frame,
                    analysis,
                    self.answer_provider,
                    state.session_id,
                )
            except asyncio.CancelledError:
                state.decisions.extend(decision_log.decisions(state.session_id)[already_logged:])
                state.sync_approved_rules()
                state.confidence_history = self.tracker.snapshot()
                logger.warning(
                    "hitl_cancelled",
                    decided=len(state.decisions),
                    pending=len(self.hitl_service.pending_rules(state.discovered_rules)),
                )
                self._checkpoint(state)
                raise

        decisions = decision_log.decisions(state.session_id)[already_logged:]
        state.decisions.extend(decisions)
        state.sync_approved_rules()

        notes = f"HITL decisions: {len(decisions)}, Approved rules: {len(state.approved_rules)}"
        summary = decision_log.summary(state.session_id)
        asked = summary.followed_recommendations + summary.overridden_recommendations
        if asked:
            notes += (
                f", Followed recommendations: {summary.followed_recommendations}/{asked}"
                f" ({summary.recommendation_follow_rate:.0%})"
            )
        self._record(state, stage, sample, analysis, start, notes=notes)
        return f"Stage 3 complete: {len(state.approved_rules)} rules approved"

    async def _confidence_checkpoint(self, state: WorkflowState) -> str:
        start = time.time()
        stage = WorkflowStage.CONFIDENCE_CHECKPOINT
        sample, analysis = await self._sample_and_analyze(state, stage)
        self._observe_confidence(state, sample, analysis, stage)

        discovered = len(state.discovered_rules)
        approval_ratio = len(state.approved_rules) / discovered if discovered else 0.0
        state.confidence_score = composite_confidence(
            state.has_converged, analysis.quality_score, approval_ratio
        )
        logger.info("confidence_computed", confidence=round(state.confidence_score, 4))

        scores = self._score_rules(state, sample.frame)
        if (
            state.config.enable_auto_approval
            and state.confidence_score >= state.config.min_confidence_threshold
        ):
            self._auto_approve_remaining(state, scores)

        report = self.tracker.report(state.discovered_rules)
        state.notes.append(report.summary)

        self._record(
            state,
            stage,
            sample,
            analysis,
            start,
            rule_scores=scores,
            notes=f"Confidence: {state.confidence_score:.2%}, Converged: {state.has_converged}",
        )
        return f"Stage 4 complete: Confidence {state.confidence_score:.2%}"

    async def _bulk_processing(self, state: WorkflowState) -> str:
        start = time.time()
        stage = WorkflowStage.BULK_PROCESSING
        data = await self._load_data(state)

        applier = self.applier or DataFrameRuleApplier(
            continue_on_failure=state.config.continue_on_rule_failure,
            config=self.detection_config,
        )
        bulk = await asyncio.to_thread(applier.apply, data, list(state.approved_rules))

        if bulk.frame is not None:
            target = Path(state.config.output_dir) / f"{Path(state.dataset_path).stem}-cleaned.csv"
            written = await asyncio.to_thread(
                write_output, bulk.frame, target, state.config.bulk_chunk_size
            )
            state.output_path = str(written)

        summary = (
            f"Applied {bulk.applied_count} of {len(state.approved_rules)} rules to full dataset "
            f"({bulk.failed_count} failed, {bulk.skipped_count} skipped)"
        )
        if bulk.stopped_early:
            summary += "; stopped at first failure"
        notes = "; ".join([summary, *(r.describe() for r in bulk.results)])
        if bulk.failed_count:
            logger.warning(
                "bulk_processing_partial",
                applied=bulk.applied_count,
                failed=[r.rule_id for r in bulk.failed_rules],
            )

        state.completed_stages[stage] = StageResult(
            stage=stage,
            sample_size=len(data),
            sample_ratio=1.0,
            rule_outcomes=bulk.results,
            duration_seconds=time.time() - start,
            notes=notes,
        )
        return f"Stage 5 complete: {summary}"

    # --- helpers ---

    def _count_records(self, path: str) -> int:
        try:
            return self.loader.count_rows(path)
        except Exception as e:
            logger.warning(
                "record_count_failed",
                path=path,
                error=str(e),
                fallback=FALLBACK_RECORD_COUNT,
            )
            return FALLBACK_RECORD_COUNT

    async def _load_data(self, state: WorkflowState) -> pd.DataFrame:
        if self._data is not None and self._data_path == state.dataset_path:
            return self._data
        try:
            data = await asyncio.to_thread(self.loader.load, state.dataset_path)
        except DatasetLoadError:
            logger.error("dataset_load_failed", path=state.dataset_path)
            raise
        except Exception as e:
            logger.error("dataset_load_failed", path=state.dataset_path, error=str(e))
            raise DatasetLoadError(f"Failed to load dataset from: {state.dataset_path}") from e
        self._data = data
        self._data_path = state.dataset_path
        return data

    def _sampling_engine(self, config: WorkflowConfig) -> SamplingEngine:
        return SamplingEngine(
            create_strategy(config.sampling_strategy),
            SamplingConfig(label_column=config.stratify_column),
        )

    async def _sample_and_analyze(
        self, state: WorkflowState, stage: WorkflowStage
    ) -> tuple[SampleResult, SampleAnalysis]:
        data = await self._load_data(state)
        ratio = state.config.ratio_for(stage)
        sample = self._sampling_engine(state.config).sample(data, ratio, state.config.random_seed)
        analysis = self.analyzer.analyze(sample.frame, stage.number, ratio)
        self._analyses[stage] = analysis
        return sample, analysis

    def _statistics_converged(self, stage: WorkflowStage, analysis: SampleAnalysis) -> bool | None:
        """Compare pattern expansion's column statistics with stage 1's.

        None for other stages, or when the stage 1 analysis is not in
        memory (resumed sessions keep only its summary).
        """
        if stage != WorkflowStage.PATTERN_EXPANSION:
            return None
        previous = self._analyses.get(WorkflowStage.INITIAL_EXPLORATION)
        if previous is None:
            return None
        converged = self.analyzer.has_converged(previous, analysis)
        logger.info("sample_statistics_compared", stage=stage.value, converged=converged)
        return converged

    def _previous_scores(self, state: WorkflowState) -> dict[str, ConfidenceScore]:
        for result in sorted(
            state.completed_stages.values(), key=lambda r: r.stage.number, reverse=True
        ):
            if result.rule_scores:
                return result.rule_scores
        return {}

    def _observe_confidence(
        self,
        state: WorkflowState,
        sample: SampleResult,
        analysis: SampleAnalysis,
        stage: WorkflowStage,
    ) -> None:
        """Record each known rule's confidence as measured on this stage's sample.

        Rules not detected in the sample add no observation.
        """
        observed = {
            r.signature: r
            for r in self.discovery_engine.discover_rules(sample.frame, analysis, stage.number)
        }
        current = [observed[r.signature] for r in state.discovered_rules if r.signature in observed]
        self.tracker.update(current, False, sample.size)

    def _score_rules(self, state: WorkflowState, sample: pd.DataFrame) -> dict[str, ConfidenceScore]:
        previous = self._previous_scores(state)
        scores: dict[str, ConfidenceScore] = {}
        for rule in state.discovered_rules:
            prior = previous.get(rule.signature)
            scores[rule.signature] = self.calculator.calculate(
                rule,
                sample,
                previous_coverage=prior.coverage if prior is not None else None,
            )
        return scores

    def _auto_approve_remaining(
        self, state: WorkflowState, scores: dict[str, ConfidenceScore]
    ) -> None:
        note = f"auto-approved (confidence={state.confidence_score:.2%})"
        approved: list[str] = []
        held: list[str] = []
        for rule in state.discovered_rules:
            if rule.is_approved:
                continue
            score = scores.get(rule.signature)
            if score is not None and score.exception_rate > state.config.max_error_rate:
                held.append(rule.id)
                continue
            rule.approve(CONFIDENCE_APPROVER, note)
            approved.append(rule.id)
        state.sync_approved_rules()
        logger.info("confidence_auto_approval", approved=len(approved), held_back=held)

    def _record(
        self,
        state: WorkflowState,
        stage: WorkflowStage,
        sample: SampleResult,
        analysis: SampleAnalysis,
        start: float,
        rules_discovered: Sequence[PreprocessingRule] = (),
        convergence: ConvergenceInfo | None = None,
        rule_scores: dict[str, ConfidenceScore] | None = None,
        detector_failures: Sequence[DetectorFailure] = (),
        statistics_converged: bool | None = None,
        notes: str = "",
    ) -> None:
        scores = rule_scores if rule_scores is not None else self._score_rules(state, sample.frame)
        state.completed_stages[stage] = StageResult(
            stage=stage,
            sample_size=sample.size,
            sample_ratio=sample.ratio,
            analysis=analysis.summarize(),
            rules_discovered=[r.model_copy(deep=True) for r in rules_discovered],
            convergence=convergence,
            rule_scores=scores,
            detector_failures=list(detector_failures),
            statistics_converged=statistics_converged,
            duration_seconds=time.time() - start,
            notes=notes,
        )
        logger.info(
            "stage_completed",
            stage=stage.value,
            sample_size=sample.size,
            rules=len(state.discovered_rules),
            approved=len(state.approved_rules),
        )

    @staticmethod
    def _discovery_notes(
        new_rules: Sequence[PreprocessingRule],
        convergence: ConvergenceInfo,
        failures: Sequence[DetectorFailure],
        statistics_converged: bool | None = None,
    ) -> str:
        parts = [f"New rules: {len(new_rules)}", convergence.summary]
        if statistics_converged is not None:
            parts.append(f"Statistics stable: {'yes' if statistics_converged else 'no'}")
        if failures:
            failed = ", ".join(f"{f.detector_id}@{f.column_name}: {f.error}" for f in failures)
            parts.append(f"Detector failures ({len(failures)}): {failed}")
        return "; ".join(parts)

    def _checkpoint(self, state: WorkflowState) -> None:
        if state.config.enable_checkpoints:
            save_checkpoint(state)

    @staticmethod
    def _report(
        progress: ProgressCallback | None,
        state: WorkflowState,
        stage: WorkflowStage,
        percentage: float,
        message: str,
    ) -> None:
        if progress is None:
            return
        progress(
            ProgressUpdate(
                stage=stage,
                percentage=percentage,
                message=message,
                rules_discovered=len(state.discovered_rules),
                confidence_score=state.confidence_score,
                has_converged=state.has_converged,
            )
        )
