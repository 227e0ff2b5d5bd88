"""Base classes for pattern detection.

This module provides:
- PatternDetector: Abstract base class for all pattern detectors
- DetectorRegistry: Registry for detector lookup and isolated execution

Each detector inspects one column of raw values and produces
DetectedPattern instances with occurrences, severity, confidence and a
suggested fix.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from incremental_quality.core.config import DetectionConfig
from incremental_quality.core.logging import get_logger
from incremental_quality.core.models.base import Result, Severity, clamp_unit
from incremental_quality.discovery.models import DetectedPattern, PatternType

logger = get_logger(__name__)


class PatternDetector(ABC):
    """Abstract base class for pattern detectors.

    Subclasses set the identity attributes and implement detect(). The
    shared DetectionConfig carries thresholds every detector honours, most
    importantly min_affected_percentage: no pattern is reported below it.
    """

    # Detector identity (override in subclasses)
    detector_id: str = "base"
    pattern_type: PatternType = PatternType.BUSINESS_RULE

    # Human-readable description
    description: str = ""

    def __init__(self, config: DetectionConfig | None = None):
        """Initialize detector with optional configuration.

        Args:
            config: Detection policy; defaults apply when omitted
        """
        self.config = config or DetectionConfig()

    @abstractmethod
    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        """Run detection over one column.

        Args:
            column: Raw column values (strings, None for nulls)
            column_name: Column name used in the reported patterns

        Returns:
            Zero or more detected patterns
        """
        pass

    def is_applicable(self, column: pd.Series) -> bool:
        """Check if this detector should run on the column."""
        return True

    def meets_threshold(self, occurrences: int, total: int) -> bool:
        """Whether the affected share reaches min_affected_percentage."""
        if total <= 0 or occurrences <= 0:
            return False
        return occurrences / total >= self.config.min_affected_percentage

    def create_pattern(
        self,
        column_name: str,
        description: str,
        severity: Severity,
        occurrences: int,
        total: int,
        confidence: float,
        examples: list[str] | None = None,
        suggested_fix: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> DetectedPattern:
        """Helper to create a DetectedPattern with detector metadata."""
        return DetectedPattern(
            pattern_type=self.pattern_type,
            column_name=column_name,
            description=description,
            confidence=clamp_unit(confidence),
            severity=severity,
            occurrences=occurrences,
            total_rows=total,
            affected_percentage=clamp_unit(occurrences / total if total else 0.0),
            suggested_fix=suggested_fix,
            examples=(examples or [])[: self.config.max_examples],
            details={"detector_id": self.detector_id, **(details or {})},
        )


@dataclass
class DetectorRegistry:
    """Registry for pattern detectors.

    Insertion order is execution order.
    """

    detectors: dict[str, PatternDetector] = field(default_factory=dict)

    def register(self, detector: PatternDetector) -> None:
        """Register a detector (replaces one with the same ID)."""
        self.detectors[detector.detector_id] = detector

    def unregister(self, detector_id: str) -> None:
        self.detectors.pop(detector_id, None)

    def get_detector(self, detector_id: str) -> PatternDetector | None:
        return self.detectors.get(detector_id)

    def get_all_detectors(self) -> list[PatternDetector]:
        return list(self.detectors.values())

    def get_detector_ids(self) -> list[str]:
        return list(self.detectors.keys())

    def get_detectors_for_pattern(self, pattern_type: PatternType) -> list[PatternDetector]:
        return [d for d in self.detectors.values() if d.pattern_type == pattern_type]

    def run(
        self,
        detector: PatternDetector,
        column: pd.Series,
        column_name: str,
    ) -> Result[list[DetectedPattern]]:
        """Run one detector on one column, capturing any failure.

        A detector that is not applicable yields an empty success.
        """
        try:
            if not detector.is_applicable(column):
                return Result.ok([])
            return Result.ok(detector.detect(column, column_name))
        except Exception as e:
            logger.warning(
                "detector_failed",
                detector=detector.detector_id,
                column=column_name,
                error=str(e),
            )
            return Result.fail(f"{detector.detector_id} failed on {column_name}: {e}")

    def run_all(
        self, column: pd.Series, column_name: str
    ) -> list[tuple[PatternDetector, Result[list[DetectedPattern]]]]:
        """Run every registered detector on a column, in registration order."""
        return [(d, self.run(d, column, column_name)) for d in self.detectors.values()]
