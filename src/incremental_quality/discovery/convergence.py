"""Convergence detection between consecutive rule sets.

Rules are matched by signature. A matched rule counts as modified when its
confidence moved by more than 0.05 or its affected rows by more than 10%.
"""

from __future__ import annotations

from collections.abc import Sequence

from incremental_quality.core.logging import get_logger
from incremental_quality.discovery.models import ConvergenceInfo, PreprocessingRule

logger = get_logger(__name__)

CONFIDENCE_CHANGE_LIMIT = 0.05
ROWS_CHANGE_LIMIT = 0.10


def _is_modified(previous: PreprocessingRule, current: PreprocessingRule) -> bool:
    confidence_change = abs(current.confidence - previous.confidence)
    if previous.affected_rows > 0:
        rows_change = abs(current.affected_rows - previous.affected_rows) / previous.affected_rows
    else:
        rows_change = 0.0
    return confidence_change > CONFIDENCE_CHANGE_LIMIT or rows_change > ROWS_CHANGE_LIMIT


class ConvergenceDetector:
    """Decides whether rule discovery has stopped changing."""

    def __init__(self, threshold: float = 0.02):
        self.threshold = threshold

    def detect(
        self,
        previous_rules: Sequence[PreprocessingRule],
        current_rules: Sequence[PreprocessingRule],
        threshold: float | None = None,
    ) -> ConvergenceInfo:
        """Compare two rule sets.

        change_rate = (new + modified + removed) / max(previous, 1); the sets
        have converged when change_rate <= threshold. Never converged without
        previous rules.
        """
        limit = self.threshold if threshold is None else threshold
        previous_map = {r.signature: r for r in previous_rules}
        current_map = {r.signature: r for r in current_rules}

        new = [sig for sig in current_map if sig not in previous_map]
        removed = [sig for sig in previous_map if sig not in current_map]
        modified = [
            sig
            for sig, rule in current_map.items()
            if sig in previous_map and _is_modified(previous_map[sig], rule)
        ]
        stable = len(current_map) - len(new) - len(modified)

        change_rate = (len(new) + len(modified) + len(removed)) / max(len(previous_map), 1)
        converged = bool(previous_map) and change_rate <= limit

        if converged:
            status = f"Converged (change rate: {change_rate:.1%} <= {limit:.1%})"
        else:
            status = f"Not converged (change rate: {change_rate:.1%} > {limit:.1%})"
            if not previous_map:
                status = "Not converged (no previous rules)"
        summary = (
            f"{len(current_map)} rules total: {stable} stable, {len(new)} new, "
            f"{len(modified)} modified, {len(removed)} removed"
        )

        logger.debug(
            "convergence_checked",
            converged=converged,
            change_rate=round(change_rate, 4),
            new=len(new),
            modified=len(modified),
            removed=len(removed),
        )

        return ConvergenceInfo(
            has_converged=converged,
            change_rate=change_rate,
            threshold=limit,
            total_rules=len(current_map),
            previous_rules=len(previous_map),
            new_rules=len(new),
            modified_rules=len(modified),
            removed_rules=len(removed),
            stable_rules=stable,
            status=status,
            summary=summary,
            new_signatures=new,
            modified_signatures=modified,
            removed_signatures=removed,
        )

    def has_converged(
        self,
        previous_rules: Sequence[PreprocessingRule],
        current_rules: Sequence[PreprocessingRule],
        threshold: float | None = None,
    ) -> bool:
        return self.detect(previous_rules, current_rules, threshold).has_converged
