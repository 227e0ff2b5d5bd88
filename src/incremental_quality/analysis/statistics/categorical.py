"""Frequency statistics for text columns."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

import numpy as np

from incremental_quality.analysis.statistics.models import CategoricalStats, ValueCount

TOP_VALUES_LIMIT = 20


def shannon_entropy(counts: Iterable[int]) -> float:
    """Shannon entropy in bits of a frequency distribution."""
    arr = np.asarray([c for c in counts if c > 0], dtype=float)
    if arr.size == 0:
        return 0.0
    probs = arr / arr.sum()
    return float(-(probs * np.log2(probs)).sum())


def analyze_categorical(values: Iterable[str]) -> CategoricalStats:
    """Compute frequency statistics over non-missing text values.

    Values are compared as given (no trimming or case folding).
    """
    counter = Counter(str(v) for v in values)
    total = sum(counter.values())
    if total == 0:
        return CategoricalStats()

    # most_common keeps first-seen order among ties
    top_values = [
        ValueCount(value=value, count=count, percentage=count / total * 100.0)
        for value, count in counter.most_common(TOP_VALUES_LIMIT)
    ]

    return CategoricalStats(
        count=total,
        unique_count=len(counter),
        top_values=top_values,
        entropy=shannon_entropy(counter.values()),
        cardinality_ratio=len(counter) / total,
    )
