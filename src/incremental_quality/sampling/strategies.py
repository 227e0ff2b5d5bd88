"""Sampling strategies.

- RandomSamplingStrategy: seeded uniform sample without replacement; for a
  fixed seed, samples of growing ratio are nested
- StratifiedSamplingStrategy: proportional sample per label value
- AdaptiveSamplingStrategy: stratified when the label column suits it,
  random otherwise
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

NULL_STRATUM = "NULL"


class SamplingConfig(BaseModel):
    """Options shared by sampling strategies."""

    label_column: str | None = None
    distribution_tolerance: float = Field(default=0.05, ge=0.0, le=1.0)


class SampleValidation(BaseModel):
    """Whether a sample represents its source."""

    is_valid: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


def sample_size(n: int, ratio: float) -> int:
    """max(1, floor(n * ratio)), capped at n."""
    if n == 0:
        return 0
    return min(n, max(1, int(n * ratio)))


@runtime_checkable
class SamplingStrategy(Protocol):
    """A way of drawing a sample from a frame."""

    name: str

    def is_applicable(self, data: pd.DataFrame, config: SamplingConfig) -> bool: ...

    def sample(
        self, data: pd.DataFrame, ratio: float, config: SamplingConfig, seed: int = 42
    ) -> pd.DataFrame: ...

    def validate(
        self, source: pd.DataFrame, sample: pd.DataFrame, config: SamplingConfig
    ) -> SampleValidation: ...


class RandomSamplingStrategy:
    """Uniform random sample without replacement.

    Rows are the first `size` positions of a seeded permutation, kept in
    source order. The permutation depends only on the seed and row count, so
    a larger ratio always contains the smaller sample.
    """

    name = "random"

    def is_applicable(self, data: pd.DataFrame, config: SamplingConfig) -> bool:
        return True

    def sample(
        self, data: pd.DataFrame, ratio: float, config: SamplingConfig, seed: int = 42
    ) -> pd.DataFrame:
        n = len(data)
        if n == 0 or ratio >= 1.0:
            return data.copy()

        size = sample_size(n, ratio)
        positions = np.sort(np.random.default_rng(seed).permutation(n)[:size])
        return data.iloc[positions].copy()

    def validate(
        self, source: pd.DataFrame, sample: pd.DataFrame, config: SamplingConfig
    ) -> SampleValidation:
        if len(source) > 0 and len(sample) == 0:
            return SampleValidation(is_valid=False, message="Sample is empty")
        if list(sample.columns) != list(source.columns):
            return SampleValidation(is_valid=False, message="Sample columns differ from source")
        return SampleValidation(
            is_valid=True,
            message=f"Random sample of {len(sample)} of {len(source)} rows",
            details={"sample_rows": len(sample), "source_rows": len(source)},
        )


def _strata(labels: pd.Series) -> dict[str, list[int]]:
    groups: dict[str, list[int]] = {}
    for position, value in enumerate(labels.tolist()):
        key = NULL_STRATUM if value is None or value != value else str(value)
        groups.setdefault(key, []).append(position)
    return groups


def _distribution(labels: pd.Series) -> dict[str, float]:
    total = len(labels)
    if total == 0:
        return {}
    return {key: len(rows) / total for key, rows in _strata(labels).items()}


class StratifiedSamplingStrategy:
    """Proportional sample per value of a label column.

    Every stratum contributes at least one row.
    """

    name = "stratified"

    def is_applicable(self, data: pd.DataFrame, config: SamplingConfig) -> bool:
        return bool(config.label_column) and config.label_column in data.columns

    def sample(
        self, data: pd.DataFrame, ratio: float, config: SamplingConfig, seed: int = 42
    ) -> pd.DataFrame:
        if not self.is_applicable(data, config):
            raise ValueError(
                f"Label column '{config.label_column}' is required for stratified sampling"
            )
        n = len(data)
        if n == 0 or ratio >= 1.0:
            return data.copy()

        total = sample_size(n, ratio)
        rng = np.random.default_rng(seed)
        chosen: list[int] = []
        for positions in _strata(data[config.label_column]).values():
            size = min(len(positions), max(1, int(total * len(positions) / n)))
            picked = rng.permutation(len(positions))[:size]
            chosen.extend(positions[i] for i in picked)

        return data.iloc[sorted(chosen)].copy()

    def validate(
        self, source: pd.DataFrame, sample: pd.DataFrame, config: SamplingConfig
    ) -> SampleValidation:
        label = config.label_column
        if not label or label not in source.columns or label not in sample.columns:
            return SampleValidation(
                is_valid=False, message=f"Label column '{label}' not found"
            )

        source_dist = _distribution(source[label])
        sample_dist = _distribution(sample[label])
        differences = {
            key: abs(proportion - sample_dist.get(key, 0.0))
            for key, proportion in source_dist.items()
        }
        max_difference = max(differences.values(), default=0.0)
        tolerance = config.distribution_tolerance
        details = {
            "source_distribution": source_dist,
            "sample_distribution": sample_dist,
            "max_difference": max_difference,
            "tolerance": tolerance,
        }

        if max_difference <= tolerance:
            return SampleValidation(
                is_valid=True,
                message=f"Stratified sampling preserved distribution (max diff: {max_difference:.2%})",
                details=details,
            )
        return SampleValidation(
            is_valid=False,
            message=(
                f"Distribution not preserved (max diff: {max_difference:.2%} "
                f"> tolerance {tolerance:.2%})"
            ),
            details=details,
        )


# Label columns outside these bounds are sampled at random
MIN_STRATA = 2
MAX_STRATA = 100
MAX_CARDINALITY_RATIO = 0.5
MIN_ROWS_PER_STRATUM = 5


class AdaptiveSamplingStrategy:
    """Stratified sampling when the label column supports it, random otherwise.

    Stratified is chosen when the label has between 2 and 100 distinct
    values, fewer distinct values than half the rows, and at least 5 rows
    per value on average.
    """

    name = "adaptive"

    def __init__(self) -> None:
        self._stratified = StratifiedSamplingStrategy()
        self._random = RandomSamplingStrategy()

    def is_applicable(self, data: pd.DataFrame, config: SamplingConfig) -> bool:
        return True

    def select(
        self, data: pd.DataFrame, config: SamplingConfig
    ) -> tuple[RandomSamplingStrategy | StratifiedSamplingStrategy, str]:
        """Strategy suited to the data, with the reason it was chosen."""
        if not self._stratified.is_applicable(data, config):
            return self._random, "No label column - random sampling used"

        n = len(data)
        strata = len(_strata(data[config.label_column]))
        ratio = strata / n if n else 1.0

        if strata < MIN_STRATA:
            return self._random, "Only one class - random sampling used"
        if strata > MAX_STRATA:
            return self._random, f"Too many classes ({strata}) - random sampling used"
        if ratio >= MAX_CARDINALITY_RATIO:
            return self._random, f"High cardinality ({ratio:.0%}) - random sampling used"
        if n // strata < MIN_ROWS_PER_STRATUM:
            return (
                self._random,
                f"Insufficient samples per class ({n // strata}) - random sampling used",
            )
        return (
            self._stratified,
            f"Stratified sampling used ({strata} classes, {ratio:.1%} cardinality)",
        )

    def sample(
        self, data: pd.DataFrame, ratio: float, config: SamplingConfig, seed: int = 42
    ) -> pd.DataFrame:
        strategy, _ = self.select(data, config)
        return strategy.sample(data, ratio, config, seed)

    def validate(
        self, source: pd.DataFrame, sample: pd.DataFrame, config: SamplingConfig
    ) -> SampleValidation:
        strategy, reason = self.select(source, config)
        result = strategy.validate(source, sample, config)
        return SampleValidation(
            is_valid=result.is_valid,
            message=f"Adaptive ({strategy.name}): {result.message}",
            details={
                **result.details,
                "selected_strategy": strategy.name,
                "adaptive_reason": reason,
            },
        )
