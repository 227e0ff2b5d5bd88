"""Sampling engine: strategy selection, fallback and validation."""

from __future__ import annotations

import time

import pandas as pd
from pydantic import BaseModel, ConfigDict

from incremental_quality.core.logging import get_logger, record_operation_timing, record_rows_sampled
from incremental_quality.sampling.strategies import (
    AdaptiveSamplingStrategy,
    RandomSamplingStrategy,
    SampleValidation,
    SamplingConfig,
    SamplingStrategy,
    StratifiedSamplingStrategy,
)

logger = get_logger(__name__)

STRATEGIES: dict[str, type[SamplingStrategy]] = {
    "adaptive": AdaptiveSamplingStrategy,
    "random": RandomSamplingStrategy,
    "stratified": StratifiedSamplingStrategy,
}


class SampleResult(BaseModel):
    """A drawn sample and how it was drawn."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    frame: pd.DataFrame
    ratio: float
    size: int
    strategy: str
    # Strategy that drew the rows; differs from `strategy` for adaptive sampling
    selected_strategy: str
    validation: SampleValidation


def create_strategy(name: str) -> SamplingStrategy:
    try:
        return STRATEGIES[name]()
    except KeyError as e:
        raise ValueError(f"Unknown sampling strategy: {name}") from e


class SamplingEngine:
    """Draws stage samples with a configured strategy (adaptive by default).

    Falls back to random sampling when the strategy does not apply to the
    data (e.g. stratified sampling without a label column).
    """

    def __init__(
        self,
        strategy: SamplingStrategy | None = None,
        config: SamplingConfig | None = None,
    ):
        self.strategy = strategy or AdaptiveSamplingStrategy()
        self.config = config or SamplingConfig()
        self._fallback = RandomSamplingStrategy()

    def sample(self, data: pd.DataFrame, ratio: float, seed: int = 42) -> SampleResult:
        """Draw a sample of `ratio` of the rows.

        Raises:
            ValueError: If ratio is not in (0, 1]
        """
        if not 0 < ratio <= 1:
            raise ValueError(f"Sample ratio must be in (0, 1], got {ratio}")

        start = time.time()
        strategy: SamplingStrategy = self.strategy
        if not strategy.is_applicable(data, self.config):
            logger.warning(
                "sampling_strategy_not_applicable",
                strategy=strategy.name,
                fallback=self._fallback.name,
            )
            strategy = self._fallback

        frame = strategy.sample(data, ratio, self.config, seed)
        validation = strategy.validate(data, frame, self.config)
        if not validation.is_valid:
            logger.warning("sample_validation_failed", strategy=strategy.name, reason=validation.message)

        record_rows_sampled(len(frame))
        record_operation_timing("sampling", time.time() - start)
        selected = validation.details.get("selected_strategy", strategy.name)
        logger.info(
            "sample_drawn",
            strategy=strategy.name,
            selected_strategy=selected,
            ratio=ratio,
            rows=len(frame),
            source_rows=len(data),
        )
        return SampleResult(
            frame=frame,
            ratio=ratio,
            size=len(frame),
            strategy=strategy.name,
            selected_strategy=selected,
            validation=validation,
        )
