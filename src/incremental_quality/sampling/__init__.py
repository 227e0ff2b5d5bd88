"""Progressive sampling of the dataset."""

from incremental_quality.sampling.engine import SampleResult, SamplingEngine, create_strategy
from incremental_quality.sampling.strategies import (
    AdaptiveSamplingStrategy,
    RandomSamplingStrategy,
    SampleValidation,
    SamplingConfig,
    SamplingStrategy,
    StratifiedSamplingStrategy,
    sample_size,
)

__all__ = [
    "AdaptiveSamplingStrategy",
    "RandomSamplingStrategy",
    "SampleResult",
    "SampleValidation",
    "SamplingConfig",
    "SamplingEngine",
    "SamplingStrategy",
    "StratifiedSamplingStrategy",
    "create_strategy",
    "sample_size",
]
