"""Incremental Quality.

Staged data-quality rule discovery with convergence tracking and
human-in-the-loop review.
"""

__version__ = "0.1.0"

from incremental_quality.core.models.base import Result

__all__ = [
    "Result",
    "__version__",
]
