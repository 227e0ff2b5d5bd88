"""Dataset sources."""

from incremental_quality.sources.base import DatasetLoader
from incremental_quality.sources.csv import CSVLoader

__all__ = ["CSVLoader", "DatasetLoader"]
