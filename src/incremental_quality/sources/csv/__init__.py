"""CSV source loader - untyped source with VARCHAR-first approach."""

from incremental_quality.sources.csv.loader import CSVLoader

__all__ = ["CSVLoader"]
