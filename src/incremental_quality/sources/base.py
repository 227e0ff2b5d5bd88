"""Dataset loader interface."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

import pandas as pd


@runtime_checkable
class DatasetLoader(Protocol):
    """A readable tabular source convertible to named columns of values.

    Loaded frames hold raw values: every column is object dtype with str
    cells and None for nulls.
    """

    def count_rows(self, path: Path | str) -> int: ...

    def load(self, path: Path | str) -> pd.DataFrame: ...
