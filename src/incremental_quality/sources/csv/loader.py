"""CSV file loader - untyped source with VARCHAR-first approach."""

from __future__ import annotations

import time
from pathlib import Path

import duckdb
import pandas as pd

from incremental_quality.core.exceptions import DatasetLoadError
from incremental_quality.core.logging import get_logger, record_operation_timing

logger = get_logger(__name__)


def _sql_literal(value: Path | str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def _raw_values(frame: pd.DataFrame) -> pd.DataFrame:
    """Object columns with None for nulls."""
    frame = frame.astype(object)
    return frame.where(frame.notna(), None)


class CSVLoader:
    """Loader for CSV files.

    CSV files are untyped sources - all data is text. DuckDB reads every
    column as VARCHAR so raw values reach the detectors unchanged.
    """

    def __init__(self, delimiter: str | None = None):
        self.delimiter = delimiter

    def _read_csv(self, path: Path) -> str:
        options = ["header = true", "all_varchar = true"]
        if self.delimiter:
            options.append(f"delim = {_sql_literal(self.delimiter)}")
        return f"read_csv({_sql_literal(path)}, {', '.join(options)})"

    def _check(self, path: Path | str) -> Path:
        file_path = Path(path)
        if not file_path.exists():
            raise DatasetLoadError(f"Failed to load dataset from: {file_path} (file not found)")
        return file_path

    def count_rows(self, path: Path | str) -> int:
        """Count data rows without materializing the file.

        Raises:
            DatasetLoadError: If the file is missing or unreadable
        """
        file_path = self._check(path)
        try:
            with duckdb.connect(":memory:") as conn:
                row = conn.execute(f"SELECT count(*) FROM {self._read_csv(file_path)}").fetchone()
        except duckdb.Error as e:
            raise DatasetLoadError(f"Failed to load dataset from: {file_path}") from e
        return int(row[0]) if row else 0

    def load(self, path: Path | str) -> pd.DataFrame:
        """Load the whole file as raw string columns.

        Raises:
            DatasetLoadError: If the file is missing or unreadable
        """
        file_path = self._check(path)
        start_time = time.time()
        try:
            with duckdb.connect(":memory:") as conn:
                frame = conn.execute(f"SELECT * FROM {self._read_csv(file_path)}").df()
        except duckdb.Error as e:
            raise DatasetLoadError(f"Failed to load dataset from: {file_path}") from e

        frame = _raw_values(frame)
        duration = time.time() - start_time
        record_operation_timing("load_dataset", duration)
        logger.info(
            "dataset_loaded",
            path=str(file_path),
            rows=len(frame),
            columns=len(frame.columns),
            duration_seconds=round(duration, 3),
        )
        return frame
