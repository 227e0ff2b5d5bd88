"""Shared pytest fixtures for all tests."""

from pathlib import Path

import pandas as pd
import pytest

from incremental_quality.core.config import DetectionConfig
from incremental_quality.discovery.models import PatternType, PreprocessingRule, RuleType
from incremental_quality.pipeline import WorkflowConfig


def raw_frame(columns: dict[str, list]) -> pd.DataFrame:
    """Frame of raw string values (None for nulls), as the CSV loader returns."""
    return pd.DataFrame({name: pd.Series(values, dtype=object) for name, values in columns.items()})


def make_rule(
    rule_type: RuleType,
    column: str,
    pattern_type: PatternType,
    **overrides,
) -> PreprocessingRule:
    """Helper to create a rule with a signature-derived id."""
    fields = {
        "id": f"{rule_type.value}_{column}_{pattern_type.value}",
        "rule_type": rule_type,
        "column_names": [column],
        "pattern_type": pattern_type,
        "description": f"{rule_type.value} on {column}",
    }
    fields.update(overrides)
    return PreprocessingRule(**fields)


@pytest.fixture
def detection_config() -> DetectionConfig:
    """Built-in detection policy, independent of config/detection.yaml."""
    return DetectionConfig()


@pytest.fixture
def customers_frame() -> pd.DataFrame:
    """40 customer rows with three known issues.

    - age: every fifth value missing (20%)
    - signup: ISO and day-first dates mixed
    - city: "seoul" as a lower-case variant of "Seoul"
    """
    ids = [str(i) for i in range(1, 41)]
    ages = [None if i % 5 == 0 else str(19 + i) for i in range(1, 41)]
    signups = [
        f"2024-01-{(i % 28) + 1:02d}" if i % 2 else f"{(i % 28) + 1:02d}/01/2024"
        for i in range(1, 41)
    ]
    cities = ["Seoul"] * 20 + ["Busan"] * 12 + ["seoul"] * 8
    return raw_frame({"id": ids, "age": ages, "signup": signups, "city": cities})


@pytest.fixture
def customers_csv(tmp_path: Path, customers_frame: pd.DataFrame) -> Path:
    """customers_frame written as CSV (missing values as empty fields)."""
    path = tmp_path / "customers.csv"
    customers_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def workflow_config(tmp_path: Path) -> WorkflowConfig:
    """Full-sample ratios so small fixtures are seen whole at every stage."""
    return WorkflowConfig(
        stage1_ratio=1.0,
        stage2_ratio=1.0,
        stage3_ratio=1.0,
        stage4_ratio=1.0,
        checkpoint_dir=tmp_path / "checkpoints",
        output_dir=tmp_path / "cleaned",
    )
