"""Configuration management.

Two layers:
- Settings: process-wide settings from environment variables (pydantic-settings)
- DetectionConfig: detector policy loaded from config/detection.yaml
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PrivateAttr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from incremental_quality.core.exceptions import ConfigLoadError
from incremental_quality.core.logging import get_logger

logger = get_logger(__name__)

DETECTION_CONFIG_FILE = "detection.yaml"


def _find_config_dir() -> Path:
    """Find the config directory by walking up from the package location.

    Falls back to relative Path("config") if not found.
    """
    # config.py -> core/ -> incremental_quality/ -> src/ -> root/
    package_dir = Path(__file__).resolve().parent.parent.parent.parent
    candidate = package_dir / "config"
    if candidate.is_dir():
        return candidate

    # Fallback: relative path (works when CWD is project root)
    return Path("config")


class Settings(BaseSettings):
    """Application settings.

    All settings can be overridden via environment variables.
    Prefix: INCQ_
    """

    model_config = SettingsConfigDict(
        env_prefix="INCQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_path: Path = Field(
        default_factory=_find_config_dir,
        description="Path to configuration files (detection policy)",
    )
    checkpoint_dir: Path = Field(
        default=Path("./checkpoints"),
        description="Directory for workflow checkpoints",
    )
    output_dir: Path = Field(
        default=Path("./cleaned"),
        description="Directory for the cleaned dataset written by bulk processing",
    )
    random_seed: int = Field(
        default=42,
        description="Seed for sampling; fixed so runs are reproducible",
    )
    max_detector_workers: int = Field(
        default=4,
        description="Thread pool size for per-column pattern detection",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")  # 'json' or 'console'


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# === Detection policy ===

DEFAULT_MISSING_INDICATORS = [
    "",
    "null",
    "nil",
    "na",
    "n/a",
    "nan",
    "none",
    "-",
    "--",
    ".",
    "unknown",
    "undefined",
    "missing",
]


class DateFormat(BaseModel):
    """A date shape the format-variation detector recognises.

    `strptime` is the Python format used when rewriting values to ISO-8601.
    """

    name: str
    pattern: str
    strptime: str

    _regex: re.Pattern[str] = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        """Compile regex pattern."""
        self._regex = re.compile(self.pattern)

    def matches(self, value: str) -> bool:
        """Check if a trimmed value has this date shape."""
        return self._regex.match(value) is not None


DEFAULT_DATE_FORMATS = [
    DateFormat(name="yyyy-MM-dd", pattern=r"^\d{4}-\d{2}-\d{2}$", strptime="%Y-%m-%d"),
    DateFormat(name="dd/MM/yyyy", pattern=r"^\d{2}/\d{2}/\d{4}$", strptime="%d/%m/%Y"),
    # Same shape as dd/MM/yyyy; listed second so day-first wins ties.
    DateFormat(name="MM/dd/yyyy", pattern=r"^\d{2}/\d{2}/\d{4}$", strptime="%m/%d/%Y"),
    DateFormat(name="dd-MM-yyyy", pattern=r"^\d{2}-\d{2}-\d{4}$", strptime="%d-%m-%Y"),
    DateFormat(name="yyyy/MM/dd", pattern=r"^\d{4}/\d{2}/\d{2}$", strptime="%Y/%m/%d"),
    DateFormat(name="yyyyMMdd", pattern=r"^\d{8}$", strptime="%Y%m%d"),
]


class DetectionConfig(BaseModel):
    """Policy shared by the pattern detectors and the discovery engine."""

    min_affected_percentage: float = Field(default=0.01, ge=0.0, le=1.0)
    outlier_std_threshold: float = Field(default=3.0, gt=0.0)
    outlier_min_values: int = Field(default=10, ge=2)
    missing_indicators: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MISSING_INDICATORS)
    )
    date_formats: list[DateFormat] = Field(
        default_factory=lambda: [f.model_copy() for f in DEFAULT_DATE_FORMATS]
    )
    category_max_distinct: int = Field(default=100, ge=1)
    category_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    auto_approve_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    max_examples: int = Field(default=5, ge=1)
    ignore_columns: list[str] = Field(default_factory=list)

    @property
    def missing_indicator_set(self) -> frozenset[str]:
        """Missing indicators, lower-cased and trimmed."""
        return frozenset(v.strip().lower() for v in self.missing_indicators)


def load_detection_config(config_path: Path | str | None = None) -> DetectionConfig:
    """Load detector policy from YAML.

    Args:
        config_path: YAML file; defaults to <config_path>/detection.yaml

    Returns:
        DetectionConfig (defaults when the file does not exist)

    Raises:
        ConfigLoadError: If the YAML is invalid or fails validation
    """
    path = (
        Path(config_path)
        if config_path is not None
        else get_settings().config_path / DETECTION_CONFIG_FILE
    )

    if not path.exists():
        logger.debug("detection_config_not_found", path=str(path))
        return DetectionConfig()

    try:
        with open(path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigLoadError(f"Expected a mapping at the top of {path}")

    try:
        config = DetectionConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigLoadError(f"Validation error in {path}: {e}") from e

    logger.info("detection_config_loaded", path=str(path))
    return config
