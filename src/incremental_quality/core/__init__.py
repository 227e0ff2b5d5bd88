"""Core module - configuration, logging, errors and shared models."""

from incremental_quality.core.config import (
    DetectionConfig,
    Settings,
    get_settings,
    load_detection_config,
)
from incremental_quality.core.exceptions import (
    CheckpointError,
    ConfigLoadError,
    DatasetLoadError,
    IncrementalQualityError,
    WorkflowError,
)
from incremental_quality.core.models.base import Result, Severity, clamp_unit

__all__ = [
    # Config
    "DetectionConfig",
    "Settings",
    "get_settings",
    "load_detection_config",
    # Errors
    "CheckpointError",
    "ConfigLoadError",
    "DatasetLoadError",
    "IncrementalQualityError",
    "WorkflowError",
    # Models
    "Result",
    "Severity",
    "clamp_unit",
]
