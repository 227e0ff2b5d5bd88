"""Exceptions for unrecoverable workflow conditions.

Expected, per-item failures (one detector, one HITL question, one rule
application) are carried as values; these are raised when the workflow
itself cannot continue.
"""


class IncrementalQualityError(Exception):
    """Base error for the package."""

    pass


class ConfigLoadError(IncrementalQualityError):
    """Error loading detection configuration."""

    pass


class DatasetLoadError(IncrementalQualityError):
    """The dataset could not be read; the workflow cannot proceed."""

    pass


class CheckpointError(IncrementalQualityError):
    """A checkpoint is missing or cannot be deserialized."""

    pass


class WorkflowError(IncrementalQualityError):
    """The workflow was asked to do something it cannot do."""

    pass
