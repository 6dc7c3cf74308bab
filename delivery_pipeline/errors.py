"""Error types shared across the delivery pipeline package."""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "NotificationError",
    "PipelineError",
    "StageExecutionError",
]


class PipelineError(RuntimeError):
    """Base class for failures raised by the delivery pipeline."""


class ConfigurationError(PipelineError):
    """Raised when a credential, environment value or setting is missing."""


class NotificationError(PipelineError):
    """Raised when a notification channel rejects an event."""


class StageExecutionError(PipelineError):
    """Raised when an external tool reports failure for a stage."""

    def __init__(self, stage: str, detail: str) -> None:
        super().__init__(f"Stage '{stage}' failed: {detail}")
        self.stage = stage
        self.detail = detail
