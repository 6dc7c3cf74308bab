"""Fail-fast delivery pipeline runner.

The package executes an ordered list of named stages (build, scans, image
build, publish, GitOps deploy) against a working checkout. Each stage
delegates to an external tool. The run stops at the first failure and sends
exactly one terminal notification.
"""

from __future__ import annotations

from .config import PipelineConfig, RegistryCredentials, StageSpec, load_config
from .errors import (
    ConfigurationError,
    NotificationError,
    PipelineError,
    StageExecutionError,
)
from .models import (
    NotificationEvent,
    RunResult,
    RunStatus,
    Severity,
    Stage,
    StageContext,
    StageStatus,
    ToolResult,
    TriggerEvent,
)
from .pipeline import build_stages
from .runner import StageRunner

__all__ = [
    "ConfigurationError",
    "NotificationError",
    "NotificationEvent",
    "PipelineConfig",
    "PipelineError",
    "RegistryCredentials",
    "RunResult",
    "RunStatus",
    "Severity",
    "Stage",
    "StageContext",
    "StageExecutionError",
    "StageRunner",
    "StageSpec",
    "StageStatus",
    "ToolResult",
    "TriggerEvent",
    "build_stages",
    "load_config",
]
