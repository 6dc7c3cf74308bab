"""Report the outcome of a run to the hosting CI system."""

from __future__ import annotations

import json
import sys
import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .models import RunResult

__all__ = ["emit", "emit_summary", "report_data", "write_run_report"]


def _log_value(value: object) -> str:
    """Format a value for key=value output."""
    if value is None:
        return ""
    if isinstance(value, tuple):
        value = list(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def emit(key: str, value: object, *, stream: typ.TextIO | None = None) -> None:
    """Print a ``key=value`` pair to stdout or ``stream``."""
    target = stream if stream is not None else sys.stdout
    print(f"{key}={_log_value(value)}", file=target)


def report_data(result: RunResult) -> dict[str, typ.Any]:
    """Return a JSON-serialisable summary of ``result``."""
    return {
        "run_id": result.run_id,
        "status": str(result.status),
        "exit_code": result.exit_code,
        "failed_stage": result.failed_stage,
        "error": result.error,
        "stages": [
            {
                "name": outcome.name,
                "status": str(outcome.status),
                "detail": outcome.detail,
                "archived": [path.as_posix() for path in outcome.archived],
                "duration": round(outcome.duration, 3),
            }
            for outcome in result.outcomes
        ],
        "notification": {
            "channel": result.notification.channel,
            "severity": str(result.notification.severity),
            "message": result.notification.message,
            "error": result.notification_error,
        },
    }


def write_run_report(path: Path, result: RunResult) -> None:
    """Write the JSON summary of ``result`` to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(report_data(result), indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def emit_summary(result: RunResult, *, stream: typ.TextIO | None = None) -> None:
    """Print the run outcome as ``pipeline_*`` key=value lines."""
    emit("pipeline_status", result.status, stream=stream)
    emit("pipeline_run_id", result.run_id, stream=stream)
    emit("pipeline_failed_stage", result.failed_stage, stream=stream)
    emit(
        "pipeline_stages",
        {outcome.name: str(outcome.status) for outcome in result.outcomes},
        stream=stream,
    )
