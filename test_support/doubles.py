"""Test doubles standing in for notifiers, stage actions and tools."""

from __future__ import annotations

import sys
import typing as typ

from delivery_pipeline.cmd_utils import CommandResult
from delivery_pipeline.models import ToolResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from delivery_pipeline.models import NotificationEvent, StageContext

__all__ = [
    "RUN_ID",
    "RecordingNotifier",
    "ScriptedAction",
    "ToolRecorder",
    "python_argv",
]

RUN_ID = "0192f3a4b5c67d8e9fa0b1c2d3e4f506"


class RecordingNotifier:
    """Notifier double that keeps every delivered event."""

    def __init__(self, error: Exception | None = None) -> None:
        self.events: list[NotificationEvent] = []
        self.error = error

    def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)
        if self.error is not None:
            raise self.error


class ScriptedAction:
    """Stage action returning a fixed result and counting its invocations."""

    def __init__(
        self,
        result: ToolResult | None = None,
        *,
        error: Exception | None = None,
        log: list[str] | None = None,
        label: str = "",
    ) -> None:
        self.result = result if result is not None else ToolResult.ok()
        self.error = error
        self.calls = 0
        self.log = log
        self.label = label

    def run(self, context: StageContext) -> ToolResult:  # noqa: ARG002
        self.calls += 1
        if self.log is not None:
            self.log.append(self.label)
        if self.error is not None:
            raise self.error
        return self.result


class ToolRecorder:
    """Replacement for ``run_tool`` that records argv and replays results.

    ``results`` are returned in order; once exhausted every further call
    succeeds with empty output.
    """

    def __init__(self, *results: CommandResult) -> None:
        self.results = list(results)
        self.calls: list[dict[str, typ.Any]] = []

    @property
    def argvs(self) -> list[list[str]]:
        """Return the argv of every recorded call."""
        return [call["argv"] for call in self.calls]

    def __call__(
        self, argv: cabc.Sequence[str], **kwargs: typ.Any  # noqa: ANN401
    ) -> CommandResult:
        self.calls.append({"argv": list(argv), **kwargs})
        if self.results:
            return self.results.pop(0)
        return CommandResult(0, "", "")


def python_argv(script: str) -> list[str]:
    """Return an argv running ``script`` with the current interpreter."""
    return [sys.executable, "-c", script]
