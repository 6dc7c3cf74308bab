"""Capability interfaces shared by the tool adapters.

Each tool category (builder, scanner, analyzer, image builder, registry,
deployer) is a :class:`~delivery_pipeline.models.StageAction`: it exposes
``run(context) -> ToolResult`` and nothing else, so stages stay polymorphic
over the tools behind them.
"""

from __future__ import annotations

import typing as typ

import typer
from plumbum import local

from ..cmd_utils import CommandResult, output_tail, run_cmd
from ..models import StageAction, StageContext, ToolResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "Analyzer",
    "Builder",
    "CommandAction",
    "Deployer",
    "ImageBuilder",
    "Registry",
    "Scanner",
    "command_for",
    "run_tool",
    "tool_result",
]


@typ.runtime_checkable
class Builder(StageAction, typ.Protocol):
    """Compiles and packages the project."""


@typ.runtime_checkable
class Scanner(StageAction, typ.Protocol):
    """Scans dependencies or images for known vulnerabilities."""


@typ.runtime_checkable
class Analyzer(StageAction, typ.Protocol):
    """Runs static analysis and enforces the quality gate."""


@typ.runtime_checkable
class ImageBuilder(StageAction, typ.Protocol):
    """Builds a container image and publishes its reference as ``image``."""


@typ.runtime_checkable
class Registry(StageAction, typ.Protocol):
    """Accepts pushed images or artefacts."""


@typ.runtime_checkable
class Deployer(StageAction, typ.Protocol):
    """Rolls the new version out to an environment."""


def command_for(argv: cabc.Sequence[str]) -> typ.Any:  # noqa: ANN401
    """Return the plumbum invocation for ``argv``."""
    program, *args = argv
    command = local[program]
    return command[args] if args else command


def run_tool(
    argv: cabc.Sequence[str],
    *,
    timeout: float | None = None,
    env: cabc.Mapping[str, str] | None = None,
    stdin: str | None = None,
    display: str | None = None,
) -> CommandResult:
    """Run ``argv`` without raising on exit status and echo its output.

    ``stdin`` is fed to the process; pair it with ``display`` when it holds a
    secret so the echoed command line stays clean.
    """
    command = command_for(argv)
    if stdin is not None:
        command = command << stdin
    result = run_cmd(command, env=env, display=display, timeout=timeout)
    if result.stdout:
        typer.echo(result.stdout, nl=not result.stdout.endswith("\n"))
    if result.stderr:
        typer.echo(result.stderr, err=True, nl=not result.stderr.endswith("\n"))
    return result


def tool_result(
    result: CommandResult, tool: str, *, detail: str = "", **outputs: str
) -> ToolResult:
    """Translate a finished command into a :class:`ToolResult`."""
    if result.ok:
        return ToolResult.ok(detail or f"{tool} succeeded", **outputs)
    return ToolResult.failed(
        f"{tool} exited with status {result.returncode}: {output_tail(result)}"
    )


class CommandAction:
    """Run an arbitrary command line as a stage."""

    tool = "command"

    def __init__(self, argv: cabc.Sequence[str], *, timeout: float | None = None) -> None:
        if not argv:
            msg = "CommandAction requires a non-empty argv"
            raise ValueError(msg)
        self.argv = tuple(argv)
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"{type(self).__name__}({' '.join(self.argv)!r})"

    def run(self, context: StageContext) -> ToolResult:  # noqa: ARG002
        """Execute :attr:`argv` in the workspace."""
        result = run_tool(self.argv, timeout=self.timeout)
        return tool_result(result, self.argv[0])
