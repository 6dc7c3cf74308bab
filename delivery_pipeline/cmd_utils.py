r"""Run external tool commands through plumbum.

Every stage of the pipeline ends up shelling out to a vendor CLI. This module
provides :func:`run_cmd`, the single place where that happens, so each
invocation is echoed to the build log before it runs and its exit status is
reported rather than raised.

Examples
--------
Capture output without raising on a non-zero exit::

    >>> from plumbum import local
    >>> result = run_cmd(local["trivy"]["--version"])
    $ trivy --version
    >>> result.returncode
    0

Hide secrets from the echoed command line::

    >>> login = local["docker"]["login", "--password-stdin"] << password
    >>> run_cmd(login, display="docker login --password-stdin")
    $ docker login --password-stdin
"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

import typer
from plumbum.commands.processes import ProcessExecutionError, ProcessTimedOut

__all__ = [
    "CommandResult",
    "SupportsFormulate",
    "coerce_command_result",
    "output_tail",
    "process_error_to_result",
    "run_cmd",
]


class CommandResult(typ.NamedTuple):
    """Exit status and decoded output of a finished command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Return ``True`` when the command exited with status zero."""
        return self.returncode == 0


@typ.runtime_checkable
class SupportsFormulate(typ.Protocol):
    """Objects that expose a shell representation via ``formulate``."""

    def formulate(self) -> cabc.Sequence[str]:  # pragma: no cover - protocol
        ...


@typ.runtime_checkable
class SupportsWithEnv(SupportsFormulate, typ.Protocol):
    """Commands that support environment overrides via :meth:`with_env`."""

    def with_env(self, **env: str) -> SupportsWithEnv:  # pragma: no cover - protocol
        ...


def _ensure_text(value: str | bytes | None) -> str:
    """Return ``value`` as ``str`` replacing undecodable bytes."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.decode("utf-8", errors="replace")


def coerce_command_result(result: CommandResult | cabc.Sequence[object]) -> CommandResult:
    """Normalise a plumbum ``run()`` triple into a :class:`CommandResult`."""
    if isinstance(result, CommandResult):
        return result
    try:
        returncode, stdout, stderr = result  # type: ignore[misc]
    except ValueError as exc:
        msg = "plumbum run() results must unpack into (returncode, stdout, stderr)"
        raise TypeError(msg) from exc
    return CommandResult(
        int(typ.cast("int", returncode)),
        _ensure_text(typ.cast("str | bytes | None", stdout)),
        _ensure_text(typ.cast("str | bytes | None", stderr)),
    )


def process_error_to_result(exc: ProcessExecutionError) -> CommandResult:
    """Convert ``exc`` into a :class:`CommandResult`."""
    return CommandResult(
        int(exc.retcode),
        _ensure_text(getattr(exc, "stdout", "")),
        _ensure_text(getattr(exc, "stderr", "")),
    )


def output_tail(result: CommandResult, *, lines: int = 5) -> str:
    """Return the last ``lines`` of stderr, falling back to stdout."""
    text = result.stderr.strip() or result.stdout.strip()
    if not text:
        return f"exit status {result.returncode}"
    return "\n".join(text.splitlines()[-lines:])


def run_cmd(
    cmd: object,
    *,
    env: cabc.Mapping[str, str] | None = None,
    display: str | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Echo and execute ``cmd``, returning its exit status and output.

    Parameters
    ----------
    cmd
        A plumbum command invocation such as ``local["docker"]["push", ref]``.
    env
        Extra environment variables for this invocation only.
    display
        Text echoed instead of the formulated command, used when the command
        line would reveal a secret.
    timeout
        Seconds to wait before the process is killed.

    Raises
    ------
    TypeError
        If ``cmd`` is not a plumbum command.
    ProcessTimedOut
        If ``timeout`` elapses first.
    """
    if not isinstance(cmd, SupportsFormulate):
        msg = "run_cmd requires a plumbum command invocation"
        raise TypeError(msg)

    typer.echo(f"$ {display if display is not None else cmd}")

    prepared: typ.Any = cmd
    if env:
        if not isinstance(cmd, SupportsWithEnv):
            msg = "Command does not support environment overrides"
            raise TypeError(msg)
        prepared = cmd.with_env(**{key: str(value) for key, value in env.items()})

    run_kwargs: dict[str, object] = {"retcode": None}
    if timeout:
        run_kwargs["timeout"] = timeout
    try:
        raw = prepared.run(**run_kwargs)
    except ProcessTimedOut:
        raise
    except TimeoutError as exc:
        formatted = [str(part) for part in prepared.formulate()]
        timed_out = ProcessTimedOut(str(exc) or "Command timed out", formatted)
        timed_out.timeout = timeout
        raise timed_out from exc
    return coerce_command_result(typ.cast("cabc.Sequence[object]", raw))
