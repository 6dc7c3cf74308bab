"""Command-line entry point for the delivery pipeline.

Examples
--------
Run the pipeline for the branch named in a Bitbucket push webhook::

    export DOCKER_REGISTRY_USERNAME=ci DOCKER_REGISTRY_PASSWORD=...
    delivery-pipeline run --config-file pipeline.toml \
        --event-file webhook.json --event-key repo:push

Every option can also be supplied as an ``INPUT_`` environment variable, for
example ``INPUT_CONFIG_FILE=pipeline.toml delivery-pipeline run``.
"""

from __future__ import annotations

import logging
import os
import sys
import typing as typ
from pathlib import Path

import cyclopts
import typer
from cyclopts import App

from .config import load_config
from .environment import normalize_input_env
from .errors import ConfigurationError
from .notify import build_notifier
from .output import emit_summary, write_run_report
from .pipeline import build_stages, describe_stages
from .runner import StageRunner
from .trigger import load_trigger, manual_trigger

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .models import Stage, TriggerEvent

__all__ = ["EXIT_CONFIGURATION", "app", "main", "run", "stages"]

EXIT_CONFIGURATION = 2

# CI systems that export the branch of the current build.
_BRANCH_ENV_VARS = ("BRANCH_NAME", "GIT_BRANCH", "BITBUCKET_BRANCH")

app: App = App(
    name="delivery-pipeline",
    help="Build, scan, publish and deploy a service with fail-fast stages.",
    config=cyclopts.config.Env("INPUT_", command=False),
)


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(title: str, exc: Exception, code: int) -> typ.NoReturn:
    print(f"::error title={title}::{exc}", file=sys.stderr)
    raise SystemExit(code) from exc


def _resolve_trigger(
    event_file: Path | None, event_key: str | None, branch: str | None
) -> TriggerEvent | None:
    """Pick the trigger from a webhook payload, ``--branch`` or the CI env."""
    if event_file is not None:
        return load_trigger(event_file, event_key=event_key)
    if branch:
        return manual_trigger(branch)
    for name in _BRANCH_ENV_VARS:
        if value := os.environ.get(name, "").strip():
            return manual_trigger(value.removeprefix("origin/"))
    return None


def _prepare(config_file: Path) -> tuple[PipelineConfig, list[Stage]]:
    config = load_config(config_file)
    return config, build_stages(config)


@app.command
def run(
    config_file: Path,
    *,
    event_file: Path | None = None,
    event_key: str | None = None,
    branch: str | None = None,
    report_file: Path | None = None,
    dry_run: bool = False,
    verbose: bool = False,
) -> None:
    """Run every configured stage, stopping at the first failure.

    Parameters
    ----------
    config_file
        TOML file describing the project, tool endpoints and stages.
    event_file
        JSON webhook payload from the version-control host.
    event_key
        Webhook event name (``X-Event-Key`` or ``X-GitHub-Event`` header).
    branch
        Branch to build when no webhook payload is given.
    report_file
        Where to write the JSON run report.
    dry_run
        List the stages that would run without executing them.
    verbose
        Enable debug logging.

    Raises
    ------
    SystemExit
        Exit code ``1`` when a stage fails and ``2`` when the configuration is
        incomplete; in the latter case no stage runs.
    """
    _configure_logging(verbose=verbose)
    try:
        config, pipeline_stages = _prepare(config_file)
        trigger = _resolve_trigger(event_file, event_key, branch)
    except ConfigurationError as exc:
        _fail("Configuration Error", exc, EXIT_CONFIGURATION)

    if dry_run or config.dry_run:
        typer.echo(f"Dry run: {len(pipeline_stages)} stage(s) would run")
        for line in describe_stages(pipeline_stages):
            typer.echo(line)
        return

    runner = StageRunner(build_notifier(config), config)
    result = runner.run(pipeline_stages, trigger)
    emit_summary(result)
    if report_file is not None:
        write_run_report(report_file, result)
    if not result.succeeded:
        print(
            f"::error title=Pipeline Failure::Stage '{result.failed_stage}' "
            f"failed: {result.error}",
            file=sys.stderr,
        )
        raise SystemExit(result.exit_code)


@app.command
def stages(config_file: Path) -> None:
    """List the stages assembled from ``config_file`` in execution order."""
    try:
        _config, pipeline_stages = _prepare(config_file)
    except ConfigurationError as exc:
        _fail("Configuration Error", exc, EXIT_CONFIGURATION)
    for line in describe_stages(pipeline_stages):
        typer.echo(line)


def main() -> None:
    """Console script entry point."""
    normalize_input_env()
    app()
