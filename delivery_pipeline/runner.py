"""Sequential, fail-fast execution of pipeline stages.

:class:`StageRunner` executes stages strictly in declaration order inside the
workspace. The first stage whose action reports failure (or raises) ends the
run, and every later stage is recorded as skipped without executing. Stages
that succeed archive their declared outputs straight away, so those archives
survive a later failure. Whatever the path taken, exactly one terminal
:class:`~delivery_pipeline.models.NotificationEvent` is sent.
"""

from __future__ import annotations

import collections
import logging
import time
import typing as typ

import httpx
from plumbum import local
from plumbum.commands.processes import ProcessExecutionError, ProcessTimedOut

from .archive import archive_outputs, stage_slug
from .cmd_utils import output_tail, process_error_to_result
from .correlation_id import new_run_id
from .errors import ConfigurationError, StageExecutionError
from .models import (
    NotificationEvent,
    PipelineRun,
    RunResult,
    RunStatus,
    Severity,
    Stage,
    StageContext,
    StageOutcome,
    StageStatus,
    ToolResult,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from .config import PipelineConfig
    from .models import TriggerEvent
    from .notify import Notifier

__all__ = ["DEFAULT_CHANNEL", "StageRunner", "ensure_unique_names"]

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "#builds"


def ensure_unique_names(stages: cabc.Sequence[Stage]) -> None:
    """Raise :class:`ConfigurationError` when stage names clash.

    Names must be unique, and archiving stages must also map to distinct
    archive directories.
    """
    counts = collections.Counter(stage.name for stage in stages)
    if duplicates := sorted(name for name, count in counts.items() if count > 1):
        msg = f"Stage names must be unique within a run: {', '.join(duplicates)}"
        raise ConfigurationError(msg)

    by_slug: dict[str, list[str]] = collections.defaultdict(list)
    for stage in stages:
        if stage.archive_on_success:
            by_slug[stage_slug(stage.name)].append(stage.name)
    if clashes := sorted(names for names in by_slug.values() if len(names) > 1):
        listed = "; ".join(", ".join(repr(name) for name in names) for names in clashes)
        msg = f"Archiving stages share an archive directory: {listed}"
        raise ConfigurationError(msg)


def _describe_error(exc: Exception) -> str:
    """Return a one-line explanation of why a stage action raised."""
    if isinstance(exc, StageExecutionError):
        return exc.detail
    if isinstance(exc, ProcessExecutionError):
        result = process_error_to_result(exc)
        return f"command exited with status {result.returncode}: {output_tail(result)}"
    if isinstance(exc, ProcessTimedOut):
        return f"command timed out: {exc}"
    if isinstance(exc, httpx.HTTPError):
        return f"HTTP request failed: {exc}"
    return f"{type(exc).__name__}: {exc}"


class StageRunner:
    """Execute an ordered list of stages with fail-fast semantics.

    Parameters
    ----------
    notifier
        Collaborator receiving the single terminal notification.
    config
        Settings shared by every stage; supplies the notification channel,
        the build log URL and the archive directory.
    workspace
        Checkout the stages operate on. Defaults to ``config.workspace``.
    """

    def __init__(
        self,
        notifier: Notifier,
        config: PipelineConfig,
        workspace: Path | None = None,
        *,
        run_id_factory: cabc.Callable[[], str] = new_run_id,
    ) -> None:
        self.notifier = notifier
        self.config = config
        self.workspace = workspace if workspace is not None else config.workspace
        self._run_id_factory = run_id_factory

    def run(
        self,
        stages: cabc.Sequence[Stage],
        trigger: TriggerEvent | None = None,
    ) -> RunResult:
        """Run ``stages`` in order and return the summary of the run.

        Raises
        ------
        ConfigurationError
            Raised before anything executes when stage names clash.
        """
        ensure_unique_names(stages)
        pipeline_run = PipelineRun(tuple(stages), self.workspace)
        context = StageContext(
            workspace=self.workspace,
            config=self.config,
            run_id=self._run_id_factory(),
            trigger=trigger,
        )
        logger.info(
            "Starting run %s of %s with %d stage(s)",
            context.run_id,
            self.config.project_name,
            len(pipeline_run.stages),
        )
        pipeline_run.status = RunStatus.RUNNING

        outcomes: list[StageOutcome] = []
        failed: StageOutcome | None = None
        for stage in pipeline_run.stages:
            if failed is not None:
                logger.warning("Skipping stage '%s' after failure", stage.name)
                outcomes.append(StageOutcome(stage.name, StageStatus.SKIPPED))
                continue
            outcome = self._run_stage(stage, context)
            outcomes.append(outcome)
            if outcome.status is StageStatus.FAILED:
                failed = outcome

        pipeline_run.status = RunStatus.FAILED if failed else RunStatus.SUCCEEDED
        event = self._terminal_event(pipeline_run, failed, trigger)
        result = RunResult(
            run_id=context.run_id,
            status=pipeline_run.status,
            outcomes=outcomes,
            notification=event,
            failed_stage=failed.name if failed else None,
            error=failed.detail if failed else None,
        )
        result.notification_error = self._send(event, context.run_id)
        logger.info("Run %s finished: %s", context.run_id, pipeline_run.status)
        return result

    def _run_stage(self, stage: Stage, context: StageContext) -> StageOutcome:
        logger.info("Stage '%s' started", stage.name)
        started = time.monotonic()
        try:
            with local.cwd(self.workspace):
                result = stage.action.run(context)
            if not isinstance(result, ToolResult):
                msg = f"action returned {type(result).__name__}, expected ToolResult"
                raise StageExecutionError(stage.name, msg)
            if not result.succeeded:
                raise StageExecutionError(stage.name, result.detail or "tool reported failure")
            archived = (
                archive_outputs(
                    stage.name,
                    stage.archive_on_success,
                    self.workspace,
                    self.config.archive_root,
                )
                if stage.archive_on_success
                else []
            )
        except Exception as exc:  # noqa: BLE001 - any error fails the stage
            detail = _describe_error(exc)
            logger.error("Stage '%s' failed: %s", stage.name, detail)  # noqa: TRY400
            return StageOutcome(
                stage.name,
                StageStatus.FAILED,
                detail,
                duration=time.monotonic() - started,
            )

        context.artefacts.update(result.outputs)
        logger.info("Stage '%s' succeeded", stage.name)
        return StageOutcome(
            stage.name,
            StageStatus.SUCCEEDED,
            result.detail,
            archived,
            time.monotonic() - started,
        )

    def _terminal_event(
        self,
        pipeline_run: PipelineRun,
        failed: StageOutcome | None,
        trigger: TriggerEvent | None,
    ) -> NotificationEvent:
        subject = self.config.project_name
        if trigger is not None:
            subject = f"{subject} ({trigger.branch})"
        if failed is None:
            severity = Severity.SUCCESS
            message = (
                f"Pipeline succeeded for {subject}: "
                f"{len(pipeline_run.stages)} stage(s) passed."
            )
        else:
            severity = Severity.FAILURE
            message = (
                f"Pipeline failed for {subject} at stage '{failed.name}': "
                f"{failed.detail}"
            )
        if self.config.build_url:
            message = f"{message} Logs: {self.config.build_url}"
        channel = self.config.notification_channel or DEFAULT_CHANNEL
        return NotificationEvent(channel=channel, severity=severity, message=message)

    def _send(self, event: NotificationEvent, run_id: str) -> str | None:
        """Deliver ``event`` once; return the delivery error text, if any."""
        try:
            self.notifier.notify(event)
        except Exception as exc:  # noqa: BLE001 - delivery never changes the status
            logger.exception("Run %s: notification to %s failed", run_id, event.channel)
            return f"{type(exc).__name__}: {exc}"
        return None
