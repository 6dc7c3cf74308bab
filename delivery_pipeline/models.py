"""Data model shared by the runner, the tool adapters and the notifiers."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .config import PipelineConfig

__all__ = [
    "FunctionAction",
    "NotificationEvent",
    "PipelineRun",
    "RunResult",
    "RunStatus",
    "Severity",
    "Stage",
    "StageAction",
    "StageContext",
    "StageOutcome",
    "StageStatus",
    "ToolResult",
    "TriggerEvent",
    "TriggerKind",
]


class RunStatus(enum.StrEnum):
    """Lifecycle state of a :class:`PipelineRun`."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StageStatus(enum.StrEnum):
    """Terminal state of a single stage within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class Severity(enum.StrEnum):
    """Severity attached to a :class:`NotificationEvent`."""

    INFO = "info"
    SUCCESS = "success"
    FAILURE = "failure"


class TriggerKind(enum.StrEnum):
    """Version-control event that started a run."""

    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MANUAL = "manual"


@dataclasses.dataclass(frozen=True, slots=True)
class TriggerEvent:
    """Branch reference and metadata carried by an inbound webhook."""

    kind: TriggerKind
    branch: str
    commit: str | None = None
    repository: str | None = None

    @property
    def short_commit(self) -> str | None:
        """Return the first twelve characters of :attr:`commit`."""
        return self.commit[:12] if self.commit else None


@dataclasses.dataclass(frozen=True, slots=True)
class NotificationEvent:
    """Message delivered to a notification channel at the end of a run."""

    channel: str
    severity: Severity
    message: str


@dataclasses.dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome reported by a stage action.

    Attributes
    ----------
    succeeded : bool
        Whether the external tool reported success.
    detail : str
        Human-readable summary, typically the tail of the tool's output.
    outputs : dict[str, str]
        Values handed to later stages through :attr:`StageContext.artefacts`,
        for example the reference of a freshly built image.
    """

    succeeded: bool
    detail: str = ""
    outputs: dict[str, str] = dataclasses.field(default_factory=dict)

    @classmethod
    def ok(cls, detail: str = "", **outputs: str) -> ToolResult:
        """Return a successful result carrying ``outputs``."""
        return cls(succeeded=True, detail=detail, outputs=dict(outputs))

    @classmethod
    def failed(cls, detail: str) -> ToolResult:
        """Return a failed result explaining why in ``detail``."""
        return cls(succeeded=False, detail=detail)


@dataclasses.dataclass(slots=True)
class StageContext:
    """Per-run state handed to every stage action."""

    workspace: Path
    config: PipelineConfig
    run_id: str
    trigger: TriggerEvent | None = None
    artefacts: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def branch(self) -> str | None:
        """Return the branch that triggered the run, if known."""
        return self.trigger.branch if self.trigger else None


@typ.runtime_checkable
class StageAction(typ.Protocol):
    """Unit of work executed by a stage."""

    def run(self, context: StageContext) -> ToolResult:  # pragma: no cover - protocol
        """Execute the action and report its outcome."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class FunctionAction:
    """Adapt a plain callable into a :class:`StageAction`."""

    func: cabc.Callable[[StageContext], ToolResult | int | None]

    def run(self, context: StageContext) -> ToolResult:
        """Call :attr:`func` and normalise its return value.

        ``None`` counts as success and an ``int`` is read as an exit status,
        so ``0`` succeeds and anything else fails.
        """
        result = self.func(context)
        if result is None:
            return ToolResult.ok()
        if isinstance(result, int) and not isinstance(result, bool):
            if result == 0:
                return ToolResult.ok()
            return ToolResult.failed(f"exited with status {result}")
        return result


@dataclasses.dataclass(frozen=True, slots=True)
class Stage:
    """Named unit of pipeline work."""

    name: str
    action: StageAction
    archive_on_success: tuple[str, ...] = ()

    @classmethod
    def from_callable(
        cls,
        name: str,
        func: cabc.Callable[[StageContext], ToolResult | int | None],
        *,
        archive_on_success: cabc.Iterable[str] = (),
    ) -> Stage:
        """Build a stage whose action is the plain callable ``func``."""
        return cls(name, FunctionAction(func), tuple(archive_on_success))


@dataclasses.dataclass(slots=True)
class StageOutcome:
    """What happened to one stage during a run."""

    name: str
    status: StageStatus
    detail: str = ""
    archived: list[Path] = dataclasses.field(default_factory=list)
    duration: float = 0.0


@dataclasses.dataclass(slots=True)
class PipelineRun:
    """Ordered stages of a single run and its lifecycle status."""

    stages: tuple[Stage, ...]
    workspace: Path
    status: RunStatus = RunStatus.PENDING


@dataclasses.dataclass(slots=True)
class RunResult:
    """Summary returned by :meth:`StageRunner.run`."""

    run_id: str
    status: RunStatus
    outcomes: list[StageOutcome]
    notification: NotificationEvent
    failed_stage: str | None = None
    error: str | None = None
    notification_error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when every stage succeeded."""
        return self.status is RunStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        """Return the process exit status mirroring :attr:`status`."""
        return 0 if self.succeeded else 1

    def outcome(self, name: str) -> StageOutcome:
        """Return the outcome recorded for stage ``name``."""
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        raise KeyError(name)
