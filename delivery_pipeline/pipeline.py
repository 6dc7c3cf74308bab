"""Assemble the ordered stage list from a :class:`PipelineConfig`.

Every adapter validates the settings it needs while the list is built, so a
missing credential or URL surfaces as :class:`ConfigurationError` before the
first stage runs.
"""

from __future__ import annotations

import typing as typ

from .config import StageSpec
from .models import Stage
from .runner import ensure_unique_names
from .tools import (
    ArgoCDDeployer,
    CommandAction,
    CommandBuilder,
    DependencyCheckScanner,
    DockerImageBuilder,
    DockerRegistry,
    NexusRepository,
    SonarAnalyzer,
    TrivyImageScanner,
)
from .tools.scan import DEFAULT_REPORT_DIR

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import PipelineConfig
    from .models import StageAction

__all__ = ["build_stages", "default_stage_specs", "describe_stages"]

_ActionFactory = typ.Callable[["PipelineConfig", "float | None"], "StageAction"]

_FACTORIES: dict[str, _ActionFactory] = {
    "build": lambda config, timeout: CommandBuilder.from_config(config, timeout=timeout),
    "dependency-scan": lambda config, timeout: DependencyCheckScanner.from_config(
        config, timeout=timeout
    ),
    "analysis": lambda config, timeout: SonarAnalyzer.from_config(config, timeout=timeout),
    "image-build": lambda config, timeout: DockerImageBuilder.from_config(
        config, timeout=timeout
    ),
    "image-scan": lambda config, timeout: TrivyImageScanner.from_config(
        config, timeout=timeout
    ),
    "image-push": lambda config, timeout: DockerRegistry.from_config(
        config, timeout=timeout
    ),
    "artefact-upload": lambda config, _timeout: NexusRepository.from_config(config),
    "deploy": lambda config, timeout: ArgoCDDeployer.from_config(config, timeout=timeout),
}


def default_stage_specs(config: PipelineConfig) -> tuple[StageSpec, ...]:
    """Return the stages run when the configuration declares none."""
    return (
        StageSpec("Build", uses="build", archive=config.build_artefacts),
        StageSpec(
            "Dependency Scan", uses="dependency-scan", archive=(DEFAULT_REPORT_DIR,)
        ),
        StageSpec("Static Analysis", uses="analysis"),
        StageSpec("Docker Build", uses="image-build"),
        StageSpec("Image Scan", uses="image-scan"),
        StageSpec("Push Image", uses="image-push"),
        StageSpec("Deploy", uses="deploy"),
    )


def _action_for(spec: StageSpec, config: PipelineConfig) -> StageAction:
    timeout = spec.timeout or config.stage_timeout
    if spec.run:
        return CommandAction(spec.run, timeout=timeout)
    factory = _FACTORIES[typ.cast("str", spec.uses)]
    return factory(config, timeout)


def build_stages(config: PipelineConfig) -> list[Stage]:
    """Return the ordered stages described by ``config``.

    Raises
    ------
    ConfigurationError
        Raised when a stage needs a setting that is missing, or when two
        stages share a name.
    """
    specs = config.stages or default_stage_specs(config)
    stages = [
        Stage(spec.name, _action_for(spec, config), tuple(spec.archive))
        for spec in specs
    ]
    ensure_unique_names(stages)
    return stages


def describe_stages(stages: cabc.Sequence[Stage]) -> list[str]:
    """Return one human-readable line per stage, in execution order."""
    lines: list[str] = []
    for index, stage in enumerate(stages, start=1):
        line = f"{index}. {stage.name} [{type(stage.action).__name__}]"
        if stage.archive_on_success:
            line = f"{line} archives: {', '.join(stage.archive_on_success)}"
        lines.append(line)
    return lines
