"""Configuration model and loader for the delivery pipeline.

Settings that used to live in global CI state (server URLs, credentials,
notification channel) are gathered into one :class:`PipelineConfig` that is
passed explicitly to the runner and to every tool adapter. Non-secret
settings come from a TOML file; secrets come from the environment only.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import os
import tomllib
import typing as typ
from pathlib import Path

from .bool_utils import coerce_bool
from .environment import require_env, require_env_path
from .errors import ConfigurationError

__all__ = [
    "STAGE_KINDS",
    "PipelineConfig",
    "RegistryCredentials",
    "StageSpec",
    "load_config",
]

STAGE_KINDS: frozenset[str] = frozenset(
    {
        "build",
        "dependency-scan",
        "analysis",
        "image-build",
        "image-scan",
        "image-push",
        "artefact-upload",
        "deploy",
    }
)

_STAGE_KEYS = frozenset({"name", "uses", "run", "archive", "timeout"})

# (table, key) in the TOML file -> PipelineConfig field
_FILE_FIELDS: dict[tuple[str, str], str] = {
    ("pipeline", "project_name"): "project_name",
    ("pipeline", "build_url"): "build_url",
    ("pipeline", "archive_dir"): "archive_dir",
    ("notifications", "channel"): "notification_channel",
    ("notifications", "jira_url"): "jira_url",
    ("notifications", "jira_project"): "jira_project",
    ("sonar", "server_url"): "sonar_server_url",
    ("sonar", "project_key"): "sonar_project_key",
    ("nexus", "url"): "nexus_url",
    ("nexus", "repository"): "nexus_repository",
    ("docker", "registry"): "registry",
    ("docker", "image"): "image_name",
    ("argocd", "app"): "argocd_app",
    ("argocd", "server"): "argocd_server",
    ("scan", "trivy_severity"): "trivy_severity",
}

# Environment overrides for non-secret settings.
_ENV_FIELDS: dict[str, str] = {
    "PIPELINE_PROJECT_NAME": "project_name",
    "PIPELINE_BUILD_URL": "build_url",
    "PIPELINE_NOTIFICATION_CHANNEL": "notification_channel",
    "PIPELINE_SONAR_SERVER_URL": "sonar_server_url",
    "PIPELINE_NEXUS_URL": "nexus_url",
    "PIPELINE_REGISTRY": "registry",
    "PIPELINE_IMAGE_NAME": "image_name",
    "PIPELINE_ARGOCD_APP": "argocd_app",
    "PIPELINE_ARGOCD_SERVER": "argocd_server",
}


@dataclasses.dataclass(frozen=True, slots=True)
class RegistryCredentials:
    """Username and secret used to authenticate against a service."""

    username: str
    password: str = dataclasses.field(repr=False)


@dataclasses.dataclass(frozen=True, slots=True)
class StageSpec:
    """Declarative description of one stage from the ``[[stages]]`` table."""

    name: str
    uses: str | None = None
    run: tuple[str, ...] = ()
    archive: tuple[str, ...] = ()
    timeout: float | None = None


@dataclasses.dataclass(slots=True)
class PipelineConfig:
    """Settings passed explicitly to the runner and the tool adapters."""

    project_name: str
    workspace: Path
    archive_dir: str = "archive"
    build_url: str | None = None
    notification_channel: str | None = None
    sonar_server_url: str | None = None
    sonar_project_key: str | None = None
    sonar_token: str | None = dataclasses.field(default=None, repr=False)
    nexus_url: str | None = None
    nexus_repository: str | None = None
    nexus_credentials: RegistryCredentials | None = None
    registry: str | None = None
    image_name: str | None = None
    docker_registry_credentials: RegistryCredentials | None = None
    argocd_app: str | None = None
    argocd_server: str | None = None
    slack_webhook_url: str | None = dataclasses.field(default=None, repr=False)
    jira_url: str | None = None
    jira_project: str | None = None
    jira_credentials: RegistryCredentials | None = None
    build_command: tuple[str, ...] = ("mvn", "-B", "clean", "package")
    build_artefacts: tuple[str, ...] = ("target/*.jar",)
    trivy_severity: str = "HIGH,CRITICAL"
    dependency_check_fail_cvss: float = 7.0
    stage_timeout: float | None = None
    dry_run: bool = False
    stages: tuple[StageSpec, ...] = ()

    @property
    def archive_root(self) -> Path:
        """Directory receiving artefacts archived by successful stages."""
        return self.workspace / self.archive_dir

    @property
    def image_repository(self) -> str | None:
        """Return ``registry/image`` or the bare image name."""
        if not self.image_name:
            return None
        if self.registry:
            return f"{self.registry.rstrip('/')}/{self.image_name}"
        return self.image_name

    def require(self, *fields: str, purpose: str | None = None) -> None:
        """Raise :class:`ConfigurationError` naming every unset field."""
        missing = [name for name in fields if getattr(self, name) in (None, "")]
        if not missing:
            return
        joined = ", ".join(missing)
        suffix = f" (required by {purpose})" if purpose else ""
        msg = f"Missing configuration value(s): {joined}{suffix}"
        raise ConfigurationError(msg)


def load_config(
    config_file: Path,
    env: cabc.Mapping[str, str] | None = None,
) -> PipelineConfig:
    """Load the pipeline configuration from ``config_file`` and ``env``.

    Parameters
    ----------
    config_file
        TOML file describing the project, tool endpoints and stages.
    env
        Environment mapping used for secrets and overrides. Defaults to
        :data:`os.environ`.

    Returns
    -------
    PipelineConfig
        Fully populated configuration.

    Raises
    ------
    ConfigurationError
        Raised when the file is missing or malformed, or when a value has the
        wrong type.
    """
    source = os.environ if env is None else env
    config_file = Path(config_file)
    if not config_file.is_file():
        msg = f"Configuration file not found at {config_file}"
        raise ConfigurationError(msg)

    data = _load_toml(config_file)
    values: dict[str, typ.Any] = {}
    for (table, key), field_name in _FILE_FIELDS.items():
        section = _table(data, table, config_file)
        if key in section:
            values[field_name] = _expect_str(section[key], f"{table}.{key}", config_file)
    for env_name, field_name in _ENV_FIELDS.items():
        if value := source.get(env_name):
            values[field_name] = value

    values.setdefault("build_url", source.get("BUILD_URL") or None)
    values.setdefault("project_name", config_file.parent.resolve().name)
    values["workspace"] = _resolve_workspace(data, config_file, source)
    values.update(_build_settings(data, config_file))
    values.update(_scan_settings(data, config_file))
    values.update(_secrets(source))
    values["stage_timeout"] = _optional_number(
        _table(data, "pipeline", config_file).get("stage_timeout"),
        "pipeline.stage_timeout",
        config_file,
    )
    values["dry_run"] = _dry_run(data, config_file, source)
    values["stages"] = _parse_stages(data.get("stages", []), config_file)
    return PipelineConfig(**values)


def _load_toml(path: Path) -> dict[str, typ.Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigurationError(msg) from exc


def _table(data: dict[str, typ.Any], name: str, config_file: Path) -> dict[str, typ.Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        msg = f"[{name}] must be a table in {config_file}"
        raise ConfigurationError(msg)
    return section


def _expect_str(value: object, label: str, config_file: Path) -> str:
    if not isinstance(value, str):
        msg = f"'{label}' must be a string, got {type(value).__name__} in {config_file}"
        raise ConfigurationError(msg)
    return value


def _expect_str_list(value: object, label: str, config_file: Path) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        msg = f"'{label}' must be a list of strings in {config_file}"
        raise ConfigurationError(msg)
    return tuple(value)


def _optional_number(value: object, label: str, config_file: Path) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        msg = f"'{label}' must be a positive number in {config_file}"
        raise ConfigurationError(msg)
    return float(value)


def _resolve_workspace(
    data: dict[str, typ.Any], config_file: Path, env: cabc.Mapping[str, str]
) -> Path:
    """Pick the checkout directory: override, file, CI workspace, file parent."""
    if "PIPELINE_WORKSPACE" in env:
        return require_env_path("PIPELINE_WORKSPACE", env)
    configured = _table(data, "pipeline", config_file).get("workspace")
    if configured is not None:
        path = Path(_expect_str(configured, "pipeline.workspace", config_file))
        return path if path.is_absolute() else config_file.parent / path
    if env.get("WORKSPACE"):
        return require_env_path("WORKSPACE", env)
    return config_file.parent


def _build_settings(data: dict[str, typ.Any], config_file: Path) -> dict[str, typ.Any]:
    section = _table(data, "build", config_file)
    settings: dict[str, typ.Any] = {}
    if "command" in section:
        command = _expect_str_list(section["command"], "build.command", config_file)
        if not command:
            msg = f"'build.command' must not be empty in {config_file}"
            raise ConfigurationError(msg)
        settings["build_command"] = command
    if "artefacts" in section:
        settings["build_artefacts"] = _expect_str_list(
            section["artefacts"], "build.artefacts", config_file
        )
    return settings


def _scan_settings(data: dict[str, typ.Any], config_file: Path) -> dict[str, typ.Any]:
    section = _table(data, "scan", config_file)
    if "fail_cvss" not in section:
        return {}
    value = section["fail_cvss"]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"'scan.fail_cvss' must be a number in {config_file}"
        raise ConfigurationError(msg)
    if not 0 <= value <= 10:  # noqa: PLR2004
        msg = f"'scan.fail_cvss' must be between 0 and 10 in {config_file}"
        raise ConfigurationError(msg)
    return {"dependency_check_fail_cvss": float(value)}


def _credentials(
    env: cabc.Mapping[str, str], user_key: str, secret_key: str
) -> RegistryCredentials | None:
    if not env.get(user_key) and not env.get(secret_key):
        return None
    return RegistryCredentials(require_env(user_key, env), require_env(secret_key, env))


def _secrets(env: cabc.Mapping[str, str]) -> dict[str, typ.Any]:
    return {
        "docker_registry_credentials": _credentials(
            env, "DOCKER_REGISTRY_USERNAME", "DOCKER_REGISTRY_PASSWORD"
        ),
        "nexus_credentials": _credentials(env, "NEXUS_USERNAME", "NEXUS_PASSWORD"),
        "jira_credentials": _credentials(env, "JIRA_USER", "JIRA_API_TOKEN"),
        "sonar_token": env.get("SONAR_TOKEN") or None,
        "slack_webhook_url": env.get("SLACK_WEBHOOK_URL") or None,
    }


def _dry_run(
    data: dict[str, typ.Any], config_file: Path, env: cabc.Mapping[str, str]
) -> bool:
    configured = _table(data, "pipeline", config_file).get("dry_run")
    try:
        default = coerce_bool(configured, default=False)
        return coerce_bool(env.get("PIPELINE_DRY_RUN"), default=default)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def _parse_stage(entry: object, index: int, config_file: Path) -> StageSpec:
    if not isinstance(entry, dict):
        msg = f"Stage entry #{index} must be a table in {config_file}"
        raise ConfigurationError(msg)
    if unknown := sorted(entry.keys() - _STAGE_KEYS):
        msg = f"Unknown key(s) {', '.join(unknown)} in stage entry #{index} of {config_file}"
        raise ConfigurationError(msg)
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        msg = f"Missing required stage key 'name' in entry #{index} of {config_file}"
        raise ConfigurationError(msg)
    uses = entry.get("uses")
    run = entry.get("run")
    if (uses is None) == (run is None):
        msg = f"Stage '{name}' must define exactly one of 'uses' or 'run' in {config_file}"
        raise ConfigurationError(msg)
    if uses is not None and uses not in STAGE_KINDS:
        allowed = ", ".join(sorted(STAGE_KINDS))
        msg = f"Stage '{name}' uses unknown kind {uses!r}. Allowed: {allowed}."
        raise ConfigurationError(msg)
    argv = _expect_str_list(run, f"stages[{index}].run", config_file) if run else ()
    if run is not None and not argv:
        msg = f"Stage '{name}' has an empty 'run' command in {config_file}"
        raise ConfigurationError(msg)
    return StageSpec(
        name=name.strip(),
        uses=uses,
        run=argv,
        archive=_expect_str_list(
            entry.get("archive", []), f"stages[{index}].archive", config_file
        ),
        timeout=_optional_number(
            entry.get("timeout"), f"stages[{index}].timeout", config_file
        ),
    )


def _parse_stages(entries: object, config_file: Path) -> tuple[StageSpec, ...]:
    if not isinstance(entries, list):
        msg = f"'stages' must be an array of tables in {config_file}"
        raise ConfigurationError(msg)
    return tuple(
        _parse_stage(entry, index, config_file)
        for index, entry in enumerate(entries, start=1)
    )
