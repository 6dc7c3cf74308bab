"""Shared fixtures for the delivery pipeline tests."""

from __future__ import annotations

import typing as typ

import pytest

from delivery_pipeline.config import PipelineConfig
from delivery_pipeline.models import StageContext, TriggerEvent, TriggerKind
from test_support.doubles import RUN_ID, RecordingNotifier

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

# CI variables that would otherwise leak into configuration loading.
_CI_ENV = (
    "BITBUCKET_BRANCH",
    "BRANCH_NAME",
    "BUILD_URL",
    "DOCKER_REGISTRY_PASSWORD",
    "DOCKER_REGISTRY_USERNAME",
    "GIT_BRANCH",
    "JIRA_API_TOKEN",
    "JIRA_USER",
    "NEXUS_PASSWORD",
    "NEXUS_USERNAME",
    "PIPELINE_DRY_RUN",
    "PIPELINE_WORKSPACE",
    "SLACK_WEBHOOK_URL",
    "SONAR_TOKEN",
    "WORKSPACE",
)


@pytest.fixture(autouse=True)
def _clean_ci_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _CI_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Return an empty checkout directory."""
    path = tmp_path / "checkout"
    path.mkdir()
    return path


@pytest.fixture
def config(workspace: Path) -> PipelineConfig:
    """Return a configuration for the ``orders`` service."""
    return PipelineConfig(
        project_name="orders",
        workspace=workspace,
        build_url="https://ci.example.com/job/orders/42/",
        notification_channel="#orders-ci",
        registry="registry.example.com",
        image_name="shop/orders",
        argocd_app="orders-staging",
    )


@pytest.fixture
def trigger() -> TriggerEvent:
    """Return a push to ``main``."""
    return TriggerEvent(
        kind=TriggerKind.PUSH,
        branch="main",
        commit="9fceb02d0ae598e95dc970b74767f19372d61af8",
        repository="shop/orders",
    )


@pytest.fixture
def context(
    workspace: Path, config: PipelineConfig, trigger: TriggerEvent
) -> StageContext:
    """Return the context handed to stage actions."""
    return StageContext(
        workspace=workspace, config=config, run_id=RUN_ID, trigger=trigger
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Return a notifier that records events."""
    return RecordingNotifier()


@pytest.fixture
def fixed_run_id() -> cabc.Callable[[], str]:
    """Return a run id factory yielding a constant id."""
    return lambda: RUN_ID
