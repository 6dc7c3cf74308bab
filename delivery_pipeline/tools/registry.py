"""Artefact repository adapters: Docker registries and Nexus."""

from __future__ import annotations

import logging
import typing as typ

import httpx

from ..archive import match_workspace_paths
from ..models import ToolResult
from .base import run_tool, tool_result
from .image import image_tag
from .scan import resolve_image

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from ..config import PipelineConfig, RegistryCredentials
    from ..models import StageContext

__all__ = ["DockerRegistry", "NexusRepository"]

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 120


class DockerRegistry:
    """Log in to a container registry and push the run's image."""

    def __init__(
        self,
        registry: str,
        credentials: RegistryCredentials,
        *,
        timeout: float | None = None,
    ) -> None:
        self.registry = registry
        self.credentials = credentials
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> DockerRegistry:
        """Return a registry client for ``config.registry``."""
        config.require("registry", "docker_registry_credentials", purpose="image push")
        return cls(
            typ.cast("str", config.registry),
            typ.cast("RegistryCredentials", config.docker_registry_credentials),
            timeout=timeout or config.stage_timeout,
        )

    def login_argv(self) -> list[str]:
        """Return the ``docker login`` command line; the secret goes to stdin."""
        return [
            "docker",
            "login",
            "--username",
            self.credentials.username,
            "--password-stdin",
            self.registry,
        ]

    def run(self, context: StageContext) -> ToolResult:
        """Authenticate, then push the image built earlier in the run."""
        image = resolve_image(context)
        if not image:
            return ToolResult.failed("no image reference available to push")

        login = self.login_argv()
        result = run_tool(
            login,
            stdin=self.credentials.password,
            display=" ".join(login),
            timeout=self.timeout,
        )
        if not result.ok:
            return tool_result(result, "docker login")

        pushed = run_tool(["docker", "push", image], timeout=self.timeout)
        return tool_result(
            pushed, "docker push", detail=f"pushed {image}", pushed_image=image
        )


class NexusRepository:
    """Upload build artefacts to a Nexus raw repository."""

    def __init__(
        self,
        base_url: str,
        repository: str,
        credentials: RegistryCredentials,
        *,
        project: str,
        patterns: cabc.Iterable[str],
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.repository = repository
        self.credentials = credentials
        self.project = project
        self.patterns = tuple(patterns)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> NexusRepository:
        """Return an uploader for ``config.build_artefacts``."""
        config.require(
            "nexus_url",
            "nexus_repository",
            "nexus_credentials",
            purpose="artefact upload",
        )
        return cls(
            typ.cast("str", config.nexus_url),
            typ.cast("str", config.nexus_repository),
            typ.cast("RegistryCredentials", config.nexus_credentials),
            project=config.project_name,
            patterns=config.build_artefacts,
        )

    def upload_url(self, version: str, filename: str) -> str:
        """Return the upload location of ``filename`` for ``version``."""
        return (
            f"{self.base_url}/repository/{self.repository}/"
            f"{self.project}/{version}/{filename}"
        )

    def run(self, context: StageContext) -> ToolResult:
        """Upload every file matching :attr:`patterns`."""
        files = [
            path
            for pattern in self.patterns
            for path in match_workspace_paths(context.workspace, pattern)
        ]
        if not files:
            return ToolResult.failed("no build artefacts matched for upload")

        version = image_tag(context)
        auth = (self.credentials.username, self.credentials.password)
        uploaded: list[str] = []
        with httpx.Client(timeout=HTTP_TIMEOUT, auth=auth) as client:
            for path in files:
                url = self.upload_url(version, path.name)
                response = client.put(url, content=path.read_bytes())
                if not response.is_success:
                    return ToolResult.failed(
                        f"Nexus rejected {path.name} ({response.status_code}): "
                        f"{response.text}"
                    )
                logger.info("Uploaded %s to %s", path.name, url)
                uploaded.append(url)
        return ToolResult.ok(
            f"uploaded {len(uploaded)} artefact(s) to {self.repository}",
            artefact_version=version,
        )
