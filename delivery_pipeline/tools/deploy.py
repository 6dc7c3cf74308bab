"""GitOps deployment through the ArgoCD CLI."""

from __future__ import annotations

import typing as typ

from ..models import ToolResult
from .base import run_tool, tool_result

if typ.TYPE_CHECKING:
    from ..config import PipelineConfig
    from ..models import StageContext

__all__ = ["ArgoCDDeployer"]


class ArgoCDDeployer:
    """Point an ArgoCD application at the new image and sync it.

    Authentication is left to the ArgoCD CLI, which reads
    ``ARGOCD_AUTH_TOKEN`` from the environment.
    """

    def __init__(
        self,
        app: str,
        *,
        server: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.app = app
        self.server = server
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> ArgoCDDeployer:
        """Return a deployer for ``config.argocd_app``."""
        config.require("argocd_app", purpose="deployment")
        return cls(
            typ.cast("str", config.argocd_app),
            server=config.argocd_server,
            timeout=timeout or config.stage_timeout,
        )

    def _argv(self, *args: str) -> list[str]:
        argv = ["argocd", "app", *args]
        if self.server:
            argv.extend(["--server", self.server])
        return argv

    def commands(self, image: str | None) -> list[tuple[str, list[str]]]:
        """Return the labelled command lines that make up a deployment."""
        steps: list[tuple[str, list[str]]] = []
        if image:
            set_image = self._argv("set", self.app, "--kustomize-image", image)
            steps.append(("argocd app set", set_image))
        steps.append(("argocd app sync", self._argv("sync", self.app)))
        wait = self._argv("wait", self.app, "--health")
        if self.timeout:
            wait.extend(["--timeout", f"{int(self.timeout)}"])
        steps.append(("argocd app wait", wait))
        return steps

    def run(self, context: StageContext) -> ToolResult:
        """Run each deployment step, stopping at the first failure."""
        image = context.artefacts.get("image")
        for label, argv in self.commands(image):
            result = run_tool(argv, timeout=self.timeout)
            if not result.ok:
                return tool_result(result, label)
        return ToolResult.ok(f"{self.app} synced and healthy")
