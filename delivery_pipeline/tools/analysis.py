"""SonarQube static analysis and quality gate adapter."""

from __future__ import annotations

import typing as typ

import httpx

from ..models import ToolResult
from .base import run_tool, tool_result

if typ.TYPE_CHECKING:
    from ..config import PipelineConfig
    from ..models import StageContext

__all__ = ["SonarAnalyzer"]

HTTP_TIMEOUT = 30
QUALITY_GATE_ENDPOINT = "/api/qualitygates/project_status"


class SonarAnalyzer:
    """Run ``sonar-scanner`` and check the project's quality gate.

    The scanner is asked to wait for the gate itself; the gate status is then
    read back once from the SonarQube web API so the stage can report which
    conditions failed. The token reaches the scanner through ``SONAR_TOKEN``
    and never appears on the command line.
    """

    def __init__(
        self,
        server_url: str,
        project_key: str,
        *,
        token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.project_key = project_key
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> SonarAnalyzer:
        """Return an analyzer for ``config``'s SonarQube server."""
        config.require("sonar_server_url", purpose="static analysis")
        return cls(
            typ.cast("str", config.sonar_server_url),
            config.sonar_project_key or config.project_name,
            token=config.sonar_token,
            timeout=timeout or config.stage_timeout,
        )

    def argv(self) -> list[str]:
        """Return the scanner command line."""
        return [
            "sonar-scanner",
            f"-Dsonar.host.url={self.server_url}",
            f"-Dsonar.projectKey={self.project_key}",
            "-Dsonar.qualitygate.wait=true",
        ]

    def quality_gate(self) -> dict[str, typ.Any]:
        """Return the ``projectStatus`` object for :attr:`project_key`."""
        auth = (self.token, "") if self.token else None
        with httpx.Client(timeout=HTTP_TIMEOUT, auth=auth) as client:
            response = client.get(
                f"{self.server_url}{QUALITY_GATE_ENDPOINT}",
                params={"projectKey": self.project_key},
            )
        response.raise_for_status()
        payload = response.json()
        status = payload.get("projectStatus") if isinstance(payload, dict) else None
        if not isinstance(status, dict):
            msg = f"SonarQube returned no projectStatus for {self.project_key}"
            raise ValueError(msg)
        return status

    def run(self, context: StageContext) -> ToolResult:  # noqa: ARG002
        """Analyse the workspace and fail unless the gate status is ``OK``."""
        env = {"SONAR_TOKEN": self.token} if self.token else None
        result = run_tool(self.argv(), timeout=self.timeout, env=env)
        if not result.ok:
            return tool_result(result, "sonar-scanner")

        status = self.quality_gate()
        gate = status.get("status", "NONE")
        if gate == "OK":
            return ToolResult.ok(
                f"quality gate passed for {self.project_key}", quality_gate=gate
            )
        failing = [
            f"{condition.get('metricKey')}={condition.get('actualValue')}"
            f" (threshold {condition.get('errorThreshold')})"
            for condition in status.get("conditions", [])
            if isinstance(condition, dict) and condition.get("status") == "ERROR"
        ]
        reason = f": {', '.join(failing)}" if failing else ""
        return ToolResult.failed(f"quality gate {gate} for {self.project_key}{reason}")
