"""Vulnerability scanner adapters: OWASP Dependency-Check and Trivy."""

from __future__ import annotations

import typing as typ

from ..models import ToolResult
from .base import run_tool, tool_result

if typ.TYPE_CHECKING:
    from ..config import PipelineConfig
    from ..models import StageContext

__all__ = ["DependencyCheckScanner", "TrivyImageScanner", "resolve_image"]

DEFAULT_REPORT_DIR = "dependency-check-report"


def resolve_image(context: StageContext) -> str | None:
    """Return the image built earlier in the run, or the configured one."""
    if image := context.artefacts.get("image"):
        return image
    return context.config.image_repository


class DependencyCheckScanner:
    """Scan project dependencies with the OWASP ``dependency-check`` CLI.

    The CLI exits non-zero when a vulnerability scores at or above
    ``fail_cvss``, which fails the stage.
    """

    def __init__(
        self,
        project: str,
        *,
        fail_cvss: float = 7.0,
        report_dir: str = DEFAULT_REPORT_DIR,
        executable: str = "dependency-check",
        timeout: float | None = None,
    ) -> None:
        self.project = project
        self.fail_cvss = fail_cvss
        self.report_dir = report_dir
        self.executable = executable
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> DependencyCheckScanner:
        """Return a scanner for ``config.project_name``."""
        return cls(
            config.project_name,
            fail_cvss=config.dependency_check_fail_cvss,
            timeout=timeout or config.stage_timeout,
        )

    def argv(self) -> list[str]:
        """Return the scanner command line."""
        return [
            self.executable,
            "--project",
            self.project,
            "--scan",
            ".",
            "--format",
            "HTML",
            "--format",
            "JSON",
            "--out",
            self.report_dir,
            "--failOnCVSS",
            f"{self.fail_cvss:g}",
        ]

    def run(self, context: StageContext) -> ToolResult:  # noqa: ARG002
        """Scan the workspace and publish the report directory."""
        result = run_tool(self.argv(), timeout=self.timeout)
        return tool_result(
            result,
            "dependency-check",
            detail=f"no dependency scored CVSS >= {self.fail_cvss:g}",
            dependency_report=self.report_dir,
        )


class TrivyImageScanner:
    """Scan a container image with ``trivy image``."""

    def __init__(
        self,
        *,
        severity: str = "HIGH,CRITICAL",
        image: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.severity = severity
        self.image = image
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> TrivyImageScanner:
        """Return a scanner using ``config.trivy_severity``."""
        return cls(severity=config.trivy_severity, timeout=timeout or config.stage_timeout)

    def argv(self, image: str) -> list[str]:
        """Return the scanner command line for ``image``."""
        return [
            "trivy",
            "image",
            "--exit-code",
            "1",
            "--severity",
            self.severity,
            "--no-progress",
            image,
        ]

    def run(self, context: StageContext) -> ToolResult:
        """Scan the image built earlier in the run."""
        image = self.image or resolve_image(context)
        if not image:
            return ToolResult.failed("no image reference available to scan")
        result = run_tool(self.argv(image), timeout=self.timeout)
        return tool_result(
            result, "trivy", detail=f"no {self.severity} vulnerabilities in {image}"
        )
