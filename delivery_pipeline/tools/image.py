"""Docker image build adapter."""

from __future__ import annotations

import re
import typing as typ

from ..models import ToolResult
from .base import run_tool, tool_result

if typ.TYPE_CHECKING:
    from ..config import PipelineConfig
    from ..models import StageContext

__all__ = ["DockerImageBuilder", "image_tag"]

_TAG_INVALID = re.compile(r"[^A-Za-z0-9_.-]+")
_TAG_MAX = 128


def image_tag(context: StageContext) -> str:
    """Return the tag for this run: short commit, else branch slug, else run id."""
    trigger = context.trigger
    if trigger is not None and (commit := trigger.short_commit):
        return commit
    if trigger is not None:
        slug = _TAG_INVALID.sub("-", trigger.branch).strip("-.")
        if slug:
            return slug[:_TAG_MAX]
    # The leading UUIDv7 digits are a millisecond timestamp; the tail is random.
    return context.run_id[-12:]


class DockerImageBuilder:
    """Build the service image with ``docker build``."""

    def __init__(
        self,
        repository: str,
        *,
        dockerfile: str = "Dockerfile",
        build_context: str = ".",
        timeout: float | None = None,
    ) -> None:
        self.repository = repository
        self.dockerfile = dockerfile
        self.build_context = build_context
        self.timeout = timeout

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> DockerImageBuilder:
        """Return a builder tagging images under ``config.image_repository``."""
        config.require("image_name", purpose="image build")
        return cls(
            typ.cast("str", config.image_repository),
            timeout=timeout or config.stage_timeout,
        )

    def argv(self, reference: str) -> list[str]:
        """Return the build command line for ``reference``."""
        return [
            "docker",
            "build",
            "--tag",
            reference,
            "--file",
            self.dockerfile,
            self.build_context,
        ]

    def run(self, context: StageContext) -> ToolResult:
        """Build the image and publish its reference as ``image``."""
        reference = f"{self.repository}:{image_tag(context)}"
        result = run_tool(self.argv(reference), timeout=self.timeout)
        return tool_result(
            result, "docker build", detail=f"built {reference}", image=reference
        )
