"""Build tool adapter."""

from __future__ import annotations

import typing as typ

from .base import CommandAction

if typ.TYPE_CHECKING:
    from ..config import PipelineConfig

__all__ = ["CommandBuilder"]


class CommandBuilder(CommandAction):
    """Run the project's build command, for example ``mvn -B clean package``."""

    tool = "build"

    @classmethod
    def from_config(
        cls, config: PipelineConfig, *, timeout: float | None = None
    ) -> CommandBuilder:
        """Return a builder running ``config.build_command``."""
        return cls(config.build_command, timeout=timeout or config.stage_timeout)
