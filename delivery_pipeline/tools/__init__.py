"""Adapters wrapping the external tools invoked by pipeline stages."""

from __future__ import annotations

from .analysis import SonarAnalyzer
from .base import (
    Analyzer,
    Builder,
    CommandAction,
    Deployer,
    ImageBuilder,
    Registry,
    Scanner,
)
from .build import CommandBuilder
from .deploy import ArgoCDDeployer
from .image import DockerImageBuilder
from .registry import DockerRegistry, NexusRepository
from .scan import DependencyCheckScanner, TrivyImageScanner

__all__ = [
    "Analyzer",
    "ArgoCDDeployer",
    "Builder",
    "CommandAction",
    "CommandBuilder",
    "DependencyCheckScanner",
    "Deployer",
    "DockerImageBuilder",
    "DockerRegistry",
    "ImageBuilder",
    "NexusRepository",
    "Registry",
    "Scanner",
    "SonarAnalyzer",
    "TrivyImageScanner",
]
