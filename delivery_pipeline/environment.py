"""Environment helpers shared by the pipeline configuration layer."""

from __future__ import annotations

import os
import typing as typ
from pathlib import Path

from .errors import ConfigurationError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = ["normalize_input_env", "require_env", "require_env_path"]


def require_env(name: str, env: cabc.Mapping[str, str] | None = None) -> str:
    """Return the value of ``name`` or raise :class:`ConfigurationError`.

    Parameters
    ----------
    name
        Name of the environment variable to fetch.
    env
        Mapping to read from. Defaults to :data:`os.environ`.

    Raises
    ------
    ConfigurationError
        Raised when the environment variable is unset or empty.
    """
    source = os.environ if env is None else env
    value = source.get(name)
    if not value:
        msg = f"Environment variable '{name}' is not set."
        raise ConfigurationError(msg)
    return value


def require_env_path(name: str, env: cabc.Mapping[str, str] | None = None) -> Path:
    """Return ``Path`` value for ``name`` or raise :class:`ConfigurationError`."""
    return Path(require_env(name, env))


def normalize_input_env(prefix: str = "INPUT_", *, prefer_dashed: bool = False) -> None:
    """Fold dashed ``INPUT-`` style keys into their underscore spelling.

    CI hosts forward option names verbatim, so ``INPUT_EVENT-FILE`` and
    ``INPUT_EVENT_FILE`` may both appear. Dashed variants are removed after
    normalisation. When ``prefer_dashed`` is false an existing underscore key
    wins.
    """
    alt_prefix = prefix.replace("_", "-")
    updates: dict[str, str] = {}
    removals: list[str] = []
    for key, value in os.environ.items():
        if not key.startswith((prefix, alt_prefix)) or "-" not in key:
            continue
        normalized = key.replace("-", "_")
        if prefer_dashed or normalized not in os.environ:
            updates[normalized] = value
        removals.append(key)
    for key, value in updates.items():
        os.environ[key] = value
    for key in removals:
        os.environ.pop(key, None)
