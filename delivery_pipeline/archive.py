"""Archive the declared outputs of a successful stage.

Patterns are resolved against the workspace (glob wildcards allowed, a
directory archives every file beneath it) and copied into
``<archive_root>/<stage-slug>/`` with their workspace-relative layout kept.
Each copy gets a ``.sha256`` checksum sidecar.
"""

from __future__ import annotations

import glob
import hashlib
import logging
import re
import shutil
import typing as typ
from pathlib import Path, PurePosixPath

from .errors import StageExecutionError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = ["archive_outputs", "match_workspace_paths", "stage_slug"]

logger = logging.getLogger(__name__)

CHECKSUM_ALGORITHM = "sha256"


def stage_slug(name: str) -> str:
    """Return a filesystem-friendly directory name for stage ``name``."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "stage"


def _files_under(path: Path) -> list[Path]:
    if path.is_file():
        return [path]
    if path.is_dir():
        return sorted(child for child in path.rglob("*") if child.is_file())
    return []


def match_workspace_paths(workspace: Path, pattern: str) -> list[Path]:
    """Return the files matching ``pattern`` relative to ``workspace``.

    Raises
    ------
    StageExecutionError
        Raised when ``pattern`` is absolute or climbs out of the workspace.
    """
    candidate = PurePosixPath(pattern.replace("\\", "/"))
    if candidate.is_absolute() or ".." in candidate.parts:
        msg = f"Archive pattern must stay inside the workspace: {pattern}"
        raise StageExecutionError("archive", msg)
    if glob.has_magic(pattern):
        matches: set[Path] = set()
        for match in workspace.glob(candidate.as_posix()):
            matches.update(_files_under(match))
        return sorted(matches)
    return _files_under(workspace.joinpath(*candidate.parts))


def _safe_destination(target_dir: Path, relative: Path) -> Path:
    destination = (target_dir / relative).resolve()
    if not destination.is_relative_to(target_dir.resolve()):
        msg = f"Destination escapes archive directory: {relative}"
        raise StageExecutionError("archive", msg)
    return destination


def _write_checksum(path: Path) -> str:
    """Write the checksum sidecar for ``path`` and return the digest."""
    hasher = hashlib.new(CHECKSUM_ALGORITHM)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            hasher.update(chunk)
    digest = hasher.hexdigest()
    sidecar = path.with_name(f"{path.name}.{CHECKSUM_ALGORITHM}")
    sidecar.write_text(f"{digest}  {path.name}\n", encoding="utf-8")
    return digest


def archive_outputs(
    stage_name: str,
    patterns: cabc.Iterable[str],
    workspace: Path,
    archive_root: Path,
) -> list[Path]:
    """Copy files matching ``patterns`` into the stage's archive directory.

    Parameters
    ----------
    stage_name
        Name of the stage that produced the files.
    patterns
        Workspace-relative paths or glob patterns.
    workspace
        Checkout the patterns are resolved against.
    archive_root
        Directory holding one sub-directory per archiving stage.

    Returns
    -------
    list[Path]
        Archived copies, in the order they were written.

    Raises
    ------
    StageExecutionError
        Raised when a pattern matches nothing or resolves outside the
        workspace. Nothing is copied in that case.
    """
    target_dir = archive_root / stage_slug(stage_name)
    archive_resolved = archive_root.resolve()
    planned: list[tuple[Path, Path]] = []
    for pattern in patterns:
        try:
            sources = match_workspace_paths(workspace, pattern)
        except StageExecutionError as exc:
            raise StageExecutionError(stage_name, exc.detail) from exc
        # Files already under the archive root are never re-archived.
        sources = [
            path for path in sources if not path.resolve().is_relative_to(archive_resolved)
        ]
        if not sources:
            msg = f"No files matched archive pattern '{pattern}'"
            raise StageExecutionError(stage_name, msg)
        for source in sources:
            relative = source.relative_to(workspace)
            try:
                planned.append((source, _safe_destination(target_dir, relative)))
            except StageExecutionError as exc:
                raise StageExecutionError(stage_name, exc.detail) from exc

    # Nothing is copied until every pattern has resolved.
    archived: list[Path] = []
    for source, destination in planned:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
        _write_checksum(destination)
        logger.info("Archived '%s' -> '%s'", source.relative_to(workspace), destination)
        archived.append(destination)
    return archived
