"""Run identifiers used to correlate log lines of a single pipeline run."""

from __future__ import annotations

import uuid_utils


def new_run_id() -> str:
    """Return a time-ordered UUIDv7 hex string for a new pipeline run."""
    return uuid_utils.uuid7().hex
