"""Tests for :mod:`delivery_pipeline.correlation_id`."""

from __future__ import annotations

import re
import uuid

from delivery_pipeline.correlation_id import new_run_id


def test_run_id_is_uuid7_hex() -> None:
    """Run ids are 32 hex digits carrying version 7."""
    run_id = new_run_id()

    assert re.fullmatch(r"[0-9a-f]{32}", run_id)
    assert uuid.UUID(hex=run_id).version == 7


def test_run_ids_are_distinct() -> None:
    """Consecutive runs get different ids."""
    assert len({new_run_id() for _ in range(50)}) == 50
