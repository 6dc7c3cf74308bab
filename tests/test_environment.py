"""Tests for :mod:`delivery_pipeline.environment`."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from delivery_pipeline.environment import (
    normalize_input_env,
    require_env,
    require_env_path,
)
from delivery_pipeline.errors import ConfigurationError


class TestRequireEnv:
    """Tests for :func:`require_env` and :func:`require_env_path`."""

    def test_returns_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Set variables are returned verbatim."""
        monkeypatch.setenv("SONAR_TOKEN", "squ_abc")

        assert require_env("SONAR_TOKEN") == "squ_abc"

    @pytest.mark.parametrize("value", [None, ""], ids=["unset", "empty"])
    def test_missing_value_raises(
        self, monkeypatch: pytest.MonkeyPatch, value: str | None
    ) -> None:
        """Unset and empty variables are configuration errors."""
        if value is None:
            monkeypatch.delenv("NEXUS_PASSWORD", raising=False)
        else:
            monkeypatch.setenv("NEXUS_PASSWORD", value)

        with pytest.raises(
            ConfigurationError, match="Environment variable 'NEXUS_PASSWORD' is not set"
        ):
            require_env("NEXUS_PASSWORD")

    def test_reads_explicit_mapping(self) -> None:
        """An explicit mapping is used instead of the process environment."""
        assert require_env("JIRA_USER", {"JIRA_USER": "bot"}) == "bot"

    def test_path_value(self) -> None:
        """Path helpers wrap the value in :class:`Path`."""
        path = require_env_path("WORKSPACE", {"WORKSPACE": "/var/ci/orders"})

        assert path == Path("/var/ci/orders")


class TestNormalizeInputEnv:
    """Tests for :func:`normalize_input_env`."""

    def test_folds_dashed_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Dashed input names are rewritten with underscores."""
        monkeypatch.setenv("INPUT_EVENT-FILE", "webhook.json")
        # Registered with monkeypatch so the folded key is removed afterwards.
        monkeypatch.setenv("INPUT_EVENT_FILE", "placeholder")
        monkeypatch.delenv("INPUT_EVENT_FILE")

        normalize_input_env()

        assert os.environ["INPUT_EVENT_FILE"] == "webhook.json"
        assert "INPUT_EVENT-FILE" not in os.environ

    def test_existing_underscore_key_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The underscore spelling is kept unless dashed keys are preferred."""
        monkeypatch.setenv("INPUT_REPORT-FILE", "dashed.json")
        monkeypatch.setenv("INPUT_REPORT_FILE", "underscore.json")

        normalize_input_env()

        assert os.environ["INPUT_REPORT_FILE"] == "underscore.json"
        assert "INPUT_REPORT-FILE" not in os.environ

    def test_prefer_dashed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """``prefer_dashed`` lets the dashed spelling overwrite."""
        monkeypatch.setenv("INPUT_REPORT-FILE", "dashed.json")
        monkeypatch.setenv("INPUT_REPORT_FILE", "underscore.json")

        normalize_input_env(prefer_dashed=True)

        assert os.environ["INPUT_REPORT_FILE"] == "dashed.json"

    def test_ignores_other_prefixes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Variables outside the prefix are untouched."""
        monkeypatch.setenv("OTHER-VAR", "kept")

        normalize_input_env()

        assert os.environ["OTHER-VAR"] == "kept"
