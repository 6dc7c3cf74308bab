"""Tests for :mod:`delivery_pipeline.cli`."""

from __future__ import annotations

import json
import typing as typ

import cyclopts
import pytest

from delivery_pipeline import cli
from test_support.doubles import python_argv

if typ.TYPE_CHECKING:
    from pathlib import Path


def _stage(name: str, script: str, *, archive: list[str] | None = None) -> str:
    lines = [
        "[[stages]]",
        f"name = {json.dumps(name)}",
        f"run = {json.dumps(python_argv(script))}",
    ]
    if archive:
        lines.append(f"archive = {json.dumps(archive)}")
    return "\n".join(lines)


def _write_config(workspace: Path, *stages: str, header: str = "") -> Path:
    body = "\n\n".join(
        [
            header or '[pipeline]\nproject_name = "orders"',
            *stages,
        ]
    )
    path = workspace / "pipeline.toml"
    path.write_text(body + "\n", encoding="utf-8")
    return path


BUILD = _stage(
    "Build",
    "import pathlib; p = pathlib.Path('target'); p.mkdir(exist_ok=True); "
    "(p / 'orders.jar').write_bytes(b'jar')",
    archive=["target/*.jar"],
)
FAILING_SCAN = _stage(
    "Scan",
    "import sys; sys.stderr.write('CVE-2024-3094 CRITICAL\\n'); sys.exit(1)",
)
DEPLOY = _stage("Deploy", "import pathlib; pathlib.Path('deployed').touch()")


class TestRunCommand:
    """End-to-end runs through the ``run`` command."""

    def test_successful_run(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """All stages run, outputs are archived and the report is written."""
        config_file = _write_config(workspace, BUILD, DEPLOY)
        report = workspace / "out" / "report.json"

        cli.run(config_file, branch="main", report_file=report)

        assert (workspace / "deployed").exists()
        assert (workspace / "archive" / "build" / "target" / "orders.jar").is_file()
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["status"] == "succeeded"
        assert data["notification"]["message"] == (
            "Pipeline succeeded for orders (main): 2 stage(s) passed."
        )
        out = capsys.readouterr().out
        assert "pipeline_status=succeeded" in out
        assert "[success] #builds:" in out

    def test_failed_stage_exits_one(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A failing stage stops the run and exits with status 1."""
        config_file = _write_config(workspace, BUILD, FAILING_SCAN, DEPLOY)
        report = workspace / "report.json"

        with pytest.raises(SystemExit) as excinfo:
            cli.run(config_file, report_file=report)

        assert excinfo.value.code == 1
        assert not (workspace / "deployed").exists()
        assert (workspace / "archive" / "build" / "target" / "orders.jar").is_file()
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["failed_stage"] == "Scan"
        assert [stage["status"] for stage in data["stages"]] == [
            "succeeded",
            "failed",
            "skipped",
        ]
        err = capsys.readouterr().err
        assert "::error title=Pipeline Failure::Stage 'Scan' failed:" in err
        assert "CVE-2024-3094 CRITICAL" in err

    def test_missing_config_exits_two(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Configuration errors exit with status 2."""
        with pytest.raises(SystemExit) as excinfo:
            cli.run(tmp_path / "absent.toml")

        assert excinfo.value.code == cli.EXIT_CONFIGURATION
        assert "::error title=Configuration Error::" in capsys.readouterr().err

    def test_incomplete_config_runs_nothing(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Missing tool settings abort before the first stage."""
        config_file = _write_config(workspace)

        with pytest.raises(SystemExit) as excinfo:
            cli.run(config_file)

        assert excinfo.value.code == 2
        captured = capsys.readouterr()
        assert "sonar_server_url" in captured.err
        assert "$ " not in captured.out

    def test_bad_event_file_exits_two(self, workspace: Path) -> None:
        """An unreadable webhook payload is a configuration error."""
        config_file = _write_config(workspace, DEPLOY)

        with pytest.raises(SystemExit) as excinfo:
            cli.run(config_file, event_file=workspace / "missing.json")

        assert excinfo.value.code == 2
        assert not (workspace / "deployed").exists()

    def test_dry_run_lists_stages(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A dry run prints the plan and executes nothing."""
        config_file = _write_config(workspace, BUILD, DEPLOY)

        cli.run(config_file, dry_run=True)

        out = capsys.readouterr().out
        assert "Dry run: 2 stage(s) would run" in out
        assert "1. Build [CommandAction] archives: target/*.jar" in out
        assert "2. Deploy [CommandAction]" in out
        assert not (workspace / "deployed").exists()

    def test_dry_run_from_environment(
        self,
        workspace: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """``PIPELINE_DRY_RUN`` also suppresses execution."""
        monkeypatch.setenv("PIPELINE_DRY_RUN", "true")
        config_file = _write_config(workspace, DEPLOY)

        cli.run(config_file)

        assert "Dry run: 1 stage(s) would run" in capsys.readouterr().out
        assert not (workspace / "deployed").exists()


class TestTriggerResolution:
    """Where the branch of a run comes from."""

    def test_event_file(self, workspace: Path, tmp_path: Path) -> None:
        """A webhook payload names the branch."""
        config_file = _write_config(workspace, DEPLOY)
        event = tmp_path / "event.json"
        event.write_text(
            json.dumps({"ref": "refs/heads/release/1.4", "after": "a" * 40}),
            encoding="utf-8",
        )
        report = workspace / "report.json"

        cli.run(config_file, event_file=event, event_key="push", report_file=report)

        data = json.loads(report.read_text(encoding="utf-8"))
        assert "(release/1.4)" in data["notification"]["message"]

    def test_ci_branch_variable(
        self, workspace: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The CI branch variable is used without a payload or ``--branch``."""
        monkeypatch.setenv("GIT_BRANCH", "origin/develop")
        config_file = _write_config(workspace, DEPLOY)
        report = workspace / "report.json"

        cli.run(config_file, report_file=report)

        data = json.loads(report.read_text(encoding="utf-8"))
        assert "orders (develop)" in data["notification"]["message"]

    def test_no_branch(self, workspace: Path) -> None:
        """Runs without any branch information still complete."""
        config_file = _write_config(workspace, DEPLOY)
        report = workspace / "report.json"

        cli.run(config_file, report_file=report)

        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["notification"]["message"].startswith("Pipeline succeeded for orders:")


class TestStagesCommand:
    """Listing the assembled stages."""

    def test_lists_stages(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Stages are printed in execution order."""
        config_file = _write_config(workspace, BUILD, DEPLOY)

        cli.stages(config_file)

        assert capsys.readouterr().out.splitlines() == [
            "1. Build [CommandAction] archives: target/*.jar",
            "2. Deploy [CommandAction]",
        ]

    def test_invalid_config(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Invalid stage declarations exit with status 2."""
        config_file = _write_config(
            workspace, '[[stages]]\nname = "Build"\nuses = "compile"'
        )

        with pytest.raises(SystemExit) as excinfo:
            cli.stages(config_file)

        assert excinfo.value.code == 2
        assert "unknown kind 'compile'" in capsys.readouterr().err

    def test_invoked_through_app(
        self, workspace: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The cyclopts app dispatches to the ``stages`` command."""
        config_file = _write_config(workspace, DEPLOY)

        cli.app(["stages", "--config-file", str(config_file)])

        assert "1. Deploy [CommandAction]" in capsys.readouterr().out

    def test_reads_input_environment(
        self,
        workspace: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Options fall back to ``INPUT_`` variables set by the CI host."""
        config_file = _write_config(workspace, DEPLOY)
        monkeypatch.setenv("INPUT_CONFIG_FILE", str(config_file))

        cli.app(["stages"])

        assert "1. Deploy [CommandAction]" in capsys.readouterr().out


def test_app_uses_input_prefix() -> None:
    """The app reads ``INPUT_`` prefixed environment variables."""
    env_configs = [
        entry
        for entry in getattr(cli.app, "config", ())
        if isinstance(entry, cyclopts.config.Env)
    ]

    assert len(env_configs) == 1
    assert env_configs[0].prefix == "INPUT_"
    assert env_configs[0].command is False
