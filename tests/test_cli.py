"""Tests for monobump.cli."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from monobump.cli import cli
from monobump.config import consignments_dir
from monobump.consignments import read_consignments


def _invoke(root: Path, *args: str):
    return CliRunner().invoke(cli, ["--root", str(root), *args])


class TestAdd:
    def test_creates_consignment(self, workspace: Path) -> None:
        result = _invoke(
            workspace, "add", "-p", "core", "-p", "api", "-t", "minor", "-m", "New API",
            "--meta", "pr=42",
        )

        assert result.exit_code == 0, result.output
        assert "Created consignment" in result.output
        (consignment,) = read_consignments(consignments_dir(workspace))
        assert consignment.packages == ["core", "api"]
        assert consignment.summary == "New API"
        assert consignment.metadata == {"pr": "42"}

    def test_rejects_bad_change_type(self, workspace: Path) -> None:
        result = _invoke(workspace, "add", "-p", "core", "-t", "huge", "-m", "x")
        assert result.exit_code == 2

    def test_rejects_bad_meta(self, workspace: Path) -> None:
        result = _invoke(workspace, "add", "-p", "core", "-t", "patch", "-m", "x", "--meta", "pr")
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_unknown_package(self, workspace: Path) -> None:
        result = _invoke(workspace, "add", "-p", "ghost", "-t", "patch", "-m", "x")
        assert result.exit_code == 1
        assert "ERROR: consignment <new>: unknown package(s): ghost" in result.output


class TestStatus:
    def test_shows_plan(self, workspace: Path, add_pending: Callable[..., object]) -> None:
        add_pending("c1", ["core"], "patch")
        result = _invoke(workspace, "status")
        assert result.exit_code == 0, result.output
        assert "core: 1.1.5 → 1.1.6 (patch, direct)" in result.output


class TestExitCodes:
    def test_nothing_to_release(self, workspace: Path) -> None:
        result = _invoke(workspace, "version")
        assert result.exit_code == 2
        assert "ERROR: no pending consignments found" in result.output

    def test_promote_without_state(self, workspace: Path) -> None:
        result = _invoke(workspace, "promote")
        assert result.exit_code == 3

    def test_config_error(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "status")
        assert result.exit_code == 1
        assert "no packages configured" in result.output

    def test_highest_stage(self, workspace: Path, add_pending: Callable[..., object]) -> None:
        add_pending("c1", ["core"], "minor")
        assert _invoke(workspace, "prerelease").exit_code == 0
        assert _invoke(workspace, "promote").exit_code == 0
        assert _invoke(workspace, "promote").exit_code == 0

        result = _invoke(workspace, "promote")

        assert result.exit_code == 2
        assert "already at highest pre-release stage 'rc'" in result.output


class TestDispatch:
    @patch("monobump.cli.run_version")
    def test_version_options(self, mock_run: MagicMock, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "version", "--preview", "-p", "core", "-p", "api")
        assert result.exit_code == 0, result.output
        mock_run.assert_called_once_with(
            tmp_path.resolve(), preview=True, packages=("core", "api")
        )

    @patch("monobump.cli.run_snapshot")
    def test_snapshot_defaults(self, mock_run: MagicMock, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "snapshot")
        assert result.exit_code == 0, result.output
        mock_run.assert_called_once_with(tmp_path.resolve(), preview=False, packages=())

    @patch("monobump.cli.run_prerelease")
    def test_prerelease(self, mock_run: MagicMock, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "prerelease", "--preview")
        assert result.exit_code == 0, result.output
        mock_run.assert_called_once_with(tmp_path.resolve(), preview=True, packages=())


class TestRemove:
    def test_by_id(self, workspace: Path, add_pending: Callable[..., object]) -> None:
        add_pending("c1", ["core"], "minor")
        result = _invoke(workspace, "remove", "--id", "c1")
        assert result.exit_code == 0, result.output
        assert "Removed 1 consignment(s)" in result.output
        assert read_consignments(consignments_dir(workspace)) == []

    def test_requires_id_or_all(self, workspace: Path) -> None:
        result = _invoke(workspace, "remove")
        assert result.exit_code == 2
        assert "specify --id or --all" in result.output

    def test_id_and_all_conflict(self, workspace: Path) -> None:
        result = _invoke(workspace, "remove", "--id", "c1", "--all")
        assert result.exit_code == 2

    def test_unknown_id(self, workspace: Path) -> None:
        result = _invoke(workspace, "remove", "--id", "ghost")
        assert result.exit_code == 1
        assert "ERROR: consignment ghost: not found" in result.output


class TestValidate:
    def test_passes(self, workspace: Path) -> None:
        result = _invoke(workspace, "validate")
        assert result.exit_code == 0, result.output
        assert "Validation passed" in result.output

    def test_fails(self, workspace: Path, add_pending: Callable[..., object]) -> None:
        add_pending("c1", ["ghost"], "patch")
        result = _invoke(workspace, "validate")
        assert result.exit_code == 1
        assert "c1.md: consignment c1: unknown package(s): ghost" in result.output
        assert "ERROR: validation failed with 1 error(s)" in result.output
