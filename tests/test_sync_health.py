"""Tests for the sync health gate."""

import subprocess

import pytest

from hermesbridge.errors import SyncUnhealthy
from hermesbridge.tools.sync_health import SyncHealthGate, format_health


class FakeRunner:
    """Records rsync invocations and returns a canned result."""

    def __init__(self, returncode=0, stdout="", stderr="", error=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.error = error
        self.calls = []

    def __call__(self, args, timeout):
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(args, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def healthy_root(temp_dir):
    root = temp_dir / "healthy"
    root.mkdir()
    for name in ["package.json", "README.md", "tsconfig.json", ".env", "index.ts"]:
        (root / name).write_text("{}")
    return root


def test_healthy_workspace(healthy_root):
    """Test that a complete workspace is healthy."""
    health = SyncHealthGate(healthy_root).check()

    assert health.healthy
    assert health.file_count == 5
    assert health.missing_critical == []
    assert health.volume_mount_working
    assert not (healthy_root / ".sync-test").exists()


def test_missing_package_json_is_unhealthy(healthy_root):
    """Test that a missing critical file makes the workspace unhealthy."""
    (healthy_root / "package.json").unlink()
    (healthy_root / "extra.txt").write_text("x")

    health = SyncHealthGate(healthy_root).check()

    assert not health.healthy
    assert health.missing_critical == ["package.json"]


def test_too_few_files_is_unhealthy(temp_dir):
    """Test the minimum file count."""
    root = temp_dir / "sparse"
    root.mkdir()
    (root / "package.json").write_text("{}")

    gate = SyncHealthGate(root, critical_files=["package.json"], min_file_count=3)
    health = gate.check()

    assert not health.healthy
    assert "Only 1 files found" in health.warnings[0]


def test_missing_root_is_unhealthy(temp_dir):
    """Test that an unreadable workspace is reported, not raised."""
    health = SyncHealthGate(temp_dir / "gone").check()

    assert not health.healthy
    assert health.file_count == 0
    assert "Workspace access error" in health.warnings[0]


@pytest.mark.parametrize("direction", ["pull", "push"])
def test_unhealthy_refuses_sync(healthy_root, direction):
    """Test that neither direction runs when unhealthy."""
    (healthy_root / "package.json").unlink()
    runner = FakeRunner()
    gate = SyncHealthGate(healthy_root, runner=runner)

    with pytest.raises(SyncUnhealthy) as exc_info:
        getattr(gate, direction)()

    assert exc_info.value.missing_critical == ["package.json"]
    assert any("package.json" in reason for reason in exc_info.value.reasons)
    assert runner.calls == []


def test_pull_runs_rsync_into_workspace(healthy_root):
    """Test the pull command line and transfer count."""
    runner = FakeRunner(stdout="receiving incremental file list\n./\nsrc/a.ts\n\nsent 1 bytes  received 2 bytes\n")
    gate = SyncHealthGate(healthy_root, sync_source="rsync://host:8873/ws/", runner=runner)

    outcome = gate.pull()

    assert outcome.success
    assert outcome.transferred == 1
    (args,) = runner.calls
    assert args[:3] == ["rsync", "-av", "--delete"]
    assert args[-2:] == ["rsync://host:8873/ws/", f"{healthy_root}/"]


def test_push_runs_rsync_to_host(healthy_root):
    """Test that push reverses the endpoints."""
    runner = FakeRunner()
    gate = SyncHealthGate(healthy_root, sync_source="rsync://host:8873/ws", runner=runner)

    assert gate.push().success
    assert runner.calls[0][-2:] == [f"{healthy_root}/", "rsync://host:8873/ws/"]


def test_rsync_failure(healthy_root):
    """Test that a failing daemon is reported."""
    gate = SyncHealthGate(healthy_root, runner=FakeRunner(returncode=10, stderr="connection refused"))

    outcome = gate.pull()

    assert not outcome.success
    assert outcome.message == "Sync failed: connection refused"


def test_vanished_files_are_not_failures(healthy_root):
    """Test that rsync's vanished-file warning still counts as success."""
    gate = SyncHealthGate(healthy_root, runner=FakeRunner(returncode=24, stderr="file has vanished: x"))

    assert gate.pull().success


def test_rsync_missing(healthy_root):
    """Test a host without rsync."""
    gate = SyncHealthGate(healthy_root, runner=FakeRunner(error=FileNotFoundError("rsync")))

    assert gate.pull().message == "rsync is not installed"


def test_rsync_timeout(healthy_root):
    """Test a sync that exceeds its timeout."""
    error = subprocess.TimeoutExpired(["rsync"], 5)
    gate = SyncHealthGate(healthy_root, timeout=5, runner=FakeRunner(error=error))

    assert gate.pull().message == "Sync timed out after 5s"


def test_diagnostics_lists_files(healthy_root):
    """Test the diagnostics report."""
    report = SyncHealthGate(healthy_root).diagnostics()

    assert report.startswith("🔍 **Sync Diagnostics:**")
    assert "✅ Healthy" in report
    assert "package.json" in report


def test_format_health_unhealthy(healthy_root):
    """Test rendering an unhealthy status."""
    (healthy_root / "package.json").unlink()

    text = format_health(SyncHealthGate(healthy_root).check())

    assert "❌ Unhealthy" in text
    assert "Missing critical files: package.json" in text


def test_can_sync_when_healthy(healthy_root):
    """Test both directions are allowed for a healthy workspace."""
    gate = SyncHealthGate(healthy_root)

    assert gate.can_pull_from_host()
    assert gate.can_push_to_host()


def test_cannot_sync_without_package_json(healthy_root):
    """Test both directions are refused when a critical file is missing."""
    (healthy_root / "package.json").unlink()
    gate = SyncHealthGate(healthy_root)

    assert not gate.can_pull_from_host()
    assert not gate.can_push_to_host()


def test_diagnostics_reports_sync_permission(healthy_root):
    """Test that diagnostics say whether pull and push are allowed."""
    gate = SyncHealthGate(healthy_root)
    assert "⬇️ Pull: ✅ Allowed" in gate.diagnostics()

    (healthy_root / "package.json").unlink()
    report = gate.diagnostics()

    assert "⬇️ Pull: 🚫 Blocked" in report
    assert "⬆️ Push: 🚫 Blocked" in report
