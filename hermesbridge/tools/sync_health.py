"""Sync health gate: decides whether destructive host/workspace syncs may run."""

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from hermesbridge.constants import (
    DEFAULT_CRITICAL_FILES,
    DEFAULT_MIN_FILE_COUNT,
    DEFAULT_SYNC_SOURCE,
    DEFAULT_SYNC_TIMEOUT,
    SYNC_MARKER_NAME,
)
from hermesbridge.errors import SyncUnhealthy

logger = logging.getLogger(__name__)

SyncRunner = Callable[[list[str], int], subprocess.CompletedProcess]


@dataclass
class SyncHealth:
    """Point-in-time workspace health. Never cached beyond one check."""

    healthy: bool
    file_count: int
    missing_critical: list[str] = field(default_factory=list)
    volume_mount_working: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class SyncOutcome:
    """Result of running the sync daemon."""

    success: bool
    message: str
    transferred: int = 0


def run_rsync(args: list[str], timeout: int) -> subprocess.CompletedProcess:
    """Run the sync daemon client and capture its output."""
    return subprocess.run(args, capture_output=True, text=True, timeout=timeout)


class SyncHealthGate:
    """Inspects the workspace before letting a sync overwrite either side."""

    def __init__(
        self,
        workspace_root: Path,
        critical_files: Optional[list[str]] = None,
        min_file_count: int = DEFAULT_MIN_FILE_COUNT,
        sync_source: str = DEFAULT_SYNC_SOURCE,
        timeout: int = DEFAULT_SYNC_TIMEOUT,
        runner: SyncRunner = run_rsync,
    ):
        """Initialize the gate.

        Args:
            workspace_root: Sandbox root directory
            critical_files: Filenames that must exist at the root
            min_file_count: Minimum number of root-level files
            sync_source: rsync source/destination on the host side
            timeout: Sync daemon timeout in seconds
            runner: Callable that executes the sync daemon
        """
        self.workspace_root = workspace_root
        self.critical_files = list(critical_files if critical_files is not None else DEFAULT_CRITICAL_FILES)
        self.min_file_count = min_file_count
        self.sync_source = sync_source.rstrip("/")
        self.timeout = timeout
        self.runner = runner

    def check(self) -> SyncHealth:
        """Compute workspace health.

        Returns:
            SyncHealth for this instant
        """
        try:
            files = [entry.name for entry in self.workspace_root.iterdir() if entry.is_file()]
        except OSError as e:
            return SyncHealth(
                healthy=False,
                file_count=0,
                missing_critical=list(self.critical_files),
                volume_mount_working=False,
                warnings=[f"Workspace access error: {e}"],
            )

        missing = [name for name in self.critical_files if name not in files]
        warnings = []

        if len(files) < self.min_file_count:
            warnings.append(f"Only {len(files)} files found (minimum {self.min_file_count} expected)")

        volume_mount_working = self.test_volume_mount()
        if not volume_mount_working:
            warnings.append("Volume mount may not be working properly")

        return SyncHealth(
            healthy=not missing and len(files) >= self.min_file_count,
            file_count=len(files),
            missing_critical=missing,
            volume_mount_working=volume_mount_working,
            warnings=warnings,
        )

    def test_volume_mount(self) -> bool:
        """Write, read back and delete a marker file in the workspace."""
        marker = self.workspace_root / SYNC_MARKER_NAME
        expected = f"sync-test-{time.time()}"
        try:
            marker.write_text(expected)
            ok = marker.read_text() == expected
            marker.unlink()
            return ok
        except OSError:
            return False

    def can_pull_from_host(self) -> bool:
        return self.check().healthy

    def can_push_to_host(self) -> bool:
        return self.check().healthy

    def require_healthy(self) -> SyncHealth:
        """Check health and refuse when unhealthy.

        Returns:
            The healthy SyncHealth

        Raises:
            SyncUnhealthy: With the itemized missing files and reasons
        """
        health = self.check()
        if health.healthy:
            return health

        reasons = []
        if health.missing_critical:
            reasons.append(f"Missing critical files: {', '.join(health.missing_critical)}")
        if health.file_count < self.min_file_count:
            reasons.append(f"Too few files ({health.file_count} < {self.min_file_count})")
        raise SyncUnhealthy(health.missing_critical, reasons)

    def pull(self) -> SyncOutcome:
        """Pull the host copy into the workspace (destructive for the workspace).

        Raises:
            SyncUnhealthy: If the workspace is not healthy
        """
        self.require_healthy()
        outcome = self._run([f"{self.sync_source}/", f"{self.workspace_root}/"])
        if outcome.success and not self.check().healthy:
            return SyncOutcome(False, "Sync completed but workspace still unhealthy", outcome.transferred)
        return outcome

    def push(self) -> SyncOutcome:
        """Push the workspace to the host copy (destructive for the host).

        Raises:
            SyncUnhealthy: If the workspace is not healthy
        """
        self.require_healthy()
        return self._run([f"{self.workspace_root}/", f"{self.sync_source}/"])

    def _run(self, endpoints: list[str]) -> SyncOutcome:
        args = ["rsync", "-av", "--delete", "--exclude=node_modules", "--exclude=.git", *endpoints]
        logger.info("Running sync: %s", " ".join(args))

        try:
            result = self.runner(args, self.timeout)
        except FileNotFoundError:
            return SyncOutcome(False, "rsync is not installed")
        except subprocess.TimeoutExpired:
            return SyncOutcome(False, f"Sync timed out after {self.timeout}s")

        stderr = (result.stderr or "").strip()
        if result.returncode != 0 and "vanished" not in stderr:
            logger.error("Sync failed (exit %s): %s", result.returncode, stderr)
            return SyncOutcome(False, f"Sync failed: {stderr or f'exit code {result.returncode}'}")

        transferred = [
            line for line in (result.stdout or "").splitlines()
            if line.strip()
            and line.strip() != "./"
            and not line.startswith(("sending ", "receiving ", "sent ", "total size", "building "))
        ]
        return SyncOutcome(True, f"Updated {len(transferred)} files", len(transferred))

    def diagnostics(self) -> str:
        """Render a human-readable diagnostic report."""
        health = self.check()
        lines = [
            "🔍 **Sync Diagnostics:**",
            "",
            f"📁 Workspace: {self.workspace_root}",
            f"📊 Files: {health.file_count}",
            f"❤️ Health: {'✅ Healthy' if health.healthy else '❌ Unhealthy'}",
        ]
        if health.missing_critical:
            lines.append(f"⚠️ Missing: {', '.join(health.missing_critical)}")

        lines.append("")
        lines.append(f"🔗 Volume Mount: {'✅ Working' if health.volume_mount_working else '❌ Not Working'}")
        lines.append(f"📡 rsync: {'✅ Installed' if shutil.which('rsync') else '❌ Not installed'}")
        lines.append(f"🌐 Sync source: {self.sync_source}")
        lines.append(f"⬇️ Pull: {'✅ Allowed' if self.can_pull_from_host() else '🚫 Blocked'}")
        lines.append(f"⬆️ Push: {'✅ Allowed' if self.can_push_to_host() else '🚫 Blocked'}")

        try:
            names = sorted(entry.name for entry in self.workspace_root.iterdir())
            lines.append("")
            lines.append(f"📂 Workspace Files ({len(names)} total):")
            lines.append("```")
            lines.extend(names[:10])
            if len(names) > 10:
                lines.append(f"... and {len(names) - 10} more")
            lines.append("```")
        except OSError as e:
            lines.append(f"\n❌ Could not list files: {e}")

        return "\n".join(lines)


def format_health(health: SyncHealth) -> str:
    """Render SyncHealth as a status message."""
    text = (
        "📊 **Sync Status:**\n\n"
        f"Workspace files: {health.file_count}\n"
        f"Health: {'✅ Healthy' if health.healthy else '❌ Unhealthy'}\n"
        f"Volume mount: {'✅ Working' if health.volume_mount_working else '❌ Not working'}"
    )
    if health.missing_critical:
        text += f"\n\n⚠️ Missing critical files: {', '.join(health.missing_critical)}"
    if health.warnings:
        text += "\n⚠️ Warnings:\n" + "\n".join(health.warnings)
    return text
