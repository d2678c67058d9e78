"""Workspace guard: sandboxed path resolution and file operations."""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from hermesbridge.errors import ExecBoundsError, SandboxViolation, WorkspaceError
from hermesbridge.utils.diffs import apply_patch, normalize_line_endings
from hermesbridge.utils.sensitive import NameRules, sensitive_rules, status_ignore_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SandboxedPath:
    """A path known to lie inside the workspace and outside the denylist.

    Only Workspace.resolve() creates these; every file operation takes one.
    """

    absolute: Path
    relative: str

    def __str__(self) -> str:
        return self.relative


@dataclass
class DirEntry:
    """One entry of a directory listing."""

    name: str
    is_dir: bool

    def render(self) -> str:
        return f"{'📁' if self.is_dir else '📄'} {self.name}"


@dataclass
class WorkspaceStatus:
    """Aggregate workspace size."""

    file_count: int
    total_bytes: int

    @property
    def total_mb(self) -> float:
        return self.total_bytes / (1024 * 1024)


class Workspace:
    """Handles file I/O inside the sandbox root with safety checks."""

    def __init__(
        self,
        root: Path,
        max_read_mb: int = 8,
        max_write_mb: int = 2,
        rules: Optional[NameRules] = None,
    ):
        """Initialize the workspace guard.

        Args:
            root: Sandbox root directory
            max_read_mb: Maximum file size to read (MB)
            max_write_mb: Maximum file size to write (MB)
            rules: Sensitive-name denylist (defaults to the built-in one)
        """
        self.root = Path(root).resolve()
        self.max_read_bytes = max_read_mb * 1024 * 1024
        self.max_write_bytes = max_write_mb * 1024 * 1024
        self.rules = rules or sensitive_rules()
        self.status_ignores = status_ignore_rules()

    def resolve(self, raw_path: str) -> SandboxedPath:
        """Resolve a user- or model-supplied path inside the sandbox.

        Args:
            raw_path: Relative or absolute path string; empty means the root

        Returns:
            SandboxedPath

        Raises:
            SandboxViolation: If the path escapes the root or names a sensitive file
        """
        raw = (raw_path or "").strip()
        if "\x00" in raw:
            raise SandboxViolation(raw_path, "Invalid path")

        candidate = Path(raw) if raw else Path(".")
        if not candidate.is_absolute():
            candidate = self.root / candidate

        try:
            resolved = candidate.resolve()
        except (OSError, RuntimeError) as e:
            raise SandboxViolation(raw_path, f"Cannot resolve path ({e})")

        try:
            relative = resolved.relative_to(self.root).as_posix()
        except ValueError:
            logger.warning("Blocked path outside workspace: %s", raw_path)
            raise SandboxViolation(raw_path, "Path outside workspace")

        if self.rules.matches(relative):
            logger.warning("Blocked sensitive path: %s", raw_path)
            raise SandboxViolation(raw_path, "Sensitive file blocked")

        return SandboxedPath(absolute=resolved, relative=relative)

    def list_dir(self, path: SandboxedPath) -> list[DirEntry]:
        """List a directory non-recursively, hiding sensitive entries.

        Args:
            path: Directory to list

        Returns:
            Entries sorted with directories first, then by name
        """
        target = self._require(path).absolute
        if not target.exists():
            raise WorkspaceError(f"Directory not found: {path}")
        if not target.is_dir():
            raise WorkspaceError(f"Not a directory: {path}")

        entries = []
        try:
            for child in target.iterdir():
                relative = child.relative_to(self.root).as_posix()
                if self.rules.matches(relative):
                    continue
                entries.append(DirEntry(name=child.name, is_dir=child.is_dir()))
        except OSError as e:
            raise WorkspaceError(f"Cannot list {path}: {e}")

        return sorted(entries, key=lambda e: (not e.is_dir, e.name.lower()))

    def read(self, path: SandboxedPath) -> str:
        """Read a UTF-8 text file.

        Args:
            path: File to read

        Returns:
            Full file content
        """
        file_path = self._require(path).absolute

        if not file_path.exists():
            raise WorkspaceError(f"File not found: {path}")

        if not file_path.is_file():
            raise WorkspaceError(f"Not a file: {path}")

        try:
            size = file_path.stat().st_size
        except OSError as e:
            raise WorkspaceError(f"Cannot stat file: {e}")
        if size > self.max_read_bytes:
            size_mb = size / (1024 * 1024)
            max_mb = self.max_read_bytes / (1024 * 1024)
            raise WorkspaceError(f"File too large: {size_mb:.2f} MB (max: {max_mb} MB)")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return f.read()
        except UnicodeDecodeError:
            raise WorkspaceError(f"File is not valid UTF-8 text: {path}")
        except IOError as e:
            raise WorkspaceError(f"Cannot read file: {e}")

    def write(self, path: SandboxedPath, content: str) -> None:
        """Create or overwrite a file atomically.

        Args:
            path: File to write
            content: New content
        """
        file_path = self._require(path).absolute

        if path.relative == "." or file_path.is_dir():
            raise WorkspaceError(f"Not a file: {path}")

        content_bytes = len(content.encode("utf-8"))
        if content_bytes > self.max_write_bytes:
            size_mb = content_bytes / (1024 * 1024)
            max_mb = self.max_write_bytes / (1024 * 1024)
            raise WorkspaceError(f"Content too large: {size_mb:.2f} MB (max: {max_mb} MB)")

        # Write atomically (temp file + rename)
        temp_name = None
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=file_path.parent,
                prefix=f".{file_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                temp_name = f.name
                f.write(content)
            # Temp files are created 0600; keep the target's permissions
            mode = file_path.stat().st_mode & 0o777 if file_path.exists() else 0o644
            os.chmod(temp_name, mode)
            os.replace(temp_name, file_path)
        except OSError as e:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise WorkspaceError(f"Cannot write file: {e}")

        logger.info("Wrote %s (%d bytes)", path, content_bytes)

    def append(self, path: SandboxedPath, content: str) -> None:
        """Append to a file, creating it if needed.

        A newline is inserted first when the existing content lacks one.

        Args:
            path: File to append to
            content: Text to append
        """
        existing = self.read(path) if self._require(path).absolute.exists() else ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        self.write(path, existing + content)

    def edit_line(self, path: SandboxedPath, line: int, content: str) -> int:
        """Replace one 1-indexed line of a file.

        Args:
            path: File to edit
            line: Line number, 1-indexed
            content: Replacement text for that line

        Returns:
            Number of lines in the file

        Raises:
            ExecBoundsError: If line is outside [1, line count]
        """
        original = self.read(path)
        lines = original.split("\n")
        trailing_newline = original.endswith("\n")
        if trailing_newline:
            lines.pop()

        if line < 1 or line > len(lines):
            raise ExecBoundsError(f"Invalid line number {line}. {path} has {len(lines)} lines")

        lines[line - 1] = content
        updated = "\n".join(lines) + ("\n" if trailing_newline else "")
        self.write(path, updated)
        return len(lines)

    def apply_diff(self, path: SandboxedPath, unified_diff: str) -> None:
        """Apply a single-file unified diff.

        Args:
            path: File to patch
            unified_diff: Unified diff text
        """
        content = normalize_line_endings(self.read(path))
        success, patched, error = apply_patch(content, normalize_line_endings(unified_diff))
        if not success:
            raise WorkspaceError(error or "Patch failed")
        self.write(path, patched)

    def status(self) -> WorkspaceStatus:
        """Count files and bytes under the root, skipping VCS and build directories.

        Returns:
            WorkspaceStatus
        """
        file_count = 0
        total_bytes = 0

        for child in self.root.rglob("*"):
            try:
                if not child.is_file():
                    continue
                if self.status_ignores.matches(child.relative_to(self.root).as_posix()):
                    continue
                total_bytes += child.stat().st_size
                file_count += 1
            except OSError:
                continue  # Vanished or unreadable entries do not count

        return WorkspaceStatus(file_count=file_count, total_bytes=total_bytes)

    def _require(self, path: SandboxedPath) -> SandboxedPath:
        if not isinstance(path, SandboxedPath):
            raise TypeError("Workspace operations require a SandboxedPath from resolve()")
        return path
