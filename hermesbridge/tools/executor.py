"""Command execution inside the workspace with safety checks and limits."""

import logging
import os
import resource
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import IO, Optional

from hermesbridge.constants import DANGEROUS_PATTERNS, DEFAULT_EXEC_MAX_OUTPUT_CHARS

logger = logging.getLogger(__name__)

READ_CHUNK = 8192


@dataclass
class ExecResult:
    """Result of command execution."""

    success: bool
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    command: str
    timed_out: bool = False
    blocked: bool = False
    output_truncated: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "blocked": self.blocked,
            "output_truncated": self.output_truncated,
        }


class _CappedReader(threading.Thread):
    """Drains one pipe, keeping at most `cap` characters.

    Past the cap the command's process group is killed so it cannot keep
    producing output.
    """

    def __init__(self, stream: IO[str], cap: int, on_overflow):
        super().__init__(daemon=True)
        self.stream = stream
        self.cap = cap
        self.on_overflow = on_overflow
        self.chunks: list[str] = []
        self.size = 0
        self.overflowed = False

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read(READ_CHUNK)
                if not chunk:
                    break
                room = self.cap - self.size
                if len(chunk) > room:
                    self.chunks.append(chunk[:room])
                    self.size = self.cap
                    self.overflowed = True
                    self.on_overflow()
                    break
                self.chunks.append(chunk)
                self.size += len(chunk)
        finally:
            self.stream.close()

    def text(self) -> str:
        return "".join(self.chunks)


class Executor:
    """Executes shell commands with a hard timeout, an output cap and resource limits."""

    def __init__(
        self,
        workspace_root: Path,
        timeout: int = 30,
        max_output_chars: int = DEFAULT_EXEC_MAX_OUTPUT_CHARS,
    ):
        """Initialize executor.

        Args:
            workspace_root: Working directory for every command
            timeout: Timeout in seconds
            max_output_chars: Most characters kept from each of stdout and stderr
        """
        self.workspace_root = workspace_root
        self.timeout = timeout
        self.max_output_chars = max_output_chars

    def run(self, command: str, timeout: Optional[int] = None) -> ExecResult:
        """Run a command.

        A non-zero exit is reported in the result, never raised. Output past
        max_output_chars is dropped and the command is killed.

        Args:
            command: Command line to execute
            timeout: Optional timeout override

        Returns:
            ExecResult with execution details
        """
        is_dangerous, reason = self.is_dangerous(command)
        if is_dangerous:
            logger.warning("Blocked dangerous command %r: %s", command, reason)
            return ExecResult(
                success=False,
                stdout="",
                stderr=f"Command blocked: {reason}",
                exit_code=-1,
                duration_ms=0,
                command=command,
                blocked=True,
            )

        timeout_val = timeout if timeout is not None else self.timeout
        start_time = time.time()

        try:
            process = subprocess.Popen(
                command,
                shell=True,
                cwd=str(self.workspace_root),
                env=self._prepare_env(),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                preexec_fn=self._setup_sandbox,
                start_new_session=True,
            )
        except OSError as e:
            return ExecResult(
                success=False,
                stdout="",
                stderr=f"Execution error: {e}",
                exit_code=-1,
                duration_ms=int((time.time() - start_time) * 1000),
                command=command,
            )

        kill = partial(self._kill_group, process)
        readers = [
            _CappedReader(process.stdout, self.max_output_chars, kill),
            _CappedReader(process.stderr, self.max_output_chars, kill),
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            process.wait(timeout=timeout_val)
        except subprocess.TimeoutExpired:
            timed_out = True
            self._kill_group(process)
            process.wait()
            logger.warning("Command timed out after %ss: %s", timeout_val, command)

        for reader in readers:
            reader.join()

        stdout, stderr = (reader.text() for reader in readers)
        truncated = any(reader.overflowed for reader in readers)
        if truncated:
            logger.warning("Command output exceeded %d characters: %s", self.max_output_chars, command)
            stderr += f"\nOutput exceeded {self.max_output_chars} characters; command stopped"
        if timed_out:
            stderr += f"\nCommand timed out after {timeout_val}s"

        return ExecResult(
            success=process.returncode == 0 and not timed_out and not truncated,
            stdout=stdout,
            stderr=stderr,
            exit_code=-1 if timed_out else process.returncode,
            duration_ms=int((time.time() - start_time) * 1000),
            command=command,
            timed_out=timed_out,
            output_truncated=truncated,
        )

    def is_dangerous(self, command: str) -> tuple[bool, str]:
        """Check if a command matches dangerous patterns.

        Args:
            command: Command to check

        Returns:
            Tuple of (is_dangerous, reason)
        """
        for pattern, reason in DANGEROUS_PATTERNS:
            if pattern.search(command):
                return True, reason

        return False, ""

    def _prepare_env(self) -> dict[str, str]:
        """Build a minimal environment; credentials are never passed through."""
        keep_vars = ["PATH", "HOME", "USER", "LANG", "PYTHONPATH", "VIRTUAL_ENV"]
        return {var: os.environ[var] for var in keep_vars if var in os.environ}

    def _setup_sandbox(self) -> None:
        """Setup resource limits for sandboxed execution.

        Called via preexec_fn before command execution.
        """
        try:
            resource.setrlimit(resource.RLIMIT_CPU, (60, 60))
            resource.setrlimit(resource.RLIMIT_AS, (1024 * 1024 * 1024, 2 * 1024 * 1024 * 1024))
            resource.setrlimit(resource.RLIMIT_NPROC, (100, 100))
        except (ValueError, OSError):
            # Limits may already be lower than requested
            pass

    def _kill_group(self, process: subprocess.Popen) -> None:
        """Kill the command and everything it spawned."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            process.kill()
